"""探测与重试模块"""

from .base import BaseProbeTransport, ProbeRequest, ProbeResponse, REDIRECT_STATUSES
from .http_probe import HttpProbeTransport, parse_peer_certificate
from .retry_policy import RetryPolicy

__all__ = ['BaseProbeTransport', 'ProbeRequest', 'ProbeResponse', 'REDIRECT_STATUSES',
           'HttpProbeTransport', 'parse_peer_certificate', 'RetryPolicy']
