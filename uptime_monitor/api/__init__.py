"""只读 HTTP API"""

from .status_server import StatusServer

__all__ = ['StatusServer']
