"""告警模块"""

from .base import BaseAlerter
from .email_alerter import EmailAlerter
from .log_alerter import LogAlerter
from .manager import AlertManager

__all__ = [
    'BaseAlerter',
    'AlertManager',
    'EmailAlerter',
    'LogAlerter'
]
