"""探测传输基类"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..models.config import DEFAULT_USER_AGENT
from ..models.uptime import SslInfo
from ..utils.log_manager import get_logger


REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


@dataclass(frozen=True)
class ProbeRequest:
    """一次探测请求的参数"""
    url: str
    method: str = 'GET'
    timeout: float = 30
    follow_redirects: bool = True
    max_redirects: int = 5
    user_agent: str = DEFAULT_USER_AGENT
    check_ssl: bool = False


@dataclass(frozen=True)
class ProbeResponse:
    """探测得到的原始事实，是否成功由上层判定"""
    status_code: int
    elapsed_ms: int
    body: str = ''
    headers: Dict[str, str] = field(default_factory=dict)
    ssl_info: Optional[SslInfo] = None
    final_url: Optional[str] = None
    redirects: int = 0


class BaseProbeTransport(ABC):
    """探测传输抽象基类"""

    def __init__(self):
        self.transport_type = self.__class__.__name__.replace('ProbeTransport', '').lower()
        self.logger = get_logger(f'probe.{self.transport_type}')

    @abstractmethod
    async def probe(self, request: ProbeRequest) -> ProbeResponse:
        """
        执行一次请求

        Args:
            request: 探测请求参数

        Returns:
            ProbeResponse: 响应的状态码、耗时、正文和证书信息

        Raises:
            ProbeError: 连接失败、超时、重定向缺少 Location 或重定向次数超限
        """
        pass
