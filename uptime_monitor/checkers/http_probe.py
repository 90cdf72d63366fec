"""HTTP(S) 探测传输"""

import asyncio
import math
import ssl
import time
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from urllib.parse import urljoin, urlparse

import aiohttp

from .base import BaseProbeTransport, ProbeRequest, ProbeResponse, REDIRECT_STATUSES
from ..models.uptime import SslInfo
from ..utils.exceptions import ProbeError, ErrorCode
from ..utils.time_utils import utc_now


SECONDS_PER_DAY = 24 * 60 * 60


def _name_attribute(name: Any, attribute: str) -> Optional[str]:
    """从 getpeercert() 的 subject/issuer 元组中取指定属性"""
    if not isinstance(name, tuple):
        return None
    for rdn in name:
        for item in rdn:
            if isinstance(item, tuple) and len(item) == 2 and item[0] == attribute:
                return str(item[1])
    return None


def parse_peer_certificate(cert: Optional[Dict[str, Any]],
                           now: Optional[datetime] = None) -> Optional[SslInfo]:
    """
    将 ssl.SSLObject.getpeercert() 的结果转换为 SslInfo

    Args:
        cert: 证书字典，例如 {'notAfter': 'Feb  6 12:00:00 2026 GMT', ...}
        now: 计算剩余天数的参考时间，默认当前时间

    Returns:
        SslInfo，证书缺失或没有有效期时返回 None
    """
    if not cert or not cert.get('notAfter'):
        return None

    valid_to = datetime.fromtimestamp(ssl.cert_time_to_seconds(cert['notAfter']), timezone.utc)
    valid_from = valid_to
    if cert.get('notBefore'):
        valid_from = datetime.fromtimestamp(
            ssl.cert_time_to_seconds(cert['notBefore']), timezone.utc)

    now = now or utc_now()
    days_remaining = math.floor((valid_to - now).total_seconds() / SECONDS_PER_DAY)

    return SslInfo(
        valid=valid_from <= now <= valid_to,
        valid_from=valid_from,
        valid_to=valid_to,
        issuer=_name_attribute(cert.get('issuer'), 'organizationName'),
        subject=_name_attribute(cert.get('subject'), 'commonName'),
        days_remaining=days_remaining,
    )


class HttpProbeTransport(BaseProbeTransport):
    """基于 aiohttp 的 HTTP(S) 探测，手动跟随重定向以便计数"""

    def __init__(self, ssl_context: Optional[ssl.SSLContext] = None):
        super().__init__()
        self.ssl_context = ssl_context

    async def probe(self, request: ProbeRequest) -> ProbeResponse:
        start_time = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - start_time) * 1000)

        timeout = aiohttp.ClientTimeout(total=request.timeout)
        headers = {'User-Agent': request.user_agent}
        url = request.url
        redirects = 0

        try:
            async with aiohttp.ClientSession(timeout=timeout, headers=headers) as session:
                while True:
                    request_kwargs = {'allow_redirects': False}
                    if self.ssl_context is not None:
                        request_kwargs['ssl'] = self.ssl_context

                    async with session.request(request.method, url, **request_kwargs) as response:
                        body = await response.text(errors='replace')

                        if response.status in REDIRECT_STATUSES and request.follow_redirects:
                            if redirects >= request.max_redirects:
                                raise ProbeError(
                                    f"Too many redirects (max: {request.max_redirects})",
                                    ErrorCode.TOO_MANY_REDIRECTS,
                                    url=request.url
                                )
                            location = response.headers.get('Location')
                            if not location:
                                raise ProbeError(
                                    "Redirect without location header",
                                    ErrorCode.REDIRECT_WITHOUT_LOCATION,
                                    url=url
                                )
                            url = urljoin(url, location)
                            redirects += 1
                            self.logger.debug(f"跟随重定向 ({redirects}): {url}")
                            continue

                        status_code = response.status
                        response_headers = dict(response.headers)
                        break

        except ProbeError as e:
            e.elapsed_ms = elapsed_ms()
            raise
        except asyncio.TimeoutError:
            raise ProbeError(
                f"Request timeout after {int(request.timeout * 1000)}ms",
                ErrorCode.TIMEOUT_ERROR,
                url=url,
                elapsed_ms=elapsed_ms()
            )
        except aiohttp.InvalidURL as e:
            raise ProbeError(
                f"Invalid URL: {e}",
                ErrorCode.INVALID_URL,
                url=url,
                elapsed_ms=elapsed_ms(),
                cause=e
            )
        except aiohttp.ClientError as e:
            raise ProbeError(
                str(e) or e.__class__.__name__,
                ErrorCode.CONNECTION_ERROR,
                url=url,
                elapsed_ms=elapsed_ms(),
                cause=e
            )

        # 证书读取不计入响应时间
        response_time = elapsed_ms()
        ssl_info = None
        if request.check_ssl and urlparse(url).scheme == 'https':
            ssl_info = await self.fetch_ssl_info(url, request.timeout)

        return ProbeResponse(
            status_code=status_code,
            elapsed_ms=response_time,
            body=body,
            headers=response_headers,
            ssl_info=ssl_info,
            final_url=url,
            redirects=redirects,
        )

    async def fetch_ssl_info(self, url: str, timeout: float) -> Optional[SslInfo]:
        """单独进行一次 TLS 握手读取对端证书

        aiohttp 在正文读完后就把连接放回连接池，响应对象上已经拿不到证书，
        所以对最终地址另建连接。拿不到证书时返回 None 而不是报错。

        Args:
            url: 最终的 https 地址
            timeout: 握手超时（秒）

        Returns:
            SslInfo 或 None
        """
        parsed = urlparse(url)
        host = parsed.hostname
        port = parsed.port or 443
        context = self.ssl_context or ssl.create_default_context()

        writer = None
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port, ssl=context, server_hostname=host),
                timeout=timeout
            )
            ssl_object = writer.get_extra_info('ssl_object')
            if ssl_object is None:
                return None
            return parse_peer_certificate(ssl_object.getpeercert())
        except asyncio.TimeoutError:
            self.logger.warning(f"读取 {host}:{port} 证书超时")
            return None
        except (OSError, ValueError) as e:
            self.logger.warning(f"读取 {host}:{port} 证书失败: {e}")
            return None
        finally:
            if writer is not None:
                writer.close()
                try:
                    await writer.wait_closed()
                except OSError as e:
                    self.logger.debug(f"关闭证书检查连接出错: {e}")
