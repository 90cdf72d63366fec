"""重试策略

在探测传输之上执行有限次数的顺序重试，并按目标规则判定成功与否。
"""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional

from .base import BaseProbeTransport, ProbeRequest, ProbeResponse
from ..models.config import TargetConfig, SettingsConfig, AlertsConfig
from ..models.uptime import CheckOutcome
from ..utils.exceptions import ProbeError
from ..utils.log_manager import get_logger
from ..utils.time_utils import utc_now


class RetryPolicy:
    """重试策略

    最多执行 retry_count 次探测，两次探测之间等待 retry_delay 秒，
    首次成功即返回；全部失败时返回最后一次的失败结果，不会返回空结果。
    """

    def __init__(self, transport: BaseProbeTransport,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 clock: Callable[[], datetime] = utc_now):
        """
        Args:
            transport: 探测传输
            sleep: 重试间隔等待函数，测试中可替换
            clock: 时间来源，用于结果时间戳
        """
        self.transport = transport
        self._sleep = sleep
        self._clock = clock
        self.logger = get_logger('retry_policy')

    @staticmethod
    def build_request(target: TargetConfig, settings: SettingsConfig) -> ProbeRequest:
        """合并目标配置与全局默认值"""
        return ProbeRequest(
            url=target.url,
            method=target.method,
            timeout=target.timeout or settings.default_timeout,
            follow_redirects=settings.follow_redirects,
            max_redirects=settings.max_redirects,
            user_agent=settings.user_agent,
            check_ssl=target.check_ssl,
        )

    @staticmethod
    def classify(target: TargetConfig, response: ProbeResponse) -> Optional[str]:
        """
        按目标规则判定响应

        Returns:
            失败原因，成功时返回 None
        """
        if response.status_code not in target.expected_status:
            return f"Unexpected status code: {response.status_code}"

        if target.expected_content and target.expected_content not in response.body:
            return f'Expected content not found: "{target.expected_content}"'

        threshold = target.response_time_threshold
        if threshold and response.elapsed_ms > threshold:
            return (f"Response time {response.elapsed_ms}ms exceeds threshold "
                    f"{threshold}ms")

        return None

    async def check_once(self, target: TargetConfig, settings: SettingsConfig) -> CheckOutcome:
        """执行一次探测并生成检查结果，任何异常都转换为失败结果"""
        timestamp = self._clock()

        try:
            request = self.build_request(target, settings)
            response = await self.transport.probe(request)
        except ProbeError as e:
            return CheckOutcome(
                name=target.name,
                url=target.url,
                success=False,
                timestamp=timestamp,
                response_time=e.elapsed_ms,
                error=e.message,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(f"目标 {target.name} 探测异常: {e}", exc_info=True)
            return CheckOutcome(
                name=target.name,
                url=target.url,
                success=False,
                timestamp=timestamp,
                error=str(e) or e.__class__.__name__,
            )

        error = self.classify(target, response)
        return CheckOutcome(
            name=target.name,
            url=target.url,
            success=error is None,
            timestamp=timestamp,
            status_code=response.status_code,
            response_time=response.elapsed_ms,
            error=error,
            ssl_info=response.ssl_info,
        )

    async def check(self, target: TargetConfig, settings: SettingsConfig,
                    alerts: AlertsConfig) -> CheckOutcome:
        """
        执行带重试的完整检查

        Args:
            target: 目标配置
            settings: 全局设置
            alerts: 重试次数与间隔

        Returns:
            CheckOutcome: 首次成功的结果，或最后一次失败的结果
        """
        attempts = max(1, alerts.retry_count)
        outcome = None

        for attempt in range(1, attempts + 1):
            outcome = await self.check_once(target, settings)

            if outcome.success:
                if attempt > 1:
                    self.logger.info(f"目标 {target.name} 第 {attempt} 次尝试成功")
                return outcome

            self.logger.debug(
                f"目标 {target.name} 检查失败 (尝试 {attempt}/{attempts}): {outcome.error}")

            if attempt < attempts:
                await self._sleep(alerts.retry_delay)

        return outcome
