"""告警管理器

通知网关：调度器只决定何时调用 notify_down / notify_up / notify_ssl_expiring，
投递由这里并发分发到各告警器。投递失败只记录日志，不会抛回调度器。
"""

import asyncio
from typing import Dict, List, Any, Iterable, Optional

from .base import BaseAlerter
from .email_alerter import EmailAlerter
from .log_alerter import LogAlerter
from ..models.config import NotificationsConfig, TargetConfig
from ..models.uptime import AlertMessage, CheckOutcome, SslInfo
from ..utils.exceptions import AlertConfigError, NotificationError
from ..utils.log_manager import get_logger
from ..utils.time_utils import to_iso, utc_now


class AlertManager:
    """告警管理器，负责管理告警器和发送告警消息"""

    def __init__(self, alerters: Optional[List[BaseAlerter]] = None):
        """
        初始化告警管理器

        Args:
            alerters: 初始告警器列表
        """
        self.alerters: List[BaseAlerter] = []
        self.logger = get_logger('alert_manager')
        self._stats = {'sent': 0, 'failed': 0}

        for alerter in alerters or []:
            self.add_alerter(alerter)

    @classmethod
    def from_config(cls, notifications: NotificationsConfig) -> 'AlertManager':
        """按通知配置创建告警管理器

        日志告警器始终注册，配置了邮件收件人时再加上邮件告警器。
        """
        manager = cls()
        manager.configure(notifications)
        return manager

    def configure(self, notifications: NotificationsConfig):
        """按新的通知配置重建告警器"""
        alerters: List[BaseAlerter] = [LogAlerter()]
        if notifications.email:
            try:
                alerters.append(EmailAlerter('email', notifications.smtp))
            except AlertConfigError as e:
                self.logger.error(f"初始化邮件告警器失败: {e}")

        self.alerters = []
        for alerter in alerters:
            self.add_alerter(alerter)

    def add_alerter(self, alerter: BaseAlerter):
        """
        添加告警器

        Args:
            alerter: 告警器实例
        """
        if not isinstance(alerter, BaseAlerter):
            raise AlertConfigError(f"告警器必须继承自BaseAlerter: {type(alerter)}")

        self.alerters.append(alerter)
        self.logger.info(f"已添加告警器: {alerter.name} ({alerter.alerter_type})")

    def remove_alerter(self, name: str) -> bool:
        """
        移除告警器

        Args:
            name: 告警器名称

        Returns:
            bool: 是否成功移除
        """
        for i, alerter in enumerate(self.alerters):
            if alerter.name == name:
                removed_alerter = self.alerters.pop(i)
                self.logger.info(f"已移除告警器: {removed_alerter.name}")
                return True
        return False

    async def notify_down(self, target: TargetConfig, outcome: CheckOutcome,
                          recipients: Iterable[str]) -> bool:
        """发送目标不可用通知"""
        body = "\n".join([
            f"Service: {target.name}",
            f"URL: {target.url}",
            "Status: DOWN",
            f"Error: {outcome.error or 'Unknown error'}",
            f"Response Time: {f'{outcome.response_time}ms' if outcome.response_time else 'N/A'}",
            f"Status Code: {outcome.status_code or 'N/A'}",
            f"Time: {to_iso(outcome.timestamp)}",
        ])
        message = AlertMessage(
            service_name=target.name,
            status='DOWN',
            subject=f"[DOWN] {target.name} is not responding",
            body=body,
            recipients=list(recipients),
            timestamp=outcome.timestamp,
            error_message=outcome.error,
            response_time=outcome.response_time,
            metadata={'url': target.url, 'status_code': outcome.status_code},
        )
        return await self.send(message)

    async def notify_up(self, target: TargetConfig, outcome: CheckOutcome,
                        recipients: Iterable[str]) -> bool:
        """发送目标恢复通知"""
        body = "\n".join([
            f"Service: {target.name}",
            f"URL: {target.url}",
            "Status: UP",
            f"Response Time: {outcome.response_time}ms",
            f"Time: {to_iso(outcome.timestamp)}",
        ])
        message = AlertMessage(
            service_name=target.name,
            status='UP',
            subject=f"[UP] {target.name} has recovered",
            body=body,
            recipients=list(recipients),
            timestamp=outcome.timestamp,
            response_time=outcome.response_time,
            metadata={'url': target.url},
        )
        return await self.send(message)

    async def notify_ssl_expiring(self, target: TargetConfig, ssl_info: SslInfo,
                                  recipients: Iterable[str]) -> bool:
        """发送证书即将过期通知"""
        body = "\n".join([
            f"Service: {target.name}",
            f"URL: {target.url}",
            f"Certificate: Expiring in {ssl_info.days_remaining} days",
            f"Expires: {to_iso(ssl_info.valid_to)}",
            f"Subject: {ssl_info.subject}",
            f"Issuer: {ssl_info.issuer}",
        ])
        message = AlertMessage(
            service_name=target.name,
            status='SSL_EXPIRING',
            subject=f"[SSL] {target.name} certificate expiring soon",
            body=body,
            recipients=list(recipients),
            timestamp=utc_now(),
            metadata={'url': target.url, 'days_remaining': ssl_info.days_remaining},
        )
        return await self.send(message)

    async def send(self, message: AlertMessage) -> bool:
        """
        并发发送到所有告警器

        Returns:
            bool: 至少一个告警器发送成功
        """
        if not self.alerters:
            self.logger.warning("没有配置告警器，跳过告警发送")
            return False

        results = await asyncio.gather(
            *(self._send_to_alerter(alerter, message) for alerter in self.alerters)
        )
        self._log_send_results(results, message)
        return any(r['success'] for r in results)

    async def _send_to_alerter(self, alerter: BaseAlerter, message: AlertMessage) -> Dict[str, Any]:
        """
        向单个告警器发送消息，超时和异常都在这里处理

        Returns:
            Dict[str, Any]: 发送结果
        """
        try:
            success = await asyncio.wait_for(alerter.send_alert(message),
                                             timeout=alerter.get_timeout())
            return {'alerter': alerter.name, 'success': bool(success), 'error': None}
        except asyncio.TimeoutError:
            error = f"发送超时 ({alerter.get_timeout()}s)"
        except NotificationError as e:
            error = e.format_error()
        except Exception as e:
            error = str(e) or e.__class__.__name__

        self.logger.error(f"告警器 {alerter.name} 发送失败: {error}")
        return {'alerter': alerter.name, 'success': False, 'error': error}

    def _log_send_results(self, results: List[Dict[str, Any]], message: AlertMessage):
        success_count = sum(1 for r in results if r['success'])
        self._stats['sent'] += success_count
        self._stats['failed'] += len(results) - success_count

        if success_count:
            self.logger.info(
                f"告警 {message.status} ({message.service_name}) 发送完成: "
                f"成功 {success_count}/{len(results)}")
        else:
            self.logger.error(
                f"告警 {message.status} ({message.service_name}) 所有告警器均发送失败")

    def get_alert_stats(self) -> Dict[str, Any]:
        """获取告警统计信息"""
        return {
            'alerters': [a.name for a in self.alerters],
            'sent': self._stats['sent'],
            'failed': self._stats['failed'],
        }
