"""邮件告警器实现"""

import re
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Dict, Any, List

import aiosmtplib

from .base import BaseAlerter
from ..models.config import SmtpConfig
from ..models.uptime import AlertMessage
from ..utils.exceptions import AlertConfigError, AlertSendError
from ..utils.log_manager import get_logger


EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+(\.[a-zA-Z]{2,})?$')


class EmailAlerter(BaseAlerter):
    """邮件告警器，通过SMTP协议逐个收件人发送

    SMTP 未启用或未配置主机时，只把邮件内容写入日志。
    """

    def __init__(self, name: str, smtp: SmtpConfig):
        """
        初始化邮件告警器

        Args:
            name: 告警器名称
            smtp: SMTP 配置

        Raises:
            AlertConfigError: 配置无效
        """
        super().__init__(name, timeout=smtp.timeout)
        self.smtp = smtp
        self.logger = get_logger(f'alerter.email.{self.name}')

        if not self.validate_config():
            raise AlertConfigError(f"邮件告警器配置无效: {name}", alert_name=name)

    def validate_config(self) -> bool:
        """
        验证配置参数是否有效

        Returns:
            bool: 配置是否有效
        """
        if not self.smtp.is_configured:
            return True

        if not isinstance(self.smtp.port, int) or self.smtp.port <= 0:
            self.logger.error(f"邮件告警器 {self.name} SMTP端口无效: {self.smtp.port}")
            return False

        if not EMAIL_PATTERN.match(self.smtp.from_address):
            self.logger.error(
                f"邮件告警器 {self.name} 发件人邮箱格式无效: {self.smtp.from_address}")
            return False

        return True

    @property
    def from_header(self) -> str:
        if self.smtp.from_name:
            return formataddr((self.smtp.from_name, self.smtp.from_address))
        return self.smtp.from_address

    async def send_alert(self, message: AlertMessage) -> bool:
        """
        向消息中的每个收件人发送邮件

        Args:
            message: 告警消息对象

        Returns:
            bool: 全部发送成功返回 True，没有收件人返回 False

        Raises:
            AlertSendError: 至少一个收件人发送失败
        """
        if not message.recipients:
            self.logger.debug(f"告警 {message.subject} 没有收件人，跳过邮件发送")
            return False

        failures: List[str] = []
        for recipient in message.recipients:
            if not self.smtp.is_configured:
                self.logger.info(
                    f"SMTP未配置，记录邮件内容代替发送:\n"
                    f"  To: {recipient}\n  Subject: {message.subject}\n  Body: {message.body}"
                )
                continue

            try:
                await self._send_email(recipient, message)
                self.logger.info(f"邮件已发送: {recipient}")
            except AlertSendError as e:
                self.logger.error(f"发送邮件到 {recipient} 失败: {e}")
                failures.append(recipient)

        if failures:
            raise AlertSendError(
                f"邮件告警发送失败: {', '.join(failures)}",
                alert_name=self.name
            )
        return True

    async def _send_email(self, recipient: str, message: AlertMessage):
        """通过 aiosmtplib 发送单封邮件"""
        email_msg = self._create_email_message(recipient, message)

        smtp_kwargs: Dict[str, Any] = {
            'hostname': self.smtp.host,
            'port': self.smtp.port,
            'timeout': self.get_timeout(),
        }
        # 465 端口走隐式 TLS，其余端口按配置决定是否 STARTTLS
        if self.smtp.port == 465:
            smtp_kwargs['use_tls'] = True
        else:
            smtp_kwargs['start_tls'] = self.smtp.use_tls

        if self.smtp.username and self.smtp.password:
            smtp_kwargs['username'] = self.smtp.username
            smtp_kwargs['password'] = self.smtp.password

        try:
            await aiosmtplib.send(email_msg, **smtp_kwargs)
        except (aiosmtplib.SMTPException, OSError) as e:
            raise AlertSendError(f"SMTP发送失败: {e}", alert_name=self.name, cause=e)

    def _create_email_message(self, recipient: str, message: AlertMessage) -> MIMEText:
        email_msg = MIMEText(message.body, 'plain', 'utf-8')
        email_msg['From'] = self.from_header
        email_msg['To'] = recipient
        email_msg['Subject'] = message.subject
        return email_msg

    def get_config_summary(self) -> Dict[str, Any]:
        """
        获取配置摘要（用于调试和监控）

        Returns:
            Dict[str, Any]: 配置摘要，不包含密码
        """
        return {
            'name': self.name,
            'type': 'email',
            'smtp_configured': self.smtp.is_configured,
            'smtp_host': self.smtp.host,
            'smtp_port': self.smtp.port,
            'from_address': self.smtp.from_address,
            'use_tls': self.smtp.use_tls,
            'timeout': self.get_timeout()
        }
