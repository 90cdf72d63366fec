"""日志告警器，没有配置邮件收件人时把告警写入日志"""

from .base import BaseAlerter
from ..models.uptime import AlertMessage
from ..utils.log_manager import get_logger


class LogAlerter(BaseAlerter):
    """日志告警器"""

    def __init__(self, name: str = 'log'):
        super().__init__(name)
        self.logger = get_logger(f'alerter.log.{self.name}')

    async def send_alert(self, message: AlertMessage) -> bool:
        self.logger.warning(f"{message.subject}\n{message.body}")
        return True
