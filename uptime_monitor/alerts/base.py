"""告警器基类"""

from abc import ABC, abstractmethod

from ..models.uptime import AlertMessage


class BaseAlerter(ABC):
    """告警器抽象基类"""

    def __init__(self, name: str, timeout: float = 30):
        """
        初始化告警器

        Args:
            name: 告警器名称
            timeout: 单次发送的超时时间（秒）
        """
        self.name = name
        self.timeout = timeout
        self.alerter_type = self.__class__.__name__.replace('Alerter', '').lower()

    @abstractmethod
    async def send_alert(self, message: AlertMessage) -> bool:
        """
        发送告警消息

        Args:
            message: 告警消息对象

        Returns:
            bool: 发送是否成功

        Raises:
            NotificationError: 投递失败
        """
        pass

    def get_timeout(self) -> float:
        """
        获取超时时间配置

        Returns:
            float: 超时时间（秒）
        """
        return self.timeout
