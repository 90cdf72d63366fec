"""配置数据模型

YAML 配置经 ConfigValidator 校验后转换为以下不可变的数据类，
每次热更新生成一整套新的实例。
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Tuple


DEFAULT_USER_AGENT = 'Uptime-Monitor/1.0'


@dataclass(frozen=True)
class TargetConfig:
    """监控目标配置，name 在所有目标中唯一"""
    name: str
    url: str
    method: str = 'GET'
    timeout: Optional[float] = None
    delay: int = 60
    expected_status: Tuple[int, ...] = (200,)
    expected_content: Optional[str] = None
    response_time_threshold: Optional[int] = None
    check_ssl: bool = False
    category: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TargetConfig':
        expected_status = data.get('expected_status', [200])
        if isinstance(expected_status, int):
            expected_status = [expected_status]

        return cls(
            name=str(data['name']),
            url=str(data['url']),
            method=str(data.get('method', 'GET')).upper(),
            timeout=data.get('timeout'),
            delay=data.get('delay', 60),
            expected_status=tuple(expected_status),
            expected_content=data.get('expected_content'),
            response_time_threshold=data.get('response_time_threshold'),
            check_ssl=bool(data.get('check_ssl', False)),
            category=data.get('category'),
        )


@dataclass(frozen=True)
class SettingsConfig:
    """全局探测与日志设置"""
    default_timeout: float = 30
    user_agent: str = DEFAULT_USER_AGENT
    follow_redirects: bool = True
    max_redirects: int = 5
    log_level: str = 'INFO'
    log_file: Optional[str] = None
    max_log_size: int = 10 * 1024 * 1024
    log_backup_count: int = 5

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SettingsConfig':
        return cls(
            default_timeout=data.get('default_timeout', 30),
            user_agent=data.get('user_agent', DEFAULT_USER_AGENT),
            follow_redirects=data.get('follow_redirects', True) is not False,
            max_redirects=data.get('max_redirects', 5),
            log_level=str(data.get('log_level', 'INFO')).upper(),
            log_file=data.get('log_file'),
            max_log_size=data.get('max_log_size', 10 * 1024 * 1024),
            log_backup_count=data.get('log_backup_count', 5),
        )

    def to_logging_config(self) -> Dict[str, Any]:
        return {
            'log_level': self.log_level,
            'log_file': self.log_file,
            'max_file_size': self.max_log_size,
            'backup_count': self.log_backup_count,
        }


@dataclass(frozen=True)
class AlertsConfig:
    """重试与告警抑制设置"""
    retry_count: int = 3
    retry_delay: float = 10
    alert_on_recovery: bool = True
    cooldown_period: float = 300

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AlertsConfig':
        return cls(
            retry_count=data.get('retry_count', 3),
            retry_delay=data.get('retry_delay', 10),
            alert_on_recovery=data.get('alert_on_recovery', True) is not False,
            cooldown_period=data.get('cooldown_period', 300),
        )


@dataclass(frozen=True)
class SmtpConfig:
    """SMTP 发信设置"""
    enabled: bool = False
    host: str = 'localhost'
    port: int = 587
    use_tls: bool = False
    username: str = ''
    password: str = ''
    from_name: str = ''
    from_address: str = 'uptime@localhost'
    timeout: float = 30

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SmtpConfig':
        return cls(
            enabled=bool(data.get('enabled', False)),
            host=data.get('host') or 'localhost',
            port=int(data.get('port', 587)),
            use_tls=bool(data.get('use_tls', False)),
            username=data.get('username') or '',
            password=data.get('password') or '',
            from_name=data.get('from_name') or '',
            from_address=data.get('from_address') or 'uptime@localhost',
            timeout=data.get('timeout', 30),
        )

    @property
    def is_configured(self) -> bool:
        return self.enabled and bool(self.host) and self.host != 'localhost'


@dataclass(frozen=True)
class NotificationsConfig:
    """通知收件人与发信设置"""
    email: Tuple[str, ...] = ()
    smtp: SmtpConfig = field(default_factory=SmtpConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NotificationsConfig':
        return cls(
            email=tuple(data.get('email') or ()),
            smtp=SmtpConfig.from_dict(data.get('smtp') or {}),
        )


@dataclass(frozen=True)
class StorageConfig:
    """历史记录存储设置"""
    path: str = './data.json'
    retention_days: float = 5
    incidents_path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageConfig':
        return cls(
            path=data.get('path') or './data.json',
            retention_days=data.get('retention_days', 5),
            incidents_path=data.get('incidents_path'),
        )


@dataclass(frozen=True)
class StatusPageConfig:
    """状态页与只读 API 设置"""
    enabled: bool = False
    title: str = 'System Status'
    host: str = '0.0.0.0'
    port: int = 3070
    incident_retention_days: float = 90

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StatusPageConfig':
        return cls(
            enabled=bool(data.get('enabled', False)),
            title=data.get('title') or 'System Status',
            host=data.get('host') or '0.0.0.0',
            port=int(data.get('port', 3070)),
            incident_retention_days=data.get('incident_retention_days', 90),
        )


@dataclass(frozen=True)
class MonitorConfig:
    """完整的监控配置，targets 保持配置文件中的顺序"""
    targets: Tuple[TargetConfig, ...] = ()
    settings: SettingsConfig = field(default_factory=SettingsConfig)
    alerts: AlertsConfig = field(default_factory=AlertsConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    status_page: StatusPageConfig = field(default_factory=StatusPageConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MonitorConfig':
        """从已校验的配置字典构建配置对象"""
        return cls(
            targets=tuple(TargetConfig.from_dict(t) for t in data.get('urls') or []),
            settings=SettingsConfig.from_dict(data.get('settings') or {}),
            alerts=AlertsConfig.from_dict(data.get('alerts') or {}),
            notifications=NotificationsConfig.from_dict(data.get('notifications') or {}),
            storage=StorageConfig.from_dict(data.get('storage') or {}),
            status_page=StatusPageConfig.from_dict(data.get('status_page') or {}),
        )

    def get_target(self, name: str) -> Optional[TargetConfig]:
        for target in self.targets:
            if target.name == name:
                return target
        return None

    @property
    def target_names(self) -> Tuple[str, ...]:
        return tuple(t.name for t in self.targets)
