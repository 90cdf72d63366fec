"""数据模型模块"""

from .config import (
    TargetConfig, SettingsConfig, AlertsConfig, SmtpConfig, NotificationsConfig,
    StorageConfig, StatusPageConfig, MonitorConfig
)
from .uptime import (
    TargetStatus, AlertKind, SslInfo, CheckOutcome, TargetState, StateChange,
    Incident, StoredCheck, HourlyAverage, StatusSnapshot, AlertMessage
)

__all__ = [
    'TargetConfig', 'SettingsConfig', 'AlertsConfig', 'SmtpConfig',
    'NotificationsConfig', 'StorageConfig', 'StatusPageConfig', 'MonitorConfig',
    'TargetStatus', 'AlertKind', 'SslInfo', 'CheckOutcome', 'TargetState',
    'StateChange', 'Incident', 'StoredCheck', 'HourlyAverage', 'StatusSnapshot',
    'AlertMessage'
]
