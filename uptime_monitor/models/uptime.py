"""检查结果、目标状态和事件相关的数据模型"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional, List, Tuple

from ..utils.time_utils import utc_now, to_iso, parse_iso


class TargetStatus(str, Enum):
    """目标状态，对外只暴露 up / down"""
    UP = 'up'
    DOWN = 'down'


class AlertKind(str, Enum):
    """告警抑制的类别"""
    STATUS_CHANGE = 'status-change'
    SSL_EXPIRY = 'ssl-expiry'


@dataclass(frozen=True)
class SslInfo:
    """对端证书信息"""
    valid_from: datetime
    valid_to: datetime
    days_remaining: int
    issuer: Optional[str] = None
    subject: Optional[str] = None
    valid: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'valid': self.valid,
            'validFrom': to_iso(self.valid_from),
            'validTo': to_iso(self.valid_to),
            'issuer': self.issuer,
            'subject': self.subject,
            'daysRemaining': self.days_remaining,
        }


@dataclass(frozen=True)
class CheckOutcome:
    """一次探测的结果，创建后不可修改"""
    name: str
    url: str
    success: bool
    timestamp: datetime = field(default_factory=utc_now)
    status_code: Optional[int] = None
    response_time: Optional[int] = None  # 毫秒
    error: Optional[str] = None
    ssl_info: Optional[SslInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'url': self.url,
            'success': self.success,
            'statusCode': self.status_code,
            'responseTime': self.response_time,
            'error': self.error,
            'sslInfo': self.ssl_info.to_dict() if self.ssl_info else None,
            'timestamp': to_iso(self.timestamp),
        }


@dataclass(frozen=True)
class TargetState:
    """目标的当前状态快照，每个完整检查周期后整体替换"""
    name: str
    status: TargetStatus
    last_check: datetime
    last_outcome: CheckOutcome
    category: Optional[str] = None

    @property
    def response_time(self) -> Optional[int]:
        return self.last_outcome.response_time

    @property
    def error(self) -> Optional[str]:
        return self.last_outcome.error

    @property
    def ssl_info(self) -> Optional[SslInfo]:
        return self.last_outcome.ssl_info

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'status': self.status.value,
            'lastCheck': to_iso(self.last_check),
            'responseTime': self.response_time,
            'error': self.error,
            'sslInfo': self.ssl_info.to_dict() if self.ssl_info else None,
            'category': self.category,
        }


@dataclass(frozen=True)
class StateChange:
    """一次完整检查周期后的状态迁移"""
    name: str
    old_status: Optional[TargetStatus]
    new_status: TargetStatus
    timestamp: datetime
    error: Optional[str] = None

    @property
    def went_down(self) -> bool:
        """进入 down，未检查过的目标按 up 处理"""
        return self.new_status == TargetStatus.DOWN and self.old_status != TargetStatus.DOWN

    @property
    def recovered(self) -> bool:
        return self.new_status == TargetStatus.UP and self.old_status == TargetStatus.DOWN

    @property
    def is_transition(self) -> bool:
        return self.went_down or self.recovered


@dataclass
class Incident:
    """目标的一次故障记录，恢复前处于打开状态"""
    service: str
    error: str
    timestamp: datetime
    resolved: bool = False
    resolved_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'service': self.service,
            'error': self.error,
            'timestamp': to_iso(self.timestamp),
            'resolved': self.resolved,
            'resolvedAt': to_iso(self.resolved_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Incident':
        return cls(
            service=data['service'],
            error=data.get('error') or '',
            timestamp=parse_iso(data['timestamp']),
            resolved=bool(data.get('resolved', False)),
            resolved_at=parse_iso(data.get('resolvedAt')),
        )


@dataclass(frozen=True)
class StoredCheck:
    """持久化的检查记录"""
    timestamp: datetime
    success: bool
    response_time: Optional[int] = None
    status_code: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: CheckOutcome) -> 'StoredCheck':
        return cls(
            timestamp=outcome.timestamp,
            success=outcome.success,
            response_time=outcome.response_time,
            status_code=outcome.status_code,
            error=outcome.error,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': to_iso(self.timestamp),
            'success': self.success,
            'responseTime': self.response_time,
            'statusCode': self.status_code,
            'error': self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StoredCheck':
        return cls(
            timestamp=parse_iso(data['timestamp']),
            success=bool(data['success']),
            response_time=data.get('responseTime'),
            status_code=data.get('statusCode'),
            error=data.get('error'),
        )


@dataclass(frozen=True)
class HourlyAverage:
    """按小时聚合的统计，平均响应时间和可用率取整，空桶为 None"""
    hour: datetime
    avg_response_time: Optional[int]
    uptime: Optional[int]
    check_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hour': to_iso(self.hour),
            'avgResponseTime': self.avg_response_time,
            'uptime': self.uptime,
            'checkCount': self.check_count,
        }


@dataclass(frozen=True)
class StatusSnapshot:
    """对外展示的状态快照"""
    title: str = 'System Status'
    last_update: Optional[datetime] = None
    services: Tuple[TargetState, ...] = ()
    incidents: Tuple[Incident, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'lastUpdate': to_iso(self.last_update),
            'services': [s.to_dict() for s in self.services],
            'incidents': [i.to_dict() for i in self.incidents],
        }


@dataclass
class AlertMessage:
    """告警消息模型"""
    service_name: str
    status: str  # "DOWN", "UP", "SSL_EXPIRING"
    subject: str
    body: str
    recipients: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utc_now)
    error_message: Optional[str] = None
    response_time: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
