"""状态管理器模块

负责维护每个目标的当前状态、检测状态迁移，以及按 (目标, 告警类别) 记录
上次告警时间用于抑制重复告警。由调度器独占持有。
"""

from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..models.config import TargetConfig
from ..models.uptime import (
    AlertKind, CheckOutcome, StateChange, TargetState, TargetStatus
)
from ..utils.log_manager import get_logger
from ..utils.time_utils import utc_now


class StateManager:
    """状态管理器

    状态只在完整的检查周期结束后更新，重试中途的失败不会改变状态。
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        """初始化状态管理器

        Args:
            clock: 时间来源，用于告警抑制窗口的计算
        """
        self.current_states: Dict[str, TargetState] = {}
        self.last_alerts: Dict[Tuple[str, AlertKind], datetime] = {}
        self._clock = clock
        self.logger = get_logger('state_manager')

    def update_state(self, target: TargetConfig, outcome: CheckOutcome) -> StateChange:
        """用一个周期的最终结果更新目标状态

        Args:
            target: 目标配置
            outcome: 重试策略返回的最终结果

        Returns:
            StateChange: 本次更新前后的状态，是否为迁移由调用方判断
        """
        previous = self.current_states.get(target.name)
        old_status = previous.status if previous else None
        new_status = TargetStatus.UP if outcome.success else TargetStatus.DOWN

        self.current_states[target.name] = TargetState(
            name=target.name,
            status=new_status,
            last_check=outcome.timestamp,
            last_outcome=outcome,
            category=target.category,
        )

        change = StateChange(
            name=target.name,
            old_status=old_status,
            new_status=new_status,
            timestamp=outcome.timestamp,
            error=outcome.error,
        )

        if old_status is None:
            self.logger.info(f"目标 {target.name} 初始状态: {new_status.value}")
        elif change.is_transition:
            self.logger.warning(
                f"目标 {target.name} 状态变化: {old_status.value} -> {new_status.value}")

        return change

    def get_current_state(self, name: str) -> Optional[TargetState]:
        """获取目标当前状态，未检查过的目标返回 None"""
        return self.current_states.get(name)

    def get_all_states(self) -> Dict[str, TargetState]:
        """获取所有目标状态的副本"""
        return dict(self.current_states)

    def ordered_states(self, names: Iterable[str]) -> List[TargetState]:
        """按给定顺序返回已有状态，未检查过的目标被跳过"""
        return [self.current_states[n] for n in names if n in self.current_states]

    def should_alert(self, name: str, kind: AlertKind, window_seconds: float,
                     now: Optional[datetime] = None) -> bool:
        """判断是否已超出抑制窗口

        Args:
            name: 目标名称
            kind: 告警类别
            window_seconds: 抑制窗口（秒）
            now: 当前时间，默认取时间来源

        Returns:
            bool: 从未告警过，或距上次告警已超过窗口时返回 True
        """
        last_alert = self.last_alerts.get((name, kind))
        if last_alert is None:
            return True
        now = now or self._clock()
        return (now - last_alert).total_seconds() > window_seconds

    def record_alert(self, name: str, kind: AlertKind, now: Optional[datetime] = None):
        """记录告警时间"""
        self.last_alerts[(name, kind)] = now or self._clock()

    def last_alert_time(self, name: str, kind: AlertKind) -> Optional[datetime]:
        return self.last_alerts.get((name, kind))

    def forget(self, name: str):
        """移除已从配置中删除的目标的状态和告警记录"""
        self.current_states.pop(name, None)
        for kind in AlertKind:
            self.last_alerts.pop((name, kind), None)
