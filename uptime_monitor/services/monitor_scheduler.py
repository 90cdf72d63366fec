"""监控调度器模块

为每个目标维护一个独立的定时任务，每次触发执行一个带重试的检查周期，
并根据结果驱动状态迁移、故障事件和告警通知。
"""

import asyncio
import functools
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from ..alerts.manager import AlertManager
from ..checkers.retry_policy import RetryPolicy
from ..models.config import MonitorConfig, TargetConfig
from ..models.uptime import AlertKind, CheckOutcome, StatusSnapshot
from ..utils.exceptions import SchedulerError
from ..utils.log_manager import get_logger
from ..utils.time_utils import utc_now
from .history_store import HistoryStore
from .incident_ledger import IncidentLedger
from .state_manager import StateManager
from .status_projection import StatusProjection


SSL_WARNING_DAYS = 14
SSL_ALERT_WINDOW_SECONDS = 24 * 60 * 60


class MonitorScheduler:
    """监控调度器

    - 每个目标一个定时任务，首次立即触发，之后每 delay 秒触发一次
    - 同一目标的上一个周期尚未结束时，新的触发会被跳过并记录警告
    - 不同目标的周期互不阻塞
    - 热更新按目标差异处理：删除的目标停止定时，新增或配置变化的目标重新定时
      并立即检查，未变化的目标保持原有节奏
    """

    def __init__(self, retry_policy: RetryPolicy,
                 history_store: HistoryStore,
                 incident_ledger: IncidentLedger,
                 notifier: AlertManager,
                 projection: StatusProjection,
                 state_manager: Optional[StateManager] = None,
                 clock: Callable[[], datetime] = utc_now,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """初始化监控调度器

        Args:
            retry_policy: 带重试的检查策略
            history_store: 历史记录存储
            incident_ledger: 故障事件台账
            notifier: 通知网关
            projection: 状态投影
            state_manager: 目标状态与告警抑制，默认新建
            clock: 时间来源
            sleep: 定时等待函数
        """
        self.retry_policy = retry_policy
        self.history_store = history_store
        self.incident_ledger = incident_ledger
        self.notifier = notifier
        self.projection = projection
        self.state_manager = state_manager or StateManager(clock=clock)
        self._clock = clock
        self._sleep = sleep

        self.config: Optional[MonitorConfig] = None
        self.timers: Dict[str, asyncio.Task] = {}  # 目标名 -> 定时任务
        self.in_flight: Dict[str, asyncio.Task] = {}  # 目标名 -> 正在执行的周期
        self.running_tasks: Set[asyncio.Task] = set()
        self.is_running = False
        self.logger = get_logger('scheduler')

    def configure(self, config: MonitorConfig):
        """设置初始配置，启动前调用"""
        self.config = config
        self._apply_retention(config)
        self.logger.info(f"已配置 {len(config.targets)} 个监控目标")

    async def start(self):
        """启动所有目标的定时任务"""
        if self.is_running:
            self.logger.warning("监控调度器已经在运行")
            return
        if self.config is None:
            raise SchedulerError("启动调度器前必须先设置配置")

        self.is_running = True
        for target in self.config.targets:
            self._start_timer(target)

        self.logger.info(f"监控调度器已启动，目标数: {len(self.timers)}")

    async def stop(self):
        """停止调度器，取消所有定时任务和正在执行的周期，不等待探测完成"""
        if not self.is_running:
            return

        self.is_running = False
        self.logger.info("正在停止监控调度器...")

        tasks = list(self.timers.values()) + list(self.running_tasks)
        for task in tasks:
            if not task.done():
                task.cancel()

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self.timers.clear()
        self.in_flight.clear()
        self.running_tasks.clear()
        self.logger.info("监控调度器已停止")

    def reload(self, new_config: MonitorConfig):
        """应用新配置

        在事件循环线程中同步执行，中途没有挂起点，
        并发的定时触发看不到更新到一半的目标集合。

        Args:
            new_config: 新的配置
        """
        old_config = self.config
        self.config = new_config
        self._apply_retention(new_config)

        old_targets = {t.name: t for t in old_config.targets} if old_config else {}
        new_targets = {t.name: t for t in new_config.targets}

        for name in old_targets.keys() - new_targets.keys():
            self._cancel_timer(name)
            self.state_manager.forget(name)
            self.logger.info(f"移除监控目标: {name}")

        if self.is_running:
            for target in new_config.targets:
                previous = old_targets.get(target.name)
                if previous == target and target.name in self.timers:
                    continue
                self._cancel_timer(target.name)
                self._start_timer(target)
                action = '新增' if previous is None else '更新'
                self.logger.info(f"{action}监控目标: {target.name}")

        self._refresh_projection()

    def _apply_retention(self, config: MonitorConfig):
        self.history_store.set_retention_days(config.storage.retention_days)
        self.incident_ledger.set_retention_days(config.status_page.incident_retention_days)

    def _start_timer(self, target: TargetConfig):
        task = asyncio.create_task(self._timer_loop(target.name),
                                   name=f'timer:{target.name}')
        self.timers[target.name] = task

    def _cancel_timer(self, name: str):
        task = self.timers.pop(name, None)
        if task and not task.done():
            task.cancel()

    async def _timer_loop(self, name: str):
        """单个目标的定时循环，周期在独立任务中执行，定时节奏不受周期耗时影响"""
        while True:
            target = self.config.get_target(name) if self.config else None
            if target is None:
                return

            self._fire(target)
            await self._sleep(target.delay)

    def _fire(self, target: TargetConfig) -> Optional[asyncio.Task]:
        """触发一个检查周期，同一目标的上一个周期未结束时跳过"""
        current = self.in_flight.get(target.name)
        if current is not None and not current.done():
            self.logger.warning(
                f"目标 {target.name} 上一个检查周期仍在进行，跳过本次触发 "
                f"(delay={target.delay}s 小于周期耗时)")
            return None

        task = asyncio.create_task(self._run_cycle(target), name=f'cycle:{target.name}')
        self.in_flight[target.name] = task
        self.running_tasks.add(task)
        task.add_done_callback(functools.partial(self._on_cycle_done, target.name))
        return task

    def _on_cycle_done(self, name: str, task: asyncio.Task):
        self.running_tasks.discard(task)
        if self.in_flight.get(name) is task:
            del self.in_flight[name]

    async def _run_cycle(self, target: TargetConfig) -> Optional[CheckOutcome]:
        """执行一个完整的检查周期，异常只记录日志，不影响其他目标"""
        try:
            config = self.config
            outcome = await self.retry_policy.check(target, config.settings, config.alerts)
            await self._process_outcome(target, outcome)
            return outcome
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(f"目标 {target.name} 检查周期异常: {e}", exc_info=True)
            return None

    async def _process_outcome(self, target: TargetConfig, outcome: CheckOutcome):
        """记录结果并驱动状态迁移、故障事件和通知"""
        config = self.config
        alerts = config.alerts
        recipients = list(config.notifications.email)
        name = target.name

        if config.get_target(name) is None:
            self.logger.info(f"目标 {name} 已从配置中移除，丢弃本次检查结果")
            return

        self.history_store.record(name, outcome)
        change = self.state_manager.update_state(target, outcome)

        if change.went_down:
            if self.state_manager.should_alert(name, AlertKind.STATUS_CHANGE,
                                               alerts.cooldown_period):
                self.logger.warning(f"{name} is DOWN: {outcome.error}")
                self.state_manager.record_alert(name, AlertKind.STATUS_CHANGE)
                self.incident_ledger.open(name, outcome.error, outcome.timestamp)
                await self._notify(self.notifier.notify_down, target, outcome, recipients)
            else:
                self.logger.info(f"{name} is DOWN: {outcome.error} (冷却期内，不重复告警)")

        elif change.recovered:
            if alerts.alert_on_recovery:
                self.logger.info(f"{name} has RECOVERED")
                self.incident_ledger.resolve(name)
                await self._notify(self.notifier.notify_up, target, outcome, recipients)
            else:
                self.logger.info(f"{name} has RECOVERED (恢复通知已关闭)")

        elif outcome.success:
            self.logger.info(f"{name} OK ({outcome.response_time}ms)")
        else:
            self.logger.info(f"{name} still DOWN: {outcome.error}")

        ssl_info = outcome.ssl_info
        if ssl_info is not None and ssl_info.days_remaining <= SSL_WARNING_DAYS:
            if self.state_manager.should_alert(name, AlertKind.SSL_EXPIRY,
                                               SSL_ALERT_WINDOW_SECONDS):
                self.logger.warning(
                    f"{name} SSL certificate expires in {ssl_info.days_remaining} days")
                self.state_manager.record_alert(name, AlertKind.SSL_EXPIRY)
                await self._notify(self.notifier.notify_ssl_expiring, target, ssl_info,
                                   recipients)

        self._refresh_projection()

    async def _notify(self, send: Callable[..., Awaitable[Any]], *args):
        """调用通知网关，任何异常都不会传回调度循环"""
        try:
            await send(*args)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(f"发送通知失败: {e}", exc_info=True)

    def _refresh_projection(self) -> Optional[StatusSnapshot]:
        """按配置顺序刷新状态投影"""
        if self.config is None:
            return None
        return self.projection.update(
            self.config.status_page.title,
            self.state_manager.ordered_states(self.config.target_names),
            self.incident_ledger.incidents(),
        )

    async def check_target_now(self, name: str) -> Optional[CheckOutcome]:
        """立即执行一个检查周期并等待完成

        Args:
            name: 目标名称

        Returns:
            检查结果；目标不存在、周期仍在进行或周期异常时返回 None
        """
        target = self.config.get_target(name) if self.config else None
        if target is None:
            self.logger.error(f"目标 {name} 不存在")
            return None

        task = self._fire(target)
        if task is None:
            return None
        return await task

    async def check_all_now(self) -> Dict[str, Optional[CheckOutcome]]:
        """立即检查所有目标

        Returns:
            目标名 -> 检查结果
        """
        if self.config is None:
            return {}

        names = list(self.config.target_names)
        outcomes = await asyncio.gather(*(self.check_target_now(n) for n in names))
        return dict(zip(names, outcomes))

    def get_target_status(self) -> Dict[str, Any]:
        """获取每个目标的调度信息"""
        status = {}
        if self.config is None:
            return status

        for target in self.config.targets:
            state = self.state_manager.get_current_state(target.name)
            status[target.name] = {
                'delay': target.delay,
                'scheduled': target.name in self.timers,
                'in_flight': target.name in self.in_flight,
                'status': state.status.value if state else None,
                'last_check': state.last_check.isoformat() if state else None,
            }
        return status

    def get_scheduler_stats(self) -> Dict[str, Any]:
        """获取调度器统计信息"""
        return {
            'is_running': self.is_running,
            'total_targets': len(self.config.targets) if self.config else 0,
            'scheduled_timers': len(self.timers),
            'in_flight_cycles': len(self.in_flight),
            'configured_targets': list(self.config.target_names) if self.config else [],
        }
