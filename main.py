#!/usr/bin/env python3
"""
可用性监控系统主应用程序入口

集成所有组件，实现应用程序启动和优雅关闭，
添加信号处理和异常捕获。
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Optional, Dict, Any

from uptime_monitor import __version__
from uptime_monitor.alerts.manager import AlertManager
from uptime_monitor.api.status_server import StatusServer
from uptime_monitor.checkers.http_probe import HttpProbeTransport
from uptime_monitor.checkers.retry_policy import RetryPolicy
from uptime_monitor.models.config import MonitorConfig
from uptime_monitor.services.config_manager import ConfigManager
from uptime_monitor.services.config_watcher import ConfigWatcher
from uptime_monitor.services.history_store import HistoryStore
from uptime_monitor.services.incident_ledger import IncidentLedger
from uptime_monitor.services.monitor_scheduler import MonitorScheduler
from uptime_monitor.services.state_manager import StateManager
from uptime_monitor.services.status_projection import StatusProjection
from uptime_monitor.utils.exceptions import UptimeMonitorError, ConfigError, PersistenceError
from uptime_monitor.utils.log_manager import log_manager, get_logger


DEFAULT_CONFIG_PATH = 'config.yaml'


class UptimeMonitorApp:
    """可用性监控系统主应用程序类"""

    def __init__(self, config_path: str, log_overrides: Optional[Dict[str, Any]] = None):
        """初始化应用程序

        Args:
            config_path: 配置文件路径
            log_overrides: 命令行传入的日志设置，优先于配置文件
        """
        self.config_path = config_path
        self.log_overrides = log_overrides or {}
        self.logger: Optional[logging.Logger] = None
        self.is_running = False
        self.shutdown_event = asyncio.Event()

        # 核心组件
        self.config: Optional[MonitorConfig] = None
        self.config_manager: Optional[ConfigManager] = None
        self.config_watcher: Optional[ConfigWatcher] = None
        self.history_store: Optional[HistoryStore] = None
        self.incident_ledger: Optional[IncidentLedger] = None
        self.alert_manager: Optional[AlertManager] = None
        self.projection: Optional[StatusProjection] = None
        self.monitor_scheduler: Optional[MonitorScheduler] = None
        self.status_server: Optional[StatusServer] = None

        # 任务管理
        self.background_tasks = set()

    async def initialize(self):
        """初始化应用程序组件

        Raises:
            ConfigError: 配置文件无效
        """
        self.config_manager = ConfigManager(self.config_path)
        config = self.config_manager.load_config()
        self.config = config

        self._configure_logging(config)
        self.logger = get_logger('main')
        self.logger.info("开始初始化可用性监控系统")

        self.history_store = HistoryStore(config.storage.path,
                                          config.storage.retention_days)
        self.incident_ledger = IncidentLedger(config.status_page.incident_retention_days,
                                              config.storage.incidents_path)
        self.alert_manager = AlertManager.from_config(config.notifications)
        self.projection = StatusProjection(config.status_page.title)

        self.monitor_scheduler = MonitorScheduler(
            retry_policy=RetryPolicy(HttpProbeTransport()),
            history_store=self.history_store,
            incident_ledger=self.incident_ledger,
            notifier=self.alert_manager,
            projection=self.projection,
            state_manager=StateManager(),
        )
        self.monitor_scheduler.configure(config)

        if config.status_page.enabled:
            self.status_server = StatusServer(
                self.projection, self.history_store, config.status_page,
                stats_provider=self.monitor_scheduler.get_scheduler_stats,
            )

        self.config_watcher = ConfigWatcher(self.config_manager,
                                            loop=asyncio.get_running_loop())
        self.config_watcher.add_change_callback(self._on_config_changed_callback)

        self.logger.info("应用程序组件初始化完成")

    def _configure_logging(self, config: MonitorConfig):
        log_config = config.settings.to_logging_config()
        log_config.update(self.log_overrides)
        log_manager.configure(log_config)

    def _on_config_changed_callback(self, old_config: Optional[MonitorConfig],
                                    new_config: MonitorConfig):
        """配置文件变更回调，在事件循环线程中执行"""
        self.logger.info("检测到配置文件变更，应用新配置")

        self._configure_logging(new_config)
        self.alert_manager.configure(new_config.notifications)
        self.monitor_scheduler.reload(new_config)
        self.config = new_config

        if old_config and old_config.status_page != new_config.status_page:
            self.logger.warning("status_page 配置的变更需要重启后生效")
        if old_config and (old_config.storage.path != new_config.storage.path or
                           old_config.storage.incidents_path != new_config.storage.incidents_path):
            self.logger.warning("storage.path / storage.incidents_path 的变更需要重启后生效")

        self.logger.info("配置重新加载完成")

    async def start(self):
        """启动应用程序"""
        if self.is_running:
            self.logger.warning("应用程序已经在运行")
            return

        try:
            self.is_running = True
            self.logger.info("启动可用性监控系统")

            self.config_watcher.start_watching()

            config_watcher_task = asyncio.create_task(
                self.config_watcher.watch_config_changes_async()
            )
            self.background_tasks.add(config_watcher_task)
            config_watcher_task.add_done_callback(self.background_tasks.discard)

            # 端口无法绑定时直接失败
            if self.status_server:
                await self.status_server.start()

            await self.monitor_scheduler.start()

            self.logger.info("可用性监控系统启动完成")

            await self.shutdown_event.wait()

        except Exception as e:
            self.logger.error(f"应用程序运行异常: {e}", exc_info=True)
            raise
        finally:
            await self.stop()

    async def stop(self):
        """停止应用程序"""
        if not self.is_running:
            return

        self.logger.info("正在停止可用性监控系统...")
        self.is_running = False

        if self.monitor_scheduler:
            await self.monitor_scheduler.stop()

        if self.status_server:
            await self.status_server.stop()

        if self.config_watcher:
            self.config_watcher.stop_watching()

        for task in self.background_tasks:
            if not task.done():
                task.cancel()
        if self.background_tasks:
            await asyncio.gather(*self.background_tasks, return_exceptions=True)
        self.background_tasks.clear()

        if self.history_store:
            try:
                self.history_store.flush()
            except PersistenceError as e:
                self.logger.error(f"保存历史记录失败: {e}")

        self.logger.info("可用性监控系统已停止")
        log_manager.cleanup()

    def shutdown(self):
        """触发应用程序关闭"""
        if self.logger:
            self.logger.info("收到关闭信号")
        self.shutdown_event.set()

    def get_status(self) -> Dict[str, Any]:
        """获取应用程序状态"""
        status = {
            'is_running': self.is_running,
            'config_path': self.config_path,
            'background_tasks_count': len(self.background_tasks)
        }

        if self.monitor_scheduler:
            status['scheduler_stats'] = self.monitor_scheduler.get_scheduler_stats()
            status['target_status'] = self.monitor_scheduler.get_target_status()

        if self.alert_manager:
            status['alert_stats'] = self.alert_manager.get_alert_stats()

        return status


# 全局应用程序实例
app: Optional[UptimeMonitorApp] = None


def signal_handler(signum, frame):
    """信号处理器"""
    signal_name = signal.Signals(signum).name
    print(f"\n收到信号 {signal_name} ({signum})")

    if app:
        app.shutdown()
    else:
        sys.exit(0)


def create_argument_parser() -> argparse.ArgumentParser:
    """创建命令行参数解析器"""
    parser = argparse.ArgumentParser(
        prog='uptime-monitor',
        description='可用性监控系统 - 定时探测 HTTP(S) 端点并在状态变化时发送通知',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例用法:
  %(prog)s                                # 使用 ./config.yaml 启动监控
  %(prog)s config.yaml                    # 使用指定配置文件启动监控
  %(prog)s --validate config.yaml         # 验证配置文件格式
  %(prog)s --check-once config.yaml       # 每个目标检查一次后退出
  %(prog)s --version                      # 显示版本信息

配置文件格式请参考 config.example.yaml
        """
    )

    parser.add_argument(
        'config_file',
        nargs='?',
        default=DEFAULT_CONFIG_PATH,
        help=f'YAML配置文件路径（默认 {DEFAULT_CONFIG_PATH}）'
    )

    parser.add_argument(
        '--version', '-v',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--validate',
        action='store_true',
        help='验证配置文件格式并退出'
    )

    parser.add_argument(
        '--check-once',
        action='store_true',
        help='每个目标执行一次带重试的检查后退出'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='设置日志级别（覆盖配置文件设置）'
    )

    parser.add_argument(
        '--log-file',
        help='日志文件路径（覆盖配置文件设置）'
    )

    return parser


def build_log_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides = {}
    if args.log_level:
        overrides['log_level'] = args.log_level
    if args.log_file:
        overrides['log_file'] = args.log_file
    return overrides


def validate_config_file(config_path: str) -> bool:
    """验证配置文件

    Returns:
        验证是否成功
    """
    print(f"正在验证配置文件: {config_path}")

    try:
        config = ConfigManager(config_path).load_config()
    except ConfigError as e:
        print(f"❌ 配置文件验证失败: {e}")
        return False

    print("✅ 配置文件验证成功!")
    print(f"   - 目标数量: {len(config.targets)}")
    for target in config.targets:
        print(f"     * {target.name} ({target.method} {target.url}, 每 {target.delay}s)")
    print(f"   - 通知收件人: {len(config.notifications.email)}")
    print(f"   - 状态页: {'启用' if config.status_page.enabled else '未启用'}")
    return True


async def check_once(config_path: str, log_overrides: Optional[Dict[str, Any]] = None) -> bool:
    """每个目标执行一次完整的检查周期

    Returns:
        所有目标是否都可用
    """
    print(f"正在执行检查: {config_path}")

    once_app = UptimeMonitorApp(config_path, log_overrides)
    await once_app.initialize()

    results = await once_app.monitor_scheduler.check_all_now()

    print(f"检查完成，共检查 {len(results)} 个目标:")

    all_up = True
    for name, outcome in results.items():
        if outcome is None:
            print(f"   ❌ {name}: 检查失败")
            all_up = False
        elif outcome.success:
            print(f"   ✅ {name}: UP (响应时间: {outcome.response_time}ms)")
        else:
            print(f"   ❌ {name}: DOWN - {outcome.error}")
            all_up = False

    try:
        once_app.history_store.flush()
    except PersistenceError as e:
        print(f"保存历史记录失败: {e}", file=sys.stderr)

    return all_up


async def main():
    """主函数"""
    global app

    parser = create_argument_parser()
    args = parser.parse_args()
    config_path = args.config_file
    log_overrides = build_log_overrides(args)

    if not os.path.exists(config_path):
        print(f"配置文件不存在: {config_path}", file=sys.stderr)
        sys.exit(1)

    if args.validate:
        success = validate_config_file(config_path)
        sys.exit(0 if success else 1)

    if args.check_once:
        try:
            success = await check_once(config_path, log_overrides)
        except ConfigError as e:
            print(f"配置错误: {e}", file=sys.stderr)
            sys.exit(1)
        sys.exit(0 if success else 1)

    try:
        app = UptimeMonitorApp(config_path, log_overrides)

        signal.signal(signal.SIGINT, signal_handler)  # Ctrl+C
        signal.signal(signal.SIGTERM, signal_handler)  # 终止信号

        await app.initialize()

        print(f"可用性监控系统 v{__version__} 已启动")
        print(f"配置文件: {config_path}")
        print("按 Ctrl+C 停止程序")

        await app.start()

    except KeyboardInterrupt:
        print("\n用户中断程序")
    except ConfigError as e:
        print(f"配置错误: {e}", file=sys.stderr)
        sys.exit(1)
    except UptimeMonitorError as e:
        print(f"可用性监控系统错误: {e}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"启动失败: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        if app:
            await app.stop()


def cli():
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

    asyncio.run(main())


if __name__ == "__main__":
    cli()
