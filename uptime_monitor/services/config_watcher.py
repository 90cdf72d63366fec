"""配置文件监控器"""

import asyncio
import os
from typing import Callable, List, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .config_manager import ConfigManager
from ..models.config import MonitorConfig
from ..utils.exceptions import ConfigError
from ..utils.log_manager import get_logger


ConfigChangeCallback = Callable[[Optional[MonitorConfig], MonitorConfig], None]


class ConfigFileHandler(FileSystemEventHandler):
    """配置文件变更事件处理器，运行在 watchdog 线程中"""

    def __init__(self, config_path: str, callback: Callable[[], None]):
        """
        初始化事件处理器

        Args:
            config_path: 配置文件绝对路径
            callback: 配置变更回调函数
        """
        self.config_path = config_path
        self.callback = callback
        self.logger = get_logger('config_watcher')

    def _matches(self, path) -> bool:
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        return os.path.abspath(path) == self.config_path

    def on_modified(self, event):
        if not event.is_directory and self._matches(event.src_path):
            self._notify()

    def on_created(self, event):
        if not event.is_directory and self._matches(event.src_path):
            self._notify()

    def on_moved(self, event):
        # 编辑器保存时常用临时文件改名覆盖
        if not event.is_directory and self._matches(event.dest_path):
            self._notify()

    def _notify(self):
        self.logger.info(f"检测到配置文件变更: {self.config_path}")
        try:
            self.callback()
        except Exception as e:
            self.logger.error(f"处理配置变更失败: {e}")


class ConfigWatcher:
    """配置文件监控器，支持热更新

    watchdog 事件和异步轮询都汇入同一个重新加载入口。
    设置了事件循环时，watchdog 线程通过 call_soon_threadsafe
    把重新加载交给事件循环线程执行。
    """

    def __init__(self, config_manager: ConfigManager,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        """
        初始化配置监控器

        Args:
            config_manager: 配置管理器实例
            loop: 执行重新加载和回调的事件循环
        """
        self.config_manager = config_manager
        self.loop = loop
        self.observer: Optional[Observer] = None
        self.logger = get_logger('config_watcher')
        self.change_callbacks: List[ConfigChangeCallback] = []
        self._running = False

    def add_change_callback(self, callback: ConfigChangeCallback):
        """
        添加配置变更回调函数

        Args:
            callback: 以 (旧配置, 新配置) 调用
        """
        self.change_callbacks.append(callback)

    def remove_change_callback(self, callback: ConfigChangeCallback):
        if callback in self.change_callbacks:
            self.change_callbacks.remove(callback)

    def _on_file_event(self):
        """watchdog 线程入口"""
        if self.loop is not None and not self.loop.is_closed():
            self.loop.call_soon_threadsafe(self.check_for_changes)
        else:
            self.check_for_changes()

    def check_for_changes(self) -> bool:
        """文件修改时间变化时重新加载配置

        Returns:
            bool: 是否加载并应用了新配置
        """
        if not self.config_manager.is_config_changed():
            return False
        return self._on_config_changed()

    def _on_config_changed(self) -> bool:
        """重新加载配置并调用所有回调，新配置无效时保持旧配置"""
        old_config = self.config_manager.config
        try:
            new_config = self.config_manager.reload_config()
        except ConfigError as e:
            self.logger.error(f"配置重新加载失败: {e}")
            return False

        self.logger.info("配置文件已重新加载")

        for callback in self.change_callbacks:
            try:
                callback(old_config, new_config)
            except Exception as e:
                self.logger.error(f"配置变更回调执行失败: {e}", exc_info=True)
        return True

    def start_watching(self):
        """开始监控配置文件"""
        if self._running:
            self.logger.warning("配置监控器已经在运行")
            return

        config_path = os.path.abspath(self.config_manager.config_path)
        config_dir = os.path.dirname(config_path)

        try:
            self.observer = Observer()
            event_handler = ConfigFileHandler(config_path, self._on_file_event)
            self.observer.schedule(event_handler, config_dir, recursive=False)
            self.observer.start()
        except OSError as e:
            self.observer = None
            self.logger.error(f"启动配置监控失败: {e}")
            raise ConfigError(f"启动配置监控失败: {e}", config_path=config_path, cause=e)

        self._running = True
        self.logger.info(f"开始监控配置文件: {self.config_manager.config_path}")

    def stop_watching(self):
        """停止监控配置文件"""
        if not self._running:
            return

        if self.observer:
            self.observer.stop()
            self.observer.join()
            self.observer = None

        self._running = False
        self.logger.info("配置文件监控已停止")

    def is_running(self) -> bool:
        return self._running

    async def watch_config_changes_async(self, check_interval: float = 5):
        """
        异步方式监控配置变更（轮询方式）

        Args:
            check_interval: 检查间隔（秒）
        """
        self.logger.info(f"开始异步监控配置文件变更，检查间隔: {check_interval}秒")

        while True:
            try:
                self.check_for_changes()
            except Exception as e:
                self.logger.error(f"配置监控过程中发生错误: {e}")
            await asyncio.sleep(check_interval)

    def __enter__(self):
        self.start_watching()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop_watching()
