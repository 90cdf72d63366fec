"""测试配置监控器"""

import asyncio
import os
import tempfile
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from uptime_monitor.services.config_manager import ConfigManager
from uptime_monitor.services.config_watcher import ConfigFileHandler, ConfigWatcher


CONFIG = """
urls:
  - name: Website
    url: https://example.com
"""

UPDATED_CONFIG = """
urls:
  - name: Website
    url: https://example.com
  - name: API
    url: https://api.example.com
    delay: 30
"""


class TestConfigWatcher:
    """测试ConfigWatcher类"""

    def setup_method(self):
        self.temp_file = tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False)
        self.temp_file.write(CONFIG)
        self.temp_file.close()

        self.config_manager = ConfigManager(self.temp_file.name, env={}, load_env_file=False)
        self.config_manager.load_config()
        self.config_watcher = ConfigWatcher(self.config_manager)

    def teardown_method(self):
        self.config_watcher.stop_watching()
        try:
            os.unlink(self.temp_file.name)
        except FileNotFoundError:
            pass

    def _rewrite(self, content: str):
        """写入新内容并把修改时间往后推，避免文件系统时间精度影响判断"""
        with open(self.temp_file.name, 'w', encoding='utf-8') as f:
            f.write(content)
        mtime = self.config_manager.last_modified + 10
        os.utime(self.temp_file.name, (mtime, mtime))

    def test_add_remove_callback(self):
        callback1 = Mock()
        callback2 = Mock()

        self.config_watcher.add_change_callback(callback1)
        self.config_watcher.add_change_callback(callback2)
        self.config_watcher.remove_change_callback(callback1)
        self.config_watcher.remove_change_callback(callback1)

        assert self.config_watcher.change_callbacks == [callback2]

    def test_unchanged_file_is_ignored(self):
        callback = Mock()
        self.config_watcher.add_change_callback(callback)

        assert not self.config_watcher.check_for_changes()
        callback.assert_not_called()

    def test_change_passes_old_and_new_config(self):
        callback = Mock()
        self.config_watcher.add_change_callback(callback)
        old_config = self.config_manager.config

        self._rewrite(UPDATED_CONFIG)

        assert self.config_watcher.check_for_changes()
        callback.assert_called_once()
        old, new = callback.call_args[0]
        assert old is old_config
        assert new.target_names == ('Website', 'API')
        assert self.config_manager.config is new

    def test_invalid_config_keeps_previous(self):
        callback = Mock()
        self.config_watcher.add_change_callback(callback)
        old_config = self.config_manager.config

        self._rewrite("urls: [")

        assert not self.config_watcher.check_for_changes()
        callback.assert_not_called()
        assert self.config_manager.config is old_config
        # 同一个无效文件不会被反复加载
        assert not self.config_manager.is_config_changed()

    def test_callback_error_does_not_stop_others(self):
        error_callback = Mock(side_effect=RuntimeError("Test error"))
        normal_callback = Mock()
        self.config_watcher.add_change_callback(error_callback)
        self.config_watcher.add_change_callback(normal_callback)

        self._rewrite(UPDATED_CONFIG)

        assert self.config_watcher.check_for_changes()
        error_callback.assert_called_once()
        normal_callback.assert_called_once()

    def test_start_stop_watching(self):
        assert not self.config_watcher.is_running()

        self.config_watcher.start_watching()
        assert self.config_watcher.is_running()

        self.config_watcher.stop_watching()
        assert not self.config_watcher.is_running()
        assert self.config_watcher.observer is None

    def test_context_manager(self):
        with self.config_watcher:
            assert self.config_watcher.is_running()

        assert not self.config_watcher.is_running()

    @pytest.mark.asyncio
    async def test_file_event_is_handed_to_loop(self):
        callback = Mock()
        watcher = ConfigWatcher(self.config_manager, loop=asyncio.get_running_loop())
        watcher.add_change_callback(callback)

        self._rewrite(UPDATED_CONFIG)
        watcher._on_file_event()

        # 回调在事件循环的下一轮执行
        callback.assert_not_called()
        await asyncio.sleep(0)
        callback.assert_called_once()

    @pytest.mark.asyncio
    async def test_async_polling(self):
        callback = Mock()
        self.config_watcher.add_change_callback(callback)

        task = asyncio.create_task(
            self.config_watcher.watch_config_changes_async(check_interval=0.01))
        try:
            await asyncio.sleep(0.03)
            callback.assert_not_called()

            self._rewrite(UPDATED_CONFIG)
            await asyncio.sleep(0.05)
        finally:
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        callback.assert_called_once()


class TestConfigFileHandler:
    """测试配置文件事件处理器"""

    def setup_method(self):
        self.path = os.path.abspath('config.yaml')
        self.callback = Mock()
        self.handler = ConfigFileHandler(self.path, self.callback)

    def _event(self, src, dest=None, is_directory=False):
        return SimpleNamespace(src_path=src, dest_path=dest, is_directory=is_directory)

    def test_modified_and_created(self):
        self.handler.on_modified(self._event(self.path))
        self.handler.on_created(self._event(self.path))

        assert self.callback.call_count == 2

    def test_other_files_ignored(self):
        self.handler.on_modified(self._event(os.path.abspath('other.yaml')))
        self.handler.on_modified(self._event(self.path, is_directory=True))

        self.callback.assert_not_called()

    def test_moved_into_place(self):
        self.handler.on_moved(self._event(os.path.abspath('.config.yaml.swp'), self.path))

        self.callback.assert_called_once()

    def test_callback_error_is_logged(self):
        self.callback.side_effect = RuntimeError('boom')

        self.handler.on_modified(self._event(self.path))

        self.callback.assert_called_once()
