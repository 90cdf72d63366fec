"""配置管理器测试"""

import os
import tempfile
import time

import pytest

from uptime_monitor.services.config_manager import ConfigManager
from uptime_monitor.utils.exceptions import ConfigError, ErrorCode


VALID_CONFIG = """
settings:
  default_timeout: 10
  log_level: DEBUG

notifications:
  email:
    - ops@example.com
  smtp:
    enabled: true
    host: smtp.example.com
    port: 2525

alerts:
  retry_count: 2
  retry_delay: 1

urls:
  - name: Website
    url: https://example.com
    check_ssl: true
  - name: API
    url: http://api.example.com/health
    delay: 30
    expected_status: [200, 204]

storage:
  retention_days: 3
"""


class TestConfigManager:
    """配置管理器测试类"""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = os.path.join(self.temp_dir, 'config.yaml')
        self._write(VALID_CONFIG)

    def teardown_method(self):
        for name in os.listdir(self.temp_dir):
            os.unlink(os.path.join(self.temp_dir, name))
        os.rmdir(self.temp_dir)

    def _write(self, content: str):
        with open(self.config_path, 'w', encoding='utf-8') as f:
            f.write(content)

    def _manager(self, env=None) -> ConfigManager:
        return ConfigManager(self.config_path, env=env or {}, load_env_file=False)

    def test_load_config(self):
        config = self._manager().load_config()

        assert config.target_names == ('Website', 'API')
        assert config.settings.default_timeout == 10
        assert config.alerts.retry_count == 2
        assert config.notifications.email == ('ops@example.com',)
        assert config.notifications.smtp.port == 2525
        assert config.storage.retention_days == 3
        assert config.get_target('API').expected_status == (200, 204)

    def test_missing_file(self):
        manager = ConfigManager(os.path.join(self.temp_dir, 'missing.yaml'),
                                env={}, load_env_file=False)

        with pytest.raises(ConfigError) as exc_info:
            manager.load_config()
        assert exc_info.value.error_code == ErrorCode.CONFIG_FILE_NOT_FOUND

    def test_empty_file(self):
        self._write('')
        with pytest.raises(ConfigError, match="为空"):
            self._manager().load_config()

    def test_invalid_yaml(self):
        self._write('urls: [unclosed')
        with pytest.raises(ConfigError) as exc_info:
            self._manager().load_config()
        assert exc_info.value.error_code == ErrorCode.CONFIG_PARSE_ERROR

    def test_duplicate_names_rejected(self):
        self._write("""
urls:
  - name: a
    url: http://a
  - name: a
    url: http://b
""")
        with pytest.raises(ConfigError):
            self._manager().load_config()

    def test_env_overrides(self):
        env = {
            'SMTP_HOST': 'mail.internal',
            'SMTP_PORT': '465',
            'SMTP_TLS': 'true',
            'SMTP_USER': 'bot',
            'SMTP_PASSWORD': 'secret',
            'STATUS_PORT': '8080',
        }
        config = self._manager(env).load_config()

        smtp = config.notifications.smtp
        assert smtp.host == 'mail.internal'
        assert smtp.port == 465
        assert smtp.use_tls is True
        assert smtp.username == 'bot'
        assert smtp.password == 'secret'
        assert config.status_page.port == 8080

    def test_invalid_env_port(self):
        with pytest.raises(ConfigError, match="STATUS_PORT"):
            self._manager({'STATUS_PORT': 'abc'}).load_config()

    def test_is_config_changed(self):
        manager = self._manager()
        assert manager.is_config_changed()

        manager.load_config()
        assert not manager.is_config_changed()

        future = time.time() + 10
        os.utime(self.config_path, (future, future))
        assert manager.is_config_changed()

    def test_reload_failure_keeps_last_good_config(self):
        manager = self._manager()
        original = manager.load_config()

        self._write('urls: [unclosed')
        with pytest.raises(ConfigError):
            manager.reload_config()

        assert manager.config is original
        assert not manager.is_config_changed()

    def test_reload_picks_up_changes(self):
        manager = self._manager()
        manager.load_config()

        self._write("""
urls:
  - name: Website
    url: https://example.com
    delay: 10
""")
        config = manager.reload_config()

        assert config.target_names == ('Website',)
        assert config.get_target('Website').delay == 10
        assert manager.config is config
