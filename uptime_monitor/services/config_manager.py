"""配置管理器"""

import os
from typing import Dict, Any, Optional

import yaml
from dotenv import load_dotenv

from ..models.config import MonitorConfig
from ..utils.config_validator import ConfigValidator
from ..utils.exceptions import ConfigError, ErrorCode
from ..utils.log_manager import get_logger


# 环境变量 -> notifications.smtp 字段
SMTP_ENV_VARS = {
    'SMTP_ENABLED': 'enabled',
    'SMTP_HOST': 'host',
    'SMTP_PORT': 'port',
    'SMTP_TLS': 'use_tls',
    'SMTP_USER': 'username',
    'SMTP_PASSWORD': 'password',
    'SMTP_FROM_NAME': 'from_name',
    'SMTP_FROM_ADDRESS': 'from_address',
}
SMTP_BOOL_FIELDS = ('enabled', 'use_tls')
STATUS_PORT_ENV = 'STATUS_PORT'


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class ConfigManager:
    """配置管理器，负责YAML配置文件的加载、解析和验证

    重新加载失败时保留上一次成功加载的配置。
    """

    def __init__(self, config_path: str, env: Optional[Dict[str, str]] = None,
                 load_env_file: bool = True):
        """
        初始化配置管理器

        Args:
            config_path: 配置文件路径
            env: 环境变量来源，默认使用 os.environ
            load_env_file: 是否加载工作目录下的 .env 文件
        """
        self.config_path = config_path
        self.config: Optional[MonitorConfig] = None
        self.raw_config: Dict[str, Any] = {}
        self.last_modified: Optional[float] = None
        self.logger = get_logger('config_manager')

        if load_env_file:
            # 已设置的环境变量优先
            load_dotenv(override=False)
        self._env = env if env is not None else os.environ

    def load_config(self) -> MonitorConfig:
        """
        加载YAML配置文件

        Returns:
            MonitorConfig: 配置对象

        Raises:
            ConfigError: 配置加载或验证失败
        """
        self.logger.info(f"开始加载配置文件: {self.config_path}")

        try:
            if not os.path.exists(self.config_path):
                raise ConfigError(f"配置文件不存在: {self.config_path}",
                                  ErrorCode.CONFIG_FILE_NOT_FOUND,
                                  config_path=self.config_path)

            with open(self.config_path, 'r', encoding='utf-8') as file:
                raw = yaml.safe_load(file)

            if raw is None:
                raise ConfigError("配置文件为空", config_path=self.config_path)

            self._validate_config(raw)
            raw = self._apply_env_overrides(raw)
            config = MonitorConfig.from_dict(raw)

        except ConfigError as e:
            self.logger.error(f"配置加载失败: {e}")
            raise
        except yaml.YAMLError as e:
            self.logger.error(f"YAML格式错误: {e}")
            raise ConfigError(f"YAML格式错误: {e}", ErrorCode.CONFIG_PARSE_ERROR,
                              config_path=self.config_path, cause=e)
        except PermissionError as e:
            self.logger.error(f"没有权限读取配置文件: {self.config_path}")
            raise ConfigError(f"没有权限读取配置文件: {self.config_path}",
                              config_path=self.config_path, cause=e)
        except (OSError, TypeError, ValueError) as e:
            self.logger.error(f"加载配置文件失败: {e}", exc_info=True)
            raise ConfigError(f"加载配置文件失败: {e}", config_path=self.config_path, cause=e)

        self.logger.info(f"配置验证成功，包含 {len(config.targets)} 个监控目标")

        old_raw = self.raw_config
        self.raw_config = raw
        self.config = config
        self.last_modified = self._current_mtime()

        if old_raw:
            self._log_config_changes(old_raw, raw)
        else:
            self.logger.info("首次加载配置文件")

        return config

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """
        验证配置文件内容

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(config, dict):
            raise ConfigError("配置文件根节点必须是字典类型", config_path=self.config_path)

        ConfigValidator.validate_targets(config.get('urls') or [])

        validators = {
            'settings': ConfigValidator.validate_settings,
            'alerts': ConfigValidator.validate_alerts,
            'notifications': ConfigValidator.validate_notifications,
            'storage': ConfigValidator.validate_storage,
            'status_page': ConfigValidator.validate_status_page,
        }
        for section, validate in validators.items():
            if config.get(section) is not None:
                validate(config[section])

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """用环境变量覆盖 SMTP 设置和状态页端口，返回新的字典"""
        config = dict(config)
        notifications = dict(config.get('notifications') or {})
        smtp = dict(notifications.get('smtp') or {})

        for env_name, field_name in SMTP_ENV_VARS.items():
            value = self._env.get(env_name)
            if value is None or value == '':
                continue
            if field_name in SMTP_BOOL_FIELDS:
                smtp[field_name] = _parse_bool(value)
            elif field_name == 'port':
                smtp[field_name] = self._parse_port(env_name, value)
            else:
                smtp[field_name] = value

        notifications['smtp'] = smtp
        config['notifications'] = notifications

        status_port = self._env.get(STATUS_PORT_ENV)
        if status_port:
            status_page = dict(config.get('status_page') or {})
            status_page['port'] = self._parse_port(STATUS_PORT_ENV, status_port)
            config['status_page'] = status_page

        return config

    def _parse_port(self, env_name: str, value: str) -> int:
        try:
            port = int(value)
        except ValueError:
            raise ConfigError(f"环境变量 {env_name} 不是有效端口号: {value}",
                              config_path=self.config_path)
        if not 0 < port < 65536:
            raise ConfigError(f"环境变量 {env_name} 不是有效端口号: {value}",
                              config_path=self.config_path)
        return port

    def _current_mtime(self) -> Optional[float]:
        try:
            return os.path.getmtime(self.config_path)
        except OSError:
            return None

    def is_config_changed(self) -> bool:
        """
        检查配置文件是否已修改

        Returns:
            bool: 配置文件是否已修改
        """
        current_modified = self._current_mtime()
        if current_modified is None:
            return False
        return self.last_modified is None or current_modified > self.last_modified

    def reload_config(self) -> MonitorConfig:
        """
        重新加载配置文件

        Returns:
            MonitorConfig: 新的配置

        Raises:
            ConfigError: 新配置无效，当前配置保持不变
        """
        self.logger.info("重新加载配置文件")
        try:
            return self.load_config()
        except ConfigError:
            # 避免同一个无效文件被轮询反复加载
            self.last_modified = self._current_mtime()
            if self.config is not None:
                self.logger.warning("新配置无效，继续使用上一次有效的配置")
            raise

    def _log_config_changes(self, old_config: Dict[str, Any], new_config: Dict[str, Any]) -> None:
        """记录配置变更"""
        old_targets = {t['name']: t for t in old_config.get('urls') or []}
        new_targets = {t['name']: t for t in new_config.get('urls') or []}

        added = [n for n in new_targets if n not in old_targets]
        if added:
            self.logger.info(f"新增目标: {', '.join(added)}")

        removed = [n for n in old_targets if n not in new_targets]
        if removed:
            self.logger.info(f"删除目标: {', '.join(removed)}")

        for name in new_targets.keys() & old_targets.keys():
            if old_targets[name] != new_targets[name]:
                self.logger.info(f"目标配置已修改: {name}")
                self.logger.debug(f"目标 {name} 旧配置: {old_targets[name]}")
                self.logger.debug(f"目标 {name} 新配置: {new_targets[name]}")

        for section in ('settings', 'alerts', 'notifications', 'storage', 'status_page'):
            if old_config.get(section) != new_config.get(section):
                self.logger.info(f"{section} 配置已修改")
