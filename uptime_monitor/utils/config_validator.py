"""配置验证工具"""

from typing import Dict, Any, List

from .exceptions import ConfigError


SUPPORTED_METHODS = ['GET', 'POST', 'PUT', 'DELETE', 'HEAD', 'OPTIONS', 'PATCH']
VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def _is_non_negative_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0


class ConfigValidator:
    """配置验证器"""

    @staticmethod
    def validate_target_config(index: int, config: Dict[str, Any]) -> None:
        """
        验证单个监控目标配置

        Args:
            index: 目标在 urls 列表中的位置
            config: 目标配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(config, dict):
            raise ConfigError(f"urls[{index}] 的配置必须是字典类型")

        for field in ('name', 'url'):
            if not config.get(field):
                raise ConfigError(f"urls[{index}] 缺少必需的配置项: {field}")

        name = config['name']
        url = config['url']
        if not isinstance(url, str) or not url.startswith(('http://', 'https://')):
            raise ConfigError(f"目标 '{name}' 的 url 必须以 http:// 或 https:// 开头")

        method = str(config.get('method', 'GET')).upper()
        if method not in SUPPORTED_METHODS:
            raise ConfigError(
                f"目标 '{name}' 的 method '{method}' 不受支持。支持的方法: {SUPPORTED_METHODS}")

        delay = config.get('delay')
        if delay is not None and not _is_positive_number(delay):
            raise ConfigError(f"目标 '{name}' 的 delay 必须是正数")

        timeout = config.get('timeout')
        if timeout is not None and not _is_positive_number(timeout):
            raise ConfigError(f"目标 '{name}' 的 timeout 必须是正数")

        threshold = config.get('response_time_threshold')
        if threshold is not None and not _is_positive_number(threshold):
            raise ConfigError(f"目标 '{name}' 的 response_time_threshold 必须是正数")

        expected_status = config.get('expected_status', [200])
        statuses = expected_status if isinstance(expected_status, list) else [expected_status]
        if not statuses:
            raise ConfigError(f"目标 '{name}' 的 expected_status 不能为空")
        for status in statuses:
            if not isinstance(status, int) or isinstance(status, bool) or not 100 <= status <= 599:
                raise ConfigError(f"目标 '{name}' 的 expected_status 包含无效状态码: {status}")

        expected_content = config.get('expected_content')
        if expected_content is not None and not isinstance(expected_content, str):
            raise ConfigError(f"目标 '{name}' 的 expected_content 必须是字符串")

    @staticmethod
    def validate_targets(targets: List[Dict[str, Any]]) -> None:
        """
        验证目标列表，名称必须唯一

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(targets, list):
            raise ConfigError("urls配置必须是列表类型")

        seen = set()
        for index, target in enumerate(targets):
            ConfigValidator.validate_target_config(index, target)
            # 加载时名称会转为字符串
            name = str(target['name'])
            if name in seen:
                raise ConfigError(f"目标名称重复: '{name}'")
            seen.add(name)

    @staticmethod
    def validate_settings(settings: Dict[str, Any]) -> None:
        """
        验证全局设置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(settings, dict):
            raise ConfigError("settings配置必须是字典类型")

        default_timeout = settings.get('default_timeout')
        if default_timeout is not None and not _is_positive_number(default_timeout):
            raise ConfigError("default_timeout 必须是正数")

        max_redirects = settings.get('max_redirects')
        if max_redirects is not None and (
                not isinstance(max_redirects, int) or max_redirects < 0):
            raise ConfigError("max_redirects 必须是非负整数")

        log_level = settings.get('log_level')
        if log_level is not None and str(log_level).upper() not in VALID_LOG_LEVELS:
            raise ConfigError(f"log_level 必须是以下值之一: {VALID_LOG_LEVELS}")

    @staticmethod
    def validate_alerts(alerts: Dict[str, Any]) -> None:
        """
        验证重试与告警设置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(alerts, dict):
            raise ConfigError("alerts配置必须是字典类型")

        retry_count = alerts.get('retry_count')
        if retry_count is not None and (
                not isinstance(retry_count, int) or isinstance(retry_count, bool)
                or retry_count < 1):
            raise ConfigError("retry_count 必须是大于0的整数")

        for key in ('retry_delay', 'cooldown_period'):
            value = alerts.get(key)
            if value is not None and not _is_non_negative_number(value):
                raise ConfigError(f"{key} 必须是非负数")

    @staticmethod
    def validate_notifications(notifications: Dict[str, Any]) -> None:
        """验证通知设置"""
        if not isinstance(notifications, dict):
            raise ConfigError("notifications配置必须是字典类型")

        emails = notifications.get('email')
        if emails is not None and not isinstance(emails, list):
            raise ConfigError("notifications.email 必须是列表类型")

        smtp = notifications.get('smtp')
        if smtp is not None and not isinstance(smtp, dict):
            raise ConfigError("notifications.smtp 必须是字典类型")

    @staticmethod
    def validate_storage(storage: Dict[str, Any]) -> None:
        """验证存储设置"""
        if not isinstance(storage, dict):
            raise ConfigError("storage配置必须是字典类型")

        retention_days = storage.get('retention_days')
        if retention_days is not None and not _is_positive_number(retention_days):
            raise ConfigError("retention_days 必须是正数")

    @staticmethod
    def validate_status_page(status_page: Dict[str, Any]) -> None:
        """验证状态页设置"""
        if not isinstance(status_page, dict):
            raise ConfigError("status_page配置必须是字典类型")

        port = status_page.get('port')
        if port is not None and (not isinstance(port, int) or not 0 < port < 65536):
            raise ConfigError("status_page.port 必须是有效端口号")

        retention = status_page.get('incident_retention_days')
        if retention is not None and not _is_positive_number(retention):
            raise ConfigError("incident_retention_days 必须是正数")
