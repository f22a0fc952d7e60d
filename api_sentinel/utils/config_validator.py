"""配置验证工具"""

from typing import Dict, Any

from .exceptions import ConfigError
from ..models.target import TargetStatus

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
VALID_STORE_TYPES = ['memory', 'file']
VALID_SINK_TYPES = ['log', 'webhook']
VALID_TARGET_STATUSES = [status.value for status in TargetStatus]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConfigValidator:
    """配置验证器"""

    @staticmethod
    def validate_global_config(global_config: Dict[str, Any]) -> None:
        """
        验证全局配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(global_config, dict):
            raise ConfigError("全局配置必须是字典类型")

        log_level = global_config.get('log_level')
        if log_level is not None and str(log_level).upper() not in VALID_LOG_LEVELS:
            raise ConfigError(f"log_level 必须是以下值之一: {VALID_LOG_LEVELS}")

    @staticmethod
    def validate_scheduler_config(scheduler_config: Dict[str, Any]) -> None:
        """
        验证调度器配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(scheduler_config, dict):
            raise ConfigError("scheduler配置必须是字典类型")

        for key in ('worker_count', 'queue_size'):
            value = scheduler_config.get(key)
            if value is not None and (not isinstance(value, int) or isinstance(value, bool)
                                      or value <= 0):
                raise ConfigError(f"{key} 必须是正整数")

        for key in ('reconcile_interval', 'probe_timeout', 'notification_timeout'):
            value = scheduler_config.get(key)
            if value is not None and (not _is_number(value) or value <= 0):
                raise ConfigError(f"{key} 必须是正数")

        settle_delay = scheduler_config.get('settle_delay')
        if settle_delay is not None and (not _is_number(settle_delay) or settle_delay < 0):
            raise ConfigError("settle_delay 不能为负数")

        notify_initial = scheduler_config.get('notify_initial_transition')
        if notify_initial is not None and not isinstance(notify_initial, bool):
            raise ConfigError("notify_initial_transition 必须是布尔值")

    @staticmethod
    def validate_store_config(store_config: Dict[str, Any]) -> None:
        """
        验证目标存储配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(store_config, dict):
            raise ConfigError("store配置必须是字典类型")

        store_type = store_config.get('type', 'memory')
        if store_type not in VALID_STORE_TYPES:
            raise ConfigError(
                f"存储类型 '{store_type}' 不受支持。支持的类型: {VALID_STORE_TYPES}")

        if store_type == 'file':
            for field in ('targets_file', 'state_file'):
                if not store_config.get(field):
                    raise ConfigError(f"文件存储缺少必需的配置项: {field}")

    @staticmethod
    def validate_target_config(target_id: str, config: Dict[str, Any]) -> None:
        """
        验证单个目标定义

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(config, dict):
            raise ConfigError(f"目标 '{target_id}' 的配置必须是字典类型")

        url = config.get('url')
        if not isinstance(url, str) or not url.startswith(('http://', 'https://')):
            raise ConfigError(f"目标 '{target_id}' 的url必须以 http:// 或 https:// 开头")

        interval = config.get('interval')
        if interval is not None and (not _is_number(interval) or interval <= 0):
            raise ConfigError(f"目标 '{target_id}' 的检查间隔必须是正数")

        status = config.get('status')
        if status is not None and status not in VALID_TARGET_STATUSES:
            raise ConfigError(
                f"目标 '{target_id}' 的初始状态无效: {status}, 支持的状态: {VALID_TARGET_STATUSES}")

    @staticmethod
    def validate_notification_config(sink_config: Dict[str, Any]) -> None:
        """
        验证通知渠道配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(sink_config, dict):
            raise ConfigError("通知渠道配置必须是字典类型")

        for field in ('name', 'type'):
            if field not in sink_config:
                raise ConfigError(f"通知渠道配置缺少必需的配置项: {field}")

        if sink_config['type'] not in VALID_SINK_TYPES:
            raise ConfigError(
                f"通知渠道类型 '{sink_config['type']}' 不受支持。支持的类型: {VALID_SINK_TYPES}")

        if sink_config['type'] == 'webhook' and not sink_config.get('url'):
            raise ConfigError(f"Webhook通知渠道 '{sink_config['name']}' 缺少url")

    @staticmethod
    def validate_control_config(control_config: Dict[str, Any]) -> None:
        """
        验证控制接口配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(control_config, dict):
            raise ConfigError("control配置必须是字典类型")

        port = control_config.get('port')
        if port is not None and (not isinstance(port, int) or not 0 <= port <= 65535):
            raise ConfigError("control.port 必须是 0-65535 之间的整数")
