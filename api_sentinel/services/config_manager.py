"""配置管理器"""

from typing import Dict, Any

import yaml

from ..utils.config_validator import ConfigValidator
from ..utils.exceptions import ConfigError, ErrorCode
from ..utils.log_manager import get_logger

SCHEDULER_DEFAULTS = {
    'worker_count': 10,
    'queue_size': 100,
    'reconcile_interval': 60,
    'settle_delay': 5,
    'probe_timeout': 10,
    'notification_timeout': 10,
    'notify_initial_transition': False,
}

CONTROL_DEFAULTS = {
    'enabled': True,
    'host': '0.0.0.0',
    'port': 3003,
}


class ConfigManager:
    """配置管理器，负责YAML配置文件的加载、解析和验证"""

    def __init__(self, config_path: str):
        """
        初始化配置管理器

        Args:
            config_path: 配置文件路径
        """
        self.config_path = config_path
        self.config: Dict[str, Any] = {}
        self.logger = get_logger('config_manager')

    def load_config(self) -> Dict[str, Any]:
        """
        加载YAML配置文件

        Returns:
            Dict[str, Any]: 配置字典

        Raises:
            ConfigError: 配置加载或验证失败
        """
        self.logger.info(f"开始加载配置文件: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as file:
                config = yaml.safe_load(file)
        except FileNotFoundError:
            raise ConfigError(f"配置文件不存在: {self.config_path}",
                              ErrorCode.CONFIG_FILE_NOT_FOUND, config_path=self.config_path)
        except PermissionError:
            raise ConfigError(f"没有权限读取配置文件: {self.config_path}",
                              config_path=self.config_path)
        except yaml.YAMLError as e:
            raise ConfigError(f"YAML格式错误: {e}", ErrorCode.CONFIG_PARSE_ERROR,
                              config_path=self.config_path)

        if config is None:
            raise ConfigError("配置文件为空", config_path=self.config_path)

        self._validate_config(config)

        self.config = config

        self.logger.info(
            f"配置验证成功: 存储类型 {self.get_store_config().get('type', 'memory')}, "
            f"{len(self.get_targets_config())} 个内置目标, "
            f"{len(self.get_notifications_config())} 个通知渠道")
        return self.config

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """
        验证配置文件内容

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(config, dict):
            raise ConfigError("配置文件根节点必须是字典类型")

        if 'global' in config:
            ConfigValidator.validate_global_config(config['global'])

        if 'scheduler' in config:
            ConfigValidator.validate_scheduler_config(config['scheduler'])

        if 'store' in config:
            ConfigValidator.validate_store_config(config['store'])

        if 'control' in config:
            ConfigValidator.validate_control_config(config['control'])

        if 'targets' in config:
            if not isinstance(config['targets'], dict):
                raise ConfigError("targets配置必须是字典类型")
            for target_id, target_config in config['targets'].items():
                ConfigValidator.validate_target_config(str(target_id), target_config)

        if 'notifications' in config:
            if not isinstance(config['notifications'], list):
                raise ConfigError("notifications配置必须是列表类型")
            for sink_config in config['notifications']:
                ConfigValidator.validate_notification_config(sink_config)

    def get_global_config(self) -> Dict[str, Any]:
        return self.config.get('global') or {}

    def get_scheduler_config(self) -> Dict[str, Any]:
        """获取调度器配置（已合并默认值）"""
        scheduler_config = dict(SCHEDULER_DEFAULTS)
        scheduler_config.update(self.config.get('scheduler') or {})
        return scheduler_config

    def get_store_config(self) -> Dict[str, Any]:
        store_config = {'type': 'memory'}
        store_config.update(self.config.get('store') or {})
        return store_config

    def get_control_config(self) -> Dict[str, Any]:
        """获取控制接口配置（已合并默认值）"""
        control_config = dict(CONTROL_DEFAULTS)
        control_config.update(self.config.get('control') or {})
        return control_config

    def get_targets_config(self) -> Dict[str, Any]:
        return self.config.get('targets') or {}

    def get_notifications_config(self) -> list:
        return self.config.get('notifications') or []
