"""通知渠道基类"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional

from ..models.target import TransitionEvent


class BaseNotificationSink(ABC):
    """通知渠道抽象基类"""

    def __init__(self, name: str, config: Optional[Dict[str, Any]] = None):
        """
        初始化通知渠道

        Args:
            name: 渠道名称
            config: 渠道配置参数
        """
        self.name = name
        self.config = config or {}
        self.sink_type = self.__class__.__name__.replace('NotificationSink', '').lower()

    @abstractmethod
    async def notify(self, event: TransitionEvent) -> bool:
        """
        投递一次状态变化事件

        Args:
            event: 状态变化事件

        Returns:
            bool: 投递是否成功
        """
        pass

    def validate_config(self) -> bool:
        """
        验证配置参数是否有效

        Returns:
            bool: 配置是否有效
        """
        return True

    def get_timeout(self) -> float:
        """
        获取超时时间配置

        Returns:
            float: 超时时间（秒）
        """
        return self.config.get('timeout', 10)

    def get_delivery_budget(self) -> float:
        """
        获取完成一次投递（含全部重试）所需的最长时间

        Returns:
            float: 投递时间上限（秒）
        """
        return self.get_timeout()

    async def close(self):
        """释放渠道资源"""
        pass
