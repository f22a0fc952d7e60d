"""通知分发器

把一个状态变化事件并发投递到所有已配置的通知渠道
"""

import asyncio
from typing import Dict, List, Any

from .base import BaseNotificationSink
from .log_sink import LogNotificationSink
from .webhook_sink import WebhookNotificationSink
from ..models.target import TransitionEvent
from ..utils.exceptions import NotificationConfigError
from ..utils.log_manager import get_logger

SINK_TYPES = {
    'log': LogNotificationSink,
    'webhook': WebhookNotificationSink,
}


class NotificationDispatcher(BaseNotificationSink):
    """组合通知渠道，只有全部渠道成功才算成功"""

    def __init__(self, sinks: List[BaseNotificationSink] = None):
        super().__init__('dispatcher')
        self.sinks: List[BaseNotificationSink] = []
        self.logger = get_logger('notification.dispatcher')
        self.stats: Dict[str, int] = {'events': 0, 'delivered': 0, 'failed': 0}

        for sink in sinks or []:
            self.add_sink(sink)

    @classmethod
    def from_config(cls, sink_configs: List[Dict[str, Any]]) -> 'NotificationDispatcher':
        """
        根据配置列表创建分发器，无法创建的渠道记录错误后跳过

        Args:
            sink_configs: 通知渠道配置列表
        """
        dispatcher = cls()

        for config in sink_configs or []:
            sink_type = str(config.get('type', '')).lower()
            sink_name = config.get('name', f'{sink_type}_{len(dispatcher.sinks)}')

            sink_class = SINK_TYPES.get(sink_type)
            if sink_class is None:
                dispatcher.logger.warning(f"不支持的通知渠道类型: {sink_type}")
                continue

            try:
                dispatcher.add_sink(sink_class(sink_name, config))
            except NotificationConfigError as e:
                dispatcher.logger.error(f"初始化通知渠道失败 {sink_name}: {e.format_error()}")

        return dispatcher

    def add_sink(self, sink: BaseNotificationSink):
        """
        添加通知渠道

        Raises:
            NotificationConfigError: 对象不是通知渠道
        """
        if not isinstance(sink, BaseNotificationSink):
            raise NotificationConfigError(f"通知渠道必须继承自BaseNotificationSink: {type(sink)}")

        self.sinks.append(sink)
        self.logger.info(f"已添加通知渠道: {sink.name} ({sink.sink_type})")

    def remove_sink(self, name: str) -> bool:
        for i, sink in enumerate(self.sinks):
            if sink.name == name:
                self.sinks.pop(i)
                self.logger.info(f"已移除通知渠道: {name}")
                return True
        return False

    async def notify(self, event: TransitionEvent) -> bool:
        if not self.sinks:
            self.logger.warning("没有配置通知渠道，跳过通知")
            return True

        self.stats['events'] += 1
        results = await asyncio.gather(
            *(self._notify_sink(sink, event) for sink in self.sinks))

        failed = [sink.name for sink, ok in zip(self.sinks, results) if not ok]
        delivered = len(results) - len(failed)
        self.stats['delivered'] += delivered
        self.stats['failed'] += len(failed)

        if failed:
            self.logger.warning(
                f"以下通知渠道发送失败: {', '.join(failed)} (目标: {event.target_id})")
        else:
            self.logger.info(
                f"通知发送成功 {delivered}/{len(self.sinks)} 个渠道 "
                f"(目标: {event.target_id}, 状态: {event.new_status.value})")

        return not failed

    async def _notify_sink(self, sink: BaseNotificationSink, event: TransitionEvent) -> bool:
        try:
            return bool(await sink.notify(event))
        except Exception as e:
            self.logger.error(f"通知渠道 {sink.name} 发送失败: {e}")
            return False

    def get_delivery_budget(self) -> float:
        # 各渠道并发投递，取最慢的一个
        if not self.sinks:
            return self.get_timeout()
        return max(sink.get_delivery_budget() for sink in self.sinks)

    def get_sink_names(self) -> List[str]:
        return [sink.name for sink in self.sinks]

    async def close(self):
        for sink in self.sinks:
            await sink.close()
