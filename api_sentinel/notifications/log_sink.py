"""日志通知渠道：以日志形式模拟邮件通知"""

from .base import BaseNotificationSink
from ..models.target import TransitionEvent
from ..utils.log_manager import get_logger


class LogNotificationSink(BaseNotificationSink):
    """把状态变化渲染成一封模拟邮件并写入日志"""

    def __init__(self, name: str = 'log', config=None):
        super().__init__(name, config)
        self.logger = get_logger(f'notification.log.{self.name}')
        self.subject_prefix = self.config.get('subject_prefix', '[API Sentinel]')

    def render(self, event: TransitionEvent) -> tuple:
        """
        渲染邮件主题和正文

        Returns:
            tuple: (主题, 正文)
        """
        subject = f"{self.subject_prefix} 端点状态变化 - {event.name}"
        body = (f"[告警] 端点 '{event.name}' ({event.url}) 状态由 "
                f"{event.old_status.value} 变为 {event.new_status.value}")
        return subject, body

    async def notify(self, event: TransitionEvent) -> bool:
        subject, body = self.render(event)
        self.logger.warning(f"模拟邮件已发送 | 主题: {subject} | 正文: {body}")
        return True
