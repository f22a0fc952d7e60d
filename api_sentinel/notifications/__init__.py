"""通知模块"""

from .base import BaseNotificationSink
from .dispatcher import NotificationDispatcher, SINK_TYPES
from .log_sink import LogNotificationSink
from .webhook_sink import WebhookNotificationSink

__all__ = [
    'BaseNotificationSink',
    'NotificationDispatcher',
    'LogNotificationSink',
    'WebhookNotificationSink',
    'SINK_TYPES'
]
