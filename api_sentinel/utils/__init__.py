"""工具模块"""

from .exceptions import (SentinelError, ConfigError, StoreError, SchedulingError,
                         SchedulerError, NotificationError)
from .log_manager import LogManager, LogLevel, get_logger, configure_logging, log_manager

__all__ = [
    'SentinelError', 'ConfigError', 'StoreError', 'SchedulingError',
    'SchedulerError', 'NotificationError',
    'LogManager', 'LogLevel', 'get_logger', 'configure_logging', 'log_manager'
]
