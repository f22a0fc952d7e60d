"""自定义异常类和错误代码"""

import traceback
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(Enum):
    """错误代码枚举"""
    # 通用错误 (1000-1999)
    UNKNOWN_ERROR = 1000
    INITIALIZATION_ERROR = 1001
    VALIDATION_ERROR = 1002

    # 配置错误 (2000-2999)
    CONFIG_FILE_NOT_FOUND = 2000
    CONFIG_PARSE_ERROR = 2001
    CONFIG_VALIDATION_ERROR = 2002
    CONFIG_RELOAD_ERROR = 2003

    # 目标存储错误 (3000-3999)
    STORE_UNAVAILABLE = 3000
    TARGET_NOT_FOUND = 3001
    STORE_PERSISTENCE_ERROR = 3002

    # 通知错误 (4000-4999)
    NOTIFICATION_CONFIG_ERROR = 4000
    NOTIFICATION_SEND_ERROR = 4001
    NOTIFICATION_TIMEOUT = 4002

    # 调度错误 (5000-5999)
    SCHEDULER_ERROR = 5000
    SCHEDULER_STARTUP_ERROR = 5001
    INVALID_INTERVAL = 5002


class SentinelError(Exception):
    """监控调度系统基础异常类"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = True
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            'error_code': self.error_code.value,
            'error_name': self.error_code.name,
            'message': self.message,
            'details': self.details,
            'recoverable': self.recoverable,
            'timestamp': self.timestamp.isoformat(),
            'cause': str(self.cause) if self.cause else None,
            'traceback': traceback.format_exc() if self.cause else None
        }

    def format_error(self) -> str:
        """格式化错误信息"""
        error_msg = f"[{self.error_code.name}] {self.message}"
        if self.details:
            details_str = ", ".join([f"{k}={v}" for k, v in self.details.items()])
            error_msg += f" (详情: {details_str})"
        if self.cause:
            error_msg += f" (原因: {str(self.cause)})"
        return error_msg


class ConfigError(SentinelError):
    """配置相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONFIG_VALIDATION_ERROR,
        config_path: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if config_path:
            details['config_path'] = config_path
        super().__init__(message, error_code, details, **kwargs)


class StoreError(SentinelError):
    """目标存储不可用或读写失败"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.STORE_UNAVAILABLE,
        target_id: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if target_id is not None:
            details['target_id'] = target_id
        super().__init__(message, error_code, details, **kwargs)


class SchedulingError(SentinelError):
    """单个目标无法被调度（例如间隔非法）"""

    def __init__(self, message: str, target_id: Optional[str] = None, **kwargs):
        details = kwargs.pop('details', {})
        if target_id is not None:
            details['target_id'] = target_id
        super().__init__(message, ErrorCode.INVALID_INTERVAL, details,
                         recoverable=False, **kwargs)


class SchedulerError(SentinelError):
    """调度器相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.SCHEDULER_ERROR,
        **kwargs
    ):
        super().__init__(message, error_code, **kwargs)


class NotificationError(SentinelError):
    """通知相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.NOTIFICATION_SEND_ERROR,
        sink_name: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if sink_name:
            details['sink_name'] = sink_name
        super().__init__(message, error_code, details, **kwargs)


class NotificationConfigError(NotificationError):
    """通知渠道配置异常"""

    def __init__(self, message: str, sink_name: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            ErrorCode.NOTIFICATION_CONFIG_ERROR,
            sink_name=sink_name,
            recoverable=False,
            **kwargs
        )


class NotificationSendError(NotificationError):
    """通知发送异常"""

    def __init__(self, message: str, sink_name: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            ErrorCode.NOTIFICATION_SEND_ERROR,
            sink_name=sink_name,
            recoverable=True,
            **kwargs
        )
