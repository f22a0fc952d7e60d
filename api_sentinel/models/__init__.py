"""数据模型模块"""

from .target import (TargetStatus, MonitoredTarget, CheckResult, CheckLogRecord,
                     TransitionEvent, OFFLINE_STATUS_CODE)

__all__ = ['TargetStatus', 'MonitoredTarget', 'CheckResult', 'CheckLogRecord',
           'TransitionEvent', 'OFFLINE_STATUS_CODE']
