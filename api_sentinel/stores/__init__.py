"""目标存储模块"""

from .base import TargetStore, build_target, DEFAULT_INTERVAL
from .file_store import FileTargetStore
from .memory_store import InMemoryTargetStore

__all__ = ['TargetStore', 'build_target', 'DEFAULT_INTERVAL',
           'FileTargetStore', 'InMemoryTargetStore']
