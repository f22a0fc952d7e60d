"""目标文件监控器

目标文件被外部修改后立即触发一次重载，而不是等待下一个对账周期
"""

import os
from typing import Callable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ..utils.exceptions import ConfigError
from ..utils.log_manager import get_logger


class TargetFileHandler(FileSystemEventHandler):
    """目标文件变更事件处理器"""

    def __init__(self, targets_file: str, callback: Callable[[], None]):
        """
        Args:
            targets_file: 目标文件的绝对路径
            callback: 文件变更时调用（在watchdog线程中执行）
        """
        self.targets_file = targets_file
        self.callback = callback
        self.logger = get_logger('target_watcher')

    def _matches(self, event) -> bool:
        if event.is_directory:
            return False
        paths = [getattr(event, 'src_path', None), getattr(event, 'dest_path', None)]
        return any(path and os.path.abspath(path) == self.targets_file for path in paths)

    def on_any_event(self, event):
        if event.event_type not in ('modified', 'created', 'moved'):
            return
        if not self._matches(event):
            return

        self.logger.info(f"检测到目标文件变更: {self.targets_file}")
        try:
            self.callback()
        except Exception as e:
            self.logger.error(f"处理目标文件变更失败: {e}")


class TargetFileWatcher:
    """目标文件监控器"""

    def __init__(self, targets_file: str, on_change: Callable[[], None]):
        """
        Args:
            targets_file: 目标文件路径
            on_change: 变更回调，必须是线程安全的
        """
        self.targets_file = os.path.abspath(targets_file)
        self.on_change = on_change
        self.observer: Optional[Observer] = None
        self.logger = get_logger('target_watcher')
        self._running = False

    def start_watching(self):
        """
        开始监控目标文件

        Raises:
            ConfigError: 无法启动文件监控
        """
        if self._running:
            self.logger.warning("目标文件监控器已经在运行")
            return

        try:
            self.observer = Observer()
            handler = TargetFileHandler(self.targets_file, self.on_change)
            self.observer.schedule(handler, os.path.dirname(self.targets_file), recursive=False)
            self.observer.start()
            self._running = True
            self.logger.info(f"开始监控目标文件: {self.targets_file}")
        except Exception as e:
            self.observer = None
            raise ConfigError(f"启动目标文件监控失败: {e}", cause=e)

    def stop_watching(self):
        """停止监控目标文件"""
        if not self._running:
            return

        if self.observer:
            self.observer.stop()
            self.observer.join()
            self.observer = None

        self._running = False
        self.logger.info("目标文件监控已停止")

    def is_running(self) -> bool:
        return self._running

    def __enter__(self):
        self.start_watching()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop_watching()
