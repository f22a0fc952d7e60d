"""进程资源快照，供存活探针上报"""

import asyncio
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Dict, Any, Optional

import psutil

from .log_manager import get_logger

logger = get_logger('process_metrics')

_process: Optional[psutil.Process] = None


@dataclass
class ProcessMetrics:
    """进程资源指标"""
    timestamp: datetime
    cpu_percent: float
    memory_rss_mb: float
    memory_percent: float
    active_threads: int
    active_tasks: int

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式"""
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data


def collect_process_metrics() -> Optional[ProcessMetrics]:
    """
    采集当前进程的资源使用情况

    Returns:
        ProcessMetrics: 资源指标，采集失败时返回None
    """
    global _process

    try:
        if _process is None:
            _process = psutil.Process()

        memory_info = _process.memory_info()
        try:
            active_tasks = len(asyncio.all_tasks())
        except RuntimeError:
            active_tasks = 0

        return ProcessMetrics(
            timestamp=datetime.now(),
            cpu_percent=_process.cpu_percent(interval=None),
            memory_rss_mb=memory_info.rss / 1024 / 1024,
            memory_percent=_process.memory_percent(),
            active_threads=_process.num_threads(),
            active_tasks=active_tasks
        )
    except psutil.Error as e:
        logger.warning(f"采集进程指标失败: {e}")
        return None
