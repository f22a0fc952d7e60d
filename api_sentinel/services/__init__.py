"""调度服务模块"""

from .config_manager import ConfigManager
from .coordinator import SchedulerCoordinator, CoordinatorState
from .schedule_registry import ScheduleRegistry, ScheduleEntry, ReconcileReport, job_key_for
from .target_watcher import TargetFileWatcher
from .transition_detector import TransitionDetector
from .worker_pool import DispatchWorkerPool

__all__ = [
    'ConfigManager', 'SchedulerCoordinator', 'CoordinatorState',
    'ScheduleRegistry', 'ScheduleEntry', 'ReconcileReport', 'job_key_for',
    'TargetFileWatcher', 'TransitionDetector', 'DispatchWorkerPool'
]
