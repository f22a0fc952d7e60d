"""API Sentinel 调度引擎：周期性探测HTTP端点、检测状态变化并触发通知"""

__version__ = "1.0.0"
