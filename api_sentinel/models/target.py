"""监控目标、检查结果与状态变化的数据模型"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional

# 网络错误/超时时记录的状态码
OFFLINE_STATUS_CODE = 500


class TargetStatus(str, Enum):
    """目标健康状态"""
    PENDING = "PENDING"
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"


@dataclass(frozen=True)
class MonitoredTarget:
    """被监控的HTTP端点（目标存储中记录的只读快照）"""
    target_id: str
    name: str
    url: str
    method: str = 'GET'
    interval: float = 300.0  # 秒
    status: TargetStatus = TargetStatus.PENDING
    last_checked: Optional[datetime] = None
    expected_status: Optional[Any] = None  # 单个状态码或状态码列表


@dataclass
class CheckResult:
    """一次探测的结果"""
    target_id: str
    status_code: int
    latency_ms: float
    status: TargetStatus
    checked_at: datetime = field(default_factory=datetime.now)
    error_message: Optional[str] = None

    @property
    def is_online(self) -> bool:
        return self.status == TargetStatus.ONLINE


@dataclass(frozen=True)
class CheckLogRecord:
    """只追加的检查日志记录"""
    target_id: str
    status_code: int
    latency_ms: float
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'target_id': self.target_id,
            'status_code': self.status_code,
            'latency_ms': self.latency_ms,
            'created_at': self.created_at.isoformat()
        }


@dataclass(frozen=True)
class TransitionEvent:
    """目标状态变化事件，仅在新旧状态不同时构造"""
    target_id: str
    old_status: TargetStatus
    new_status: TargetStatus
    name: str
    url: str
    timestamp: datetime = field(default_factory=datetime.now)
    status_code: Optional[int] = None
    latency_ms: Optional[float] = None

    def __post_init__(self):
        if self.old_status == self.new_status:
            raise ValueError(f"状态未变化，不能构造状态变化事件: {self.new_status.value}")

    @property
    def is_initial(self) -> bool:
        """是否为首次检查产生的变化（PENDING -> ONLINE/OFFLINE）"""
        return self.old_status == TargetStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'endpoint_id': self.target_id,
            'name': self.name,
            'url': self.url,
            'old_status': self.old_status.value,
            'new_status': self.new_status.value,
            'timestamp': self.timestamp.isoformat(),
            'status_code': self.status_code,
            'latency_ms': self.latency_ms
        }
