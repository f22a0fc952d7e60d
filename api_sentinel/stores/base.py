"""目标存储接口"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Dict, Any, Optional

from ..models.target import MonitoredTarget, TargetStatus

DEFAULT_INTERVAL = 300  # 秒


def build_target(target_id: str, definition: Dict[str, Any],
                 status: TargetStatus = TargetStatus.PENDING,
                 last_checked: Optional[datetime] = None) -> MonitoredTarget:
    """
    根据配置中的目标定义构造目标快照

    间隔原样保留，合法性由调度注册表在对账时校验。

    Args:
        target_id: 目标标识
        definition: 目标定义（url, name, method, interval, expected_status）
        status: 持久化的状态
        last_checked: 最后检查时间
    """
    return MonitoredTarget(
        target_id=str(target_id),
        name=definition.get('name', str(target_id)),
        url=definition['url'],
        method=str(definition.get('method', 'GET')).upper(),
        interval=definition.get('interval', DEFAULT_INTERVAL),
        status=status,
        last_checked=last_checked,
        expected_status=definition.get('expected_status')
    )


class TargetStore(ABC):
    """目标存储抽象基类

    是目标状态的唯一可信来源。所有方法在存储不可用时抛出 StoreError。
    """

    @abstractmethod
    async def list_targets(self) -> List[MonitoredTarget]:
        """
        获取全部监控目标

        Returns:
            List[MonitoredTarget]: 目标快照列表
        """
        pass

    @abstractmethod
    async def get_status(self, target_id: str) -> TargetStatus:
        """
        读取目标当前持久化的状态

        Raises:
            StoreError: 目标不存在或存储不可用
        """
        pass

    @abstractmethod
    async def record_check(self, target_id: str, status_code: int, latency_ms: float):
        """追加一条检查日志"""
        pass

    @abstractmethod
    async def update_status(self, target_id: str, new_status: TargetStatus,
                            checked_at: datetime):
        """一次写入同时更新状态与最后检查时间"""
        pass

    async def close(self):
        """释放存储资源"""
        pass
