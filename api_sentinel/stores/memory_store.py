"""内存目标存储"""

import dataclasses
from collections import deque
from datetime import datetime
from typing import Dict, List, Optional, Any

from .base import TargetStore, build_target
from ..models.target import MonitoredTarget, TargetStatus, CheckLogRecord
from ..utils.exceptions import StoreError, ErrorCode
from ..utils.log_manager import get_logger


class InMemoryTargetStore(TargetStore):
    """进程内的目标存储，适合测试与单机演示"""

    def __init__(self, targets: Optional[List[MonitoredTarget]] = None,
                 max_log_records: int = 10000):
        """
        初始化内存目标存储

        Args:
            targets: 初始目标列表
            max_log_records: 检查日志与状态写入记录各自保留的最大条数
        """
        self.targets: Dict[str, MonitoredTarget] = {}
        self.check_log: deque = deque(maxlen=max_log_records)
        self.status_writes: deque = deque(maxlen=max_log_records)
        self.logger = get_logger('store.memory')

        for target in targets or []:
            self.add_target(target)

    @classmethod
    def from_config(cls, targets_config: Dict[str, Dict[str, Any]]) -> 'InMemoryTargetStore':
        """
        根据配置中的 targets 段创建存储

        Args:
            targets_config: 目标标识 -> 目标定义
        """
        targets = []
        for target_id, definition in (targets_config or {}).items():
            status = TargetStatus(definition.get('status', TargetStatus.PENDING.value))
            targets.append(build_target(target_id, definition, status))
        return cls(targets)

    def add_target(self, target: MonitoredTarget):
        """新增或替换目标"""
        self.targets[target.target_id] = target
        self.logger.debug(f"保存目标: {target.target_id}")

    def remove_target(self, target_id: str) -> bool:
        """删除目标"""
        if self.targets.pop(target_id, None) is None:
            return False
        self.logger.debug(f"删除目标: {target_id}")
        return True

    def update_target(self, target_id: str, **changes) -> MonitoredTarget:
        """
        修改目标定义（例如检查间隔）

        Raises:
            StoreError: 目标不存在
        """
        target = self._require(target_id)
        updated = dataclasses.replace(target, **changes)
        self.targets[target_id] = updated
        return updated

    def _require(self, target_id: str) -> MonitoredTarget:
        target = self.targets.get(target_id)
        if target is None:
            raise StoreError(f"目标不存在: {target_id}", ErrorCode.TARGET_NOT_FOUND,
                             target_id=target_id)
        return target

    async def list_targets(self) -> List[MonitoredTarget]:
        return list(self.targets.values())

    async def get_status(self, target_id: str) -> TargetStatus:
        return self._require(target_id).status

    async def record_check(self, target_id: str, status_code: int, latency_ms: float):
        self._require(target_id)
        self.check_log.append(CheckLogRecord(
            target_id=target_id,
            status_code=status_code,
            latency_ms=latency_ms,
            created_at=datetime.now()
        ))

    async def update_status(self, target_id: str, new_status: TargetStatus,
                            checked_at: datetime):
        target = self._require(target_id)
        self.targets[target_id] = dataclasses.replace(
            target, status=new_status, last_checked=checked_at)
        self.status_writes.append({
            'target_id': target_id,
            'status': new_status,
            'checked_at': checked_at
        })

    def get_check_log(self, target_id: Optional[str] = None) -> List[CheckLogRecord]:
        """获取检查日志（按写入顺序）"""
        return [r for r in self.check_log if target_id is None or r.target_id == target_id]
