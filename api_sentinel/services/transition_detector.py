"""状态变化检测模块

负责比较新的探测结果与持久化状态，写入检查日志、更新状态，
并在状态发生变化时生成 TransitionEvent
"""

import asyncio
from collections import deque
from typing import Dict, List, Optional, Any

from ..models.target import MonitoredTarget, CheckResult, TransitionEvent
from ..stores.base import TargetStore
from ..utils.log_manager import get_logger


class TransitionDetector:
    """状态变化检测器

    每个目标的“读取-比较-更新”在该目标的锁内完成，不同目标之间互不阻塞。
    """

    def __init__(self, store: TargetStore, notify_initial_transition: bool = False,
                 history_size: int = 100):
        """
        初始化状态变化检测器

        Args:
            store: 目标存储
            notify_initial_transition: PENDING -> ONLINE/OFFLINE 是否生成事件
            history_size: 内存中保留的最近状态变化数量
        """
        self.store = store
        self.notify_initial_transition = notify_initial_transition
        self.recent_transitions: deque = deque(maxlen=history_size)
        self._locks: Dict[str, asyncio.Lock] = {}
        self.logger = get_logger('transition_detector')

        self.stats: Dict[str, int] = {
            'checks_applied': 0,
            'transitions': 0,
            'initial_transitions_suppressed': 0
        }

    def _lock_for(self, target_id: str) -> asyncio.Lock:
        lock = self._locks.get(target_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[target_id] = lock
        return lock

    def forget(self, target_id: str):
        """目标被移除后释放对应的锁"""
        lock = self._locks.get(target_id)
        if lock is not None and not lock.locked():
            del self._locks[target_id]

    async def detect_and_apply(self, target: MonitoredTarget,
                               result: CheckResult) -> Optional[TransitionEvent]:
        """
        应用一次探测结果

        Args:
            target: 监控目标
            result: 探测结果

        Returns:
            状态发生变化且需要通知时返回 TransitionEvent，否则返回None

        Raises:
            StoreError: 存储读写失败，本轮检查作废
        """
        target_id = target.target_id

        async with self._lock_for(target_id):
            previous = await self.store.get_status(target_id)
            await self.store.record_check(target_id, result.status_code, result.latency_ms)

            new_status = result.status
            # 状态不变时写回原状态，实际只更新最后检查时间
            await self.store.update_status(target_id, new_status, result.checked_at)
            self.stats['checks_applied'] += 1

            if previous == new_status:
                return None

            event = TransitionEvent(
                target_id=target_id,
                old_status=previous,
                new_status=new_status,
                name=target.name,
                url=target.url,
                timestamp=result.checked_at,
                status_code=result.status_code,
                latency_ms=result.latency_ms
            )
            self.recent_transitions.append(event)
            self.stats['transitions'] += 1

        if event.is_initial and not self.notify_initial_transition:
            self.stats['initial_transitions_suppressed'] += 1
            self.logger.info(
                f"目标 {target_id} 初始状态: {new_status.value} (状态码 {result.status_code})")
            return None

        self.logger.warning(
            f"目标 {target_id} 状态变化: {previous.value} -> {new_status.value} "
            f"(状态码 {result.status_code}, 响应时间 {result.latency_ms:.0f}ms)")
        return event

    def get_recent_transitions(self, target_id: Optional[str] = None,
                               limit: Optional[int] = None) -> List[TransitionEvent]:
        """
        获取最近的状态变化事件（按时间倒序）

        Args:
            target_id: 只返回该目标的事件，None表示全部
            limit: 返回数量上限
        """
        events = [e for e in self.recent_transitions
                  if target_id is None or e.target_id == target_id]
        events.reverse()
        if limit:
            events = events[:limit]
        return events

    def get_stats(self) -> Dict[str, Any]:
        return dict(self.stats)
