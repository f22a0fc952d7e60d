"""调度注册表模块

所有目标的重复定时器复用同一个调度时钟：注册表维护
“目标标识 -> 调度条目”的映射，外加一个按下次触发时间排序的小顶堆。
"""

import heapq
import math
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Iterable, Callable, Tuple

from ..models.target import MonitoredTarget
from ..utils.exceptions import SchedulingError
from ..utils.log_manager import get_logger


def job_key_for(target_id: str) -> str:
    """由目标标识确定性地生成任务键"""
    return f"check:{target_id}"


@dataclass
class ScheduleEntry:
    """单个目标的重复定时器"""
    target: MonitoredTarget
    interval: float
    next_fire: float
    generation: int = 0
    last_fired: Optional[float] = None
    fire_count: int = 0

    @property
    def target_id(self) -> str:
        return self.target.target_id

    @property
    def job_key(self) -> str:
        return job_key_for(self.target.target_id)


@dataclass
class ReconcileReport:
    """一次对账的结果"""
    added: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    rejected: Dict[str, str] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.removed)

    def to_dict(self) -> Dict[str, object]:
        return {
            'added': list(self.added),
            'updated': list(self.updated),
            'removed': list(self.removed),
            'unchanged': len(self.unchanged),
            'rejected': dict(self.rejected)
        }


class ScheduleRegistry:
    """调度注册表

    不是线程安全的：只允许协调器在串行化的对账中修改。
    被取消或替换的条目在堆中惰性失效，弹出时按 generation 校验。
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        初始化调度注册表

        Args:
            clock: 单调时钟函数，测试中可替换
        """
        self.clock = clock
        self.entries: Dict[str, ScheduleEntry] = {}
        self._heap: List[Tuple[float, int, str, int]] = []
        self._sequence = 0
        self._generation = 0
        self.logger = get_logger('schedule_registry')

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, target_id: str) -> bool:
        return target_id in self.entries

    @staticmethod
    def validate_interval(target: MonitoredTarget) -> float:
        """
        校验目标的检查间隔

        Raises:
            SchedulingError: 间隔不是正数
        """
        interval = target.interval
        if isinstance(interval, bool) or not isinstance(interval, (int, float)):
            raise SchedulingError(
                f"目标 {target.target_id} 的检查间隔必须是数字: {interval!r}",
                target_id=target.target_id)
        if not math.isfinite(interval) or interval <= 0:
            raise SchedulingError(
                f"目标 {target.target_id} 的检查间隔必须是正数: {interval}",
                target_id=target.target_id)
        return float(interval)

    def reconcile(self, targets: Iterable[MonitoredTarget]) -> ReconcileReport:
        """
        使注册表与权威目标集合保持一致

        Args:
            targets: 当前全部监控目标

        Returns:
            ReconcileReport: 新增、更新、移除、拒绝的目标
        """
        report = ReconcileReport()
        now = self.clock()
        seen = set()

        for target in targets:
            target_id = target.target_id
            if target_id in seen:
                self.logger.warning(f"目标 {target_id} 在目标集合中重复出现，忽略后者")
                continue
            seen.add(target_id)

            try:
                interval = self.validate_interval(target)
            except SchedulingError as e:
                report.rejected[target_id] = e.message
                self.logger.error(f"拒绝调度目标: {e.format_error()}")
                # 非法定义不应继续沿用旧的定时器
                if target_id in self.entries:
                    del self.entries[target_id]
                    report.removed.append(target_id)
                continue

            entry = self.entries.get(target_id)
            if entry is None:
                self._add(target, interval, now)
                report.added.append(target_id)
            elif entry.interval != interval:
                self._replace(entry, target, interval, now)
                report.updated.append(target_id)
            else:
                # 周期不变：刷新快照，定时器保持原样
                entry.target = target
                report.unchanged.append(target_id)

        for target_id in list(self.entries):
            if target_id not in seen:
                del self.entries[target_id]
                report.removed.append(target_id)

        if report.changed or report.rejected:
            self.logger.info(
                f"调度对账完成: 新增 {len(report.added)}, 更新 {len(report.updated)}, "
                f"移除 {len(report.removed)}, 拒绝 {len(report.rejected)}, "
                f"当前 {len(self.entries)} 个条目")

        self._compact()
        return report

    def _add(self, target: MonitoredTarget, interval: float, now: float):
        self._generation += 1
        entry = ScheduleEntry(target=target, interval=interval, next_fire=now,
                              generation=self._generation)
        self.entries[target.target_id] = entry
        self._push(entry)
        self.logger.debug(f"新增调度条目 {entry.job_key}: 间隔 {interval}s")

    def _replace(self, entry: ScheduleEntry, target: MonitoredTarget,
                 interval: float, now: float):
        """取消旧定时器并以新周期重建，保留上次触发时间"""
        old_interval = entry.interval
        self._generation += 1

        if entry.last_fired is None:
            next_fire = now
        else:
            next_fire = max(now, entry.last_fired + interval)

        new_entry = ScheduleEntry(target=target, interval=interval, next_fire=next_fire,
                                  generation=self._generation,
                                  last_fired=entry.last_fired,
                                  fire_count=entry.fire_count)
        self.entries[target.target_id] = new_entry
        self._push(new_entry)
        self.logger.info(
            f"更新调度条目 {new_entry.job_key}: 间隔 {old_interval}s -> {interval}s")

    def remove(self, target_id: str) -> bool:
        """
        取消并移除单个目标的定时器

        Returns:
            bool: 是否存在并被移除
        """
        if target_id in self.entries:
            del self.entries[target_id]
            return True
        return False

    def cancel_all(self):
        """取消全部定时器"""
        count = len(self.entries)
        self.entries.clear()
        self._heap.clear()
        if count:
            self.logger.info(f"已取消 {count} 个调度条目")

    def pop_due(self, now: Optional[float] = None) -> List[ScheduleEntry]:
        """
        取出所有已到期的条目，并把它们重新排到下一个周期

        错过多个周期时只触发一次，下一次从当前时间起算。

        Args:
            now: 当前时钟读数，默认读取时钟

        Returns:
            List[ScheduleEntry]: 到期条目
        """
        if now is None:
            now = self.clock()

        due = []
        while self._heap and self._heap[0][0] <= now:
            fire_at, _, target_id, generation = heapq.heappop(self._heap)
            entry = self.entries.get(target_id)
            if entry is None or entry.generation != generation or entry.next_fire != fire_at:
                continue

            entry.last_fired = now
            entry.fire_count += 1
            entry.next_fire = fire_at + entry.interval
            if entry.next_fire <= now:
                entry.next_fire = now + entry.interval
            self._push(entry)
            due.append(entry)

        return due

    def next_fire_time(self) -> Optional[float]:
        """最近一次有效触发的时钟读数，没有条目时返回None"""
        while self._heap:
            fire_at, _, target_id, generation = self._heap[0]
            entry = self.entries.get(target_id)
            if entry is not None and entry.generation == generation and entry.next_fire == fire_at:
                return fire_at
            heapq.heappop(self._heap)
        return None

    def get_entry(self, target_id: str) -> Optional[ScheduleEntry]:
        return self.entries.get(target_id)

    def job_keys(self) -> List[str]:
        return sorted(entry.job_key for entry in self.entries.values())

    def active_timer_count(self) -> int:
        """堆中仍然有效的定时器数量（每个条目恰好一个）"""
        return sum(
            1 for fire_at, _, target_id, generation in self._heap
            if target_id in self.entries
            and self.entries[target_id].generation == generation
            and self.entries[target_id].next_fire == fire_at
        )

    def _push(self, entry: ScheduleEntry):
        self._sequence += 1
        heapq.heappush(self._heap,
                       (entry.next_fire, self._sequence, entry.target_id, entry.generation))

    def _compact(self):
        """失效项过多时重建堆"""
        if len(self._heap) > 2 * len(self.entries) + 16:
            self._heap = [
                item for item in self._heap
                if item[2] in self.entries
                and self.entries[item[2]].generation == item[3]
                and self.entries[item[2]].next_fire == item[0]
            ]
            heapq.heapify(self._heap)
