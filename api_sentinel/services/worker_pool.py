"""分发工作池模块

固定数量的工作协程消费一个有界队列；队列满时丢弃本轮任务，
同一目标已在排队或执行中时合并（跳过）新的触发。
"""

import asyncio
from typing import Dict, Any, Optional, Set, Callable, Awaitable, List

from ..models.target import MonitoredTarget, CheckResult
from ..probes.base import BaseProbe
from ..utils.exceptions import SchedulerError, ErrorCode
from ..utils.log_manager import get_logger

ResultHandler = Callable[[MonitoredTarget, CheckResult], Awaitable[None]]


class DispatchWorkerPool:
    """分发工作池"""

    def __init__(self, probe: BaseProbe, result_handler: Optional[ResultHandler] = None,
                 worker_count: int = 10, queue_size: int = 100):
        """
        初始化分发工作池

        Args:
            probe: 探测执行器
            result_handler: 每个完成的任务都会以 (目标, 结果) 调用此回调
            worker_count: 工作协程数量（全局并发上限）
            queue_size: 队列容量
        """
        self.probe = probe
        self.result_handler = result_handler
        self.worker_count = worker_count
        self.queue_size = queue_size

        self.queue: Optional[asyncio.Queue] = None
        self.workers: List[asyncio.Task] = []
        self.in_flight: Set[str] = set()  # 排队中或执行中的目标
        self.executing: Set[str] = set()
        self.is_running = False
        self.logger = get_logger('worker_pool')

        self.stats: Dict[str, int] = {
            'submitted': 0,
            'coalesced': 0,
            'dropped': 0,
            'completed': 0,
            'failed': 0,
            'discarded': 0,
            'peak_executing': 0
        }

    def set_result_handler(self, handler: ResultHandler):
        """设置结果回调"""
        self.result_handler = handler

    async def start(self):
        """
        创建队列并启动工作协程

        Raises:
            SchedulerError: 工作池参数无效或创建失败
        """
        if self.is_running:
            self.logger.warning("分发工作池已经在运行")
            return

        if not isinstance(self.worker_count, int) or self.worker_count <= 0:
            raise SchedulerError(f"工作协程数量必须是正整数: {self.worker_count}",
                                 ErrorCode.SCHEDULER_STARTUP_ERROR, recoverable=False)
        if not isinstance(self.queue_size, int) or self.queue_size <= 0:
            raise SchedulerError(f"队列容量必须是正整数: {self.queue_size}",
                                 ErrorCode.SCHEDULER_STARTUP_ERROR, recoverable=False)

        try:
            self.queue = asyncio.Queue(maxsize=self.queue_size)
            self.workers = [
                asyncio.create_task(self._worker(index), name=f'sentinel-worker-{index}')
                for index in range(self.worker_count)
            ]
        except Exception as e:
            raise SchedulerError(f"创建分发工作池失败: {e}",
                                 ErrorCode.SCHEDULER_STARTUP_ERROR,
                                 cause=e, recoverable=False)

        self.is_running = True
        self.logger.info(
            f"分发工作池已启动: {self.worker_count} 个工作协程, 队列容量 {self.queue_size}")

    def submit(self, target: MonitoredTarget) -> bool:
        """
        提交一个探测任务，从不阻塞调用方

        Args:
            target: 监控目标

        Returns:
            bool: 是否入队；被合并或丢弃时返回False
        """
        if not self.is_running or self.queue is None:
            return False

        target_id = target.target_id
        if target_id in self.in_flight:
            self.stats['coalesced'] += 1
            self.logger.debug(f"目标 {target_id} 的上一次检查尚未完成，跳过本次触发")
            return False

        try:
            self.queue.put_nowait(target)
        except asyncio.QueueFull:
            self.stats['dropped'] += 1
            self.logger.warning(f"任务队列已满 ({self.queue_size})，丢弃目标 {target_id} 的本轮检查")
            return False

        self.in_flight.add(target_id)
        self.stats['submitted'] += 1
        return True

    async def _worker(self, index: int):
        """工作协程：出队、探测、交给结果回调"""
        while True:
            target = await self.queue.get()
            target_id = target.target_id
            self.executing.add(target_id)
            self.stats['peak_executing'] = max(self.stats['peak_executing'], len(self.executing))

            try:
                result = await self.probe.execute(target)
                if self.result_handler:
                    await self.result_handler(target, result)
                self.stats['completed'] += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.stats['failed'] += 1
                self.logger.error(f"工作协程 {index} 处理目标 {target_id} 时发生异常: {e}",
                                  exc_info=True)
            finally:
                self.executing.discard(target_id)
                self.in_flight.discard(target_id)
                self.queue.task_done()

    async def stop(self, drain_timeout: Optional[float] = None):
        """
        停止工作池

        丢弃尚未开始的任务，等待执行中的任务完成（最多 drain_timeout 秒），
        然后取消全部工作协程。

        Args:
            drain_timeout: 等待执行中任务的最长时间，None表示一直等待
        """
        if not self.is_running:
            return

        self.is_running = False
        self.logger.info("正在停止分发工作池...")

        discarded = 0
        while True:
            try:
                target = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self.in_flight.discard(target.target_id)
            self.queue.task_done()
            discarded += 1
        self.stats['discarded'] += discarded
        if discarded:
            self.logger.info(f"丢弃了 {discarded} 个尚未开始的任务")

        if self.executing:
            try:
                await asyncio.wait_for(self.queue.join(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                self.logger.warning(
                    f"等待执行中的任务超时，强制取消: {sorted(self.executing)}")

        for worker in self.workers:
            worker.cancel()
        await asyncio.gather(*self.workers, return_exceptions=True)

        self.workers = []
        self.queue = None
        self.in_flight.clear()
        self.executing.clear()
        self.logger.info("分发工作池已停止")

    def get_stats(self) -> Dict[str, Any]:
        """获取工作池统计信息"""
        stats = dict(self.stats)
        stats.update({
            'is_running': self.is_running,
            'worker_count': self.worker_count,
            'queue_size': self.queue_size,
            'queued': self.queue.qsize() if self.queue else 0,
            'in_flight': len(self.in_flight),
            'executing': len(self.executing)
        })
        return stats
