"""调度协调器模块

负责对账调度注册表、把到期任务交给分发工作池，
并在任务完成后检测状态变化、触发通知
"""

import asyncio
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional, Set

from .schedule_registry import ScheduleRegistry, ReconcileReport
from .transition_detector import TransitionDetector
from .worker_pool import DispatchWorkerPool
from ..models.target import MonitoredTarget, CheckResult, TransitionEvent
from ..notifications.base import BaseNotificationSink
from ..probes.base import BaseProbe
from ..stores.base import TargetStore
from ..utils.exceptions import StoreError, SchedulerError
from ..utils.log_manager import get_logger


class CoordinatorState(Enum):
    """协调器状态"""
    STOPPED = "STOPPED"
    STARTING = "STARTING"
    RUNNING = "RUNNING"


class SchedulerCoordinator:
    """调度协调器

    STOPPED -> STARTING -> RUNNING -> STOPPED。只有 RUNNING 状态会分发任务。
    """

    def __init__(self, store: TargetStore, probe: BaseProbe,
                 sink: Optional[BaseNotificationSink] = None,
                 registry: Optional[ScheduleRegistry] = None,
                 worker_count: int = 10,
                 queue_size: int = 100,
                 reconcile_interval: float = 60.0,
                 settle_delay: float = 5.0,
                 tick_interval: float = 1.0,
                 notification_timeout: float = 10.0,
                 notify_initial_transition: bool = False,
                 drain_timeout: Optional[float] = None):
        """初始化调度协调器

        Args:
            store: 目标存储
            probe: 探测执行器
            sink: 通知渠道，为None时不发送通知
            registry: 调度注册表，默认新建
            worker_count: 工作协程数量
            queue_size: 任务队列容量
            reconcile_interval: 后台对账周期（秒）
            settle_delay: 启动后首次对账前的等待时间（秒）
            tick_interval: 调度时钟最长休眠时间（秒）
            notification_timeout: 单次通知的超时时间下限（秒），实际取与渠道投递上限的较大值
            notify_initial_transition: PENDING -> ONLINE/OFFLINE 是否通知
            drain_timeout: 停止时等待执行中任务的最长时间，默认探测超时+5秒
        """
        self.store = store
        self.probe = probe
        self.sink = sink
        self.registry = registry or ScheduleRegistry()
        self.pool = DispatchWorkerPool(probe, self._handle_result, worker_count, queue_size)
        self.detector = TransitionDetector(store, notify_initial_transition)

        self.reconcile_interval = reconcile_interval
        self.settle_delay = settle_delay
        self.tick_interval = tick_interval
        self.notification_timeout = notification_timeout
        self.drain_timeout = drain_timeout if drain_timeout is not None else probe.get_timeout() + 5

        self.state = CoordinatorState.STOPPED
        self.logger = get_logger('coordinator')

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._reconcile_lock = asyncio.Lock()
        self._reload_event: Optional[asyncio.Event] = None
        self._wakeup_event: Optional[asyncio.Event] = None
        self._stop_requested: Optional[asyncio.Event] = None
        self._loop_tasks: Set[asyncio.Task] = set()
        self._notification_tasks: Set[asyncio.Task] = set()

        self.last_reconcile_at: Optional[datetime] = None
        self.last_reconcile_report: Optional[ReconcileReport] = None
        self.last_reconcile_error: Optional[str] = None
        self.started_at: Optional[datetime] = None
        self.stats: Dict[str, int] = {
            'reconciles': 0,
            'reconcile_failures': 0,
            'store_errors': 0,
            'notifications_sent': 0,
            'notifications_failed': 0
        }

    @property
    def is_running(self) -> bool:
        return (self.state == CoordinatorState.RUNNING
                and not (self._stop_requested and self._stop_requested.is_set()))

    async def start(self):
        """启动协调器，进入RUNNING后返回

        Raises:
            SchedulerError: 分发工作池无法创建
        """
        if self.state != CoordinatorState.STOPPED:
            self.logger.warning(f"调度协调器已经启动，当前状态: {self.state.value}")
            return

        self.state = CoordinatorState.STARTING
        self._loop = asyncio.get_running_loop()
        self._reload_event = asyncio.Event()
        self._wakeup_event = asyncio.Event()
        self._stop_requested = asyncio.Event()

        try:
            await self.pool.start()
        except SchedulerError as e:
            self.state = CoordinatorState.STOPPED
            self.logger.critical(f"调度协调器启动失败: {e.format_error()}")
            raise

        if self.settle_delay > 0:
            self.logger.info(f"等待 {self.settle_delay}s 后开始首次对账")
            try:
                await asyncio.wait_for(self._stop_requested.wait(), timeout=self.settle_delay)
            except asyncio.TimeoutError:
                pass

        if self._stop_requested.is_set():
            return

        await self.reconcile_now()
        if self._stop_requested.is_set():
            return

        self.state = CoordinatorState.RUNNING
        self.started_at = datetime.now()
        self._spawn(self._clock_loop(), 'sentinel-clock')
        self._spawn(self._reconcile_loop(), 'sentinel-reconcile')
        self.logger.info(
            f"调度协调器已启动: {len(self.registry)} 个目标, "
            f"对账周期 {self.reconcile_interval}s")

    def _spawn(self, coro, name: str):
        task = asyncio.create_task(coro, name=name)
        self._loop_tasks.add(task)
        task.add_done_callback(self._loop_tasks.discard)

    async def stop(self):
        """停止协调器：立即取消全部定时器，等待执行中的任务完成"""
        if self.state == CoordinatorState.STOPPED:
            return

        self.logger.info("正在停止调度协调器...")
        if self._stop_requested:
            self._stop_requested.set()

        for task in list(self._loop_tasks):
            task.cancel()
        if self._loop_tasks:
            await asyncio.gather(*self._loop_tasks, return_exceptions=True)
        self._loop_tasks.clear()

        async with self._reconcile_lock:
            self.registry.cancel_all()

        await self.pool.stop(self.drain_timeout)

        if self._notification_tasks:
            await asyncio.gather(*self._notification_tasks, return_exceptions=True)
        self._notification_tasks.clear()

        self.state = CoordinatorState.STOPPED
        self.logger.info("调度协调器已停止")

    def request_reload(self):
        """请求一次带外对账，可以从任意线程调用"""
        if self._loop is None or self._reload_event is None:
            self.logger.warning("调度协调器尚未启动，忽略重载请求")
            return
        self._loop.call_soon_threadsafe(self._reload_event.set)

    async def reload(self) -> ReconcileReport:
        """立即执行一次对账并返回结果

        Raises:
            SchedulerError: 协调器未运行
            StoreError: 读取目标列表失败
        """
        if not self.is_running:
            raise SchedulerError(f"调度协调器未运行，当前状态: {self.state.value}")

        self.logger.info("收到重载请求，立即对账")
        return await self._reconcile()

    async def reconcile_now(self) -> Optional[ReconcileReport]:
        """执行一次对账，存储错误只记录日志

        Returns:
            对账结果，存储不可用时返回None
        """
        try:
            return await self._reconcile()
        except StoreError as e:
            self.logger.error(f"对账失败，下个周期重试: {e.format_error()}")
            return None
        except Exception as e:
            self.logger.error(f"对账时发生未知异常: {e}", exc_info=True)
            return None

    async def _reconcile(self) -> ReconcileReport:
        async with self._reconcile_lock:
            if self._stop_requested and self._stop_requested.is_set():
                return ReconcileReport()

            try:
                targets = await self.store.list_targets()
            except Exception as e:
                self.stats['reconcile_failures'] += 1
                self.last_reconcile_error = str(e)
                raise

            report = self.registry.reconcile(targets)
            for target_id in report.removed:
                self.detector.forget(target_id)

            self.stats['reconciles'] += 1
            self.last_reconcile_at = datetime.now()
            self.last_reconcile_report = report
            self.last_reconcile_error = None

        if self._wakeup_event is not None:
            self._wakeup_event.set()
        return report

    async def _reconcile_loop(self):
        """按固定周期或重载信号对账"""
        while self.is_running:
            try:
                await asyncio.wait_for(self._reload_event.wait(), timeout=self.reconcile_interval)
                self.logger.info("收到重载信号，执行对账")
            except asyncio.TimeoutError:
                self.logger.debug("周期对账")
            self._reload_event.clear()
            await self.reconcile_now()

    async def _clock_loop(self):
        """调度时钟：把到期条目提交给工作池"""
        while self.is_running:
            try:
                for entry in self.registry.pop_due():
                    self.pool.submit(entry.target)

                delay = self.tick_interval
                next_fire = self.registry.next_fire_time()
                if next_fire is not None:
                    delay = min(delay, max(0.0, next_fire - self.registry.clock()))

                self._wakeup_event.clear()
                try:
                    await asyncio.wait_for(self._wakeup_event.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass

            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error(f"调度时钟异常: {e}", exc_info=True)
                await asyncio.sleep(self.tick_interval)

    async def _handle_result(self, target: MonitoredTarget, result: CheckResult):
        """工作协程完成一次探测后的回调"""
        try:
            event = await self.detector.detect_and_apply(target, result)
        except StoreError as e:
            self.stats['store_errors'] += 1
            self.logger.error(f"目标 {target.target_id} 本轮检查作废: {e.format_error()}")
            return

        self.logger.debug(
            f"目标 {target.target_id} 检查完成: {result.status.value}, "
            f"状态码 {result.status_code}, 响应时间 {result.latency_ms:.0f}ms")

        if event is not None and self.sink is not None:
            task = asyncio.create_task(self._notify(event))
            self._notification_tasks.add(task)
            task.add_done_callback(self._notification_tasks.discard)

    def get_notification_timeout(self) -> float:
        """通知超时不短于渠道自身的重试时间上限"""
        if self.sink is None:
            return self.notification_timeout
        return max(self.notification_timeout, self.sink.get_delivery_budget())

    async def _notify(self, event: TransitionEvent):
        """投递通知，失败只记录日志，不回滚状态"""
        timeout = self.get_notification_timeout()
        try:
            delivered = await asyncio.wait_for(self.sink.notify(event), timeout=timeout)
        except asyncio.TimeoutError:
            self.stats['notifications_failed'] += 1
            self.logger.error(f"目标 {event.target_id} 的通知超时 ({timeout}s)")
            return
        except Exception as e:
            self.stats['notifications_failed'] += 1
            self.logger.error(f"目标 {event.target_id} 的通知发送失败: {e}")
            return

        if delivered:
            self.stats['notifications_sent'] += 1
        else:
            self.stats['notifications_failed'] += 1
            self.logger.warning(f"目标 {event.target_id} 的通知未送达")

    async def check_all_now(self) -> Dict[str, CheckResult]:
        """立即探测所有目标一次，不写入存储也不发送通知

        Raises:
            StoreError: 读取目标列表失败
        """
        targets = await self.store.list_targets()
        semaphore = asyncio.Semaphore(max(1, self.pool.worker_count))

        async def probe_one(target: MonitoredTarget) -> CheckResult:
            async with semaphore:
                return await self.probe.execute(target)

        results = await asyncio.gather(*(probe_one(t) for t in targets))
        return {target.target_id: result for target, result in zip(targets, results)}

    def get_stats(self) -> Dict[str, Any]:
        """获取协调器统计信息"""
        report = self.last_reconcile_report
        return {
            'state': self.state.value,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'scheduled_targets': len(self.registry),
            'job_keys': self.registry.job_keys(),
            'reconcile_interval': self.reconcile_interval,
            'last_reconcile_at': self.last_reconcile_at.isoformat() if self.last_reconcile_at else None,
            'last_reconcile_report': report.to_dict() if report else None,
            'last_reconcile_error': self.last_reconcile_error,
            'pool': self.pool.get_stats(),
            'detector': self.detector.get_stats(),
            **self.stats
        }
