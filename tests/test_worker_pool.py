"""分发工作池测试"""

import asyncio
import pytest

from api_sentinel.models.target import MonitoredTarget, CheckResult, TargetStatus
from api_sentinel.probes.base import BaseProbe
from api_sentinel.services.worker_pool import DispatchWorkerPool
from api_sentinel.utils.exceptions import SchedulerError, ErrorCode


class MockProbe(BaseProbe):
    """模拟探测执行器"""

    def __init__(self, delay: float = 0, fail: bool = False):
        super().__init__(timeout=1.0)
        self.delay = delay
        self.fail = fail
        self.calls = []
        self.active = 0
        self.max_active_per_target = {}
        self._active_per_target = {}

    async def execute(self, target: MonitoredTarget) -> CheckResult:
        target_id = target.target_id
        self.calls.append(target_id)
        self._active_per_target[target_id] = self._active_per_target.get(target_id, 0) + 1
        self.max_active_per_target[target_id] = max(
            self.max_active_per_target.get(target_id, 0), self._active_per_target[target_id])
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail:
                raise RuntimeError("探测崩溃")
            return CheckResult(target_id=target_id, status_code=200, latency_ms=1.0,
                               status=TargetStatus.ONLINE)
        finally:
            self._active_per_target[target_id] -= 1


def make_target(target_id: str) -> MonitoredTarget:
    return MonitoredTarget(target_id=target_id, name=target_id,
                           url=f'https://{target_id}.example.com', interval=1)


async def wait_until(predicate, timeout: float = 2.0):
    """轮询直到条件成立"""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("等待条件超时")
        await asyncio.sleep(0.01)


class TestDispatchWorkerPool:
    """分发工作池测试类"""

    @pytest.mark.asyncio
    async def test_submit_and_complete(self):
        """测试任务完成后回调收到结果"""
        received = []

        async def handler(target, result):
            received.append((target.target_id, result.status))

        pool = DispatchWorkerPool(MockProbe(), handler, worker_count=2, queue_size=10)
        await pool.start()
        try:
            assert pool.submit(make_target('a')) is True
            assert pool.submit(make_target('b')) is True
            await wait_until(lambda: len(received) == 2)
        finally:
            await pool.stop()

        assert sorted(received) == [('a', TargetStatus.ONLINE), ('b', TargetStatus.ONLINE)]
        assert pool.stats['completed'] == 2
        assert not pool.in_flight

    @pytest.mark.asyncio
    async def test_submit_before_start(self):
        pool = DispatchWorkerPool(MockProbe())
        assert pool.submit(make_target('a')) is False

    @pytest.mark.asyncio
    async def test_coalesce_in_flight_target(self):
        """测试同一目标执行中时新的触发被合并"""
        probe = MockProbe(delay=0.2)
        pool = DispatchWorkerPool(probe, worker_count=4, queue_size=10)
        await pool.start()
        try:
            assert pool.submit(make_target('slow')) is True
            await wait_until(lambda: 'slow' in pool.executing)

            for _ in range(5):
                assert pool.submit(make_target('slow')) is False

            await wait_until(lambda: not pool.in_flight)
        finally:
            await pool.stop()

        assert probe.calls == ['slow']
        assert probe.max_active_per_target['slow'] == 1
        assert pool.stats['coalesced'] == 5

    @pytest.mark.asyncio
    async def test_target_resubmitted_after_completion(self):
        probe = MockProbe()
        pool = DispatchWorkerPool(probe, worker_count=1, queue_size=10)
        await pool.start()
        try:
            pool.submit(make_target('a'))
            await wait_until(lambda: not pool.in_flight)
            assert pool.submit(make_target('a')) is True
            await wait_until(lambda: not pool.in_flight)
        finally:
            await pool.stop()

        assert probe.calls == ['a', 'a']

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_worker_count(self):
        probe = MockProbe(delay=0.05)
        pool = DispatchWorkerPool(probe, worker_count=3, queue_size=50)
        await pool.start()
        try:
            for i in range(12):
                pool.submit(make_target(f't{i}'))
            await wait_until(lambda: pool.stats['completed'] == 12)
        finally:
            await pool.stop()

        assert pool.stats['peak_executing'] <= 3

    @pytest.mark.asyncio
    async def test_drop_when_queue_full(self):
        """测试队列满时丢弃任务且不阻塞"""
        probe = MockProbe(delay=0.2)
        pool = DispatchWorkerPool(probe, worker_count=1, queue_size=1)
        await pool.start()
        try:
            assert pool.submit(make_target('a')) is True
            await wait_until(lambda: 'a' in pool.executing)
            assert pool.submit(make_target('b')) is True
            assert pool.submit(make_target('c')) is False
        finally:
            await pool.stop()

        assert pool.stats['dropped'] == 1
        assert 'c' not in probe.calls

    @pytest.mark.asyncio
    async def test_dropped_target_can_be_submitted_later(self):
        probe = MockProbe(delay=0.1)
        pool = DispatchWorkerPool(probe, worker_count=1, queue_size=1)
        await pool.start()
        try:
            pool.submit(make_target('a'))
            await wait_until(lambda: 'a' in pool.executing)
            pool.submit(make_target('b'))
            assert pool.submit(make_target('c')) is False
            assert 'c' not in pool.in_flight

            await wait_until(lambda: not pool.in_flight)
            assert pool.submit(make_target('c')) is True
            await wait_until(lambda: not pool.in_flight)
        finally:
            await pool.stop()

        assert probe.calls == ['a', 'b', 'c']

    @pytest.mark.asyncio
    async def test_worker_survives_failures(self):
        """测试探测异常不会终止工作协程"""
        probe = MockProbe(fail=True)
        pool = DispatchWorkerPool(probe, worker_count=1, queue_size=10)
        await pool.start()
        try:
            pool.submit(make_target('a'))
            await wait_until(lambda: pool.stats['failed'] == 1)

            probe.fail = False
            pool.submit(make_target('a'))
            await wait_until(lambda: pool.stats['completed'] == 1)
        finally:
            await pool.stop()

        assert not pool.in_flight

    @pytest.mark.asyncio
    async def test_handler_failure_counted(self):
        async def handler(target, result):
            raise ValueError("回调失败")

        pool = DispatchWorkerPool(MockProbe(), handler, worker_count=1, queue_size=10)
        await pool.start()
        try:
            pool.submit(make_target('a'))
            await wait_until(lambda: pool.stats['failed'] == 1)
        finally:
            await pool.stop()

    @pytest.mark.asyncio
    @pytest.mark.parametrize('worker_count, queue_size', [(0, 10), (2, 0), (-1, 5)])
    async def test_invalid_settings_fail_start(self, worker_count, queue_size):
        """测试无法创建工作池时启动失败"""
        pool = DispatchWorkerPool(MockProbe(), worker_count=worker_count, queue_size=queue_size)

        with pytest.raises(SchedulerError) as exc_info:
            await pool.start()

        assert exc_info.value.error_code == ErrorCode.SCHEDULER_STARTUP_ERROR
        assert exc_info.value.recoverable is False
        assert not pool.is_running

    @pytest.mark.asyncio
    async def test_stop_discards_queued_and_drains_executing(self):
        """测试停止时丢弃排队任务，等待执行中的任务"""
        completed = []

        async def handler(target, result):
            completed.append(target.target_id)

        probe = MockProbe(delay=0.1)
        pool = DispatchWorkerPool(probe, handler, worker_count=1, queue_size=10)
        await pool.start()
        pool.submit(make_target('running'))
        await wait_until(lambda: 'running' in pool.executing)
        pool.submit(make_target('queued-1'))
        pool.submit(make_target('queued-2'))

        await pool.stop(drain_timeout=2.0)

        assert completed == ['running']
        assert pool.stats['discarded'] == 2
        assert probe.calls == ['running']
        assert not pool.is_running
        assert pool.submit(make_target('late')) is False

    @pytest.mark.asyncio
    async def test_stop_drain_timeout(self):
        probe = MockProbe(delay=5)
        pool = DispatchWorkerPool(probe, worker_count=1, queue_size=10)
        await pool.start()
        pool.submit(make_target('stuck'))
        await wait_until(lambda: 'stuck' in pool.executing)

        await asyncio.wait_for(pool.stop(drain_timeout=0.05), timeout=2.0)

        assert pool.workers == []
        assert pool.stats['completed'] == 0

    def test_get_stats(self):
        pool = DispatchWorkerPool(MockProbe(), worker_count=3, queue_size=7)
        stats = pool.get_stats()

        assert stats['worker_count'] == 3
        assert stats['queue_size'] == 7
        assert stats['queued'] == 0
        assert stats['is_running'] is False
