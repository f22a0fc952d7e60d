"""内存目标存储测试"""

import pytest
from datetime import datetime

from api_sentinel.models.target import MonitoredTarget, TargetStatus
from api_sentinel.stores.base import build_target, DEFAULT_INTERVAL
from api_sentinel.stores.memory_store import InMemoryTargetStore
from api_sentinel.utils.exceptions import StoreError, ErrorCode


class TestBuildTarget:
    """目标构造测试"""

    def test_defaults(self):
        target = build_target('home', {'url': 'https://example.com'})

        assert target.target_id == 'home'
        assert target.name == 'home'
        assert target.method == 'GET'
        assert target.interval == DEFAULT_INTERVAL
        assert target.status == TargetStatus.PENDING

    def test_full_definition(self):
        target = build_target(42, {
            'url': 'https://api.example.com',
            'name': '接口',
            'method': 'post',
            'interval': 15,
            'expected_status': [200, 201]
        }, status=TargetStatus.ONLINE)

        assert target.target_id == '42'
        assert target.method == 'POST'
        assert target.interval == 15
        assert target.expected_status == [200, 201]
        assert target.status == TargetStatus.ONLINE

    def test_missing_url(self):
        with pytest.raises(KeyError):
            build_target('x', {'name': 'x'})


class TestInMemoryTargetStore:
    """内存目标存储测试类"""

    def setup_method(self):
        self.store = InMemoryTargetStore.from_config({
            'a': {'url': 'https://a.example.com', 'interval': 30},
            'b': {'url': 'https://b.example.com', 'status': 'ONLINE'}
        })

    @pytest.mark.asyncio
    async def test_list_targets(self):
        targets = await self.store.list_targets()

        assert sorted(t.target_id for t in targets) == ['a', 'b']
        assert await self.store.get_status('b') == TargetStatus.ONLINE

    @pytest.mark.asyncio
    async def test_update_status_sets_status_and_time_together(self):
        checked_at = datetime(2024, 5, 1, 9, 0, 0)

        await self.store.update_status('a', TargetStatus.OFFLINE, checked_at)

        target = self.store.targets['a']
        assert target.status == TargetStatus.OFFLINE
        assert target.last_checked == checked_at
        assert self.store.status_writes[-1] == {
            'target_id': 'a', 'status': TargetStatus.OFFLINE, 'checked_at': checked_at
        }

    @pytest.mark.asyncio
    async def test_record_check(self):
        await self.store.record_check('a', 200, 12.0)
        await self.store.record_check('b', 500, 40.0)

        assert len(self.store.get_check_log()) == 2
        assert [r.status_code for r in self.store.get_check_log('b')] == [500]

    @pytest.mark.asyncio
    async def test_unknown_target(self):
        with pytest.raises(StoreError) as exc_info:
            await self.store.get_status('missing')

        assert exc_info.value.error_code == ErrorCode.TARGET_NOT_FOUND

    def test_add_remove_update(self):
        self.store.add_target(MonitoredTarget(target_id='c', name='C', url='https://c.example.com'))
        assert 'c' in self.store.targets

        updated = self.store.update_target('c', interval=5)
        assert updated.interval == 5

        assert self.store.remove_target('c') is True
        assert self.store.remove_target('c') is False

    @pytest.mark.asyncio
    async def test_logs_bounded(self):
        """测试检查日志与状态写入记录都有上限"""
        store = InMemoryTargetStore(
            [MonitoredTarget(target_id='a', name='A', url='https://a.example.com')],
            max_log_records=5)

        for i in range(20):
            await store.record_check('a', 200, float(i))
            await store.update_status('a', TargetStatus.ONLINE, datetime.now())

        assert len(store.check_log) == 5
        assert len(store.status_writes) <= 5
        assert store.get_check_log('a')[-1].latency_ms == 19.0
