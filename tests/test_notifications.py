"""通知渠道测试"""

import asyncio
import pytest
import aiohttp
from datetime import datetime
from unittest.mock import Mock, AsyncMock, MagicMock, patch

from api_sentinel.models.target import TransitionEvent, TargetStatus
from api_sentinel.notifications.base import BaseNotificationSink
from api_sentinel.notifications.dispatcher import NotificationDispatcher
from api_sentinel.notifications.log_sink import LogNotificationSink
from api_sentinel.notifications.webhook_sink import WebhookNotificationSink, WEBHOOK_EVENT_NAME
from api_sentinel.utils.exceptions import NotificationConfigError, NotificationSendError


def make_event() -> TransitionEvent:
    return TransitionEvent(
        target_id='api', old_status=TargetStatus.ONLINE, new_status=TargetStatus.OFFLINE,
        name='业务接口', url='https://api.example.com', timestamp=datetime(2024, 1, 1, 12, 0, 0),
        status_code=503, latency_ms=88.0
    )


class RecordingSink(BaseNotificationSink):
    """记录收到事件的通知渠道"""

    def __init__(self, name: str, result=True, error: Exception = None):
        super().__init__(name)
        self.result = result
        self.error = error
        self.events = []

    async def notify(self, event):
        self.events.append(event)
        if self.error:
            raise self.error
        return self.result


class TestLogNotificationSink:
    """日志通知渠道测试"""

    def test_render(self):
        sink = LogNotificationSink(config={'subject_prefix': '[测试]'})

        subject, body = sink.render(make_event())

        assert subject == '[测试] 端点状态变化 - 业务接口'
        assert 'ONLINE' in body and 'OFFLINE' in body
        assert 'https://api.example.com' in body

    @pytest.mark.asyncio
    async def test_notify(self):
        sink = LogNotificationSink()
        with patch.object(sink.logger, 'warning') as mock_warning:
            assert await sink.notify(make_event()) is True

        mock_warning.assert_called_once()
        assert sink.sink_type == 'log'


class TestWebhookNotificationSink:
    """Webhook通知渠道测试"""

    def setup_method(self):
        self.config = {
            'url': 'https://hooks.example.com/sentinel',
            'headers': {'Authorization': 'Bearer token'},
            'timeout': 5,
            'max_retries': 2,
            'retry_delay': 1.0
        }

    def test_init(self):
        sink = WebhookNotificationSink('hook', self.config)

        assert sink.method == 'POST'
        assert sink.max_retries == 2
        assert sink.get_timeout() == 5
        assert sink.get_config_summary()['url'] == 'https://hooks.example.com/sentinel'

    def test_delivery_budget_includes_retries(self):
        """测试投递上限为各次尝试超时与退避等待之和"""
        sink = WebhookNotificationSink('hook', self.config)

        # 3 次尝试 x 5 秒，加上 1 秒与 2 秒的退避
        assert sink.get_delivery_budget() == 18.0

        no_retry = WebhookNotificationSink('hook', dict(self.config, max_retries=0))
        assert no_retry.get_delivery_budget() == 5

    @pytest.mark.parametrize('override', [
        {'url': ''},
        {'url': 'ftp://hooks.example.com'},
        {'method': 'GET'},
        {'max_retries': -1},
        {'retry_delay': -0.5},
    ])
    def test_invalid_config(self, override):
        config = dict(self.config, **override)

        with pytest.raises(NotificationConfigError):
            WebhookNotificationSink('hook', config)

    def test_build_payload(self):
        sink = WebhookNotificationSink('hook', self.config)

        payload = sink.build_payload(make_event())

        assert payload['event'] == WEBHOOK_EVENT_NAME
        assert payload['data']['endpoint_id'] == 'api'
        assert payload['data']['new_status'] == 'OFFLINE'

    @pytest.mark.asyncio
    async def test_send_request_success(self):
        """测试2xx响应视为发送成功"""
        sink = WebhookNotificationSink('hook', self.config)
        mock_response = Mock(status=204)

        with patch('aiohttp.ClientSession') as session_cls:
            mock_session = MagicMock()
            ctx = MagicMock()
            ctx.__aenter__ = AsyncMock(return_value=mock_response)
            ctx.__aexit__ = AsyncMock(return_value=None)
            mock_session.request = Mock(return_value=ctx)
            session_cls.return_value.__aenter__ = AsyncMock(return_value=mock_session)
            session_cls.return_value.__aexit__ = AsyncMock(return_value=None)

            assert await sink._send_request(make_event()) is True

        kwargs = mock_session.request.call_args.kwargs
        assert kwargs['method'] == 'POST'
        assert kwargs['url'] == 'https://hooks.example.com/sentinel'
        assert kwargs['json']['data']['endpoint_id'] == 'api'

    @pytest.mark.asyncio
    async def test_send_request_error_status(self):
        sink = WebhookNotificationSink('hook', self.config)
        mock_response = Mock(status=500)
        mock_response.text = AsyncMock(return_value='internal error')

        with patch('aiohttp.ClientSession') as session_cls:
            mock_session = MagicMock()
            ctx = MagicMock()
            ctx.__aenter__ = AsyncMock(return_value=mock_response)
            ctx.__aexit__ = AsyncMock(return_value=None)
            mock_session.request = Mock(return_value=ctx)
            session_cls.return_value.__aenter__ = AsyncMock(return_value=mock_session)
            session_cls.return_value.__aexit__ = AsyncMock(return_value=None)

            assert await sink._send_request(make_event()) is False

    @pytest.mark.asyncio
    async def test_send_request_client_error(self):
        sink = WebhookNotificationSink('hook', self.config)

        with patch('aiohttp.ClientSession') as session_cls:
            mock_session = MagicMock()
            mock_session.request = Mock(side_effect=aiohttp.ClientConnectionError("拒绝连接"))
            session_cls.return_value.__aenter__ = AsyncMock(return_value=mock_session)
            session_cls.return_value.__aexit__ = AsyncMock(return_value=None)

            with pytest.raises(NotificationSendError):
                await sink._send_request(make_event())

    @pytest.mark.asyncio
    async def test_notify_success(self):
        sink = WebhookNotificationSink('hook', self.config)

        with patch.object(sink, '_send_request', return_value=True) as mock_send:
            assert await sink.notify(make_event()) is True

        mock_send.assert_called_once()

    @pytest.mark.asyncio
    async def test_notify_retries_with_backoff(self):
        """测试失败后按指数退避重试"""
        sink = WebhookNotificationSink('hook', self.config)

        with patch.object(sink, '_send_request', side_effect=[False, False, True]) as mock_send:
            with patch('asyncio.sleep') as mock_sleep:
                assert await sink.notify(make_event()) is True

        assert mock_send.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_notify_all_attempts_fail(self):
        sink = WebhookNotificationSink('hook', self.config)

        with patch.object(sink, '_send_request', return_value=False) as mock_send:
            with patch('asyncio.sleep'):
                assert await sink.notify(make_event()) is False

        assert mock_send.call_count == 3

    @pytest.mark.asyncio
    async def test_notify_raises_after_network_errors(self):
        sink = WebhookNotificationSink('hook', dict(self.config, max_retries=1))
        error = NotificationSendError("HTTP请求失败", sink_name='hook')

        with patch.object(sink, '_send_request', side_effect=error):
            with patch('asyncio.sleep'):
                with pytest.raises(NotificationSendError):
                    await sink.notify(make_event())


class TestNotificationDispatcher:
    """通知分发器测试"""

    def test_from_config(self):
        dispatcher = NotificationDispatcher.from_config([
            {'name': 'log', 'type': 'log'},
            {'name': 'hook', 'type': 'webhook', 'url': 'https://hooks.example.com'},
            {'name': 'sms', 'type': 'sms'},
            {'name': 'bad-hook', 'type': 'webhook', 'url': 'not-a-url'},
        ])

        assert dispatcher.get_sink_names() == ['log', 'hook']

    def test_add_sink_rejects_non_sink(self):
        dispatcher = NotificationDispatcher()

        with pytest.raises(NotificationConfigError):
            dispatcher.add_sink(object())

    def test_remove_sink(self):
        dispatcher = NotificationDispatcher([RecordingSink('a'), RecordingSink('b')])

        assert dispatcher.remove_sink('a') is True
        assert dispatcher.remove_sink('a') is False
        assert dispatcher.get_sink_names() == ['b']

    @pytest.mark.asyncio
    async def test_notify_all_sinks(self):
        """测试事件投递到所有渠道"""
        sinks = [RecordingSink('a'), RecordingSink('b')]
        dispatcher = NotificationDispatcher(sinks)
        event = make_event()

        assert await dispatcher.notify(event) is True

        assert all(s.events == [event] for s in sinks)
        assert dispatcher.stats == {'events': 1, 'delivered': 2, 'failed': 0}

    @pytest.mark.asyncio
    async def test_failing_sink_isolated(self):
        """测试单个渠道失败不影响其他渠道"""
        healthy = RecordingSink('healthy')
        dispatcher = NotificationDispatcher([
            RecordingSink('broken', error=RuntimeError("boom")),
            RecordingSink('refused', result=False),
            healthy
        ])

        assert await dispatcher.notify(make_event()) is False

        assert len(healthy.events) == 1
        assert dispatcher.stats['failed'] == 2
        assert dispatcher.stats['delivered'] == 1

    @pytest.mark.asyncio
    async def test_no_sinks(self):
        assert await NotificationDispatcher().notify(make_event()) is True

    def test_delivery_budget_is_slowest_sink(self):
        dispatcher = NotificationDispatcher.from_config([
            {'name': 'log', 'type': 'log'},
            {'name': 'hook', 'type': 'webhook', 'url': 'https://hooks.example.com',
             'max_retries': 2, 'retry_delay': 1},
        ])

        assert dispatcher.get_delivery_budget() == 33.0
        assert NotificationDispatcher().get_delivery_budget() == 10
