"""告警管理器测试"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from uptime_monitor.alerts.base import BaseAlerter
from uptime_monitor.alerts.email_alerter import EmailAlerter
from uptime_monitor.alerts.log_alerter import LogAlerter
from uptime_monitor.alerts.manager import AlertManager
from uptime_monitor.models.config import NotificationsConfig, TargetConfig
from uptime_monitor.models.uptime import AlertMessage, CheckOutcome, SslInfo
from uptime_monitor.utils.exceptions import AlertConfigError, AlertSendError


T0 = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class RecordingAlerter(BaseAlerter):
    """记录收到的消息"""

    def __init__(self, name='recording', result=True, error=None, delay=0, timeout=30):
        super().__init__(name, timeout=timeout)
        self.result = result
        self.error = error
        self.delay = delay
        self.messages = []

    async def send_alert(self, message: AlertMessage) -> bool:
        self.messages.append(message)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


class TestAlertManager:
    """告警管理器测试类"""

    def setup_method(self):
        self.target = TargetConfig(name='API', url='https://api.example.com')
        self.down = CheckOutcome(name='API', url=self.target.url, success=False,
                                 timestamp=T0, status_code=503, response_time=120,
                                 error='Unexpected status code: 503')
        self.up = CheckOutcome(name='API', url=self.target.url, success=True,
                               timestamp=T0, status_code=200, response_time=80)

    @pytest.mark.asyncio
    async def test_notify_down_message(self):
        alerter = RecordingAlerter()
        manager = AlertManager([alerter])

        assert await manager.notify_down(self.target, self.down, ['ops@example.com'])

        message = alerter.messages[0]
        assert message.subject == '[DOWN] API is not responding'
        assert message.status == 'DOWN'
        assert message.recipients == ['ops@example.com']
        assert 'Error: Unexpected status code: 503' in message.body
        assert 'Status Code: 503' in message.body

    @pytest.mark.asyncio
    async def test_notify_up_and_ssl_subjects(self):
        alerter = RecordingAlerter()
        manager = AlertManager([alerter])
        ssl_info = SslInfo(valid_from=T0, valid_to=T0, days_remaining=7,
                           subject='api.example.com', issuer='CA')

        await manager.notify_up(self.target, self.up, [])
        await manager.notify_ssl_expiring(self.target, ssl_info, [])

        assert alerter.messages[0].subject == '[UP] API has recovered'
        assert alerter.messages[1].subject == '[SSL] API certificate expiring soon'
        assert 'Expiring in 7 days' in alerter.messages[1].body

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self):
        failing = RecordingAlerter('failing', error=AlertSendError('smtp down'))
        crashing = RecordingAlerter('crashing', error=RuntimeError('boom'))
        manager = AlertManager([failing, crashing])

        assert await manager.notify_down(self.target, self.down, []) is False
        assert manager.get_alert_stats()['failed'] == 2

    @pytest.mark.asyncio
    async def test_one_success_is_enough(self):
        manager = AlertManager([
            RecordingAlerter('bad', error=RuntimeError('boom')),
            RecordingAlerter('good'),
        ])

        assert await manager.notify_up(self.target, self.up, [])

    @pytest.mark.asyncio
    async def test_slow_alerter_times_out(self):
        slow = RecordingAlerter('slow', delay=1, timeout=0.05)
        manager = AlertManager([slow])

        assert await manager.notify_down(self.target, self.down, []) is False

    @pytest.mark.asyncio
    async def test_no_alerters(self):
        assert await AlertManager().notify_down(self.target, self.down, []) is False

    def test_add_and_remove_alerter(self):
        manager = AlertManager()
        manager.add_alerter(RecordingAlerter('a'))

        with pytest.raises(AlertConfigError):
            manager.add_alerter(object())

        assert manager.remove_alerter('a')
        assert not manager.remove_alerter('a')

    def test_from_config(self):
        manager = AlertManager.from_config(NotificationsConfig())
        assert [type(a) for a in manager.alerters] == [LogAlerter]

        manager.configure(NotificationsConfig(email=('ops@example.com',)))
        assert [type(a) for a in manager.alerters] == [LogAlerter, EmailAlerter]


class TestLogAlerter:
    """日志告警器测试类"""

    @pytest.mark.asyncio
    async def test_logs_alert(self):
        alerter = LogAlerter()
        message = AlertMessage(service_name='API', status='DOWN',
                               subject='[DOWN] API is not responding', body='details')

        with patch.object(alerter.logger, 'warning') as mock_warning:
            assert await alerter.send_alert(message)

        assert '[DOWN] API is not responding' in mock_warning.call_args[0][0]
