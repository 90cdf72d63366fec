"""状态页与只读 API 测试"""

from datetime import timedelta

import pytest
from aiohttp.test_utils import TestClient, TestServer

from conftest import FakeClock
from uptime_monitor.api.status_server import StatusServer
from uptime_monitor.models.config import StatusPageConfig
from uptime_monitor.models.uptime import CheckOutcome, TargetState, TargetStatus
from uptime_monitor.services.history_store import HistoryStore
from uptime_monitor.services.incident_ledger import IncidentLedger
from uptime_monitor.services.status_projection import StatusProjection
from uptime_monitor.utils.time_utils import to_iso


class TestStatusServer:
    """状态服务测试类"""

    def setup_method(self):
        self.clock = FakeClock()
        self.history = HistoryStore(None, retention_days=1, clock=self.clock)
        self.ledger = IncidentLedger(clock=self.clock)
        self.projection = StatusProjection(clock=self.clock)

        start = self.clock.now - timedelta(minutes=150)
        for i in range(150):
            self.history.record('API', CheckOutcome(
                name='API', url='http://api', success=i % 10 != 0,
                timestamp=start + timedelta(minutes=i), status_code=200,
                response_time=100,
            ))

        down = CheckOutcome(name='Web <main>', url='http://web', success=False,
                            timestamp=self.clock.now, error='Connection refused')
        up = CheckOutcome(name='API', url='http://api', success=True,
                          timestamp=self.clock.now, status_code=200, response_time=100)
        self.ledger.open('Web <main>', 'Connection refused')
        self.projection.update('Status', [
            TargetState(name='Web <main>', status=TargetStatus.DOWN,
                        last_check=self.clock.now, last_outcome=down, category='Public'),
            TargetState(name='API', status=TargetStatus.UP, last_check=self.clock.now,
                        last_outcome=up),
        ], self.ledger.incidents())

        self.server = StatusServer(self.projection, self.history, StatusPageConfig(),
                                   stats_provider=lambda: {'is_running': True})

    async def _client(self) -> TestClient:
        client = TestClient(TestServer(self.server.app))
        await client.start_server()
        return client

    @pytest.mark.asyncio
    async def test_status(self):
        client = await self._client()
        try:
            resp = await client.get('/api/status')
            assert resp.status == 200
            data = await resp.json()
        finally:
            await client.close()

        assert data['title'] == 'Status'
        assert [s['name'] for s in data['services']] == ['Web <main>', 'API']
        assert data['services'][0]['status'] == 'down'
        assert data['incidents'][0]['resolved'] is False

    @pytest.mark.asyncio
    async def test_history_default_limit(self):
        client = await self._client()
        try:
            resp = await client.get('/api/history/API')
            data = await resp.json()
            limited = await (await client.get('/api/history/API?limit=5')).json()
            unknown = await (await client.get('/api/history/missing')).json()
        finally:
            await client.close()

        assert len(data) == 100
        assert data[-1]['timestamp'] == to_iso(self.clock.now - timedelta(minutes=1))
        assert len(limited) == 5
        assert unknown == []

    @pytest.mark.asyncio
    async def test_history_bad_limit(self):
        client = await self._client()
        try:
            resp = await client.get('/api/history/API?limit=abc')
            assert resp.status == 400
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_hourly(self):
        client = await self._client()
        try:
            default = await (await client.get('/api/history/API/hourly')).json()
            three = await (await client.get('/api/history/API/hourly?hours=3')).json()
        finally:
            await client.close()

        assert len(default) == 24
        assert len(three) == 3
        assert all(b['avgResponseTime'] == 100 for b in three)
        assert default[0]['uptime'] is None

    @pytest.mark.asyncio
    async def test_health(self):
        client = await self._client()
        try:
            data = await (await client.get('/health')).json()
        finally:
            await client.close()

        assert data['status'] == 'ok'
        assert data['scheduler'] == {'is_running': True}

    @pytest.mark.asyncio
    async def test_index_escapes_names(self):
        client = await self._client()
        try:
            resp = await client.get('/')
            body = await resp.text()
        finally:
            await client.close()

        assert resp.content_type == 'text/html'
        assert 'Web &lt;main&gt;' in body
        assert '<main>' not in body
        assert 'Some systems are down' in body
        assert 'Public' in body
        assert 'Uncategorized' in body
