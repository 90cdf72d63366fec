"""故障事件台账测试"""

import json
import os
import tempfile
from datetime import timedelta

from conftest import FakeClock
from uptime_monitor.services.incident_ledger import IncidentLedger


class TestIncidentLedger:
    """故障事件台账测试类"""

    def setup_method(self):
        self.clock = FakeClock()
        self.ledger = IncidentLedger(retention_days=90, clock=self.clock)

    def test_open_and_resolve(self):
        self.ledger.open('api', 'Connection refused')
        self.clock.advance(minutes=5)

        resolved = self.ledger.resolve('api')

        assert resolved.resolved
        assert resolved.resolved_at == self.clock.now
        assert self.ledger.open_incident('api') is None

    def test_resolve_without_open_incident_is_noop(self):
        assert self.ledger.resolve('api') is None

        self.ledger.open('api', 'down')
        self.ledger.resolve('api')
        assert self.ledger.resolve('api') is None
        assert len(self.ledger.incidents()) == 1

    def test_most_recent_first(self):
        self.ledger.open('a', 'first')
        self.clock.advance(minutes=1)
        self.ledger.open('b', 'second')

        assert [i.error for i in self.ledger.incidents()] == ['second', 'first']
        assert [i.service for i in self.ledger.incidents('a')] == ['a']

    def test_resolve_only_touches_target(self):
        self.ledger.open('a', 'down')
        self.ledger.open('b', 'down')

        self.ledger.resolve('a')

        assert self.ledger.open_incident('a') is None
        assert self.ledger.open_incident('b') is not None

    def test_prune_on_open(self):
        self.ledger.open('api', 'old')
        self.clock.advance(days=91)

        self.ledger.open('api', 'new')

        assert [i.error for i in self.ledger.incidents()] == ['new']

    def test_prune_boundary_is_exclusive(self):
        ledger = IncidentLedger(retention_days=1, clock=self.clock)
        ledger.open('api', 'at cutoff', self.clock.now - timedelta(days=1))
        ledger.open('api', 'inside', self.clock.now - timedelta(hours=23))

        assert [i.error for i in ledger.incidents()] == ['inside']

    def test_returned_incidents_are_copies(self):
        self.ledger.open('api', 'down')

        incident = self.ledger.incidents()[0]
        incident.resolved = True

        assert self.ledger.open_incident('api') is not None

    def test_empty_error_text(self):
        incident = self.ledger.open('api', None)
        assert incident.error == 'Unknown error'

    def test_persistence(self):
        temp_dir = tempfile.mkdtemp()
        path = os.path.join(temp_dir, 'incidents.json')
        try:
            ledger = IncidentLedger(path=path, clock=self.clock)
            ledger.open('api', 'down')
            ledger.resolve('api')

            with open(path, encoding='utf-8') as f:
                data = json.load(f)
            assert data[0]['service'] == 'api'
            assert data[0]['resolved'] is True

            reloaded = IncidentLedger(path=path, clock=self.clock)
            assert reloaded.incidents() == ledger.incidents()
        finally:
            os.unlink(path)
            os.rmdir(temp_dir)
