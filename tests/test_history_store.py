"""历史记录存储测试"""

import json
import os
import tempfile
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from conftest import FakeClock
from uptime_monitor.models.uptime import CheckOutcome
from uptime_monitor.services.history_store import HistoryStore
from uptime_monitor.utils.exceptions import PersistenceError


def outcome_at(timestamp: datetime, success: bool = True, response_time=100) -> CheckOutcome:
    return CheckOutcome(
        name='api', url='http://api', success=success, timestamp=timestamp,
        status_code=200 if success else 500, response_time=response_time,
        error=None if success else 'Unexpected status code: 500',
    )


class TestHistoryStore:
    """历史记录存储测试类"""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.path = os.path.join(self.temp_dir, 'data.json')
        self.clock = FakeClock(datetime(2024, 1, 15, 12, 30, tzinfo=timezone.utc))

    def teardown_method(self):
        for name in os.listdir(self.temp_dir):
            os.unlink(os.path.join(self.temp_dir, name))
        os.rmdir(self.temp_dir)

    def test_record_and_recent(self):
        store = HistoryStore(self.path, retention_days=5, clock=self.clock)
        for minutes in range(5):
            store.record('api', outcome_at(self.clock.now - timedelta(minutes=5 - minutes),
                                           response_time=minutes))

        recent = store.recent('api', 3)

        assert [c.response_time for c in recent] == [2, 3, 4]
        assert len(store.recent('api')) == 5
        assert store.recent('missing') == []
        assert store.recent('api', 0) == []

    def test_retention_boundary_is_exclusive(self):
        store = HistoryStore(None, retention_days=1, clock=self.clock)
        cutoff = self.clock.now - timedelta(days=1)

        store.record('api', outcome_at(cutoff - timedelta(seconds=1)))
        store.record('api', outcome_at(cutoff))
        store.record('api', outcome_at(cutoff + timedelta(seconds=1)))

        timestamps = [c.timestamp for c in store.checks('api')]
        assert timestamps == [cutoff + timedelta(seconds=1)]

    def test_prune_removes_empty_targets(self):
        store = HistoryStore(None, retention_days=5, clock=self.clock)
        store.record('old', outcome_at(self.clock.now - timedelta(days=1)))

        self.clock.advance(days=5)
        removed = store.prune()

        assert removed == 1
        assert 'old' not in store.all_checks()

    def test_hourly_averages_three_hours(self):
        store = HistoryStore(None, retention_days=5, clock=self.clock)
        current_hour = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

        # 两小时前: 100, 200 全部成功
        store.record('api', outcome_at(current_hour - timedelta(hours=2, minutes=-10),
                                       response_time=100))
        store.record('api', outcome_at(current_hour - timedelta(hours=2, minutes=-40),
                                       response_time=200))
        # 一小时前: 300 成功, 500 失败
        store.record('api', outcome_at(current_hour - timedelta(hours=1, minutes=-5),
                                       response_time=300))
        store.record('api', outcome_at(current_hour - timedelta(hours=1, minutes=-50),
                                       success=False, response_time=500))
        # 当前小时: 50 成功
        store.record('api', outcome_at(current_hour + timedelta(minutes=10), response_time=50))

        buckets = store.hourly_averages('api', hours=4)

        assert [b.hour for b in buckets] == [
            current_hour - timedelta(hours=3),
            current_hour - timedelta(hours=2),
            current_hour - timedelta(hours=1),
            current_hour,
        ]
        empty, first, second, third = buckets
        assert empty.check_count == 0
        assert empty.avg_response_time is None
        assert empty.uptime is None
        assert first.avg_response_time == 150
        assert first.uptime == 100
        assert second.avg_response_time == 400
        assert second.uptime == 50
        assert third.avg_response_time == 50
        assert third.check_count == 1

    def test_hourly_average_ignores_missing_response_times(self):
        store = HistoryStore(None, clock=self.clock)
        store.record('api', outcome_at(self.clock.now, response_time=90))
        store.record('api', outcome_at(self.clock.now, success=False, response_time=None))

        bucket = store.hourly_averages('api', hours=1)[0]

        assert bucket.avg_response_time == 90
        assert bucket.uptime == 50

    def test_hourly_averages_are_rounded(self):
        store = HistoryStore(None, clock=self.clock)
        store.record('api', outcome_at(self.clock.now, response_time=100))
        store.record('api', outcome_at(self.clock.now, response_time=101))
        store.record('api', outcome_at(self.clock.now, success=False, response_time=102))

        bucket = store.hourly_averages('api', hours=1)[0]

        # 101 与 66.67 取整
        assert bucket.avg_response_time == 101
        assert bucket.uptime == 67
        assert isinstance(bucket.uptime, int)

        store.record('api', outcome_at(self.clock.now, response_time=103))
        bucket = store.hourly_averages('api', hours=1)[0]

        # 101.5 进位, 75 不变
        assert bucket.avg_response_time == 102
        assert bucket.uptime == 75

    def test_hourly_averages_unknown_target(self):
        store = HistoryStore(None, clock=self.clock)
        assert store.hourly_averages('missing', hours=24) == []

    def test_persists_and_reloads(self):
        store = HistoryStore(self.path, clock=self.clock)
        store.record('api', outcome_at(self.clock.now, response_time=77))

        with open(self.path, encoding='utf-8') as f:
            data = json.load(f)
        assert data['checks']['api'][0]['responseTime'] == 77

        reloaded = HistoryStore(self.path, clock=self.clock)
        assert reloaded.checks('api') == store.checks('api')

    def test_corrupt_file_starts_empty(self):
        with open(self.path, 'w', encoding='utf-8') as f:
            f.write('{not json')

        store = HistoryStore(self.path, clock=self.clock)

        assert store.all_checks() == {}

    def test_write_failure_keeps_memory_view(self):
        store = HistoryStore(self.path, clock=self.clock)

        with patch('uptime_monitor.services.history_store.os.replace',
                   side_effect=OSError('disk full')):
            store.record('api', outcome_at(self.clock.now))

            with pytest.raises(PersistenceError):
                store.flush()

        assert len(store.checks('api')) == 1
        assert not [n for n in os.listdir(self.temp_dir) if n.endswith('.tmp')]
