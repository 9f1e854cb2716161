"""
Test aggregate search statistics
"""
import threading

import pytest

from search_coordinator.core.stats import SearchStats, StatsRegistry


class TestStatsRegistry:
    """Test search counters and the running mean"""

    def setup_method(self):
        self.stats = StatsRegistry()

    def test_initial_snapshot(self):
        assert self.stats.snapshot() == SearchStats()

    def test_running_mean_over_successes(self):
        self.stats.record_search(True, 10.0)
        self.stats.record_search(True, 20.0)
        self.stats.record_search(False, 500.0)
        self.stats.record_search(True, 60.0)

        snapshot = self.stats.snapshot()
        assert snapshot.total_searches == 4
        assert snapshot.successful_searches == 3
        assert snapshot.failed_searches == 1
        assert snapshot.average_response_time == pytest.approx(30.0)

    def test_snapshot_is_a_value(self):
        before = self.stats.snapshot()
        self.stats.record_search(True, 5.0)

        assert before.total_searches == 0
        assert self.stats.snapshot().total_searches == 1

    def test_to_dict(self):
        self.stats.record_search(False, 0.0)
        assert self.stats.snapshot().to_dict() == {
            'total_searches': 1,
            'successful_searches': 0,
            'failed_searches': 1,
            'average_response_time': 0.0,
        }

    def test_reset(self):
        self.stats.record_search(True, 5.0)
        self.stats.reset()
        assert self.stats.snapshot() == SearchStats()

    def test_concurrent_recording(self):
        def record():
            for i in range(500):
                self.stats.record_search(i % 5 != 0, 10.0)

        threads = [threading.Thread(target=record) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snapshot = self.stats.snapshot()
        assert snapshot.total_searches == 4000
        assert snapshot.successful_searches == 3200
        assert snapshot.failed_searches == 800
        assert snapshot.average_response_time == pytest.approx(10.0)


if __name__ == '__main__':
    pytest.main([__file__])
