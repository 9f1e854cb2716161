"""
Test the abandoned call bookkeeping
"""
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from search_coordinator.core.calls import AbandonedCalls


class TestAbandonedCalls:
    """Test counting of calls that outlive their caller"""

    def setup_method(self):
        self.calls = AbandonedCalls(limit=2)
        self.executor = ThreadPoolExecutor(max_workers=2)
        self.release = threading.Event()
        self.started = threading.Event()

    def teardown_method(self):
        self.release.set()
        self.executor.shutdown(wait=True)

    def blocked(self):
        self.started.set()
        self.release.wait(10)

    def test_running_call_counts_until_it_returns(self):
        future = self.executor.submit(self.blocked)
        assert self.started.wait(2)

        assert self.calls.abandon(future, "n1") is True
        assert self.calls.count("n1") == 1
        assert not self.calls.saturated("n1")

        self.release.set()
        future.result(2)
        # done callbacks run right after the result is set
        deadline = time.monotonic() + 2
        while self.calls.count("n1") and time.monotonic() < deadline:
            time.sleep(0.01)
        assert self.calls.count("n1") == 0

    def test_limit(self):
        futures = [self.executor.submit(self.release.wait, 10) for _ in range(2)]
        for future in futures:
            while not future.running():
                time.sleep(0.01)
            self.calls.abandon(future, "n1")

        assert self.calls.saturated("n1")
        assert not self.calls.saturated("n2")

    def test_queued_call_is_cancelled(self):
        busy = [self.executor.submit(self.release.wait, 10) for _ in range(2)]
        queued = self.executor.submit(self.release.wait, 10)

        assert self.calls.abandon(queued, "n1") is False
        assert queued.cancelled()
        assert self.calls.count("n1") == 0
        self.release.set()
        for future in busy:
            future.result(2)

    def test_finished_call_is_not_counted(self):
        future = self.executor.submit(lambda: 42)
        future.result(2)

        assert self.calls.abandon(future, "n1") is False
        assert self.calls.count("n1") == 0

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            AbandonedCalls(limit=0)


if __name__ == '__main__':
    pytest.main([__file__])
