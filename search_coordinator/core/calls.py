"""
Bookkeeping for node calls whose caller stopped waiting.

A worker thread cannot be interrupted, so a call past its deadline keeps its
pool thread until the client's own timeout fires. Counting those calls per
node lets callers refuse new work for a node that still holds threads.
"""
import threading
from collections import Counter
from concurrent.futures import Future
from typing import Dict


class AbandonedCalls:
    """Per-node count of abandoned calls that are still running"""

    def __init__(self, limit: int = 1):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self._futures: Dict[Future, str] = {}
        self._counts: Counter = Counter()
        self._lock = threading.Lock()

    def abandon(self, future: Future, node_id: str) -> bool:
        """
        Stop waiting for ``future``

        A call that has not started yet is cancelled outright.

        Returns:
            True if the call is still running and now counts against the node
        """
        if future.cancel():
            return False
        with self._lock:
            if future.done():
                return False
            self._futures[future] = node_id
            self._counts[node_id] += 1
        future.add_done_callback(self._release)
        return True

    def saturated(self, node_id: str) -> bool:
        with self._lock:
            return self._counts[node_id] >= self.limit

    def count(self, node_id: str) -> int:
        with self._lock:
            return self._counts[node_id]

    def _release(self, future: Future) -> None:
        with self._lock:
            node_id = self._futures.pop(future, None)
            if node_id is None:
                return
            self._counts[node_id] -= 1
            if self._counts[node_id] <= 0:
                del self._counts[node_id]
