"""
Process statistics for the search coordinator
"""
import threading
from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class SearchStats:
    total_searches: int = 0
    successful_searches: int = 0
    failed_searches: int = 0
    average_response_time: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


class StatsRegistry:
    """Search counters plus a running mean of successful search latency"""

    def __init__(self):
        self._lock = threading.Lock()
        self._stats = SearchStats()

    def record_search(self, success: bool, latency_ms: float) -> None:
        with self._lock:
            current = self._stats
            if success:
                successful = current.successful_searches + 1
                average = current.average_response_time + (latency_ms - current.average_response_time) / successful
                self._stats = SearchStats(
                    total_searches=current.total_searches + 1,
                    successful_searches=successful,
                    failed_searches=current.failed_searches,
                    average_response_time=average,
                )
            else:
                self._stats = SearchStats(
                    total_searches=current.total_searches + 1,
                    successful_searches=current.successful_searches,
                    failed_searches=current.failed_searches + 1,
                    average_response_time=current.average_response_time,
                )

    def snapshot(self) -> SearchStats:
        with self._lock:
            return self._stats

    def reset(self) -> None:
        with self._lock:
            self._stats = SearchStats()
