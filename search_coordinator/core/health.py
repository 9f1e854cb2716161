"""
Health monitoring of search nodes

- Probes every registered node (active or not) on each tick
- A successful probe marks the node active and healthy
- A failed or timed out probe marks it inactive and unhealthy
- Probes never hold the registry lock, so admin calls are not blocked
- A node whose last probe is still running past its timeout is not probed
  again until that probe returns; it counts as a failed probe meanwhile
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Dict, Optional

from search_coordinator.core.calls import AbandonedCalls
from search_coordinator.core.config import CoordinatorConfig
from search_coordinator.core.registry import NodeRegistry
from search_coordinator.transport.client import SearchClient


class HealthMonitor:
    """
    Background worker that keeps node health in the registry up to date.

    The interval and probe timeout are read from the coordinator's current
    config on every tick, so configure() takes effect without a restart.
    """

    # Longest sleep between two looks at the config and the stop signal
    POLL_INTERVAL = 1.0

    def __init__(
        self,
        registry: NodeRegistry,
        client: SearchClient,
        config_provider: Callable[[], CoordinatorConfig],
        name: str = "coordinator",
        max_workers: int = 8,
    ):
        self.registry = registry
        self.client = client
        self.name = name
        self.logger = logging.getLogger(f"HealthMonitor-{name}")
        self._config_provider = config_provider
        self._max_workers = max_workers

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self.abandoned = AbandonedCalls()
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread"""
        with self._lock:
            if self.running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._monitor_loop,
                name=f"health-{self.name}",
                daemon=True,
            )
            self._thread.start()
        self.logger.info("Node health monitoring started")

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Signal the loop to stop and join it

        Args:
            timeout: Seconds to wait for the thread; defaults to the probe
                timeout plus one poll interval
        """
        self._stop_event.set()
        with self._lock:
            thread, self._thread = self._thread, None

        if thread is not None:
            if timeout is None:
                timeout = self._config_provider().timeout_seconds + self.POLL_INTERVAL
            thread.join(timeout)
            if thread.is_alive():
                self.logger.warning("Health monitor did not stop in time")

        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
        self.logger.info("Node health monitoring stopped")

    def check_now(self) -> Dict[str, bool]:
        """
        Probe every registered node once

        Returns:
            node_id -> whether the probe succeeded
        """
        config = self._config_provider()
        nodes = self.registry.all_nodes()
        if not nodes:
            return {}

        timeout = config.timeout_seconds
        executor = self._get_executor()
        futures = {}
        outcome = {}
        for node in nodes:
            started = time.monotonic()
            if self.abandoned.saturated(node.node_id):
                self.logger.warning(f"Node {node.node_id} health check failed: earlier probe still running")
                self.registry.record_probe(node.node_id, False, 0.0, started)
                outcome[node.node_id] = False
                continue
            futures[executor.submit(self._probe, node.locator, timeout)] = (node.node_id, started)

        done, not_done = wait(list(futures), timeout=timeout) if futures else (set(), set())

        for future, (node_id, started) in futures.items():
            if future in done and not future.cancelled() and future.exception() is None:
                healthy, latency_ms = True, future.result()
            else:
                self.abandoned.abandon(future, node_id)
                healthy, latency_ms = False, 0.0
                if future in not_done:
                    reason = "timeout"
                elif future.cancelled():
                    reason = "cancelled"
                else:
                    reason = future.exception()
                self.logger.warning(f"Node {node_id} health check failed: {reason}")

            self.registry.record_probe(node_id, healthy, latency_ms, started)
            outcome[node_id] = healthy

        self.logger.debug(f"Health check round: {outcome}")
        return outcome

    def _probe(self, locator: str, timeout: float) -> float:
        start = time.monotonic()
        self.client.probe(locator, timeout)
        return (time.monotonic() - start) * 1000

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix=f"probe-{self.name}",
                )
            return self._executor

    def _monitor_loop(self):
        """Main monitoring loop"""
        last_run = time.monotonic()
        while not self._stop_event.is_set():
            interval = self._config_provider().health_check_interval_seconds
            now = time.monotonic()
            if now - last_run >= interval:
                try:
                    self.check_now()
                except Exception as e:
                    self.logger.error(f"Error in health monitor: {e}")
                last_run = time.monotonic()
                continue
            self._stop_event.wait(min(interval - (now - last_run), self.POLL_INTERVAL))
