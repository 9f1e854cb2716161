"""
Tests for the background health monitor
"""
import threading
import time

import pytest

from search_coordinator.core.config import CoordinatorConfig
from search_coordinator.core.errors import NodeTransportError
from search_coordinator.core.health import HealthMonitor
from search_coordinator.core.registry import HEALTH_HEALTHY, HEALTH_UNHEALTHY, NodeRegistry
from search_coordinator.transport.client import SearchClient


class ProbeClient(SearchClient):
    """Client whose probes succeed for the locators in ``healthy``"""

    def __init__(self, healthy=()):
        self.healthy = set(healthy)
        self.blocked = set()
        self.probe_started = threading.Event()
        self.probes = []
        self.release = threading.Event()

    def search(self, locator, query, limit, offset, timeout):
        raise NotImplementedError

    def probe(self, locator, timeout):
        self.probes.append(locator)
        if locator in self.blocked:
            self.probe_started.set()
            self.release.wait(10)
        if locator not in self.healthy:
            raise NodeTransportError(f"{locator} unreachable")


def wait_for(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            return False
        time.sleep(0.01)
    return True


class TestHealthMonitor:
    """Test probe rounds and the monitor thread"""

    def setup_method(self):
        self.registry = NodeRegistry("health")
        self.registry.add_node("n1", "local://n1")
        self.registry.add_node("n2", "local://n2")
        self.client = ProbeClient(healthy={"local://n1"})
        self.config = CoordinatorConfig(timeout_ms=200, health_check_interval_ms=50)
        self.monitor = HealthMonitor(self.registry, self.client, lambda: self.config, name="health")

    def teardown_method(self):
        self.client.release.set()
        self.monitor.stop(timeout=2.0)

    def test_check_now(self):
        outcome = self.monitor.check_now()

        assert outcome == {"n1": True, "n2": False}
        n1 = self.registry.get_node("n1")
        n2 = self.registry.get_node("n2")
        assert n1.active is True
        assert n1.health_status == HEALTH_HEALTHY
        assert n2.active is False
        assert n2.health_status == HEALTH_UNHEALTHY

    def test_inactive_nodes_are_probed_and_recover(self):
        self.monitor.check_now()
        assert self.registry.active_node_ids() == ["n1"]

        self.client.healthy.add("local://n2")
        self.monitor.check_now()

        assert self.registry.active_node_ids() == ["n1", "n2"]

    def test_probe_timeout_marks_unhealthy(self):
        self.client.healthy.add("local://n2")
        self.client.blocked.add("local://n2")

        start = time.monotonic()
        outcome = self.monitor.check_now()

        assert time.monotonic() - start < 2.0
        assert outcome["n2"] is False
        assert self.registry.get_node("n2").active is False

    def test_hung_probe_holds_one_worker(self):
        for i in range(3, 7):
            self.registry.add_node(f"n{i}", f"local://n{i}")
            self.client.healthy.add(f"local://n{i}")
        self.client.blocked.add("local://n2")
        monitor = HealthMonitor(self.registry, self.client, lambda: self.config, name="hung", max_workers=2)

        try:
            for _ in range(5):
                outcome = monitor.check_now()
                assert outcome["n2"] is False
                assert all(outcome[f"n{i}"] for i in (1, 3, 4, 5, 6))

            assert self.client.probes.count("local://n2") == 1
            assert self.registry.active_node_ids() == ["n1", "n3", "n4", "n5", "n6"]
        finally:
            self.client.release.set()
            monitor.stop(timeout=2.0)

    def test_explicit_status_wins_over_running_probe(self):
        self.client.healthy.add("local://n2")
        self.client.blocked.add("local://n2")
        self.config = CoordinatorConfig(timeout_ms=2000)

        round_thread = threading.Thread(target=self.monitor.check_now)
        round_thread.start()
        assert self.client.probe_started.wait(2.0)

        self.registry.set_node_status("n2", False)
        self.client.release.set()
        round_thread.join(5)

        n2 = self.registry.get_node("n2")
        assert n2.active is False
        assert n2.health_status == HEALTH_HEALTHY

        # the next probe started after the admin call may reactivate it
        self.monitor.check_now()
        assert self.registry.get_node("n2").active is True

    def test_empty_registry(self):
        self.registry.clear()
        assert self.monitor.check_now() == {}

    def test_background_loop(self):
        self.monitor.start()
        assert self.monitor.running

        assert wait_for(lambda: self.registry.get_node("n2").active is False)
        self.client.healthy.add("local://n2")
        assert wait_for(lambda: self.registry.get_node("n2").active is True)

        self.monitor.stop(timeout=2.0)
        assert not self.monitor.running

    def test_interval_change_takes_effect(self):
        self.config = CoordinatorConfig(health_check_interval_ms=60000)
        self.monitor.start()
        time.sleep(0.2)
        assert self.registry.get_node("n2").stats.last_checked is None

        self.config = CoordinatorConfig(health_check_interval_ms=50)
        assert wait_for(lambda: self.registry.get_node("n2").stats.last_checked is not None)

    def test_start_is_idempotent(self):
        self.monitor.start()
        thread = self.monitor._thread
        self.monitor.start()
        assert self.monitor._thread is thread


if __name__ == '__main__':
    pytest.main([__file__])
