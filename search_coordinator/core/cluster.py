"""
Distributed search cluster: lifecycle and administrative API.

Example:

    client = HttpSearchClient()
    with start(client, {"timeout_ms": 2000}) as cluster:
        cluster.add_node("node1", "http://localhost:8001", 1.0)
        cluster.add_node("node2", "http://localhost:8002", 1.5)
        result = cluster.search("distributed search", limit=10, offset=0)
"""
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional

from search_coordinator.core.config import ConfigInput, CoordinatorConfig
from search_coordinator.core.coordinator import SearchCoordinator
from search_coordinator.core.errors import ClusterNotRunning
from search_coordinator.core.health import HealthMonitor
from search_coordinator.core.registry import NodeBatchItem, NodeRegistry
from search_coordinator.core.stats import StatsRegistry
from search_coordinator.search.models import AggregateResult
from search_coordinator.transport.client import SearchClient


DEFAULT_LIMIT = 10
DEFAULT_OFFSET = 0


class SearchCluster:
    """
    Owns one registry, coordinator, health monitor and stats registry.

    Nothing is shared between instances, so independent clusters can run in
    the same process.
    """

    def __init__(
        self,
        client: SearchClient,
        config: ConfigInput = None,
        name: str = "cluster",
        max_workers: int = 32,
    ):
        self.client = client
        self.name = name
        self.max_workers = max_workers
        self.logger = logging.getLogger(f"SearchCluster-{name}")
        self._initial_config = config

        self.registry: Optional[NodeRegistry] = None
        self.stats: Optional[StatsRegistry] = None
        self.coordinator: Optional[SearchCoordinator] = None
        self.monitor: Optional[HealthMonitor] = None

        self._lock = threading.Lock()
        self._running = False

    # Lifecycle

    def start(self) -> "SearchCluster":
        """Spin up the registry, coordinator, stats and health monitor"""
        with self._lock:
            if self._running:
                return self

            registry = NodeRegistry(self.name)
            stats = StatsRegistry()
            coordinator = SearchCoordinator(
                registry,
                self.client,
                config=self._initial_config,
                stats=stats,
                name=self.name,
                max_workers=self.max_workers,
            )
            monitor = HealthMonitor(registry, self.client, lambda: coordinator.config, name=self.name)

            self.registry, self.stats = registry, stats
            self.coordinator, self.monitor = coordinator, monitor
            monitor.start()
            self._running = True

        self.logger.info(f"Search cluster '{self.name}' started")
        return self

    def stop(self) -> None:
        """
        Stop the health monitor and release every node handle

        The search client belongs to the caller and is not touched.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False
            # keep the last config so a restart comes back the same way
            self._initial_config = self.coordinator.config
            monitor, coordinator, registry = self.monitor, self.coordinator, self.registry

        monitor.stop()
        coordinator.shutdown()
        registry.clear()
        self.logger.info(f"Search cluster '{self.name}' stopped")

    @property
    def running(self) -> bool:
        return self._running

    def __enter__(self) -> "SearchCluster":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # Administrative API

    def add_node(self, node_id: str, locator: str, weight: float = 1.0) -> None:
        self._require_running()
        self.registry.add_node(node_id, locator, weight)

    def add_nodes(self, nodes: Iterable[NodeBatchItem]) -> None:
        self._require_running()
        self.registry.add_nodes(nodes)

    def remove_node(self, node_id: str) -> None:
        self._require_running()
        self.registry.remove_node(node_id)

    def set_node_status(self, node_id: str, active: bool) -> None:
        self._require_running()
        self.registry.set_node_status(node_id, active)

    def set_node_weight(self, node_id: str, weight: float) -> None:
        self._require_running()
        self.registry.set_weight(node_id, weight)

    def configure(self, config: ConfigInput = None, **changes: Any) -> CoordinatorConfig:
        self._require_running()
        return self.coordinator.configure(config, **changes)

    def get_active_nodes(self) -> List[str]:
        self._require_running()
        return self.registry.active_node_ids()

    def get_node_stats(self, node_id: str) -> Dict[str, Any]:
        self._require_running()
        return self.registry.get_node(node_id).to_dict()

    def get_cluster_stats(self) -> Dict[str, Any]:
        self._require_running()
        registry_stats = self.registry.get_stats()
        return {
            'total_nodes': registry_stats['total_nodes'],
            'active_nodes': registry_stats['active_nodes'],
            'inactive_nodes': registry_stats['inactive_nodes'],
            'config': self.coordinator.config.model_dump(mode='json'),
            'cluster_stats': self.stats.snapshot().to_dict(),
        }

    def check_health(self) -> Dict[str, bool]:
        """Run one health round right away"""
        self._require_running()
        return self.monitor.check_now()

    # Search API

    def search(
        self,
        query: str,
        limit: int = DEFAULT_LIMIT,
        offset: int = DEFAULT_OFFSET,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> AggregateResult:
        self._require_running()
        return self.coordinator.search(query, limit, offset, timeout=timeout, cancel=cancel)

    def simple_search(self, query: str, limit: int = DEFAULT_LIMIT, offset: int = DEFAULT_OFFSET) -> AggregateResult:
        """Search with the default page size"""
        return self.search(query, limit, offset)

    def _require_running(self) -> None:
        if not self._running:
            raise ClusterNotRunning(f"search cluster '{self.name}' is not running")


def start(client: SearchClient, config: ConfigInput = None, **kwargs: Any) -> SearchCluster:
    """Create and start a search cluster"""
    return SearchCluster(client, config, **kwargs).start()


def stop(cluster: SearchCluster) -> None:
    cluster.stop()
