"""
Node registry for the search coordinator.

Keeps the set of search nodes the coordinator can talk to:
1. Register / remove nodes by id
2. Toggle nodes active or inactive (admin calls and health probes)
3. Track per-node counters (successes, failures, latency, open calls)
4. Hand out point-in-time snapshots to searches in flight

Every stored NodeHandle is an immutable value. Mutations build a new value
and swap it in under the registry lock, so a handle held by a caller can
never change underneath it and a snapshot is just the current values.
"""
import logging
import math
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .config import NodeSpec
from .errors import AlreadyExists, InvalidNode, NodeNotFound


HEALTH_UNKNOWN = "unknown"
HEALTH_HEALTHY = "healthy"
HEALTH_UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class NodeStats:
    """Rolling counters of one node"""
    success_count: int = 0
    failure_count: int = 0
    total_latency_ms: float = 0.0
    last_checked: Optional[float] = None

    @property
    def average_latency_ms(self) -> float:
        if not self.success_count:
            return 0.0
        return self.total_latency_ms / self.success_count

    @property
    def success_ratio(self) -> float:
        total = self.success_count + self.failure_count
        if not total:
            return 1.0
        return self.success_count / total

    def record(self, success: bool, latency_ms: float, checked_at: Optional[float] = None) -> "NodeStats":
        if success:
            return replace(
                self,
                success_count=self.success_count + 1,
                total_latency_ms=self.total_latency_ms + latency_ms,
                last_checked=checked_at if checked_at is not None else self.last_checked,
            )
        return replace(
            self,
            failure_count=self.failure_count + 1,
            last_checked=checked_at if checked_at is not None else self.last_checked,
        )


@dataclass(frozen=True)
class NodeHandle:
    """Identity and runtime state of one search node"""
    node_id: str
    locator: str
    weight: float = 1.0
    active: bool = True
    health_status: str = HEALTH_UNKNOWN
    in_flight: int = 0
    stats: NodeStats = field(default_factory=NodeStats)
    registered_at: float = 0.0
    # monotonic time of the last explicit set_node_status call
    status_changed_at: float = 0.0

    def to_dict(self) -> dict:
        return {
            'node_id': self.node_id,
            'locator': self.locator,
            'weight': self.weight,
            'active': self.active,
            'health_status': self.health_status,
            'in_flight': self.in_flight,
            'success_count': self.stats.success_count,
            'failure_count': self.stats.failure_count,
            'total_latency_ms': self.stats.total_latency_ms,
            'average_latency_ms': self.stats.average_latency_ms,
            'last_checked': self.stats.last_checked,
            'registered_at': self.registered_at,
        }


NodeBatchItem = Union[NodeSpec, Tuple[str, str], Tuple[str, str, float]]


class NodeRegistry:
    """
    Thread-safe registry of search nodes.

    One instance per coordinator; nothing here is process-global, so several
    independent coordinators can live side by side.
    """

    def __init__(self, name: str = "coordinator"):
        self.name = name
        self.logger = logging.getLogger(f"NodeRegistry-{name}")

        # node_id -> NodeHandle, insertion ordered
        self._nodes: Dict[str, NodeHandle] = {}
        self._lock = threading.RLock()

    def add_node(self, node_id: str, locator: str, weight: float = 1.0) -> NodeHandle:
        """
        Register a search node.

        Args:
            node_id: Unique identifier of the node
            locator: How to reach the node, interpreted by the search client
            weight: Relative capacity, must be > 0

        Returns:
            The stored NodeHandle

        Raises:
            AlreadyExists: if ``node_id`` is taken
            InvalidNode: on an empty id, or a weight that is not a finite number > 0
        """
        if not node_id:
            raise InvalidNode("node_id must not be empty")
        weight = _check_weight(node_id, weight)

        with self._lock:
            if node_id in self._nodes:
                raise AlreadyExists(node_id)
            handle = NodeHandle(
                node_id=node_id,
                locator=locator,
                weight=weight,
                registered_at=time.time(),
            )
            self._nodes[node_id] = handle

        self.logger.info(f"Added search node: {node_id} at {locator} with weight {weight}")
        return handle

    def add_nodes(self, batch: Iterable[NodeBatchItem]) -> List[NodeHandle]:
        """
        Register several nodes.

        Each add is atomic on its own; the batch is not. Every entry is
        attempted and the first error is raised once the batch is done.
        """
        added = []
        first_error = None
        for item in batch:
            if isinstance(item, NodeSpec):
                node_id, locator, weight = item.node_id, item.locator, item.weight
            else:
                node_id, locator = item[0], item[1]
                weight = item[2] if len(item) > 2 else 1.0
            try:
                added.append(self.add_node(node_id, locator, weight))
            except (AlreadyExists, InvalidNode) as e:
                self.logger.error(f"Failed to add search node {node_id}: {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error
        return added

    def remove_node(self, node_id: str) -> NodeHandle:
        """Remove a node; raises NodeNotFound if it is not registered"""
        with self._lock:
            handle = self._nodes.pop(node_id, None)
        if handle is None:
            raise NodeNotFound(node_id)
        self.logger.info(f"Removed search node: {node_id}")
        return handle

    def set_node_status(self, node_id: str, active: bool) -> NodeHandle:
        """
        Explicitly activate or deactivate a node.

        Health probes that started before this call will not override it.
        """
        with self._lock:
            handle = self._get(node_id)
            handle = replace(handle, active=bool(active), status_changed_at=time.monotonic())
            self._nodes[node_id] = handle
        self.logger.info(f"Setting node {node_id} active status to {bool(active)}")
        return handle

    def set_weight(self, node_id: str, weight: float) -> NodeHandle:
        """Change a node's weight; raises InvalidNode or NodeNotFound"""
        weight = _check_weight(node_id, weight)
        with self._lock:
            handle = replace(self._get(node_id), weight=weight)
            self._nodes[node_id] = handle
        self.logger.info(f"Setting node {node_id} weight to {weight}")
        return handle

    def get_node(self, node_id: str) -> NodeHandle:
        with self._lock:
            return self._get(node_id)

    def snapshot(self) -> Tuple[NodeHandle, ...]:
        """Active nodes as of this call, in registration order"""
        with self._lock:
            return tuple(h for h in self._nodes.values() if h.active)

    def all_nodes(self) -> Tuple[NodeHandle, ...]:
        with self._lock:
            return tuple(self._nodes.values())

    def active_node_ids(self) -> List[str]:
        return [h.node_id for h in self.snapshot()]

    def begin_request(self, node_id: str) -> None:
        """Count an open call against a node (feeds least-connections)"""
        with self._lock:
            handle = self._nodes.get(node_id)
            if handle is not None:
                self._nodes[node_id] = replace(handle, in_flight=handle.in_flight + 1)

    def end_request(self, node_id: str) -> None:
        with self._lock:
            handle = self._nodes.get(node_id)
            if handle is not None:
                self._nodes[node_id] = replace(handle, in_flight=max(0, handle.in_flight - 1))

    def record_result(self, node_id: str, success: bool, latency_ms: float) -> None:
        """
        Record the outcome of a search call against a node.

        Unknown ids are ignored: the node may have been removed while the
        search was in flight.
        """
        with self._lock:
            handle = self._nodes.get(node_id)
            if handle is not None:
                self._nodes[node_id] = replace(handle, stats=handle.stats.record(success, latency_ms))

    def record_probe(self, node_id: str, healthy: bool, latency_ms: float,
                     started_at: float) -> Optional[NodeHandle]:
        """
        Apply a health probe outcome.

        Args:
            node_id: Probed node
            healthy: Whether the probe succeeded
            latency_ms: Probe round trip time
            started_at: time.monotonic() taken when the probe was issued

        Returns:
            The updated handle, or None if the node is gone
        """
        with self._lock:
            handle = self._nodes.get(node_id)
            if handle is None:
                return None

            stats = handle.stats.record(healthy, latency_ms, checked_at=time.time())
            status = HEALTH_HEALTHY if healthy else HEALTH_UNHEALTHY
            active = handle.active
            # an explicit set_node_status issued after the probe started wins
            if started_at >= handle.status_changed_at:
                active = healthy

            updated = replace(handle, stats=stats, health_status=status, active=active)
            self._nodes[node_id] = updated

        if updated.active != handle.active:
            if updated.active:
                self.logger.info(f"Node {node_id} is back online")
            else:
                self.logger.warning(f"Node {node_id} failed its health check, marking inactive")
        return updated

    def clear(self) -> None:
        with self._lock:
            count = len(self._nodes)
            self._nodes.clear()
        self.logger.debug(f"Released {count} node handles")

    def get_stats(self) -> dict:
        with self._lock:
            nodes = list(self._nodes.values())
        active = sum(1 for n in nodes if n.active)
        return {
            'total_nodes': len(nodes),
            'active_nodes': active,
            'inactive_nodes': len(nodes) - active,
            'nodes': [n.to_dict() for n in nodes],
        }

    def _get(self, node_id: str) -> NodeHandle:
        handle = self._nodes.get(node_id)
        if handle is None:
            raise NodeNotFound(node_id)
        return handle

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        with self._lock:
            return node_id in self._nodes

    def __str__(self) -> str:
        with self._lock:
            return f"NodeRegistry(name={self.name}, nodes={len(self._nodes)})"

    def __repr__(self) -> str:
        return self.__str__()


def _check_weight(node_id: str, weight: object) -> float:
    if isinstance(weight, bool) or not isinstance(weight, (int, float)):
        raise InvalidNode(f"weight must be a number, got {weight!r} for node {node_id}")
    if not math.isfinite(weight) or weight <= 0:
        raise InvalidNode(f"weight must be a finite number > 0, got {weight!r} for node {node_id}")
    return float(weight)
