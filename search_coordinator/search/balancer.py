"""
Load balancing across search nodes.

Every strategy works on the registry snapshot taken for one search. By
default every active node is queried: nodes are full replicas of the
searchable data, so dropping one would under-count ``total_hits``. The
non-broadcast strategies only decide the order of the nodes, which the
``node_order`` merge strategy and ``max_nodes_per_search`` respect; the set
shrinks only when ``max_nodes_per_search`` is configured.
"""
import logging
import threading
from typing import Dict, Optional, Sequence, Tuple

from search_coordinator.core.config import LoadBalancingStrategy
from search_coordinator.core.registry import HEALTH_HEALTHY, HEALTH_UNHEALTHY, NodeHandle


class LoadBalancer:
    """
    Picks and orders the nodes that take part in a search.

    Stateless except for the round-robin cursor and the smooth weighted
    round-robin weights, both guarded by the balancer's lock.
    """

    def __init__(self):
        self.logger = logging.getLogger("LoadBalancer")
        self._lock = threading.Lock()
        self._rr_index = 0
        # node_id -> current weight of smooth weighted round-robin
        self._current_weights: Dict[str, float] = {}

    def select(
        self,
        snapshot: Sequence[NodeHandle],
        strategy: LoadBalancingStrategy = LoadBalancingStrategy.BROADCAST,
        limit: Optional[int] = None,
    ) -> Tuple[NodeHandle, ...]:
        """
        Decide which nodes to query for one search

        Args:
            snapshot: Active nodes, in registry order
            strategy: Load balancing strategy
            limit: Maximum number of nodes for non-broadcast strategies

        Returns:
            Ordered nodes to query
        """
        nodes = tuple(snapshot)
        if not nodes:
            return ()

        strategy = LoadBalancingStrategy(strategy)
        if strategy == LoadBalancingStrategy.BROADCAST:
            return nodes
        elif strategy == LoadBalancingStrategy.ROUND_ROBIN:
            ordered = self._round_robin(nodes)
        elif strategy == LoadBalancingStrategy.WEIGHTED_ROUND_ROBIN:
            ordered = self._weighted_round_robin(nodes)
        elif strategy == LoadBalancingStrategy.LEAST_CONNECTIONS:
            ordered = tuple(sorted(nodes, key=lambda n: (n.in_flight, -n.weight, n.node_id)))
        elif strategy == LoadBalancingStrategy.HEALTH_BASED:
            ordered = tuple(sorted(nodes, key=self._health_key))
        else:
            raise ValueError(f"unknown load balancing strategy: {strategy}")

        if limit is not None and limit < len(ordered):
            self.logger.debug(f"{strategy.value}: querying {limit} of {len(ordered)} nodes")
            ordered = ordered[:limit]
        return ordered

    def _round_robin(self, nodes: Tuple[NodeHandle, ...]) -> Tuple[NodeHandle, ...]:
        with self._lock:
            start = self._rr_index % len(nodes)
            self._rr_index += 1
        return nodes[start:] + nodes[:start]

    def _weighted_round_robin(self, nodes: Tuple[NodeHandle, ...]) -> Tuple[NodeHandle, ...]:
        """
        Smooth weighted round-robin (the nginx variant).

        Over many searches each node leads the order in proportion to its
        weight; the remaining nodes follow by current weight.
        """
        with self._lock:
            live_ids = {n.node_id for n in nodes}
            for node_id in list(self._current_weights):
                if node_id not in live_ids:
                    del self._current_weights[node_id]

            total = 0.0
            for node in nodes:
                self._current_weights[node.node_id] = self._current_weights.get(node.node_id, 0.0) + node.weight
                total += node.weight

            ordered = sorted(nodes, key=lambda n: (-self._current_weights[n.node_id], n.node_id))
            self._current_weights[ordered[0].node_id] -= total
        return tuple(ordered)

    @staticmethod
    def _health_key(node: NodeHandle):
        status_rank = {HEALTH_HEALTHY: 0, HEALTH_UNHEALTHY: 2}.get(node.health_status, 1)
        return (status_rank, -node.stats.success_ratio, node.stats.average_latency_ms, node.node_id)

    def reset(self) -> None:
        with self._lock:
            self._rr_index = 0
            self._current_weights.clear()
