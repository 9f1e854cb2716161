"""
Distributed Search Coordinator

Fans one query out to a dynamic set of search nodes, tolerates partial node
failure and merges the per-node answers into one ranked, paginated result.
"""

__version__ = "0.1.0"

from .core.cluster import SearchCluster, start, stop
from .core.config import ClusterConfig, CoordinatorConfig, LoadBalancingStrategy, MergeStrategy, NodeSpec
from .core.coordinator import SearchCoordinator
from .core.errors import (
    AllNodesFailed,
    AlreadyExists,
    Cancelled,
    ClusterNotRunning,
    InvalidConfig,
    InvalidNode,
    NoActiveNodes,
    NodeBusy,
    NodeError,
    NodeNotFound,
    NodeQueryError,
    NodeTimeout,
    NodeTransportError,
    SearchClusterError,
)
from .core.registry import NodeHandle, NodeRegistry
from .search.models import AggregateResult, Hit, NodeResponse, NodeResult
from .transport.client import HttpSearchClient, LocalSearchClient, SearchClient

__all__ = [
    "SearchCluster",
    "start",
    "stop",
    "ClusterConfig",
    "CoordinatorConfig",
    "LoadBalancingStrategy",
    "MergeStrategy",
    "NodeSpec",
    "SearchCoordinator",
    "NodeHandle",
    "NodeRegistry",
    "AggregateResult",
    "Hit",
    "NodeResponse",
    "NodeResult",
    "SearchClient",
    "LocalSearchClient",
    "HttpSearchClient",
    "SearchClusterError",
    "NoActiveNodes",
    "NodeNotFound",
    "AlreadyExists",
    "InvalidNode",
    "InvalidConfig",
    "ClusterNotRunning",
    "AllNodesFailed",
    "NodeError",
    "NodeTimeout",
    "NodeTransportError",
    "NodeQueryError",
    "NodeBusy",
    "Cancelled",
]
