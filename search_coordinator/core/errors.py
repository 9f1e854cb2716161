"""
Error taxonomy for the search coordinator

Administrative errors are raised straight to the caller. Node errors are
raised by search clients and end up as data in a NodeResponse.
"""
from typing import List, Optional


class SearchClusterError(Exception):
    """Base class for every error raised by the coordinator"""


class NoActiveNodes(SearchClusterError):
    """No node is eligible to answer a search"""

    def __init__(self, message: str = "no active nodes"):
        super().__init__(message)


class NodeNotFound(SearchClusterError):
    """An administrative call referenced an unknown node id"""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"node not found: {node_id}")


class AlreadyExists(SearchClusterError):
    """A node with the same id is already registered"""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"node already exists: {node_id}")


class InvalidNode(SearchClusterError, ValueError):
    """Node definition rejected (empty id, non-positive weight)"""


class InvalidConfig(SearchClusterError, ValueError):
    """Configuration rejected by configure(); the previous one stays in effect"""


class ClusterNotRunning(SearchClusterError):
    """The cluster was stopped or never started"""


class AllNodesFailed(SearchClusterError):
    """Every selected node failed to answer a search"""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        summary = "; ".join(self.errors) if self.errors else "no node answered"
        super().__init__(f"all nodes failed: {summary}")


class NodeError(SearchClusterError):
    """Failure of a single node call"""

    transient = False

    def __init__(self, message: str, node_id: Optional[str] = None):
        self.node_id = node_id
        super().__init__(message)


class NodeTimeout(NodeError):
    """A node call did not finish within its timeout"""

    transient = True


class NodeTransportError(NodeError):
    """A node could not be reached or answered with a server error"""

    transient = True


class NodeQueryError(NodeError):
    """A node rejected the query itself; retrying will not help"""


class Cancelled(NodeError):
    """The caller cancelled the search before this call completed"""

    def __init__(self, message: str = "cancelled", node_id: Optional[str] = None):
        super().__init__(message, node_id)


class NodeBusy(NodeError):
    """An earlier call to the node is still running past its timeout"""
