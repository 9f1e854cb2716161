"""
Search Coordinator implementation for distributed search
"""
import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from search_coordinator.core.calls import AbandonedCalls
from search_coordinator.core.config import ConfigInput, CoordinatorConfig
from search_coordinator.core.errors import (
    AllNodesFailed,
    Cancelled,
    NoActiveNodes,
    NodeBusy,
    NodeError,
    NodeTimeout,
)
from search_coordinator.core.registry import NodeHandle, NodeRegistry
from search_coordinator.core.stats import StatsRegistry
from search_coordinator.search.balancer import LoadBalancer
from search_coordinator.search.merger import ResultMerger
from search_coordinator.search.models import AggregateResult, Hit, NodeResponse, NodeResult
from search_coordinator.transport.client import SearchClient
from search_coordinator.utils.helpers import elapsed_ms


# Upper bound on how long the fan-in sleeps before re-checking a cancel signal
CANCEL_POLL_INTERVAL = 0.05


@dataclass
class _PendingCall:
    node: NodeHandle
    attempt: int
    started: float       # first attempt, for the node's reported took_ms
    deadline: float      # this attempt only


class SearchCoordinator:
    """
    Fans one query out to the selected nodes and merges their answers.

    Each per-node call runs on a shared thread pool and is bounded by
    ``timeout_ms``; transient failures are retried with a fresh timeout per
    attempt. The fan-in waits for every dispatched node, so a failed or slow
    node only ever costs its own slot in the answer.

    A call abandoned at its deadline keeps its pool thread until the client
    gives up. While a node holds ``max_abandoned_per_node`` such calls it is not
    retried and new searches fail it immediately with NodeBusy, so one hung
    node cannot starve the pool for the others.
    """

    def __init__(
        self,
        registry: NodeRegistry,
        client: SearchClient,
        config: ConfigInput = None,
        balancer: Optional[LoadBalancer] = None,
        merger: Optional[ResultMerger] = None,
        stats: Optional[StatsRegistry] = None,
        name: str = "coordinator",
        max_workers: int = 32,
        max_abandoned_per_node: int = 1,
    ):
        self.name = name
        self.registry = registry
        self.client = client
        self.balancer = balancer or LoadBalancer()
        self.merger = merger or ResultMerger()
        self.stats = stats or StatsRegistry()
        self.logger = logging.getLogger(f"SearchCoordinator-{name}")

        if config is None:
            config = CoordinatorConfig()
        elif not isinstance(config, CoordinatorConfig):
            config = CoordinatorConfig.build(config)
        self._config = config
        self._config_lock = threading.Lock()

        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"search-{name}")
        self.abandoned = AbandonedCalls(max_abandoned_per_node)

    @property
    def config(self) -> CoordinatorConfig:
        return self._config

    def configure(self, config: ConfigInput = None, **changes: Any) -> CoordinatorConfig:
        """
        Replace the configuration

        Args:
            config: A full CoordinatorConfig, or a mapping of fields to change
            **changes: Fields to change

        Returns:
            The configuration now in effect

        Raises:
            InvalidConfig: the previous configuration is kept
        """
        with self._config_lock:
            if isinstance(config, CoordinatorConfig):
                new_config = config.merged(changes) if changes else config
            else:
                updates = dict(config or {})
                updates.update(changes)
                new_config = self._config.merged(updates)
            self._config = new_config

        self.logger.info(f"Configuration updated: {new_config.model_dump(mode='json')}")
        return new_config

    def search(
        self,
        query: str,
        limit: int = 10,
        offset: int = 0,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> AggregateResult:
        """
        Perform a distributed search across the selected nodes

        Args:
            query: Query string passed through to every node
            limit: Maximum number of merged hits
            offset: Number of merged hits to skip
            timeout: Optional overall deadline in seconds
            cancel: Optional event; setting it cancels pending node calls

        Returns:
            AggregateResult

        Raises:
            NoActiveNodes: nothing to query, no call was dispatched
            AllNodesFailed: every selected node failed
            Cancelled: the search was cancelled before any node answered
        """
        if limit < 0 or offset < 0:
            raise ValueError("limit and offset must be >= 0")

        config = self.config
        started = time.monotonic()
        deadline = started + timeout if timeout is not None else None

        selected = self.balancer.select(
            self.registry.snapshot(),
            config.load_balancing_strategy,
            config.max_nodes_per_search,
        )
        if not selected:
            self.logger.warning("No active nodes available for search")
            self.stats.record_search(False, 0.0)
            raise NoActiveNodes()

        self.logger.info(f"Distributing search '{query}' to {len(selected)} nodes")

        responses, cancelled = self._fan_out(selected, query, limit + offset, config, deadline, cancel)
        search_ms = (time.monotonic() - started) * 1000

        if not any(r.ok for r in responses):
            self.stats.record_search(False, search_ms)
            errors = [f"{r.node_id}: {r.error}" for r in responses]
            self.logger.error(f"Search '{query}' failed on every node: {errors}")
            if cancelled:
                raise Cancelled("search cancelled before any node answered")
            raise AllNodesFailed(errors)

        result = self.merger.merge(responses, config.merge_strategy, limit, offset)
        self.stats.record_search(True, search_ms)

        if result.errors:
            self.logger.warning(f"Search '{query}' completed with node errors: {result.errors}")
        return result

    def shutdown(self) -> None:
        """Stop accepting work; calls still running finish on their own timeouts"""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _fan_out(
        self,
        nodes: Sequence[NodeHandle],
        query: str,
        per_node_limit: int,
        config: CoordinatorConfig,
        deadline: Optional[float],
        cancel: Optional[threading.Event],
    ) -> Tuple[List[NodeResponse], bool]:
        timeout = config.timeout_seconds
        results: Dict[str, NodeResponse] = {}
        pending: Dict[Future, _PendingCall] = {}
        cancelled = False

        def dispatch(node: NodeHandle, attempt: int, first_started: float) -> None:
            now = time.monotonic()
            if self.abandoned.saturated(node.node_id):
                fail(
                    _PendingCall(node, attempt, first_started, now),
                    NodeBusy("earlier call still running past its timeout", node.node_id),
                )
                return
            self.registry.begin_request(node.node_id)
            future = self._executor.submit(self._call_node, node, query, per_node_limit, timeout)
            future.add_done_callback(lambda _f, node_id=node.node_id: self.registry.end_request(node_id))
            pending[future] = _PendingCall(node, attempt, first_started, now + timeout)

        def fail(call: _PendingCall, error: BaseException) -> None:
            node_id = call.node.node_id
            transient = isinstance(error, NodeError) and error.transient
            retry = transient and call.attempt <= config.max_retries and not cancelled
            if retry and self.abandoned.saturated(node_id):
                self.logger.warning(f"Node {node_id} attempt {call.attempt} still running, not retrying")
                retry = False
            if retry:
                self.logger.warning(
                    f"Node {node_id} attempt {call.attempt} failed: {error}; retrying"
                )
                dispatch(call.node, call.attempt + 1, call.started)
                return

            self.logger.error(f"Error searching node {node_id}: {error}")
            self.registry.record_result(node_id, False, 0.0)
            results[node_id] = NodeResponse(
                node_id=node_id,
                took_ms=elapsed_ms(call.started),
                error=_describe(error),
                attempts=call.attempt,
            )

        def succeed(call: _PendingCall, outcome: Tuple[NodeResult, float]) -> None:
            node_id = call.node.node_id
            result, latency_ms = outcome
            try:
                hits = tuple(Hit.from_raw(raw, node_id, rank) for rank, raw in enumerate(result.hits))
            except (TypeError, ValueError) as e:
                fail(call, e)
                return
            self.registry.record_result(node_id, True, latency_ms)
            results[node_id] = NodeResponse(
                node_id=node_id,
                total_hits=int(result.total_hits),
                hits=hits,
                took_ms=int(result.took_ms),
                attempts=call.attempt,
            )

        for node in nodes:
            dispatch(node, 1, time.monotonic())

        while pending:
            now = time.monotonic()
            if (cancel is not None and cancel.is_set()) or (deadline is not None and now >= deadline):
                cancelled = True
                self.logger.info(f"Search cancelled with {len(pending)} node calls pending")
                for future, call in pending.items():
                    self.abandoned.abandon(future, call.node.node_id)
                    fail(call, Cancelled(node_id=call.node.node_id))
                pending.clear()
                break

            wait_for = min(call.deadline for call in pending.values()) - now
            if deadline is not None:
                wait_for = min(wait_for, deadline - now)
            if cancel is not None:
                wait_for = min(wait_for, CANCEL_POLL_INTERVAL)

            done, _ = wait(list(pending), timeout=max(0.0, wait_for), return_when=FIRST_COMPLETED)

            for future in done:
                call = pending.pop(future)
                if future.cancelled():
                    fail(call, Cancelled("coordinator shutting down", call.node.node_id))
                    continue
                error = future.exception()
                if error is None:
                    succeed(call, future.result())
                else:
                    fail(call, error)

            now = time.monotonic()
            for future, call in list(pending.items()):
                if now >= call.deadline:
                    del pending[future]
                    self.abandoned.abandon(future, call.node.node_id)
                    fail(call, NodeTimeout(f"timeout after {config.timeout_ms}ms", call.node.node_id))

        return [results[node.node_id] for node in nodes], cancelled

    def _call_node(self, node: NodeHandle, query: str, limit: int, timeout: float) -> Tuple[NodeResult, float]:
        start = time.monotonic()
        result = self.client.search(node.locator, query, limit, 0, timeout)
        return result, (time.monotonic() - start) * 1000


def _describe(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"
