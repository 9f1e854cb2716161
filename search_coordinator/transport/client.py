"""
Search clients: how the coordinator talks to one search node.

A client turns ``(locator, query, limit, offset, timeout)`` into a
NodeResult or raises one of the node errors. The coordinator never looks
inside a locator; each client decides what it means.
"""
import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional

import aiohttp

from search_coordinator.core.errors import NodeQueryError, NodeTimeout, NodeTransportError
from search_coordinator.search.models import NodeResult
from search_coordinator.storage.index import DocumentIndex
from search_coordinator.utils.helpers import elapsed_ms


class SearchClient(ABC):
    """Interface to the search-node collaborator"""

    @abstractmethod
    def search(self, locator: str, query: str, limit: int, offset: int, timeout: float) -> NodeResult:
        """
        Run a query against one node

        Args:
            locator: Node address, interpreted by the client
            query: Query string
            limit: Maximum number of hits to return
            offset: Number of hits to skip
            timeout: Seconds the call may take

        Returns:
            NodeResult with the node's hits, total match count and timing

        Raises:
            NodeTimeout, NodeTransportError: transient failures, retried
            NodeQueryError: the node rejected the query
        """

    def probe(self, locator: str, timeout: float) -> None:
        """Lightweight liveness check; raises a node error when unhealthy"""
        self.search(locator, "", 0, 0, timeout)


class LocalSearchClient(SearchClient):
    """
    In-process client over DocumentIndex instances.

    Locators are looked up verbatim, e.g. ``local://index1``.
    """

    def __init__(self, indexes: Optional[Dict[str, DocumentIndex]] = None):
        self._indexes: Dict[str, DocumentIndex] = dict(indexes or {})
        self._lock = threading.Lock()

    def register(self, locator: str, index: DocumentIndex) -> None:
        with self._lock:
            self._indexes[locator] = index

    def unregister(self, locator: str) -> None:
        with self._lock:
            self._indexes.pop(locator, None)

    def search(self, locator: str, query: str, limit: int, offset: int, timeout: float) -> NodeResult:
        index = self._lookup(locator)
        start = time.monotonic()
        hits, total = index.search(query, limit, offset)
        took_ms = elapsed_ms(start)
        return NodeResult(hits=hits, total_hits=total, took_ms=took_ms)

    def probe(self, locator: str, timeout: float) -> None:
        self._lookup(locator)

    def _lookup(self, locator: str) -> DocumentIndex:
        with self._lock:
            index = self._indexes.get(locator)
        if index is None:
            raise NodeTransportError(f"no index behind locator {locator}")
        return index


class HttpSearchClient(SearchClient):
    """
    Client for SearchNode services over HTTP (aiohttp).

    Locators are base URLs such as ``http://localhost:8001``. Every call runs
    its own event loop, so the client is safe to use from worker threads.
    """

    def __init__(self, search_path: str = "/search", health_path: str = "/health"):
        self.search_path = search_path
        self.health_path = health_path
        self.logger = logging.getLogger("HttpSearchClient")

    def search(self, locator: str, query: str, limit: int, offset: int, timeout: float) -> NodeResult:
        return asyncio.run(self._search(locator, query, limit, offset, timeout))

    def probe(self, locator: str, timeout: float) -> None:
        asyncio.run(self._probe(locator, timeout))

    async def _search(self, locator: str, query: str, limit: int, offset: int, timeout: float) -> NodeResult:
        url = f"{locator.rstrip('/')}{self.search_path}"
        payload = {"query": query, "limit": limit, "offset": offset}

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    url,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=timeout)
                ) as response:
                    if response.status == 200:
                        data = await response.json()
                        return NodeResult(
                            hits=data.get("hits", []),
                            total_hits=int(data.get("total_hits", 0)),
                            took_ms=int(data.get("took_ms", 0)),
                        )
                    error_text = await response.text()
                    if 400 <= response.status < 500:
                        raise NodeQueryError(f"{url} rejected query with status {response.status}: {error_text}")
                    raise NodeTransportError(f"{url} returned status {response.status}: {error_text}")

        except asyncio.TimeoutError as e:
            raise NodeTimeout(f"timeout after {timeout * 1000:.0f}ms calling {url}") from e
        except aiohttp.ClientError as e:
            raise NodeTransportError(f"error calling {url}: {e}") from e

    async def _probe(self, locator: str, timeout: float) -> None:
        url = f"{locator.rstrip('/')}{self.health_path}"

        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    url,
                    timeout=aiohttp.ClientTimeout(total=timeout)
                ) as response:
                    if response.status != 200:
                        raise NodeTransportError(f"{url} health check failed: {response.status}")
                    data = await response.json()
                    if data.get("status") != "healthy":
                        raise NodeTransportError(f"{url} reports status {data.get('status')!r}")

        except asyncio.TimeoutError as e:
            raise NodeTimeout(f"timeout after {timeout * 1000:.0f}ms probing {url}") from e
        except aiohttp.ClientError as e:
            raise NodeTransportError(f"{url} unreachable: {e}") from e
