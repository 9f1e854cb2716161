"""
Search Node service: serves one DocumentIndex over HTTP for the coordinator
"""
import asyncio
import logging
import time
from typing import Optional

from aiohttp import web
import psutil

from search_coordinator.core.config import NodeConfig
from search_coordinator.storage.index import DocumentIndex
from search_coordinator.utils.helpers import elapsed_ms, get_system_info


class SearchNode:
    """
    A search node answering coordinator queries against its local index
    """

    def __init__(self, config: NodeConfig, index: Optional[DocumentIndex] = None):
        self.config = config
        self.logger = logging.getLogger(f"SearchNode-{config.node_id}")
        if index is None:
            index = DocumentIndex.load_from_file(config.documents_file) if config.documents_file else DocumentIndex()
        self.index = index
        self.app = web.Application()
        self.setup_routes()
        self.is_running = False
        self.started_at: Optional[float] = None
        self._runner: Optional[web.AppRunner] = None

    def setup_routes(self):
        """Setup HTTP routes for the node"""
        self.app.router.add_get('/health', self.health_check)
        self.app.router.add_post('/search', self.handle_search_request)
        self.app.router.add_get('/status', self.get_status)

    @property
    def url(self) -> str:
        return f"http://{self.config.host}:{self.config.port}"

    async def health_check(self, request):
        """Health check endpoint"""
        return web.json_response({
            "status": "healthy" if self.is_running else "stopping",
            "node_id": self.config.node_id,
            "uptime": self._uptime(),
            "memory_usage": psutil.virtual_memory().percent,
            "cpu_usage": psutil.cpu_percent()
        })

    async def handle_search_request(self, request):
        """Handle search request from coordinator"""
        try:
            data = await request.json()
        except ValueError:
            return self._bad_request("request body must be JSON")
        if not isinstance(data, dict):
            return self._bad_request("request body must be a JSON object")

        query = data.get('query')
        limit = data.get('limit', 10)
        offset = data.get('offset', 0)
        if not isinstance(query, str):
            return self._bad_request("'query' must be a string")
        if not _is_count(limit) or not _is_count(offset):
            return self._bad_request("'limit' and 'offset' must be non-negative integers")

        self.logger.info(f"Received search request: query='{query}', limit={limit}, offset={offset}")

        start = time.monotonic()
        hits, total = self.index.search(query, min(limit, self.config.max_results), offset)
        took_ms = elapsed_ms(start)

        return web.json_response({
            "node_id": self.config.node_id,
            "hits": hits,
            "total_hits": total,
            "took_ms": took_ms
        })

    async def get_status(self, request):
        """Get node status information"""
        return web.json_response({
            "node_id": self.config.node_id,
            "host": self.config.host,
            "port": self.config.port,
            "documents": len(self.index),
            "is_running": self.is_running,
            "uptime": self._uptime(),
            "system_info": get_system_info()
        })

    async def start(self):
        """Start the search node"""
        self.logger.info(f"Starting search node {self.config.node_id} on {self.config.host}:{self.config.port}")

        self._runner = web.AppRunner(self.app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await site.start()

        self.is_running = True
        self.started_at = time.time()
        self.logger.info(f"Search node {self.config.node_id} started with {len(self.index)} documents")

    async def stop(self):
        """Stop the search node"""
        self.logger.info(f"Stopping search node {self.config.node_id}")
        self.is_running = False
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    async def serve_forever(self, stop_event: Optional[asyncio.Event] = None):
        """Start, then keep serving until ``stop_event`` is set or the task is cancelled"""
        await self.start()
        try:
            if stop_event is None:
                stop_event = asyncio.Event()
            await stop_event.wait()
        finally:
            await self.stop()

    def _uptime(self) -> float:
        if self.started_at is None:
            return 0.0
        return round(time.time() - self.started_at, 3)

    def _bad_request(self, message: str):
        self.logger.warning(f"Rejected search request: {message}")
        return web.json_response({
            "node_id": self.config.node_id,
            "error": message
        }, status=400)


def _is_count(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0
