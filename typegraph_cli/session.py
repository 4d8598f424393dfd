"""Request sequencing on top of the crawler.

An interactive front end fires a new request on every cursor move. There is
no way to cancel an in-flight crawl, so each request takes a number from a
monotonically increasing counter and checks it after every suspension point:
once a newer request exists, the older one keeps running but its result is
dropped and never replaces :attr:`GraphSession.last_graph`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .config import CrawlerSettings
from .crawler import GraphCrawler
from .models import Graph, Position
from .trace import CrawlTrace

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class GraphSession:
    """Serves graph requests for one viewer."""

    def __init__(
        self,
        crawler: GraphCrawler,
        settings: Optional[CrawlerSettings] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.crawler = crawler
        self.settings = settings or CrawlerSettings()
        self._sleep = sleep
        self._latest_request = 0
        self.last_graph: Optional[Graph] = None
        self.last_trace: Optional[CrawlTrace] = None

    @property
    def latest_request(self) -> int:
        return self._latest_request

    def _next_request(self) -> int:
        self._latest_request += 1
        return self._latest_request

    def is_stale(self, request_id: int) -> bool:
        return request_id != self._latest_request

    async def update(
        self,
        unit: str,
        position: Position,
        sink: Optional[Callable[[str], None]] = None,
    ) -> Optional[Graph]:
        """Crawl from the cursor, retrying while the provider warms up.

        Returns the new graph, or ``None`` when the request went stale or
        every attempt came back empty (``last_graph`` is then left alone).
        """
        request_id = self._next_request()
        trace = CrawlTrace(sink=sink, request_id=request_id)

        async def attempt() -> Optional[Graph]:
            return await self.crawler.generate(unit, position, trace)

        return await self._run(request_id, trace, attempt)

    async def scan(self, sink: Optional[Callable[[str], None]] = None) -> Optional[Graph]:
        """Whole-workspace variant of :meth:`update`."""
        request_id = self._next_request()
        trace = CrawlTrace(sink=sink, request_id=request_id)

        async def attempt() -> Optional[Graph]:
            return await self.crawler.scan_workspace(trace)

        return await self._run(request_id, trace, attempt)

    async def _run(
        self,
        request_id: int,
        trace: CrawlTrace,
        attempt: Callable[[], Awaitable[Optional[Graph]]],
    ) -> Optional[Graph]:
        graph: Optional[Graph] = None
        max_attempts = max(self.settings.max_attempts, 1)

        for n in range(1, max_attempts + 1):
            if self.is_stale(request_id):
                return None
            try:
                graph = await attempt()
            except Exception as exc:
                trace.warning("Crawl failed: %s", exc)
                graph = None
            if self.is_stale(request_id):
                trace.debug("Request %d superseded; discarding result", request_id)
                return None
            if graph is not None and graph.nodes:
                break
            if n < max_attempts:
                trace.info(
                    "Waiting for symbol provider to warm up (attempt %d/%d)", n, max_attempts,
                )
                await self._sleep(self.settings.retry_delay)

        if self.is_stale(request_id):
            return None
        self.last_trace = trace
        if graph is None or not graph.nodes:
            trace.info("No types found; keeping previous graph")
            return None
        self.last_graph = graph
        return graph

    def invalidate(self, unit: str) -> int:
        """Forward a source change to the provider and the caches."""
        self.crawler.provider.invalidate(unit)
        return self.crawler.cache.invalidate(unit)
