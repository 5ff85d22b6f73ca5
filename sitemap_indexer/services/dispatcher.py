"""In-process dispatch of sitemap processing runs.

Each run is wrapped in a wall-clock deadline and attempted once. Runs are
serialized by default because each one spawns its own browser pool.
"""

import asyncio
from typing import List, Optional

import logfire

from sitemap_indexer.config import Settings
from sitemap_indexer.constants import CRAWL_TIMEOUT_SECONDS, MAX_CONCURRENT_DISPATCHES
from sitemap_indexer.models.sitemap_models import PageItem
from sitemap_indexer.services.sitemap_processor import SitemapProcessor


class CrawlDispatcher:
    """Run SitemapProcessor jobs in the background with a deadline."""

    def __init__(
        self,
        processor: SitemapProcessor,
        timeout_seconds: float = CRAWL_TIMEOUT_SECONDS,
        max_concurrent: int = MAX_CONCURRENT_DISPATCHES,
    ):
        self._processor = processor
        self._timeout = timeout_seconds
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls, settings: Settings, processor: SitemapProcessor
    ) -> "CrawlDispatcher":
        return cls(
            processor,
            timeout_seconds=settings.crawl_timeout_seconds,
            max_concurrent=settings.max_concurrent_dispatches,
        )

    @property
    def pending(self) -> int:
        """Number of dispatched runs that have not finished."""
        return len(self._tasks)

    def dispatch(self, site_id: str) -> asyncio.Task:
        """
        Schedule a processing run for a site on the running event loop.

        Returns:
            The task running the job; it resolves to the committed pages or None
        """
        task = asyncio.create_task(self.run(site_id), name=f"sitemap-{site_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logfire.info("Sitemap processing dispatched", site_id=site_id)
        return task

    async def run(self, site_id: str) -> Optional[List[PageItem]]:
        """Run one job now, waiting for a free slot first."""
        async with self._semaphore:
            try:
                return await asyncio.wait_for(
                    self._processor.process(site_id), timeout=self._timeout
                )
            except asyncio.TimeoutError:
                logfire.warn(
                    "Sitemap processing timed out",
                    site_id=site_id,
                    timeout_seconds=self._timeout,
                )
                return None

    async def shutdown(self, timeout: float | None = None) -> None:
        """Wait for pending runs; cancel whatever is left after timeout."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        logfire.info("Waiting for pending sitemap runs", pending=len(tasks))
        _, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
