"""Bounded-concurrency page crawler.

Visits each selected sitemap URL with a small pool of workers, reads the
page title and meta description, and reports progress as pages finish.
A page that fails is recorded with an empty title instead of failing the
crawl.

Keep the pool small: most sites rate limit, block or ban a crawler that
opens many simultaneous connections.
"""

import asyncio
import inspect
import time
from typing import Awaitable, Callable, List, Sequence, Union

import logfire

from sitemap_indexer.config import Settings
from sitemap_indexer.constants import (
    CRAWL_CONCURRENCY,
    DESCRIPTION_ATTRIBUTE,
    DESCRIPTION_SELECTOR,
    PAGE_TIMEOUT_SECONDS,
    PAGE_USER_AGENT,
    WAIT_UNTIL_DOM_CONTENT_LOADED,
)
from sitemap_indexer.models.sitemap_models import PageItem
from sitemap_indexer.services.renderer import Renderer, RenderSession

ProgressCallback = Callable[[int], Union[Awaitable[None], None]]


def percent_complete(completed: int, total: int) -> int:
    """round(100 * completed / total), rounding halves up."""
    if total <= 0:
        return 100
    return (200 * completed + total) // (2 * total)


class PageCrawler:
    """Crawl pages through a pool of rendering sessions."""

    def __init__(
        self,
        renderer: Renderer,
        concurrency_limit: int = CRAWL_CONCURRENCY,
        page_timeout_seconds: float = PAGE_TIMEOUT_SECONDS,
        user_agent: str = PAGE_USER_AGENT,
        worker_creation_delay_seconds: float = 0.0,
    ):
        """Initialize the crawler.

        Args:
            renderer: Backend that opens one session per worker
            concurrency_limit: Maximum pages visited at the same time
            page_timeout_seconds: Budget for visiting and reading one page
            user_agent: User-Agent set on every session
            worker_creation_delay_seconds: Stagger between worker start-ups
        """
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")
        self._renderer = renderer
        self._concurrency_limit = concurrency_limit
        self._page_timeout = page_timeout_seconds
        self._user_agent = user_agent
        self._worker_delay = worker_creation_delay_seconds

    @classmethod
    def from_settings(cls, settings: Settings, renderer: Renderer) -> "PageCrawler":
        return cls(
            renderer,
            concurrency_limit=settings.crawl_concurrency,
            page_timeout_seconds=settings.page_timeout_seconds,
            user_agent=settings.page_user_agent,
            worker_creation_delay_seconds=settings.worker_creation_delay_seconds,
        )

    async def crawl(
        self,
        items: Sequence[PageItem],
        on_progress: ProgressCallback | None = None,
    ) -> List[PageItem]:
        """
        Visit every item and return one PageItem per input, in completion order.

        Args:
            items: Pages to visit (url and lastmod are carried through)
            on_progress: Called with the completed percentage after each page

        Returns:
            Crawled PageItems; failed pages have an empty title

        Raises:
            RenderError: If a worker cannot open a rendering session
        """
        total = len(items)
        if total == 0:
            return []

        start_time = time.time()
        queue: asyncio.Queue[PageItem] = asyncio.Queue()
        for item in items:
            queue.put_nowait(item)

        results: List[PageItem] = []
        completed = 0

        # Workers only touch results and completed on the event loop thread,
        # between awaits, so updates never interleave.
        async def record(page: PageItem) -> None:
            nonlocal completed
            results.append(page)
            completed += 1
            if on_progress is not None:
                outcome = on_progress(percent_complete(completed, total))
                if inspect.isawaitable(outcome):
                    await outcome

        async def worker(index: int) -> None:
            if index and self._worker_delay:
                await asyncio.sleep(index * self._worker_delay)
            if queue.empty():
                return
            session = await self._renderer.open()
            try:
                await session.set_user_agent(self._user_agent)
                while True:
                    try:
                        item = queue.get_nowait()
                    except asyncio.QueueEmpty:
                        return
                    await record(await self._visit(session, item))
            finally:
                await session.close()

        worker_count = min(self._concurrency_limit, total)
        logfire.info(
            "Starting page crawl",
            page_count=total,
            worker_count=worker_count,
            page_timeout_seconds=self._page_timeout,
        )

        tasks = [
            asyncio.create_task(worker(i), name=f"page-crawler-{i}")
            for i in range(worker_count)
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            # Tear the pool down on every exit path so no session leaks
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        failed = sum(1 for page in results if not page.is_extracted)
        logfire.info(
            "Page crawl completed",
            page_count=total,
            failed_count=failed,
            total_time_ms=(time.time() - start_time) * 1000,
        )
        return results

    async def _visit(self, session: RenderSession, item: PageItem) -> PageItem:
        try:
            title, description = await asyncio.wait_for(
                self._extract(session, item.url), timeout=self._page_timeout
            )
        except Exception as e:
            logfire.warn(
                "Failed to fetch page metadata",
                url=item.url,
                error=str(e) or type(e).__name__,
                error_type=type(e).__name__,
            )
            return PageItem(url=item.url, lastmod=item.lastmod, title="", description=None)
        return PageItem(
            url=item.url, lastmod=item.lastmod, title=title, description=description
        )

    async def _extract(self, session: RenderSession, url: str) -> tuple[str, str | None]:
        await session.visit(
            url,
            wait_until=WAIT_UNTIL_DOM_CONTENT_LOADED,
            timeout_ms=int(self._page_timeout * 1000),
        )
        title = (await session.get_title() or "").strip()
        description = await session.extract(DESCRIPTION_SELECTOR, DESCRIPTION_ATTRIBUTE)
        return title, description
