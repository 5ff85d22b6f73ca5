"""Sitemap processing orchestration.

One run takes a site from "new" to either a committed sitemap or a
recorded error:

1. Create the in-progress sitemap record and clear the site's stale error
2. Resolve every URL the site's sitemaps declare
3. Deduplicate and keep the most recently modified max_crawl_length URLs
4. Crawl titles and descriptions, writing progress in coarse steps
5. Commit pages and link the site in a single atomic write

Any failure deletes the in-progress sitemap and leaves only the error
message on the site, so readers never see a partial sitemap.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional

import logfire

from sitemap_indexer.config import Settings
from sitemap_indexer.constants import (
    ERROR_CRAWL_FAILED,
    ERROR_SITE_NOT_FOUND,
    ERROR_TIMED_OUT,
    ERROR_UNKNOWN,
    MAX_CRAWL_LENGTH,
    PROGRESS_UPDATE_THRESHOLD,
    STATUS_MESSAGE_COMPLETE,
    STATUS_MESSAGE_CRAWLING,
    STATUS_MESSAGE_FETCHING,
)
from sitemap_indexer.db.repository import SitemapRepository
from sitemap_indexer.exceptions import (
    CrawlFailedError,
    SiteNotFoundError,
    SitemapProcessingError,
)
from sitemap_indexer.models.site_models import SiteRecord
from sitemap_indexer.models.sitemap_models import PageItem, SitemapCreate
from sitemap_indexer.services.page_crawler import PageCrawler
from sitemap_indexer.services.ranking import dedupe, select
from sitemap_indexer.services.sitemap_resolver import SitemapResolver


@dataclass
class _RunContext:
    site: SiteRecord
    sitemap_id: str | None = None


class ProgressWriter:
    """Persist crawl progress only when it advances by at least threshold."""

    def __init__(
        self,
        repository: SitemapRepository,
        sitemap_id: str,
        threshold: int = PROGRESS_UPDATE_THRESHOLD,
    ):
        self._repository = repository
        self._sitemap_id = sitemap_id
        self._threshold = threshold
        self.last_progress = 0

    def __call__(self, progress: int) -> None:
        if progress < self.last_progress + self._threshold:
            return
        logfire.info(
            "Crawl progress", sitemap_id=self._sitemap_id, progress=progress
        )
        self._repository.update_sitemap_progress(self._sitemap_id, progress)
        self.last_progress = progress


class SitemapProcessor:
    """Run the full sitemap pipeline for one site.

    Collaborators are injected; see AppContext for the production wiring.
    """

    def __init__(
        self,
        repository: SitemapRepository,
        resolver: SitemapResolver,
        crawler: PageCrawler,
        max_crawl_length: int = MAX_CRAWL_LENGTH,
        progress_update_threshold: int = PROGRESS_UPDATE_THRESHOLD,
    ):
        self._repository = repository
        self._resolver = resolver
        self._crawler = crawler
        self._max_crawl_length = max_crawl_length
        self._progress_update_threshold = progress_update_threshold

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        repository: SitemapRepository,
        resolver: SitemapResolver,
        crawler: PageCrawler,
    ) -> "SitemapProcessor":
        return cls(
            repository,
            resolver,
            crawler,
            max_crawl_length=settings.max_crawl_length,
            progress_update_threshold=settings.progress_update_threshold,
        )

    async def process(self, site_id: str) -> Optional[List[PageItem]]:
        """
        Build and commit the sitemap for a site.

        Failures are recorded on the site rather than raised. Cancellation
        (an external deadline) is recorded the same way and then re-raised.

        Args:
            site_id: Id of the site to process

        Returns:
            Committed pages, or None if the run failed
        """
        context: _RunContext | None = None
        try:
            with logfire.span("Process sitemap {site_id}", site_id=site_id):
                context = self._initialize(site_id)
                return await self._run(context)
        except asyncio.CancelledError:
            logfire.warn("Sitemap processing cancelled", site_id=site_id)
            self._handle_error(SitemapProcessingError(ERROR_TIMED_OUT), context)
            raise
        except SitemapProcessingError as e:
            self._handle_error(e, context)
        except Exception as e:
            logfire.error(
                "Unexpected error processing sitemap",
                site_id=site_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._handle_error(SitemapProcessingError(ERROR_UNKNOWN), context)
        return None

    def _initialize(self, site_id: str) -> _RunContext:
        site = self._repository.get_site(site_id)
        if site is None:
            raise SiteNotFoundError(ERROR_SITE_NOT_FOUND)
        return _RunContext(site=site)

    async def _run(self, context: _RunContext) -> List[PageItem]:
        site = context.site

        self._repository.mark_site_processing(site.id)
        context.sitemap_id = self._repository.create_sitemap(
            SitemapCreate(
                url=site.url,
                site_id=site.id,
                status_message=STATUS_MESSAGE_FETCHING,
            )
        )

        discovered = await self._resolver.resolve(site.url)
        unique = dedupe(discovered)
        selected = select(unique, self._max_crawl_length)
        logfire.info(
            "Sitemap URLs selected",
            site_id=site.id,
            found=len(discovered),
            unique=len(unique),
            selected=len(selected),
        )

        self._repository.update_sitemap_status_message(
            context.sitemap_id, STATUS_MESSAGE_CRAWLING.format(count=len(selected))
        )

        progress = ProgressWriter(
            self._repository, context.sitemap_id, self._progress_update_threshold
        )
        crawled = await self._crawler.crawl(selected, progress)

        # Crawl results arrive in completion order; ranking decides the order
        by_url = {page.url: page for page in crawled}
        pages = [
            by_url[item.url]
            for item in selected
            if item.url in by_url and by_url[item.url].is_extracted
        ]
        if not pages:
            raise CrawlFailedError(ERROR_CRAWL_FAILED)

        self._repository.commit_completed_sitemap(
            site.id, context.sitemap_id, pages, STATUS_MESSAGE_COMPLETE
        )
        logfire.info(
            "Sitemap completed",
            site_id=site.id,
            url=site.url,
            page_count=len(pages),
        )
        return pages

    def _handle_error(
        self, error: SitemapProcessingError, context: _RunContext | None
    ) -> None:
        logfire.warn(
            "Error creating sitemap",
            error=str(error),
            error_type=type(error).__name__,
        )
        if context is None:
            return
        try:
            self._repository.record_site_error(context.site.id, str(error))
        except Exception as e:
            logfire.error(
                "Failed to record sitemap error",
                site_id=context.site.id,
                error=str(e),
                error_type=type(e).__name__,
            )
        if context.sitemap_id is None:
            return
        try:
            self._repository.delete_sitemap(context.sitemap_id)
        except Exception as e:
            logfire.error(
                "Failed to delete in-progress sitemap",
                site_id=context.site.id,
                sitemap_id=context.sitemap_id,
                error=str(e),
                error_type=type(e).__name__,
            )
