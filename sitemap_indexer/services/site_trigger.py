"""Start sitemap processing when a site is created.

If a completed sitemap already exists for the site's URL the site is
linked to it instead of being crawled again.
"""

import asyncio
from typing import Optional

import logfire

from sitemap_indexer.constants import ERROR_CREATING_SITEMAP
from sitemap_indexer.db.repository import SitemapRepository
from sitemap_indexer.models.site_models import SiteCreate
from sitemap_indexer.services.dispatcher import CrawlDispatcher


class SiteTrigger:
    """React to new sites by linking or dispatching a sitemap run."""

    def __init__(self, repository: SitemapRepository, dispatcher: CrawlDispatcher):
        self._repository = repository
        self._dispatcher = dispatcher

    def submit_url(self, url: str) -> str:
        """
        Create a site for url and start processing it.

        Raises:
            ValueError: If url is not an absolute http(s) URL

        Returns:
            New site id
        """
        site_id = self._repository.create_site(SiteCreate(url=url))
        self.on_site_created(site_id)
        return site_id

    def on_site_created(self, site_id: str) -> Optional[asyncio.Task]:
        """
        Link the site to an existing sitemap or dispatch a processing run.

        Returns:
            The dispatched task, or None if nothing was dispatched
        """
        site = self._repository.get_site(site_id)
        if site is None:
            logfire.warn("Site not found for trigger", site_id=site_id)
            return None

        try:
            existing = self._repository.find_completed_sitemap_by_url(site.url)
            if existing is not None:
                logfire.info(
                    "Sitemap already exists for site",
                    site_id=site_id,
                    sitemap_id=existing.id,
                    url=site.url,
                )
                self._repository.link_site_to_sitemap(site_id, existing.id)
                return None
            return self._dispatcher.dispatch(site_id)
        except Exception as e:
            logfire.error(
                "Failed to start sitemap processing",
                site_id=site_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._repository.record_site_error(site_id, ERROR_CREATING_SITEMAP)
            return None
