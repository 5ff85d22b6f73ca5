"""Site and sitemap repository.

Typed operations over a DocumentStore. The store is injected, so the
same repository runs against Supabase in production and an in-memory
store in tests.
"""

from typing import List, Optional

import logfire

from sitemap_indexer.constants import SITEMAPS_TABLE, SITES_TABLE
from sitemap_indexer.db.document_store import DocumentStore, DocumentWrite
from sitemap_indexer.exceptions import DocumentNotFoundError
from sitemap_indexer.models.site_models import SiteCreate, SiteRecord, SiteStatus
from sitemap_indexer.models.sitemap_models import (
    PageItem,
    SitemapCreate,
    SitemapRecord,
    SitemapStatus,
    utc_now_iso,
)


class SitemapRepository:
    """Persistence operations for sites and sitemaps."""

    def __init__(self, store: DocumentStore):
        self._store = store

    @property
    def store(self) -> DocumentStore:
        return self._store

    # =========================================================================
    # Sites
    # =========================================================================

    def create_site(self, data: SiteCreate) -> str:
        """
        Create a site record.

        Args:
            data: Validated site parameters

        Returns:
            New site id
        """
        site_id = self._store.create(
            SITES_TABLE,
            {
                "url": data.url,
                "status": SiteStatus.IDLE.value,
                "created_at": utc_now_iso(),
            },
        )
        logfire.info("Site created", site_id=site_id, url=data.url)
        return site_id

    def get_site(self, site_id: str) -> Optional[SiteRecord]:
        """
        Get a site by id.

        Returns:
            SiteRecord if found, None otherwise
        """
        try:
            data = self._store.get(SITES_TABLE, site_id)
        except DocumentNotFoundError:
            return None
        return SiteRecord(**{**data, "id": str(data.get("id", site_id))})

    def mark_site_processing(self, site_id: str) -> None:
        """Clear any stale error and flag the site as being processed."""
        self._store.update(
            SITES_TABLE,
            site_id,
            {"sitemap_error": None, "status": SiteStatus.PROCESSING.value},
        )

    def record_site_error(self, site_id: str, message: str) -> None:
        """Store a user-visible error on the site and return it to idle."""
        self._store.update(
            SITES_TABLE,
            site_id,
            {"sitemap_error": message, "status": SiteStatus.IDLE.value},
        )
        logfire.info("Site error recorded", site_id=site_id, sitemap_error=message)

    def link_site_to_sitemap(self, site_id: str, sitemap_id: str) -> None:
        """Point a site at an existing completed sitemap and clear its error."""
        self._store.update(
            SITES_TABLE,
            site_id,
            {
                "sitemap_id": sitemap_id,
                "sitemap_error": None,
                "status": SiteStatus.COMPLETE.value,
            },
        )

    # =========================================================================
    # Sitemaps
    # =========================================================================

    def create_sitemap(self, data: SitemapCreate) -> str:
        """
        Create the in-progress sitemap record for a run.

        Returns:
            New sitemap id
        """
        now = utc_now_iso()
        sitemap_id = self._store.create(
            SITEMAPS_TABLE,
            {
                "url": data.url,
                "site_id": data.site_id,
                "status": data.status.value,
                "status_message": data.status_message,
                "progress": 0,
                "created_at": now,
                "last_updated": now,
            },
        )
        logfire.info(
            "Sitemap record created", sitemap_id=sitemap_id, site_id=data.site_id
        )
        return sitemap_id

    def get_sitemap(self, sitemap_id: str) -> Optional[SitemapRecord]:
        """Get a sitemap by id, or None if it does not exist."""
        try:
            data = self._store.get(SITEMAPS_TABLE, sitemap_id)
        except DocumentNotFoundError:
            return None
        return SitemapRecord(**{**data, "id": str(data.get("id", sitemap_id))})

    def find_completed_sitemap_by_url(self, url: str) -> Optional[SitemapRecord]:
        """Return a completed sitemap already built for this URL, if any."""
        for data in self._store.query(SITEMAPS_TABLE, "url", url):
            record = SitemapRecord(**{**data, "id": str(data["id"])})
            if record.status == SitemapStatus.COMPLETE:
                return record
        return None

    def update_sitemap_status_message(self, sitemap_id: str, message: str) -> None:
        self._store.update(
            SITEMAPS_TABLE,
            sitemap_id,
            {"status_message": message, "last_updated": utc_now_iso()},
        )

    def update_sitemap_progress(self, sitemap_id: str, progress: int) -> None:
        self._store.update(
            SITEMAPS_TABLE,
            sitemap_id,
            {"progress": progress, "last_updated": utc_now_iso()},
        )

    def delete_sitemap(self, sitemap_id: str) -> None:
        self._store.delete(SITEMAPS_TABLE, sitemap_id)
        logfire.info("Sitemap record deleted", sitemap_id=sitemap_id)

    def commit_completed_sitemap(
        self,
        site_id: str,
        sitemap_id: str,
        pages: List[PageItem],
        status_message: str,
    ) -> None:
        """
        Write the final pages and link the site in one atomic commit.

        Args:
            site_id: Owning site id
            sitemap_id: In-progress sitemap id
            pages: Crawled pages to store
            status_message: Final status label
        """
        self._store.commit(
            [
                DocumentWrite(
                    SITEMAPS_TABLE,
                    sitemap_id,
                    {
                        "last_updated": utc_now_iso(),
                        "pages": [p.model_dump(mode="json") for p in pages],
                        "status_message": status_message,
                        "progress": 100,
                        "status": SitemapStatus.COMPLETE.value,
                    },
                ),
                DocumentWrite(
                    SITES_TABLE,
                    site_id,
                    {
                        "sitemap_id": sitemap_id,
                        "sitemap_error": None,
                        "status": SiteStatus.COMPLETE.value,
                    },
                ),
            ]
        )
        logfire.info(
            "Sitemap committed",
            site_id=site_id,
            sitemap_id=sitemap_id,
            page_count=len(pages),
        )
