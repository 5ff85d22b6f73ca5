"""Models for sitemap records and crawled page items."""

from datetime import datetime, timezone
from enum import Enum
from typing import List

from pydantic import BaseModel, Field


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class SitemapStatus(str, Enum):
    """Lifecycle state of a sitemap record."""

    NEW = "new"
    PROCESSING = "processing"
    COMPLETE = "complete"


class PageItem(BaseModel):
    """A single sitemap URL and the metadata extracted from it.

    An empty title means extraction failed for this URL.
    """

    url: str
    lastmod: str = Field(default_factory=utc_now_iso)
    title: str = ""
    description: str | None = None

    @property
    def is_extracted(self) -> bool:
        """True when the crawler managed to read a title for the page."""
        return bool(self.title)


class SitemapRecord(BaseModel):
    """One processing attempt for a site, as stored in the sitemaps table."""

    id: str
    url: str
    site_id: str
    status: SitemapStatus = SitemapStatus.NEW
    status_message: str | None = None
    progress: int = Field(default=0, ge=0, le=100)
    pages: List[PageItem] | None = None
    created_at: datetime | None = None
    last_updated: datetime | None = None


class SitemapCreate(BaseModel):
    """Parameters for creating an in-progress sitemap record."""

    url: str = Field(..., description="Site URL the sitemap belongs to")
    site_id: str = Field(..., description="Owning site id")
    status: SitemapStatus = Field(default=SitemapStatus.PROCESSING)
    status_message: str = Field(..., description="Human-readable phase label")
