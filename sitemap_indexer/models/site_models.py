"""Site record models."""

from datetime import datetime
from enum import Enum
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator


class SiteStatus(str, Enum):
    """Processing state of a site.

    IDLE is the explicit default: never processed, or the last run failed.
    """

    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETE = "complete"


def validate_absolute_url(value: str) -> str:
    """Return the stripped URL, or raise ValueError if it is not absolute http(s)."""
    value = (value or "").strip()
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Not an absolute http(s) URL: {value!r}")
    return value


class SiteRecord(BaseModel):
    """A crawl target, as stored in the sites table."""

    id: str
    url: str
    sitemap_id: str | None = None
    sitemap_error: str | None = None
    status: SiteStatus = SiteStatus.IDLE
    created_at: datetime | None = None

    @field_validator("url")
    @classmethod
    def _url_is_absolute(cls, value: str) -> str:
        return validate_absolute_url(value)

    @field_validator("status", mode="before")
    @classmethod
    def _missing_status_is_idle(cls, value):
        return SiteStatus.IDLE if value is None else value


class SiteCreate(BaseModel):
    """Parameters for creating a site record."""

    url: str = Field(..., description="Absolute URL of the site to index")

    @field_validator("url")
    @classmethod
    def _url_is_absolute(cls, value: str) -> str:
        return validate_absolute_url(value)
