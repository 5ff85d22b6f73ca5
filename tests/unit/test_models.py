"""Tests for site and sitemap models."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from sitemap_indexer.models.site_models import (
    SiteCreate,
    SiteRecord,
    SiteStatus,
    validate_absolute_url,
)
from sitemap_indexer.models.sitemap_models import (
    PageItem,
    SitemapCreate,
    SitemapRecord,
    SitemapStatus,
    utc_now_iso,
)


class TestPageItem:
    """Test PageItem defaults and extraction flag."""

    def test_defaults(self):
        item = PageItem(url="https://example.com/")

        assert item.title == ""
        assert item.description is None
        assert datetime.fromisoformat(item.lastmod).tzinfo is not None
        assert not item.is_extracted

    def test_is_extracted_requires_title(self):
        assert PageItem(url="https://example.com/", title="Home").is_extracted
        assert not PageItem(url="https://example.com/", description="only a description").is_extracted

    def test_utc_now_iso_is_timezone_aware(self):
        assert datetime.fromisoformat(utc_now_iso()).utcoffset().total_seconds() == 0


class TestSitemapModels:
    """Test SitemapRecord and SitemapCreate."""

    def test_sitemap_create_defaults_to_processing(self):
        data = SitemapCreate(url="https://example.com", site_id="s1", status_message="Fetching Sitemap")

        assert data.status == SitemapStatus.PROCESSING

    def test_record_parses_stored_pages(self):
        record = SitemapRecord(
            id="sm-1",
            url="https://example.com",
            site_id="s1",
            status="complete",
            progress=100,
            pages=[{"url": "https://example.com/a", "lastmod": "2024-01-01", "title": "A"}],
            created_at="2024-01-01T00:00:00+00:00",
        )

        assert record.status == SitemapStatus.COMPLETE
        assert record.pages[0].title == "A"
        assert record.created_at.year == 2024

    @pytest.mark.parametrize("progress", [-1, 101])
    def test_progress_bounds(self, progress):
        with pytest.raises(ValidationError):
            SitemapRecord(id="sm-1", url="https://example.com", site_id="s1", progress=progress)


class TestSiteModels:
    """Test site URL validation and status defaults."""

    def test_missing_status_is_idle(self):
        assert SiteRecord(id="s1", url="https://example.com").status == SiteStatus.IDLE
        assert SiteRecord(id="s1", url="https://example.com", status=None).status == SiteStatus.IDLE

    def test_site_create_strips_url(self):
        assert SiteCreate(url="  https://example.com/  ").url == "https://example.com/"

    @pytest.mark.parametrize(
        "url", ["", "   ", "example.com", "/relative/path", "mailto:a@example.com", "http://"]
    )
    def test_invalid_urls_rejected(self, url):
        with pytest.raises(ValueError):
            validate_absolute_url(url)
        with pytest.raises(ValidationError):
            SiteCreate(url=url)

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            SiteRecord(id="s1", url="https://example.com", status="archived")
