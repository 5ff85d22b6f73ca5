"""Sitemap discovery and resolution.

Discovers a site's sitemaps (robots.txt ``Sitemap:`` lines, else
``/sitemap.xml``), follows sitemap indexes recursively and flattens every
url-set into PageItems. Nesting depth and the number of fetched documents
are capped, and each sitemap URL is fetched at most once, so cyclic or
runaway indexes terminate.
"""

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List
from urllib.parse import urlparse

import logfire

from sitemap_indexer.constants import (
    ERROR_SITEMAP_NOT_FOUND,
    MAX_SITEMAP_DEPTH,
    MAX_SITEMAP_FETCHES,
)
from sitemap_indexer.config import Settings
from sitemap_indexer.exceptions import SitemapFetchError, SitemapNotFoundError
from sitemap_indexer.models.sitemap_models import PageItem, utc_now_iso
from sitemap_indexer.services.sitemap_fetcher import SitemapFetcher

_ROBOTS_SITEMAP_RE = re.compile(
    r"^[ \t]*sitemap[ \t]*:[ \t]*(\S[^\r\n]*?)[ \t\r]*$", re.IGNORECASE | re.MULTILINE
)


class SitemapKind(str, Enum):
    URLSET = "urlset"
    INDEX = "sitemapindex"
    UNKNOWN = "unknown"


@dataclass
class SitemapEntry:
    """A <url> or <sitemap> entry: location plus optional last-modified date."""

    loc: str
    lastmod: str | None = None


@dataclass
class SitemapDocument:
    """A parsed sitemap: its kind and its entries."""

    kind: SitemapKind
    entries: List[SitemapEntry] = field(default_factory=list)


@dataclass
class _ResolveBudget:
    max_fetches: int
    fetches: int = 0
    visited: set[str] = field(default_factory=set)
    last_error: Exception | None = None


def site_origin(site_url: str) -> str:
    """Return scheme://host[:port] for an absolute URL."""
    parsed = urlparse(site_url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Not an absolute http(s) URL: {site_url!r}")
    return f"{parsed.scheme}://{parsed.netloc}"


def parse_robots_sitemaps(robots_txt: str) -> List[str]:
    """Extract Sitemap: declarations from robots.txt, deduplicated, in order."""
    seen: set[str] = set()
    out: List[str] = []
    for match in _ROBOTS_SITEMAP_RE.finditer(robots_txt or ""):
        url = match.group(1).strip()
        if url and url not in seen:
            seen.add(url)
            out.append(url)
    return out


def _local_name(tag: str) -> str:
    """Strip the {namespace} prefix from an element tag."""
    return tag.rsplit("}", 1)[-1].lower()


def _child_text(element: ET.Element, name: str) -> str | None:
    for child in element:
        if _local_name(child.tag) == name:
            text = (child.text or "").strip()
            return text or None
    return None


def parse_sitemap_document(xml_text: str) -> SitemapDocument:
    """
    Parse sitemap XML into a url-set or sitemap-index document.

    Namespaces are ignored, so both namespaced and bare documents parse.
    Entries without a <loc> are skipped.

    Raises:
        ET.ParseError: If the text is not well-formed XML
    """
    root = ET.fromstring(xml_text.strip())
    root_name = _local_name(root.tag)

    if root_name == "urlset":
        kind, entry_name = SitemapKind.URLSET, "url"
    elif root_name == "sitemapindex":
        kind, entry_name = SitemapKind.INDEX, "sitemap"
    else:
        return SitemapDocument(kind=SitemapKind.UNKNOWN)

    entries: List[SitemapEntry] = []
    for element in root:
        if _local_name(element.tag) != entry_name:
            continue
        loc = _child_text(element, "loc")
        if loc:
            entries.append(SitemapEntry(loc=loc, lastmod=_child_text(element, "lastmod")))
    return SitemapDocument(kind=kind, entries=entries)


class SitemapResolver:
    """Resolve a site URL to the flat list of pages its sitemaps declare."""

    def __init__(
        self,
        fetcher: SitemapFetcher,
        max_depth: int = MAX_SITEMAP_DEPTH,
        max_fetches: int = MAX_SITEMAP_FETCHES,
        clock: Callable[[], str] = utc_now_iso,
    ):
        """Initialize the resolver.

        Args:
            fetcher: Fetches robots.txt and sitemap documents
            max_depth: Deepest sitemap-index nesting followed (root is 0)
            max_fetches: Maximum sitemap documents fetched per resolve
            clock: Supplies lastmod for entries that omit it
        """
        self._fetcher = fetcher
        self._max_depth = max_depth
        self._max_fetches = max_fetches
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, fetcher: SitemapFetcher) -> "SitemapResolver":
        return cls(
            fetcher,
            max_depth=settings.max_sitemap_depth,
            max_fetches=settings.max_sitemap_fetches,
        )

    async def discover_sitemap_urls(self, origin: str) -> List[str]:
        """Candidate sitemap URLs from robots.txt, defaulting to /sitemap.xml."""
        robots_url = f"{origin}/robots.txt"
        candidates: List[str] = []
        try:
            candidates = parse_robots_sitemaps(await self._fetcher.fetch(robots_url))
        except (SitemapFetchError, ValueError) as e:
            logfire.warn("Failed to fetch robots.txt", url=robots_url, error=str(e))

        if candidates:
            logfire.info("Sitemaps found in robots.txt", origin=origin, sitemaps=candidates)
            return candidates
        return [f"{origin}/sitemap.xml"]

    async def resolve(self, site_url: str) -> List[PageItem]:
        """
        Resolve every page listed by the site's sitemaps.

        Args:
            site_url: Any absolute URL on the site

        Returns:
            PageItems in sitemap order, duplicates included

        Raises:
            SitemapNotFoundError: If no sitemap produced a single page
        """
        try:
            origin = site_origin(site_url)
        except ValueError as e:
            raise SitemapNotFoundError(ERROR_SITEMAP_NOT_FOUND) from e

        candidates = await self.discover_sitemap_urls(origin)
        budget = _ResolveBudget(max_fetches=self._max_fetches)
        items: List[PageItem] = []
        for sitemap_url in candidates:
            items.extend(await self._resolve_sitemap(sitemap_url, 0, budget))

        logfire.info(
            "Sitemap resolution finished",
            origin=origin,
            sitemap_count=budget.fetches,
            url_count=len(items),
        )
        if not items:
            raise SitemapNotFoundError(ERROR_SITEMAP_NOT_FOUND) from budget.last_error
        return items

    async def _resolve_sitemap(
        self, sitemap_url: str, depth: int, budget: _ResolveBudget
    ) -> List[PageItem]:
        if sitemap_url in budget.visited:
            logfire.debug("Skipping already visited sitemap", url=sitemap_url)
            return []
        if budget.fetches >= budget.max_fetches:
            logfire.warn(
                "Sitemap fetch ceiling reached, skipping",
                url=sitemap_url,
                max_fetches=budget.max_fetches,
            )
            return []
        budget.visited.add(sitemap_url)
        budget.fetches += 1

        try:
            document = parse_sitemap_document(await self._fetcher.fetch(sitemap_url))
        except SitemapFetchError as e:
            budget.last_error = e
            logfire.warn("Sitemap unavailable", url=sitemap_url, error=str(e))
            return []
        except (ET.ParseError, ValueError) as e:
            budget.last_error = e
            logfire.warn("Failed to parse sitemap XML", url=sitemap_url, error=str(e))
            return []

        if document.kind == SitemapKind.URLSET:
            now = self._clock()
            return [
                PageItem(url=entry.loc, lastmod=entry.lastmod or now)
                for entry in document.entries
            ]

        if document.kind == SitemapKind.INDEX:
            if depth >= self._max_depth:
                logfire.warn(
                    "Sitemap index nesting too deep, skipping children",
                    url=sitemap_url,
                    depth=depth,
                )
                return []
            items: List[PageItem] = []
            for entry in document.entries:
                items.extend(await self._resolve_sitemap(entry.loc, depth + 1, budget))
            return items

        logfire.warn("Document is not a sitemap", url=sitemap_url)
        return []
