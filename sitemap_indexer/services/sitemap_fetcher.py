"""HTTP fetching for robots.txt and sitemap documents.

Sitemaps are fetched with a self-identifying User-Agent (sites rarely block
crawlers from their sitemaps, so there is no need to pose as a browser),
retried with exponential backoff, and transparently gunzipped.
"""

import asyncio
import codecs
import gzip
import re
from typing import Protocol
from urllib.parse import urlparse

import httpx
import logfire

from sitemap_indexer.config import Settings
from sitemap_indexer.constants import (
    SITEMAP_ACCEPT_HEADER,
    SITEMAP_FETCH_MAX_ATTEMPTS,
    SITEMAP_FETCH_TIMEOUT_SECONDS,
    SITEMAP_RETRY_BASE_DELAY_SECONDS,
)
from sitemap_indexer.exceptions import SitemapFetchError

GZIP_MAGIC = b"\x1f\x8b"
GZIP_CONTENT_TYPES = ("application/x-gzip", "application/gzip")
DEFAULT_ENCODING = "utf-8-sig"

_XML_ENCODING_RE = re.compile(
    rb"\A\s*<\?xml[^>]*?encoding\s*=\s*[\"']([A-Za-z0-9._-]+)[\"']"
)
_CHARSET_RE = re.compile(r"charset\s*=\s*[\"']?([A-Za-z0-9._-]+)", re.IGNORECASE)


class SitemapFetcher(Protocol):
    """Protocol for fetching robots.txt and sitemap documents as text."""

    async def fetch(self, url: str) -> str:
        """Fetch a document and return its decoded text.

        Raises:
            SitemapFetchError: If every attempt fails
            ValueError: If the payload claims to be gzip but cannot be decompressed
        """
        ...


def is_gzip_declared(url: str, content_type: str) -> bool:
    """True if the URL extension or content type says the body is gzip."""
    if urlparse(url).path.lower().endswith(".gz"):
        return True
    content_type = content_type.lower()
    return any(t in content_type for t in GZIP_CONTENT_TYPES)


def _known_codec(name: str) -> str | None:
    try:
        return codecs.lookup(name).name
    except LookupError:
        return None


def detect_encoding(content_type: str, body: bytes) -> str:
    """
    Pick the codec for a sitemap body.

    The XML declaration wins, then the Content-Type charset, then UTF-8.
    Unknown codec names are skipped.
    """
    declared = _XML_ENCODING_RE.match(body.lstrip(codecs.BOM_UTF8))
    if declared:
        codec = _known_codec(declared.group(1).decode("ascii"))
        if codec:
            return DEFAULT_ENCODING if codec == "utf-8" else codec
    charset = _CHARSET_RE.search(content_type)
    if charset:
        codec = _known_codec(charset.group(1))
        if codec:
            return DEFAULT_ENCODING if codec == "utf-8" else codec
    return DEFAULT_ENCODING


def decode_sitemap_body(url: str, content_type: str, body: bytes) -> str:
    """
    Decompress a gzip payload if needed and decode it to text.

    The codec follows the XML declaration or Content-Type charset, falling
    back to UTF-8. Undecodable bytes are replaced.

    A body declared as gzip that is not actually compressed (the transport
    already inflated it) is decoded as-is.

    Args:
        url: URL the body was fetched from
        content_type: Response Content-Type header
        body: Raw response body

    Returns:
        Decoded document text

    Raises:
        ValueError: If the body starts with the gzip magic bytes but is corrupt
    """
    if body[:2] == GZIP_MAGIC:
        try:
            body = gzip.decompress(body)
        except (OSError, EOFError) as e:
            raise ValueError(f"Invalid gzip payload from {url}: {e}") from e
        logfire.debug("Decompressed gzipped sitemap", url=url, size=len(body))
    elif is_gzip_declared(url, content_type):
        logfire.debug("Gzip declared but body is plain, decoding as-is", url=url)
    return body.decode(detect_encoding(content_type, body), errors="replace")


class HttpxSitemapFetcher:
    """Fetch sitemap documents with httpx, retrying failures with backoff."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        user_agent: str = "Mozilla/5.0 (compatible; SitemapIndexerBot/1.0)",
        timeout: float = SITEMAP_FETCH_TIMEOUT_SECONDS,
        max_attempts: int = SITEMAP_FETCH_MAX_ATTEMPTS,
        base_delay: float = SITEMAP_RETRY_BASE_DELAY_SECONDS,
    ):
        """Initialize the fetcher.

        Args:
            client: Shared AsyncClient; a short-lived client is created per
                    request when omitted
            user_agent: Self-identifying User-Agent header
            timeout: HTTP timeout in seconds
            max_attempts: Attempts per document before the error propagates
            base_delay: Backoff base; the nth retry waits base_delay * 2**n
        """
        self._client = client
        self._timeout = timeout
        self._max_attempts = max(1, max_attempts)
        self._base_delay = base_delay
        self._headers = {"User-Agent": user_agent, "Accept": SITEMAP_ACCEPT_HEADER}

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.AsyncClient | None = None
    ) -> "HttpxSitemapFetcher":
        return cls(
            client=client,
            user_agent=settings.sitemap_user_agent,
            timeout=settings.sitemap_fetch_timeout_seconds,
            max_attempts=settings.sitemap_fetch_max_attempts,
            base_delay=settings.sitemap_retry_base_delay_seconds,
        )

    def retry_delay(self, attempt: int) -> float:
        """Delay before retrying after the given (1-based) failed attempt."""
        return self._base_delay * (2**attempt)

    async def fetch(self, url: str) -> str:
        """Fetch with retry. The last attempt's error propagates."""
        attempt = 0
        while True:
            try:
                return await self._fetch_once(url)
            except SitemapFetchError as e:
                attempt += 1
                if attempt >= self._max_attempts:
                    logfire.warn(
                        "Sitemap fetch failed, retries exhausted",
                        url=url,
                        attempts=attempt,
                        error=str(e),
                    )
                    raise
                delay = self.retry_delay(attempt)
                logfire.info(
                    "Sitemap fetch failed, retrying",
                    url=url,
                    attempt=attempt,
                    delay_seconds=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)

    async def _fetch_once(self, url: str) -> str:
        logfire.info("Fetching sitemap document", url=url)
        try:
            if self._client is not None:
                response = await self._client.get(
                    url, headers=self._headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(
                    timeout=self._timeout,
                    follow_redirects=True,
                    headers=self._headers,
                ) as client:
                    response = await client.get(url)
        except httpx.HTTPError as e:
            raise SitemapFetchError(url, str(e) or type(e).__name__) from e

        if not response.is_success:
            raise SitemapFetchError(
                url,
                f"HTTP {response.status_code} {response.reason_phrase}".strip(),
                status_code=response.status_code,
            )

        return decode_sitemap_body(
            url, response.headers.get("content-type", ""), response.content
        )
