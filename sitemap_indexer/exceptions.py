"""Exception hierarchy for the sitemap pipeline.

Messages on SitemapProcessingError subclasses are written to the site
record, so they must be safe to show to end users.
"""


class SitemapIndexerError(Exception):
    """Base exception for all sitemap indexer errors."""

    pass


class SitemapFetchError(SitemapIndexerError):
    """Raised when a robots.txt or sitemap request fails (transport or non-2xx)."""

    def __init__(self, url: str, reason: str, status_code: int | None = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to fetch {url}: {reason}")


class SitemapProcessingError(SitemapIndexerError):
    """Raised for failures that end a processing run with a user-visible message."""

    pass


class SiteNotFoundError(SitemapProcessingError):
    """Raised when the site record to process does not exist."""

    pass


class SitemapNotFoundError(SitemapProcessingError):
    """Raised when no sitemap could be found or none of them yielded pages."""

    pass


class CrawlFailedError(SitemapProcessingError):
    """Raised when a sitemap was found but no page could be extracted."""

    pass


class RenderError(SitemapIndexerError):
    """Raised by a rendering session when navigation or extraction fails."""

    pass


class RenderTimeoutError(RenderError):
    """Raised when a page does not reach the requested state in time."""

    pass


class DocumentNotFoundError(SitemapIndexerError):
    """Raised by a document store when a record id does not exist."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection}/{doc_id} not found")
