"""Application context: the collaborators one process shares.

Built once per process (API lifespan or CLI command) and passed down
explicitly instead of living in module-level singletons.
"""

import httpx

from sitemap_indexer.config import Settings, get_settings
from sitemap_indexer.db.client import get_supabase_client
from sitemap_indexer.db.document_store import DocumentStore, SupabaseDocumentStore
from sitemap_indexer.db.repository import SitemapRepository
from sitemap_indexer.services.dispatcher import CrawlDispatcher
from sitemap_indexer.services.page_crawler import PageCrawler
from sitemap_indexer.services.renderer import Renderer, get_renderer
from sitemap_indexer.services.site_trigger import SiteTrigger
from sitemap_indexer.services.sitemap_fetcher import HttpxSitemapFetcher
from sitemap_indexer.services.sitemap_processor import SitemapProcessor
from sitemap_indexer.services.sitemap_resolver import SitemapResolver


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    """Shared client for robots.txt and sitemap requests."""
    return httpx.AsyncClient(
        timeout=settings.sitemap_fetch_timeout_seconds,
        follow_redirects=True,
    )


def build_resolver(settings: Settings, http_client: httpx.AsyncClient) -> SitemapResolver:
    fetcher = HttpxSitemapFetcher.from_settings(settings, client=http_client)
    return SitemapResolver.from_settings(settings, fetcher)


def build_crawler(settings: Settings, renderer: Renderer) -> PageCrawler:
    return PageCrawler.from_settings(settings, renderer)


class AppContext:
    """Wire settings, storage, HTTP and rendering into the pipeline services."""

    def __init__(
        self,
        settings: Settings,
        store: DocumentStore,
        renderer: Renderer,
        http_client: httpx.AsyncClient,
    ):
        self.settings = settings
        self.store = store
        self.renderer = renderer
        self.http_client = http_client
        self.repository = SitemapRepository(store)
        self.resolver = build_resolver(settings, http_client)
        self.crawler = build_crawler(settings, renderer)
        self.processor = SitemapProcessor.from_settings(
            settings, self.repository, self.resolver, self.crawler
        )
        self.dispatcher = CrawlDispatcher.from_settings(settings, self.processor)
        self.trigger = SiteTrigger(self.repository, self.dispatcher)

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        store: DocumentStore | None = None,
        renderer: Renderer | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "AppContext":
        """Build a context, defaulting each collaborator from settings."""
        settings = settings or get_settings()
        return cls(
            settings=settings,
            store=store or SupabaseDocumentStore(get_supabase_client(settings)),
            renderer=renderer or get_renderer(settings),
            http_client=http_client or create_http_client(settings),
        )

    async def aclose(self, timeout: float | None = None) -> None:
        """Drain dispatched runs, then release the HTTP client."""
        try:
            await self.dispatcher.shutdown(timeout)
        finally:
            await self.http_client.aclose()

    async def __aenter__(self) -> "AppContext":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
