"""Shared pytest fixtures and configuration.

Fixture Categories:
1. Infrastructure: settings, respx_mock, in-memory document store, repository
2. Rendering: fake renderer whose sessions serve canned titles/descriptions
3. Sitemap builders: helpers producing url-set / sitemap-index XML
"""

import asyncio
import copy
import os
import uuid
from typing import Any
from unittest.mock import patch

import pytest

# Settings requires Supabase credentials; tests never talk to Supabase
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
# Suppress warnings when logfire isn't configured
os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

import logfire
import respx

from sitemap_indexer.config import Settings
from sitemap_indexer.db.document_store import DocumentWrite
from sitemap_indexer.db.repository import SitemapRepository
from sitemap_indexer.exceptions import DocumentNotFoundError, RenderError


SITE_URL = "https://example.com"


@pytest.fixture
def respx_mock():
    """Respx mock fixture for HTTP mocking."""
    with respx.mock(assert_all_called=False) as mock:
        yield mock


@pytest.fixture
def logfire_capture():
    """
    Capture Logfire calls for assertion.

    Yields a list of (level, args, kwargs) tuples; the real Logfire
    functions still run.
    """
    captured_logs = []

    def capturing(level, original):
        def capture(*args, **kwargs):
            captured_logs.append((level, args, kwargs))
            return original(*args, **kwargs)

        return capture

    with (
        patch("logfire.info", side_effect=capturing("info", logfire.info)),
        patch("logfire.warn", side_effect=capturing("warn", logfire.warn)),
        patch("logfire.error", side_effect=capturing("error", logfire.error)),
    ):
        yield captured_logs


@pytest.fixture
def settings():
    """Settings with fast retries and a small pool for tests."""
    return Settings(
        supabase_url="https://test.supabase.co",
        supabase_service_key="test-service-key",
        env="local",
        logfire_token=None,
        crawler_name="TestBot",
        crawler_info_url="https://bot.example.org",
        sitemap_retry_base_delay_seconds=0.0,
        worker_creation_delay_seconds=0.0,
        crawl_concurrency=3,
        page_timeout_seconds=1.0,
        renderer_backend="http",
    )


# =============================================================================
# Document Store
# =============================================================================


class InMemoryDocumentStore:
    """DocumentStore keeping collections in dicts, with an operation log."""

    def __init__(self):
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.operations: list[tuple[str, str, str, dict[str, Any]]] = []
        self.fail_on: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RuntimeError(f"store {operation} failed")

    def _table(self, collection: str) -> dict[str, dict[str, Any]]:
        return self.collections.setdefault(collection, {})

    def get(self, collection, doc_id):
        self._check("get")
        try:
            return copy.deepcopy(self._table(collection)[doc_id])
        except KeyError:
            raise DocumentNotFoundError(collection, doc_id) from None

    def create(self, collection, fields):
        self._check("create")
        doc_id = str(uuid.uuid4())
        self._table(collection)[doc_id] = {"id": doc_id, **copy.deepcopy(fields)}
        self.operations.append(("create", collection, doc_id, fields))
        return doc_id

    def update(self, collection, doc_id, fields):
        self._check("update")
        table = self._table(collection)
        if doc_id not in table:
            raise DocumentNotFoundError(collection, doc_id)
        table[doc_id].update(copy.deepcopy(fields))
        self.operations.append(("update", collection, doc_id, fields))

    def delete(self, collection, doc_id):
        self._check("delete")
        self._table(collection).pop(doc_id, None)
        self.operations.append(("delete", collection, doc_id, {}))

    def query(self, collection, field_name, value):
        self._check("query")
        return [
            copy.deepcopy(doc)
            for doc in self._table(collection).values()
            if doc.get(field_name) == value
        ]

    def commit(self, writes: list[DocumentWrite]):
        self._check("commit")
        for write in writes:
            if write.doc_id not in self._table(write.collection):
                raise DocumentNotFoundError(write.collection, write.doc_id)
        for write in writes:
            self._table(write.collection)[write.doc_id].update(copy.deepcopy(write.fields))
        self.operations.append(("commit", "*", "*", {"writes": len(writes)}))

    def updates_to(self, collection: str, field_name: str) -> list[Any]:
        """Values written to field_name through update() on collection."""
        return [
            fields[field_name]
            for op, coll, _, fields in self.operations
            if op == "update" and coll == collection and field_name in fields
        ]


@pytest.fixture
def memory_store():
    """Empty in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def repository(memory_store):
    """SitemapRepository over the in-memory store."""
    return SitemapRepository(memory_store)


@pytest.fixture
def make_site(memory_store):
    """Insert a site record directly and return its id."""

    def _make(url: str = SITE_URL, **fields) -> str:
        return memory_store.create("sites", {"url": url, **fields})

    return _make


# =============================================================================
# Rendering
# =============================================================================


class FakeRenderSession:
    """Session serving canned results from its renderer."""

    def __init__(self, renderer: "FakeRenderer"):
        self._renderer = renderer
        self._current: str | None = None
        self.user_agent: str | None = None
        self.closed = False

    async def set_user_agent(self, user_agent):
        self.user_agent = user_agent

    async def visit(self, url, *, wait_until, timeout_ms):
        self._renderer.visits.append((url, wait_until, timeout_ms))
        self._renderer.active += 1
        self._renderer.max_active = max(self._renderer.max_active, self._renderer.active)
        try:
            delay = self._renderer.delays.get(url, self._renderer.default_delay)
            if delay:
                await asyncio.sleep(delay)
            error = self._renderer.failures.get(url)
            if error is not None:
                raise error
            self._current = url
        finally:
            self._renderer.active -= 1

    async def get_title(self):
        return self._renderer.pages.get(self._current, (f"Title of {self._current}", None))[0]

    async def extract(self, selector, attribute):
        self._renderer.extractions.append((selector, attribute))
        return self._renderer.pages.get(self._current, ("", None))[1]

    async def close(self):
        self.closed = True
        self._renderer.closed += 1


class FakeRenderer:
    """Renderer recording session lifecycle and concurrency.

    pages: url -> (title, description); unknown URLs get "Title of <url>"
    failures: url -> exception raised by visit()
    delays: url -> seconds visit() sleeps
    """

    def __init__(self):
        self.pages: dict[str, tuple[str, str | None]] = {}
        self.failures: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}
        self.default_delay = 0.0
        self.open_error: Exception | None = None
        self.sessions: list[FakeRenderSession] = []
        self.visits: list[tuple[str, str, int]] = []
        self.extractions: list[tuple[str, str]] = []
        self.active = 0
        self.max_active = 0
        self.closed = 0

    async def open(self):
        if self.open_error is not None:
            raise self.open_error
        session = FakeRenderSession(self)
        self.sessions.append(session)
        return session

    def fail(self, url: str, message: str = "navigation failed"):
        self.failures[url] = RenderError(message)


@pytest.fixture
def fake_renderer():
    """Renderer whose sessions serve canned page metadata."""
    return FakeRenderer()


# =============================================================================
# Sitemap Builders
# =============================================================================

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"


def urlset_xml(entries) -> str:
    """entries: iterable of url or (url, lastmod) tuples."""
    parts = [f'<?xml version="1.0" encoding="UTF-8"?>\n<urlset xmlns="{SITEMAP_NS}">']
    for entry in entries:
        loc, lastmod = entry if isinstance(entry, tuple) else (entry, None)
        parts.append(f"<url><loc>{loc}</loc>")
        if lastmod:
            parts.append(f"<lastmod>{lastmod}</lastmod>")
        parts.append("</url>")
    parts.append("</urlset>")
    return "".join(parts)


def sitemap_index_xml(locations) -> str:
    parts = [f'<?xml version="1.0" encoding="UTF-8"?>\n<sitemapindex xmlns="{SITEMAP_NS}">']
    for loc in locations:
        parts.append(f"<sitemap><loc>{loc}</loc></sitemap>")
    parts.append("</sitemapindex>")
    return "".join(parts)


@pytest.fixture
def build_urlset():
    return urlset_xml


@pytest.fixture
def build_sitemap_index():
    return sitemap_index_xml
