"""Database client and repository layer."""

from sitemap_indexer.db.document_store import (
    DocumentStore,
    DocumentWrite,
    SupabaseDocumentStore,
)
from sitemap_indexer.db.repository import SitemapRepository

__all__ = [
    "DocumentStore",
    "DocumentWrite",
    "SupabaseDocumentStore",
    "SitemapRepository",
]
