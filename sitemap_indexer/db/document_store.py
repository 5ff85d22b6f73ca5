"""Document store abstraction and its Supabase implementation.

The pipeline only needs a handful of operations on two collections
(sites and sitemaps), plus one all-or-nothing multi-record commit.
"""

import time
from dataclasses import dataclass, field
from typing import Any, List, Protocol

import logfire
from supabase import Client

from sitemap_indexer.constants import COMMIT_WRITES_RPC
from sitemap_indexer.exceptions import DocumentNotFoundError


@dataclass
class DocumentWrite:
    """A partial update of one record, applied as part of a commit."""

    collection: str
    doc_id: str
    fields: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {"collection": self.collection, "id": self.doc_id, "fields": self.fields}


class DocumentStore(Protocol):
    """Protocol for record persistence.

    Field values must be JSON-serializable. A None value clears the field.
    """

    def get(self, collection: str, doc_id: str) -> dict[str, Any]:
        """Return the record, raising DocumentNotFoundError if it does not exist."""
        ...

    def create(self, collection: str, fields: dict[str, Any]) -> str:
        """Insert a record and return its new id."""
        ...

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Apply a partial update to one record."""
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        """Delete one record. Deleting a missing record is not an error."""
        ...

    def query(self, collection: str, field_name: str, value: Any) -> List[dict[str, Any]]:
        """Return all records whose field equals value."""
        ...

    def commit(self, writes: List[DocumentWrite]) -> None:
        """Apply all writes atomically: either every write lands or none does."""
        ...


class SupabaseDocumentStore:
    """DocumentStore backed by Supabase tables.

    Atomic commits go through a Postgres function (see migrations/) since
    the REST API has no multi-statement transactions.
    """

    def __init__(self, client: Client):
        self._client = client

    def get(self, collection: str, doc_id: str) -> dict[str, Any]:
        result = (
            self._client.table(collection).select("*").eq("id", doc_id).execute()
        )
        if not result.data:
            raise DocumentNotFoundError(collection, doc_id)
        return result.data[0]

    def create(self, collection: str, fields: dict[str, Any]) -> str:
        start_time = time.time()
        try:
            result = self._client.table(collection).insert(fields).execute()
        except Exception as e:
            logfire.error(
                "Error creating document",
                collection=collection,
                error=str(e),
                error_type=type(e).__name__,
                response_time_ms=(time.time() - start_time) * 1000,
            )
            raise

        if not result.data:
            logfire.error("Failed to create document", collection=collection)
            raise ValueError(f"Failed to create document in {collection}")

        doc_id = str(result.data[0]["id"])
        logfire.debug(
            "Document created",
            collection=collection,
            document_id=doc_id,
            response_time_ms=(time.time() - start_time) * 1000,
        )
        return doc_id

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        try:
            self._client.table(collection).update(fields).eq("id", doc_id).execute()
        except Exception as e:
            logfire.error(
                "Error updating document",
                collection=collection,
                document_id=doc_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    def delete(self, collection: str, doc_id: str) -> None:
        self._client.table(collection).delete().eq("id", doc_id).execute()

    def query(self, collection: str, field_name: str, value: Any) -> List[dict[str, Any]]:
        result = (
            self._client.table(collection).select("*").eq(field_name, value).execute()
        )
        return list(result.data or [])

    def commit(self, writes: List[DocumentWrite]) -> None:
        start_time = time.time()
        payload = [w.to_payload() for w in writes]
        try:
            self._client.rpc(COMMIT_WRITES_RPC, {"writes": payload}).execute()
        except Exception as e:
            logfire.error(
                "Error committing document writes",
                write_count=len(writes),
                error=str(e),
                error_type=type(e).__name__,
                response_time_ms=(time.time() - start_time) * 1000,
            )
            raise
        logfire.debug(
            "Document writes committed",
            write_count=len(writes),
            response_time_ms=(time.time() - start_time) * 1000,
        )
