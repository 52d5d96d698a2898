"""Search index protocol.

The search index is a disposable, eventually-consistent mirror of the
record store. Read-path failures raise SearchUnavailable; write-path
failures raise SyncFailure.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from personal_notes.models.search import IndexResponse
from personal_notes.search.query import IndexQuery


@runtime_checkable
class SearchIndex(Protocol):
    """Full-text search engine holding one document per note."""

    async def ensure_index_schema(self, *, recreate: bool = False) -> str:
        """Create the index if missing. Returns "created", "exists" or "recreated"."""
        ...

    async def index_document(
        self, doc_id: str, document: dict[str, Any], *, refresh: bool = False
    ) -> None:
        """Create or replace a document."""
        ...

    async def update_document(
        self, doc_id: str, partial: dict[str, Any], *, refresh: bool = False
    ) -> bool:
        """Overwrite some fields of a document. Returns False if it does not exist."""
        ...

    async def delete_document(self, doc_id: str, *, refresh: bool = False) -> bool:
        """Remove a document. Returns False if it was already absent."""
        ...

    async def search(self, query: IndexQuery) -> IndexResponse:
        """Run a query and return hits in ranking order."""
        ...

    async def refresh(self) -> None:
        """Make all writes so far visible to search."""
        ...

    async def scan_ids(self, after: str | None, limit: int) -> list[str]:
        """Page through document IDs in ascending order, strictly after ``after``."""
        ...

    async def close(self) -> None:
        """Release client resources."""
        ...
