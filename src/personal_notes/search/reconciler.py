"""Result reconciler: merge search index hits with authoritative notes.

The index is only trusted for ranking, scores and highlights. Every field
shown to the user comes from the record store, and hits whose note is gone
(or no longer visible to the requester) are dropped and subtracted from
the total.
"""

import asyncio
import logging
import math

from personal_notes.config import get_store_timeout
from personal_notes.errors import RecordStoreUnavailable
from personal_notes.models.note import NoteView
from personal_notes.models.search import (
    IndexResponse,
    SearchHit,
    SearchRequest,
    SearchResult,
    SearchResultItem,
)
from personal_notes.store.note_store import NoteStore

logger = logging.getLogger(__name__)

CONTENT_HIGHLIGHT_LIMIT = 200
HIGHLIGHTABLE_FIELDS = ("title", "content", "tags")


def truncate_highlight(text: str, limit: int = CONTENT_HIGHLIGHT_LIMIT) -> str:
    """Cut ``text`` to ``limit`` characters plus an ellipsis when longer."""
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def total_pages(total_count: int, page_size: int) -> int:
    return math.ceil(total_count / page_size) if total_count > 0 else 0


def build_item(view: NoteView, hit: SearchHit | None = None) -> SearchResultItem:
    """Result item for a note, decorated with a hit's score and highlights if given."""
    note = view.note
    highlight = hit.highlight if hit is not None else {}
    title_hl = (highlight.get("title") or [note.title])[0]
    content_hl = (highlight.get("content") or [note.content])[0]
    return SearchResultItem(
        id=note.id,
        title=note.title,
        content=note.content,
        content_type=note.content_type,
        tags=list(note.tags),
        owner=view.owner,
        collaborators=list(view.collaborators),
        folder_id=note.folder_id,
        is_pinned=note.is_pinned,
        created_at=note.created_at,
        updated_at=note.updated_at,
        relevance_score=hit.score if hit is not None else None,
        title_highlight=title_hl,
        content_highlight=truncate_highlight(content_hl),
        matched_fields=[f for f in HIGHLIGHTABLE_FIELDS if highlight.get(f)],
    )


def merge_hits(
    response: IndexResponse,
    views: dict[str, NoteView],
    request: SearchRequest,
) -> SearchResult:
    """Merge hits with loaded notes, keeping the index's order.

    Pure: the same response and notes always give the same result.
    """
    items: list[SearchResultItem] = []
    dropped = 0
    for hit in response.hits:
        view = views.get(hit.id)
        if view is None or not view.note.is_visible_to(request.requesting_user):
            dropped += 1
            continue
        items.append(build_item(view, hit))

    total = max(0, response.total - dropped)
    return SearchResult(
        items=items,
        page=request.page,
        page_size=request.page_size,
        total_count=total,
        total_pages=total_pages(total, request.page_size),
        mode="search",
        dropped_count=dropped,
    )


class ResultReconciler:
    """Loads the notes behind a page of hits and merges them."""

    def __init__(self, store: NoteStore, timeout: float | None = None):
        self.store = store
        self.timeout = timeout

    async def reconcile(self, response: IndexResponse, request: SearchRequest) -> SearchResult:
        ids = list(dict.fromkeys(hit.id for hit in response.hits))
        views = await self._load(ids)
        result = merge_hits(response, views, request)
        if result.dropped_count:
            logger.info(
                "Dropped %d hit(s) with no visible note for %s",
                result.dropped_count,
                request.requesting_user,
            )
        return result

    async def _load(self, ids: list[str]) -> dict[str, NoteView]:
        if not ids:
            return {}
        timeout = self.timeout if self.timeout is not None else get_store_timeout()
        try:
            async with asyncio.timeout(timeout):
                return await self.store.find_many_by_ids(ids)
        except TimeoutError as e:
            raise RecordStoreUnavailable(
                f"Record store lookup of {len(ids)} note(s) timed out after {timeout}s"
            ) from e
