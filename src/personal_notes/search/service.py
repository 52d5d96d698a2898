"""Note search: build, execute, reconcile, or fall back to a plain listing."""

import asyncio
import logging

from personal_notes.config import get_search_timeout, get_store_timeout
from personal_notes.errors import RecordStoreUnavailable, SearchUnavailable
from personal_notes.models.search import SearchRequest, SearchResult
from personal_notes.search.builder import build_query
from personal_notes.search.index import SearchIndex
from personal_notes.search.reconciler import ResultReconciler, build_item, total_pages
from personal_notes.store.note_store import NoteStore

logger = logging.getLogger(__name__)


class NoteSearchService:
    """Answers search requests against the index, backed by the record store."""

    def __init__(
        self,
        store: NoteStore,
        index: SearchIndex,
        *,
        search_timeout: float | None = None,
        store_timeout: float | None = None,
    ):
        """Initialize with a record store and a search index. Timeouts default to config."""
        self.store = store
        self.index = index
        self.search_timeout = search_timeout
        self.store_timeout = store_timeout
        self.reconciler = ResultReconciler(store, timeout=store_timeout)

    async def search(self, request: SearchRequest) -> SearchResult:
        """Run one search request.

        Requests without text, tags or dates are answered by a chronological
        listing from the record store; the index is not consulted. Index
        failures raise SearchUnavailable and are never papered over with
        unfiltered data.
        """
        query = build_query(request)
        if query is None:
            return await self._listing(request)

        timeout = self.search_timeout if self.search_timeout is not None else get_search_timeout()
        try:
            async with asyncio.timeout(timeout):
                response = await self.index.search(query)
        except TimeoutError as e:
            raise SearchUnavailable(f"Search index did not answer within {timeout}s") from e

        logger.debug(
            "Search for %s: %d hit(s) of %d",
            request.requesting_user,
            len(response.hits),
            response.total,
        )
        return await self.reconciler.reconcile(response, request)

    async def _listing(self, request: SearchRequest) -> SearchResult:
        timeout = self.store_timeout if self.store_timeout is not None else get_store_timeout()
        try:
            async with asyncio.timeout(timeout):
                views, total = await self.store.list_notes(
                    request.requesting_user, request.page, request.page_size
                )
        except TimeoutError as e:
            raise RecordStoreUnavailable(f"Note listing timed out after {timeout}s") from e

        return SearchResult(
            items=[build_item(v) for v in views],
            page=request.page,
            page_size=request.page_size,
            total_count=total,
            total_pages=total_pages(total, request.page_size),
            mode="listing",
        )
