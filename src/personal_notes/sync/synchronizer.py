"""Index synchronizer: write-through mirror of record store mutations.

Hooks run after the record store has committed. An index write failure
never fails the mutation that triggered it: it is logged, counted and the
note stays flagged ``needs_reindex`` until ``sync_stale`` or ``resync``
catches it up.
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from personal_notes.config import get_resync_batch_size, get_search_timeout
from personal_notes.errors import SyncFailure
from personal_notes.models.note import Note
from personal_notes.search.documents import partial_document, to_search_document
from personal_notes.search.index import SearchIndex
from personal_notes.store.note_store import NoteStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class IndexSynchronizer:
    """Keeps the search index in step with the record store."""

    def __init__(self, store: NoteStore, index: SearchIndex, timeout: float | None = None):
        """Initialize with a record store and the index it feeds."""
        self.store = store
        self.index = index
        self.timeout = timeout
        self.failure_count = 0
        self.last_failure: str | None = None
        self.last_synced_id: str | None = None

    # -- Hooks --

    async def on_note_created(self, note: Note) -> bool:
        """Index a new note and refresh so it is searchable immediately."""
        try:
            await self._write_full(note, refresh=True)
            await self.store.mark_indexed(note.id, note.updated_at)
        except Exception:
            await self._record_failure("index", note.id)
            return False
        return True

    async def on_note_updated(self, note: Note, changed_fields: set[str]) -> bool:
        """Send the changed fields (always with updatedAt) to the index.

        A note missing from the index gets its full document written instead.
        """
        try:
            partial = partial_document(note, changed_fields)
            found = await self._bounded(
                self.index.update_document(note.id, partial, refresh=True)
            )
            if not found:
                logger.info("Note %s missing from index, writing full document", note.id)
                await self._write_full(note, refresh=True)
            await self.store.mark_indexed(note.id, note.updated_at)
        except Exception:
            await self._record_failure("update", note.id)
            return False
        return True

    async def on_note_deleted(self, note_id: str) -> bool:
        """Remove a deleted note's document. Already-absent documents are fine."""
        try:
            await self._bounded(self.index.delete_document(note_id, refresh=True))
        except Exception:
            await self._record_failure("delete", note_id)
            return False
        return True

    # -- Repair --

    async def resync(self, start_after: str | None = None) -> int:
        """Rebuild every search document from the record store, in ID order.

        Safe to run alongside live traffic and to re-run. If a write fails
        the run stops with SyncFailure; ``last_synced_id`` tells where to
        resume with ``start_after``. Only a full pass (no ``start_after``)
        prunes index documents whose note no longer exists.

        Returns the number of documents written.
        """
        batch_size = get_resync_batch_size()
        self.last_synced_id = start_after
        after = start_after
        written = 0

        while True:
            ids = await self.store.iter_note_ids(after, batch_size)
            if not ids:
                break
            notes = await self.store.get_notes(ids)
            for note_id in ids:
                note = notes.get(note_id)
                if note is None:
                    continue  # deleted since the id page was read
                try:
                    await self._write_full(note)
                except Exception as e:
                    await self._record_failure("resync", note_id)
                    resume = (
                        f"resume with start_after={self.last_synced_id}"
                        if self.last_synced_id
                        else "restart from the beginning"
                    )
                    raise SyncFailure(
                        f"Re-sync stopped at {note_id} after {written} document(s);"
                        f" {resume}"
                    ) from e
                await self.store.mark_indexed(note.id, note.updated_at)
                written += 1
                self.last_synced_id = note_id
            after = ids[-1]

        if start_after is None:
            pruned = await self.prune_orphans()
            if pruned:
                logger.info("Pruned %d orphaned search document(s)", pruned)

        await self._bounded(self.index.refresh())
        logger.info("Re-sync wrote %d search document(s)", written)
        return written

    async def prune_orphans(self) -> int:
        """Delete index documents whose note is gone from the record store."""
        batch_size = get_resync_batch_size()
        after: str | None = None
        pruned = 0
        while True:
            ids = await self._bounded(self.index.scan_ids(after, batch_size))
            if not ids:
                break
            existing = await self.store.existing_ids(ids)
            for doc_id in ids:
                if doc_id not in existing:
                    await self._bounded(self.index.delete_document(doc_id))
                    pruned += 1
            after = ids[-1]
        return pruned

    async def sync_stale(self) -> int:
        """Re-index only the notes whose last index write failed.

        Failures stay flagged and are counted. Returns the number fixed.
        """
        ids = await self.store.get_stale_note_ids()
        if not ids:
            return 0
        notes = await self.store.get_notes(ids)
        fixed = 0
        for note_id in ids:
            note = notes.get(note_id)
            if note is None:
                continue
            try:
                await self._write_full(note)
                await self.store.mark_indexed(note.id, note.updated_at)
                fixed += 1
            except Exception:
                await self._record_failure("index", note_id)
        if fixed:
            await self._bounded(self.index.refresh())
        return fixed

    # -- Internals --

    async def _write_full(self, note: Note, refresh: bool = False) -> None:
        document = to_search_document(note).to_source()
        await self._bounded(self.index.index_document(note.id, document, refresh=refresh))

    async def _bounded(self, call: Awaitable[T]) -> T:
        timeout = self.timeout if self.timeout is not None else get_search_timeout()
        async with asyncio.timeout(timeout):
            return await call

    async def _record_failure(self, operation: str, note_id: str) -> None:
        self.failure_count += 1
        self.last_failure = f"{operation} {note_id}"
        logger.warning(
            "Search index %s failed for note %s; index is stale until re-sync",
            operation,
            note_id,
            exc_info=True,
        )
        if operation == "delete":
            return
        try:
            await self.store.mark_stale(note_id)
        except Exception:
            logger.exception("Could not flag note %s for re-indexing", note_id)
