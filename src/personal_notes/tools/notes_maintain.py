"""notes_maintain MCP tool: search index maintenance operations."""

import logging
from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from personal_notes.db.backend import Database
from personal_notes.db.queries import get_store_stats
from personal_notes.errors import NotesError
from personal_notes.search.index import SearchIndex
from personal_notes.sync.synchronizer import IndexSynchronizer

logger = logging.getLogger(__name__)

_ACTIONS = {
    "stats",
    "ensure_index",
    "resync",
    "sync_stale",
}


def register_notes_maintain(mcp: FastMCP) -> None:
    """Register the notes_maintain tool with the MCP server."""

    @mcp.tool()
    async def notes_maintain(
        action: Annotated[
            str,
            Field(description="Maintenance action: stats, ensure_index, resync, sync_stale"),
        ],
        recreate: Annotated[
            bool,
            Field(description="For ensure_index: drop and recreate an incompatible index"),
        ] = False,
        start_after: Annotated[
            str | None,
            Field(description="For resync: resume after this note ID (skips orphan pruning)"),
        ] = None,
        ctx: Context | None = None,
    ) -> str:
        """Administrative maintenance for the search index.

        Requires NOTES_MANAGER=TRUE environment variable.

        Actions:
        - stats: Note, user and stale-index counts plus sync failures since start
        - ensure_index: Create the index if missing; recreate=True replaces an incompatible one
        - resync: Rebuild every search document from the record store (idempotent)
        - sync_stale: Re-index only notes whose last index write failed
        """
        if ctx is None:
            raise RuntimeError("Context not injected")

        if action not in _ACTIONS:
            return f"Unknown action '{action}'. Use: {', '.join(sorted(_ACTIONS))}"

        lifespan = ctx.lifespan_context
        db: Database = lifespan["db"]
        index: SearchIndex = lifespan["index"]
        synchronizer: IndexSynchronizer = lifespan["synchronizer"]

        if action == "stats":
            return await _action_stats(db, synchronizer)
        elif action == "ensure_index":
            return await _action_ensure_index(index, recreate)
        elif action == "resync":
            return await _action_resync(synchronizer, start_after)
        elif action == "sync_stale":
            return await _action_sync_stale(synchronizer)

        return "Action not implemented."


async def _action_stats(db: Database, synchronizer: IndexSynchronizer) -> str:
    """Record store overview with index staleness."""
    stats = await get_store_stats(db)

    lines = ["Notes Statistics\n"]
    lines.append(f"Users: {stats['users']}")
    lines.append(f"Notes: {stats['notes']} total ({stats['pinned_notes']} pinned)")
    lines.append(f"Awaiting re-index: {stats['stale_notes']}")
    lines.append(f"\nIndex sync failures since start: {synchronizer.failure_count}")
    if synchronizer.last_failure:
        lines.append(f"Last failure: {synchronizer.last_failure}")
    return "\n".join(lines)


async def _action_ensure_index(index: SearchIndex, recreate: bool) -> str:
    """Create or verify the search index."""
    try:
        outcome = await index.ensure_index_schema(recreate=recreate)
    except NotesError as e:
        return f"Error: {e}"
    if outcome == "recreated":
        return "Search index recreated. Run resync to repopulate it."
    if outcome == "created":
        return "Search index created. Run resync if notes already exist."
    return "Search index exists with a compatible mapping."


async def _action_resync(synchronizer: IndexSynchronizer, start_after: str | None) -> str:
    """Full rebuild of search documents."""
    try:
        count = await synchronizer.resync(start_after=start_after)
    except NotesError as e:
        return f"Error: {e}"
    scope = f"after {start_after}" if start_after else "all notes"
    return f"Re-sync complete ({scope}): {count} document(s) written"


async def _action_sync_stale(synchronizer: IndexSynchronizer) -> str:
    """Re-index notes left stale by failed writes."""
    before = synchronizer.failure_count
    try:
        fixed = await synchronizer.sync_stale()
    except NotesError as e:
        return f"Error: {e}"
    failed = synchronizer.failure_count - before
    if not fixed and not failed:
        return "No notes need re-indexing."
    return f"Sync stale: {fixed} re-indexed, {failed} failed"
