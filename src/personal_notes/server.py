"""FastMCP server with lifespan management and tool registration."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP

from personal_notes.config import get_db_path, get_log_level, is_manager_mode
from personal_notes.db.connection import create_connection
from personal_notes.errors import IndexSchemaMismatch, SearchUnavailable
from personal_notes.search.opensearch import OpenSearchIndex
from personal_notes.search.service import NoteSearchService
from personal_notes.store.note_store import NoteStore
from personal_notes.sync.synchronizer import IndexSynchronizer
from personal_notes.tools.notes_maintain import register_notes_maintain
from personal_notes.tools.notes_search import register_notes_search
from personal_notes.tools.notes_write import register_notes_write


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[dict[str, Any]]:
    """Manage database connection and search index client lifecycle."""
    # Configure logging to stderr (stdout is MCP stdio transport)
    logging.basicConfig(
        level=getattr(logging, get_log_level().upper(), logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    logger = logging.getLogger(__name__)

    db_path = get_db_path()
    logger.info("Opening database at %s", db_path)
    db = await create_connection(db_path)

    store = NoteStore(db)
    index = OpenSearchIndex()
    synchronizer = IndexSynchronizer(store, index)
    search = NoteSearchService(store, index)

    # Never recreate here; an incompatible index is left for notes_maintain
    try:
        outcome = await index.ensure_index_schema()
        logger.info("Search index %s: %s", index.index_name, outcome)
    except SearchUnavailable:
        logger.warning(
            "Search index unreachable at %s; searches fail until it is back",
            index.base_url,
            exc_info=True,
        )
    except IndexSchemaMismatch as e:
        logger.error("%s; run notes_maintain ensure_index with recreate=True", e)

    try:
        yield {
            "db": db,
            "store": store,
            "index": index,
            "synchronizer": synchronizer,
            "search": search,
        }
    finally:
        await index.close()
        await db.close()
        logger.info("Database connection closed")


_INSTRUCTIONS = """\
Private notes with full-text search. Every call acts on behalf of a user \
(user_id, e.g. user-00001); users only ever see notes they own or that \
were shared with them.

SEARCHING:
- notes_search: Free text matches as you type, tolerates typos and boosts \
exact words in titles, content and tags. Filter by tags (any of) and by \
creation date (inclusive days). With no query, tags or dates it lists the \
user's notes newest first.

WRITING:
- notes_write: register_user, create, update (owner or collaborator), and \
owner-only share, unshare, pin, move, add_image, remove_image, delete. \
Changes are searchable as soon as the call returns.
"""


def create_server() -> FastMCP:
    """Create and configure the MCP server with all tools."""
    mcp = FastMCP(
        "personal-notes",
        instructions=_INSTRUCTIONS,
        lifespan=lifespan,
    )

    register_notes_search(mcp)
    register_notes_write(mcp)

    if is_manager_mode():
        register_notes_maintain(mcp)

    return mcp
