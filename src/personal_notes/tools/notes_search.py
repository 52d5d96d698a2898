"""notes_search MCP tool: full-text search and chronological listing."""

import logging
from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from personal_notes.errors import NotesError
from personal_notes.search.builder import parse_request
from personal_notes.search.service import NoteSearchService
from personal_notes.tools.formatters import format_search_result

logger = logging.getLogger(__name__)


async def run_search(
    service: NoteSearchService,
    user_id: str,
    query: str = "",
    tags: list[str] | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    page: int = 1,
    page_size: int = 10,
    sort: str | None = None,
) -> str:
    """Validate, search and format. Expected failures come back as ``Error:`` text."""
    date_range = None
    if date_from or date_to:
        date_range = {"from": date_from, "to": date_to}
    try:
        request = parse_request(
            requesting_user=user_id,
            query_text=query,
            tag_filter=tags,
            date_range=date_range,
            page=page,
            page_size=page_size,
            sort=sort,
        )
        result = await service.search(request)
    except NotesError as e:
        if e.retryable:
            logger.warning("Search failed for %s: %s", user_id, e)
            return f"Error: search is temporarily unavailable ({e}). Try again shortly."
        return f"Error: {e}"
    return format_search_result(result)


def register_notes_search(mcp: FastMCP) -> None:
    """Register the notes_search tool with the MCP server."""

    @mcp.tool()
    async def notes_search(
        user_id: Annotated[str, Field(description="ID of the user searching (e.g. user-00001)")],
        query: Annotated[
            str, Field(description="Free text; matches title, content and tags")
        ] = "",
        tags: Annotated[
            list[str] | None, Field(description="Only notes with at least one of these tags")
        ] = None,
        date_from: Annotated[
            str | None, Field(description="Created on or after this day (YYYY-MM-DD)")
        ] = None,
        date_to: Annotated[
            str | None, Field(description="Created on or before this day (YYYY-MM-DD)")
        ] = None,
        page: Annotated[int, Field(description="1-based page number")] = 1,
        page_size: Annotated[int, Field(description="Results per page (1-50)")] = 10,
        sort: Annotated[
            str | None,
            Field(
                description=(
                    "field:direction with field one of createdAt, updatedAt, title, relevance"
                    " and direction asc or desc. Defaults to createdAt:desc; relevance applies"
                    " only to text queries"
                ),
            ),
        ] = None,
        ctx: Context | None = None,
    ) -> str:
        """Search the notes a user owns or collaborates on.

        Text queries match as you type, tolerate typos and boost exact words,
        with highlighted snippets. Tags and dates filter the results. With no
        query, tags or dates the user's notes are listed newest first.
        """
        if ctx is None:
            raise RuntimeError("Context not injected")
        service: NoteSearchService = ctx.lifespan_context["search"]
        return await run_search(
            service,
            user_id,
            query=query,
            tags=tags,
            date_from=date_from,
            date_to=date_to,
            page=page,
            page_size=page_size,
            sort=sort,
        )
