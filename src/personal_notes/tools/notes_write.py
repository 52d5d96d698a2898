"""notes_write MCP tool: create, change, share and delete notes.

Every mutation commits to the record store first, then goes through the
index synchronizer. A failed index write is reported in the response but
never undoes the mutation.
"""

import logging
from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from personal_notes.errors import NotesError
from personal_notes.models.note import ContentType, Note
from personal_notes.store.note_store import NoteStore
from personal_notes.sync.synchronizer import IndexSynchronizer
from personal_notes.tools.formatters import format_note

logger = logging.getLogger(__name__)

_ACTIONS = {
    "register_user",
    "create",
    "update",
    "delete",
    "share",
    "unshare",
    "pin",
    "move",
    "add_image",
    "remove_image",
}

_STALE_NOTE = "\n  Note: search index not updated yet; the note may be missing from search"


def format_write_result(action: str, note: Note, indexed: bool) -> str:
    """Format the result of a note mutation for the MCP response."""
    line = f"{action} {note.id}\n{format_note(note)}"
    if not indexed:
        line += _STALE_NOTE
    return line


def register_notes_write(mcp: FastMCP) -> None:
    """Register the notes_write tool with the MCP server."""

    @mcp.tool()
    async def notes_write(
        action: Annotated[
            str,
            Field(
                description=(
                    "One of: register_user, create, update, delete, share, unshare, pin,"
                    " move, add_image, remove_image"
                ),
            ),
        ],
        user_id: Annotated[
            str | None, Field(description="Acting user (not needed for register_user)")
        ] = None,
        note_id: Annotated[str | None, Field(description="Target note for changes")] = None,
        title: Annotated[str | None, Field(description="Note title (create, update)")] = None,
        content: Annotated[str | None, Field(description="Note body (create, update)")] = None,
        tags: Annotated[
            list[str] | None, Field(description="Replaces the note's tags (create, update)")
        ] = None,
        content_type: Annotated[
            ContentType, Field(description="text or html (create)")
        ] = ContentType.TEXT,
        email: Annotated[
            str | None, Field(description="Collaborator email (share) or new user's email")
        ] = None,
        username: Annotated[str | None, Field(description="For register_user")] = None,
        collaborator_id: Annotated[str | None, Field(description="For unshare")] = None,
        folder_id: Annotated[
            str | None, Field(description="For move; omit to take the note out of its folder")
        ] = None,
        image_url: Annotated[
            str | None, Field(description="For add_image and remove_image")
        ] = None,
        caption: Annotated[str, Field(description="For add_image")] = "",
        ctx: Context | None = None,
    ) -> str:
        """Create and change notes.

        Owners and collaborators can update title, content and tags. Only the
        owner can share, unshare, pin, move, attach images or delete. Changes
        are searchable as soon as this returns.
        """
        if ctx is None:
            raise RuntimeError("Context not injected")

        if action not in _ACTIONS:
            return f"Unknown action '{action}'. Use: {', '.join(sorted(_ACTIONS))}"

        lifespan = ctx.lifespan_context
        store: NoteStore = lifespan["store"]
        synchronizer: IndexSynchronizer = lifespan["synchronizer"]

        if action == "register_user":
            return await _action_register_user(store, username, email)
        if not user_id:
            return f"Error: user_id is required for {action}."

        try:
            if action == "create":
                return await _action_create(
                    store, synchronizer, user_id, title, content, tags, content_type
                )
            if not note_id:
                return f"Error: note_id is required for {action}."
            if action == "update":
                return await _action_update(
                    store, synchronizer, user_id, note_id, title, content, tags
                )
            if action == "delete":
                return await _action_delete(store, synchronizer, user_id, note_id)
            if action == "share":
                note = await store.add_collaborator(note_id, user_id, email or "")
            elif action == "unshare":
                if not collaborator_id:
                    return "Error: collaborator_id is required for unshare."
                note = await store.remove_collaborator(note_id, user_id, collaborator_id)
            elif action == "pin":
                note = await store.toggle_pin(note_id, user_id)
            elif action == "move":
                note = await store.move_to_folder(note_id, user_id, folder_id)
            elif action == "add_image":
                if not image_url:
                    return "Error: image_url is required for add_image."
                note = await store.add_image(note_id, user_id, image_url, caption)
            else:
                if not image_url:
                    return "Error: image_url is required for remove_image."
                note = await store.remove_image(note_id, user_id, image_url)
        except NotesError as e:
            return f"Error: {e}"

        return await _after_change(synchronizer, action, note, _CHANGED_BY[action])


# Fields each owner-only action changes, besides updated_at
_CHANGED_BY = {
    "share": {"collaborators"},
    "unshare": {"collaborators"},
    "pin": {"is_pinned"},
    "move": {"folder_id"},
    "add_image": {"images"},
    "remove_image": {"images"},
}

_LABELS = {"share": "Shared", "unshare": "Unshared", "move": "Moved"}


async def _action_register_user(store: NoteStore, username: str | None, email: str | None) -> str:
    """Register a user."""
    if not username or not email:
        return "Error: username and email are required for register_user."
    try:
        user = await store.create_user(username, email)
    except NotesError as e:
        return f"Error: {e}"
    return f"Registered {user.id}: {user.username} <{user.email}>"


async def _action_create(
    store: NoteStore,
    synchronizer: IndexSynchronizer,
    user_id: str,
    title: str | None,
    content: str | None,
    tags: list[str] | None,
    content_type: ContentType = ContentType.TEXT,
) -> str:
    """Create a note and index it."""
    note = await store.create_note(user_id, title or "", content or "", tags, content_type)
    indexed = await synchronizer.on_note_created(note)
    return format_write_result("Created", note, indexed)


async def _action_update(
    store: NoteStore,
    synchronizer: IndexSynchronizer,
    user_id: str,
    note_id: str,
    title: str | None,
    content: str | None,
    tags: list[str] | None,
) -> str:
    """Update content fields and push the changed ones to the index."""
    if title is None and content is None and tags is None:
        return "Error: nothing to update; give title, content or tags."
    note, changed = await store.update_note(note_id, user_id, title, content, tags)
    indexed = await synchronizer.on_note_updated(note, changed)
    return format_write_result("Updated", note, indexed)


async def _action_delete(
    store: NoteStore,
    synchronizer: IndexSynchronizer,
    user_id: str,
    note_id: str,
) -> str:
    """Delete a note and its search document."""
    note = await store.delete_note(note_id, user_id)
    removed = await synchronizer.on_note_deleted(note.id)
    line = f"Deleted {note.id}: {note.title}"
    if not removed:
        line += "\n  Note: search index not updated yet; stale results are filtered out"
    return line


async def _after_change(
    synchronizer: IndexSynchronizer, action: str, note: Note, changed: set[str]
) -> str:
    indexed = await synchronizer.on_note_updated(note, {*changed, "updated_at"})
    if action == "pin":
        label = "Pinned" if note.is_pinned else "Unpinned"
    else:
        label = _LABELS.get(action, "Updated")
    return format_write_result(label, note, indexed)
