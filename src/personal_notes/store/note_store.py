"""Record store operations for notes and users.

The record store is the source of truth. Every mutation commits here first
and marks the note for re-indexing; the index synchronizer runs afterwards.
"""

import logging
from datetime import UTC, datetime

import pydantic

from personal_notes.db.backend import Database
from personal_notes.db.queries import (
    clear_needs_reindex,
    count_visible_notes,
    delete_note,
    get_existing_note_ids,
    get_note,
    get_note_ids_after,
    get_notes_by_ids,
    get_stale_note_ids,
    get_user,
    get_user_by_email,
    get_user_by_username,
    get_users_by_ids,
    insert_note,
    insert_user,
    list_visible_notes,
    next_id,
    set_needs_reindex,
    update_note,
)
from personal_notes.errors import NoteNotFound, PermissionDenied, ValidationError
from personal_notes.models.note import ContentType, Note, NoteImage, NoteView, User, UserRef

logger = logging.getLogger(__name__)


class NoteStore:
    """CRUD operations for notes and users."""

    def __init__(self, db: Database):
        """Initialize with a database connection."""
        self.db = db

    # -- Users --

    async def create_user(self, username: str, email: str) -> User:
        """Register a user. Username and email must be unique."""
        try:
            user = User(
                id="user-pending",
                username=username,
                email=email,
                created_at=datetime.now(UTC),
            )
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid user: {e.errors()[0]['msg']}") from e

        if await get_user_by_username(self.db, user.username) is not None:
            raise ValidationError(f"Username {user.username!r} is already taken")
        if await get_user_by_email(self.db, user.email) is not None:
            raise ValidationError(f"Email {user.email!r} is already registered")

        user = user.model_copy(update={"id": await next_id(self.db, "user")})
        await insert_user(self.db, user)
        logger.info("Registered user %s (%s)", user.id, user.username)
        return user

    async def get_user(self, user_id: str) -> User | None:
        """Get a single user by ID."""
        return await get_user(self.db, user_id)

    async def get_user_by_email(self, email: str) -> User | None:
        """Get a user by email."""
        return await get_user_by_email(self.db, email)

    # -- Notes --

    async def create_note(
        self,
        owner: str,
        title: str,
        content: str,
        tags: list[str] | None = None,
        content_type: ContentType = ContentType.TEXT,
    ) -> Note:
        """Create a note owned by ``owner`` with no collaborators."""
        if await get_user(self.db, owner) is None:
            raise ValidationError(f"Unknown user {owner}")
        title, content = _require_text(title, "title"), _require_text(content, "content")
        now = datetime.now(UTC)
        note = Note(
            id=await next_id(self.db, "note"),
            title=title,
            content=content,
            content_type=content_type,
            tags=clean_tags(tags),
            owner=owner,
            created_at=now,
            updated_at=now,
        )
        await insert_note(self.db, note)
        logger.info("Created note %s for %s", note.id, owner)
        return note

    async def update_note(
        self,
        note_id: str,
        acting_user: str,
        title: str | None = None,
        content: str | None = None,
        tags: list[str] | None = None,
    ) -> tuple[Note, set[str]]:
        """Update content fields. Owner or collaborator.

        Returns the updated note and the names of the fields that changed.
        ``updated_at`` is always bumped.
        """
        existing = await self._visible_note(note_id, acting_user)
        changes: dict[str, object] = {}
        if title is not None and title.strip() and title.strip() != existing.title:
            changes["title"] = title.strip()
        if content is not None and content.strip() and content.strip() != existing.content:
            changes["content"] = content.strip()
        if tags is not None and clean_tags(tags) != existing.tags:
            changes["tags"] = clean_tags(tags)
        return await self._save(existing, changes)

    async def add_collaborator(self, note_id: str, acting_user: str, email: str) -> Note:
        """Share a note with the user registered under ``email``. Owner only."""
        note = await self._owned_note(note_id, acting_user)
        if not email or not email.strip():
            raise ValidationError("Email is required")
        collaborator = await get_user_by_email(self.db, email)
        if collaborator is None:
            raise ValidationError(f"No registered user with email {email.strip().lower()}")
        if collaborator.id == note.owner:
            raise ValidationError("Cannot add note owner as collaborator")
        if collaborator.id in note.collaborators:
            raise ValidationError(f"{collaborator.username} is already a collaborator")
        updated, _ = await self._save(
            note, {"collaborators": [*note.collaborators, collaborator.id]}
        )
        logger.info("Shared note %s with %s", note_id, collaborator.id)
        return updated

    async def remove_collaborator(self, note_id: str, acting_user: str, user_id: str) -> Note:
        """Stop sharing a note with ``user_id``. Owner only."""
        note = await self._owned_note(note_id, acting_user)
        if user_id not in note.collaborators:
            raise ValidationError(f"{user_id} is not a collaborator on {note_id}")
        remaining = [c for c in note.collaborators if c != user_id]
        updated, _ = await self._save(note, {"collaborators": remaining})
        return updated

    async def toggle_pin(self, note_id: str, acting_user: str) -> Note:
        """Flip the pinned state. Owner only."""
        note = await self._owned_note(note_id, acting_user)
        updated, _ = await self._save(note, {"is_pinned": not note.is_pinned})
        return updated

    async def move_to_folder(self, note_id: str, acting_user: str, folder_id: str | None) -> Note:
        """Move a note into a folder, or out of all folders with None. Owner only."""
        note = await self._owned_note(note_id, acting_user)
        updated, _ = await self._save(note, {"folder_id": folder_id or None})
        return updated

    async def add_image(
        self, note_id: str, acting_user: str, url: str, caption: str = ""
    ) -> Note:
        """Attach an already-stored image by URL. Owner only."""
        note = await self._owned_note(note_id, acting_user)
        image = NoteImage(url=url, caption=caption, uploaded_at=datetime.now(UTC))
        updated, _ = await self._save(note, {"images": [*note.images, image]})
        return updated

    async def remove_image(self, note_id: str, acting_user: str, url: str) -> Note:
        """Detach an image by URL. Owner only."""
        note = await self._owned_note(note_id, acting_user)
        remaining = [i for i in note.images if i.url != url]
        if len(remaining) == len(note.images):
            raise NoteNotFound(f"Image {url} not found on {note_id}")
        updated, _ = await self._save(note, {"images": remaining})
        return updated

    async def delete_note(self, note_id: str, acting_user: str) -> Note:
        """Delete a note. Owner only. Returns the deleted note."""
        note = await self._owned_note(note_id, acting_user)
        await delete_note(self.db, note_id)
        logger.info("Deleted note %s", note_id)
        return note

    # -- Reads --

    async def get_note(self, note_id: str) -> Note | None:
        """Get a single note by ID, with no access check."""
        return await get_note(self.db, note_id)

    async def get_notes(self, note_ids: list[str]) -> dict[str, Note]:
        """Batch-load notes by ID. Missing IDs are absent from the mapping."""
        return await get_notes_by_ids(self.db, note_ids)

    async def find_many_by_ids(self, note_ids: list[str]) -> dict[str, NoteView]:
        """Batch-load notes with owner and collaborators expanded to display identities.

        Missing IDs are simply absent from the returned mapping.
        """
        notes = await get_notes_by_ids(self.db, note_ids)
        user_ids = [uid for n in notes.values() for uid in (n.owner, *n.collaborators)]
        users = await get_users_by_ids(self.db, user_ids)
        return {note_id: _to_view(note, users) for note_id, note in notes.items()}

    async def list_notes(
        self, user_id: str, page: int, page_size: int
    ) -> tuple[list[NoteView], int]:
        """Plain chronological listing (newest first) of notes visible to ``user_id``.

        Returns the page of notes and the total visible count.
        """
        total = await count_visible_notes(self.db, user_id)
        notes = await list_visible_notes(
            self.db, user_id, limit=page_size, offset=(page - 1) * page_size
        )
        user_ids = [uid for n in notes for uid in (n.owner, *n.collaborators)]
        users = await get_users_by_ids(self.db, user_ids)
        return [_to_view(n, users) for n in notes], total

    # -- Index bookkeeping --

    async def iter_note_ids(self, after: str | None, limit: int) -> list[str]:
        """Next batch of note IDs in ascending order after ``after``."""
        return await get_note_ids_after(self.db, after, limit)

    async def existing_ids(self, note_ids: list[str]) -> set[str]:
        """Which of ``note_ids`` still exist."""
        return await get_existing_note_ids(self.db, note_ids)

    async def mark_indexed(self, note_id: str, updated_at: datetime) -> bool:
        """Clear the stale flag if the indexed version is still the current one.

        A note saved again since ``updated_at`` stays flagged.
        """
        cleared = await clear_needs_reindex(self.db, note_id, updated_at)
        if not cleared:
            logger.debug("Note %s changed while indexing, leaving it flagged", note_id)
        return cleared

    async def mark_stale(self, note_id: str) -> None:
        """Flag the note's search document as out of date."""
        await set_needs_reindex(self.db, note_id, True)

    async def get_stale_note_ids(self, limit: int = 1000) -> list[str]:
        """Notes whose search document may be out of date."""
        return await get_stale_note_ids(self.db, limit)

    # -- Internals --

    async def _visible_note(self, note_id: str, user_id: str) -> Note:
        note = await get_note(self.db, note_id)
        if note is None or not note.is_visible_to(user_id):
            raise NoteNotFound(f"Note {note_id} not found or not authorized")
        return note

    async def _owned_note(self, note_id: str, user_id: str) -> Note:
        note = await self._visible_note(note_id, user_id)
        if note.owner != user_id:
            raise PermissionDenied(f"Only the owner of {note_id} can do that")
        return note

    async def _save(self, note: Note, changes: dict[str, object]) -> tuple[Note, set[str]]:
        updated = note.model_copy(update={**changes, "updated_at": datetime.now(UTC)})
        await update_note(self.db, updated)
        changed = {*changes, "updated_at"}
        logger.info("Updated note %s (%s)", note.id, ", ".join(sorted(changed)))
        return updated, changed


def clean_tags(tags: list[str] | None) -> list[str]:
    """Trim tags, drop empties and duplicates, keep first-seen order."""
    seen: dict[str, None] = {}
    for tag in tags or []:
        tag = str(tag).strip()
        if tag:
            seen.setdefault(tag, None)
    return list(seen)


def _require_text(value: str | None, name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{name.capitalize()} is required")
    return value


def _to_view(note: Note, users: dict[str, User]) -> NoteView:
    owner = users.get(note.owner)
    return NoteView(
        note=note,
        owner=owner.ref if owner else UserRef(id=note.owner, username=note.owner, email=""),
        collaborators=[users[c].ref for c in note.collaborators if c in users],
    )
