"""Query helpers for common record store operations."""

import json
from datetime import UTC, datetime
from typing import Any

from personal_notes.db.backend import Database, Row
from personal_notes.models.note import ContentType, Note, NoteImage, User

_VISIBLE_TO = (
    "(n.owner = ? OR EXISTS (SELECT 1 FROM json_each(n.collaborators) c WHERE c.value = ?))"
)


async def next_id(db: Database, kind: str) -> str:
    """Get and increment the next ID for ``kind`` ("note" or "user")."""
    cursor = await db.execute("SELECT next_id FROM id_sequences WHERE kind = ?", (kind,))
    row = await cursor.fetchone()
    if row is None:
        raise RuntimeError(f"id_sequences has no row for {kind!r}")
    value = row[0]
    await db.execute("UPDATE id_sequences SET next_id = ? WHERE kind = ?", (value + 1, kind))
    return f"{kind}-{value:05d}"


# -- Users --


def row_to_user(row: Row) -> User:
    """Convert a database row to a User."""
    return User(
        id=row["id"],
        username=row["username"],
        email=row["email"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


async def insert_user(db: Database, user: User) -> None:
    """Insert a new user."""
    await db.execute(
        "INSERT INTO users (id, username, email, created_at) VALUES (?, ?, ?, ?)",
        (user.id, user.username, user.email, to_iso(user.created_at)),
    )
    await db.commit()


async def get_user(db: Database, user_id: str) -> User | None:
    """Get a single user by ID."""
    cursor = await db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
    row = await cursor.fetchone()
    return row_to_user(row) if row else None


async def get_user_by_email(db: Database, email: str) -> User | None:
    """Get a user by (case-insensitive) email."""
    cursor = await db.execute("SELECT * FROM users WHERE email = ?", (email.strip().lower(),))
    row = await cursor.fetchone()
    return row_to_user(row) if row else None


async def get_user_by_username(db: Database, username: str) -> User | None:
    """Get a user by username."""
    cursor = await db.execute("SELECT * FROM users WHERE username = ?", (username.strip(),))
    row = await cursor.fetchone()
    return row_to_user(row) if row else None


async def get_users_by_ids(db: Database, user_ids: list[str]) -> dict[str, User]:
    """Batch-load users, keyed by ID. Unknown IDs are absent from the result."""
    if not user_ids:
        return {}
    unique = sorted(set(user_ids))
    placeholders = ",".join("?" for _ in unique)
    cursor = await db.execute(
        "SELECT * FROM users WHERE id IN (" + placeholders + ")",  # noqa: S608
        unique,
    )
    return {row["id"]: row_to_user(row) for row in await cursor.fetchall()}


# -- Notes --


def row_to_note(row: Row) -> Note:
    """Convert a database row to a Note."""
    return Note(
        id=row["id"],
        title=row["title"],
        content=row["content"],
        content_type=ContentType(row["content_type"]),
        tags=json.loads(row["tags"]),
        owner=row["owner"],
        collaborators=json.loads(row["collaborators"]),
        folder_id=row["folder_id"],
        is_pinned=bool(row["is_pinned"]),
        images=[NoteImage.model_validate(i) for i in json.loads(row["images"])],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
        needs_reindex=bool(row["needs_reindex"]),
    )


def _images_json(note: Note) -> str:
    return json.dumps([i.model_dump(mode="json") for i in note.images])


async def insert_note(db: Database, note: Note) -> None:
    """Insert a new note, flagged for indexing."""
    await db.execute(
        """INSERT INTO notes
        (id, title, content, content_type, tags, owner, collaborators, folder_id,
         is_pinned, images, created_at, updated_at, needs_reindex)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)""",
        (
            note.id,
            note.title,
            note.content,
            note.content_type.value,
            json.dumps(note.tags),
            note.owner,
            json.dumps(note.collaborators),
            note.folder_id,
            int(note.is_pinned),
            _images_json(note),
            to_iso(note.created_at),
            to_iso(note.updated_at),
        ),
    )
    await db.commit()


async def update_note(db: Database, note: Note) -> None:
    """Write every mutable field of a note and flag it for re-indexing."""
    await db.execute(
        """UPDATE notes SET
        title=?, content=?, content_type=?, tags=?, collaborators=?, folder_id=?,
        is_pinned=?, images=?, updated_at=?, needs_reindex=1
        WHERE id=?""",
        (
            note.title,
            note.content,
            note.content_type.value,
            json.dumps(note.tags),
            json.dumps(note.collaborators),
            note.folder_id,
            int(note.is_pinned),
            _images_json(note),
            to_iso(note.updated_at),
            note.id,
        ),
    )
    await db.commit()


async def get_note(db: Database, note_id: str) -> Note | None:
    """Get a single note by ID."""
    cursor = await db.execute("SELECT * FROM notes WHERE id = ?", (note_id,))
    row = await cursor.fetchone()
    return row_to_note(row) if row else None


async def get_notes_by_ids(db: Database, note_ids: list[str]) -> dict[str, Note]:
    """Batch-load notes in one query, keyed by ID."""
    if not note_ids:
        return {}
    unique = sorted(set(note_ids))
    placeholders = ",".join("?" for _ in unique)
    cursor = await db.execute(
        "SELECT * FROM notes WHERE id IN (" + placeholders + ")",  # noqa: S608
        unique,
    )
    return {row["id"]: row_to_note(row) for row in await cursor.fetchall()}


async def delete_note(db: Database, note_id: str) -> bool:
    """Hard-delete a note. Returns True if a row was removed."""
    cursor = await db.execute("DELETE FROM notes WHERE id = ?", (note_id,))
    await db.commit()
    return cursor.rowcount > 0


async def list_visible_notes(db: Database, user_id: str, limit: int, offset: int) -> list[Note]:
    """Notes the user owns or collaborates on, newest first."""
    cursor = await db.execute(
        "SELECT n.* FROM notes n WHERE " + _VISIBLE_TO  # noqa: S608
        + " ORDER BY n.created_at DESC, n.id DESC LIMIT ? OFFSET ?",
        (user_id, user_id, limit, offset),
    )
    return [row_to_note(row) for row in await cursor.fetchall()]


async def count_visible_notes(db: Database, user_id: str) -> int:
    """Count notes the user owns or collaborates on."""
    cursor = await db.execute(
        "SELECT COUNT(*) FROM notes n WHERE " + _VISIBLE_TO,  # noqa: S608
        (user_id, user_id),
    )
    row = await cursor.fetchone()
    return int(row[0]) if row else 0


# -- Index bookkeeping --


async def get_note_ids_after(db: Database, after: str | None, limit: int) -> list[str]:
    """Keyset page of note IDs in ascending order, strictly after ``after``."""
    cursor = await db.execute(
        "SELECT id FROM notes WHERE id > ? ORDER BY id LIMIT ?",
        (after or "", limit),
    )
    return [row["id"] for row in await cursor.fetchall()]


async def get_existing_note_ids(db: Database, note_ids: list[str]) -> set[str]:
    """Subset of ``note_ids`` that still exist."""
    if not note_ids:
        return set()
    unique = sorted(set(note_ids))
    placeholders = ",".join("?" for _ in unique)
    cursor = await db.execute(
        "SELECT id FROM notes WHERE id IN (" + placeholders + ")",  # noqa: S608
        unique,
    )
    return {row["id"] for row in await cursor.fetchall()}


async def set_needs_reindex(db: Database, note_id: str, needs_reindex: bool) -> None:
    """Set or clear the re-index flag without touching updated_at."""
    await db.execute(
        "UPDATE notes SET needs_reindex = ? WHERE id = ?",
        (int(needs_reindex), note_id),
    )
    await db.commit()


async def clear_needs_reindex(db: Database, note_id: str, updated_at: datetime) -> bool:
    """Clear the re-index flag only if the note is still at ``updated_at``.

    Returns False when a newer version has been saved since, leaving it flagged.
    """
    cursor = await db.execute(
        "UPDATE notes SET needs_reindex = 0 WHERE id = ? AND updated_at = ?",
        (note_id, to_iso(updated_at)),
    )
    await db.commit()
    return cursor.rowcount > 0


async def get_stale_note_ids(db: Database, limit: int = 1000) -> list[str]:
    """IDs of notes whose last index write did not succeed."""
    cursor = await db.execute(
        "SELECT id FROM notes WHERE needs_reindex = 1 ORDER BY id LIMIT ?",
        (limit,),
    )
    return [row["id"] for row in await cursor.fetchall()]


async def get_store_stats(db: Database) -> dict[str, Any]:
    """Return user, note and index-staleness counts."""
    stats: dict[str, Any] = {}

    cursor = await db.execute("SELECT COUNT(*) FROM users")
    row = await cursor.fetchone()
    stats["users"] = row[0] if row else 0

    cursor = await db.execute(
        "SELECT COUNT(*) as total, SUM(needs_reindex) as stale, SUM(is_pinned) as pinned"
        " FROM notes"
    )
    row = await cursor.fetchone()
    if row is None:
        raise RuntimeError("COUNT query returned no rows")
    stats["notes"] = row["total"]
    stats["stale_notes"] = row["stale"] or 0
    stats["pinned_notes"] = row["pinned"] or 0
    return stats


def to_iso(value: datetime | None) -> str:
    """Fixed-width UTC ISO-8601 so stored timestamps sort lexically."""
    value = value or datetime.now(UTC)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")
