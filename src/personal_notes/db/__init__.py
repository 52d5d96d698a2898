"""Record store persistence: protocols and the aiosqlite backend."""

from personal_notes.db.backend import Cursor, Database, Row
from personal_notes.db.sqlite_backend import SQLiteBackend

__all__ = ["Cursor", "Database", "Row", "SQLiteBackend"]
