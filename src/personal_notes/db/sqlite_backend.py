"""aiosqlite implementation of the record store Database protocol."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import aiosqlite

    from personal_notes.db.backend import Row


class SQLiteCursor:
    """Cursor over an aiosqlite result."""

    def __init__(self, cursor: aiosqlite.Cursor) -> None:
        self._cursor = cursor

    @property
    def rowcount(self) -> int:
        rc = self._cursor.rowcount
        return rc if rc is not None else -1

    async def fetchone(self) -> Row | None:
        return await self._cursor.fetchone()

    async def fetchall(self) -> list[Row]:
        return list(await self._cursor.fetchall())


class SQLiteBackend:
    """Record store connection backed by a single aiosqlite connection.

    aiosqlite serialises calls on its worker thread, so concurrent search
    requests and synchronizer writes can share one instance.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def execute(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> SQLiteCursor:
        return SQLiteCursor(await self._conn.execute(sql, params))

    async def executescript(self, sql: str) -> None:
        await self._conn.executescript(sql)

    async def commit(self) -> None:
        await self._conn.commit()

    async def close(self) -> None:
        await self._conn.close()

    async def apply_schema(self) -> None:
        """Create tables and seed id sequences if missing."""
        from personal_notes.db.schema import apply_schema

        await apply_schema(self)
