"""Async database protocols the record store is written against.

The record store issues single ``?``-parameterised statements, one DDL
script at start-up and explicit commits after every mutation. Anything
that offers those (aiosqlite in production and tests) satisfies them.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Row(Protocol):
    """A result row, indexable by column name or position."""

    def __getitem__(self, key: str | int) -> Any: ...


@runtime_checkable
class Cursor(Protocol):
    """Result of Database.execute()."""

    @property
    def rowcount(self) -> int:
        """Rows changed by an INSERT, UPDATE or DELETE; -1 when unknown."""
        ...

    async def fetchone(self) -> Row | None: ...

    async def fetchall(self) -> list[Row]: ...


@runtime_checkable
class Database(Protocol):
    """Connection to the record store database."""

    async def execute(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> Cursor:
        """Run one statement. Changes are not visible to others until commit()."""
        ...

    async def executescript(self, sql: str) -> None:
        """Run a multi-statement script such as the schema DDL."""
        ...

    async def commit(self) -> None: ...

    async def close(self) -> None: ...
