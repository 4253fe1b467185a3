"""Async database connection abstraction over libsql.

Provides a thin async wrapper around the synchronous ``libsql`` driver using
``asyncio.to_thread()``.  Every call is bounded by an optional deadline so a
slow backend cannot wedge a chat turn.  Connection target is determined by
settings:

- **Production**: ``TURSO_DATABASE_URL`` + ``TURSO_AUTH_TOKEN`` → remote Turso
- **Dev/test**: no Turso env vars → local SQLite file via ``database_path``
"""

from __future__ import annotations

import asyncio
from functools import partial
from typing import TYPE_CHECKING, Any

import libsql

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

from src.config import settings


async def _call(timeout: float | None, fn: Callable[..., Any], *args: Any) -> Any:
    """Run a blocking driver call in a thread, bounded by *timeout* seconds.

    Raises ``TimeoutError`` when the deadline expires.  The worker thread is
    left to finish on its own; the caller is released immediately.
    """
    coro = asyncio.to_thread(fn, *args)
    if timeout is None:
        return await coro
    return await asyncio.wait_for(coro, timeout)


class _AsyncCursor:
    """Thin async wrapper around a synchronous libsql cursor."""

    def __init__(self, cursor: Any, timeout: float | None = None) -> None:
        self._cursor = cursor
        self._timeout = timeout

    async def fetchone(self) -> tuple | None:
        return await _call(self._timeout, self._cursor.fetchone)

    async def fetchall(self) -> list[tuple]:
        return await _call(self._timeout, self._cursor.fetchall)

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount


class _AsyncConnection:
    """Thin async wrapper around a synchronous libsql connection."""

    def __init__(self, conn: Any, timeout: float | None = None) -> None:
        self._conn = conn
        self._timeout = timeout

    @property
    def timeout(self) -> float | None:
        return self._timeout

    async def execute(self, sql: str, params: tuple = ()) -> _AsyncCursor:
        cursor = await _call(self._timeout, self._conn.execute, sql, params)
        return _AsyncCursor(cursor, self._timeout)

    async def commit(self) -> None:
        await _call(self._timeout, self._conn.commit)

    async def close(self) -> None:
        await asyncio.to_thread(self._conn.close)


def _open_local(path: str) -> Any:
    """Open a local libsql connection with WAL mode and busy timeout."""
    conn = libsql.connect(path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


async def get_connection(
    local_path_override: Path | None = None,
    timeout: float | None = None,
) -> _AsyncConnection:
    """Return an async-wrapped libsql connection.

    If *local_path_override* is given (test isolation), it takes priority.
    Otherwise, ``TURSO_DATABASE_URL`` triggers a remote connection, and
    ``database_path`` falls back to a local file.  *timeout* bounds opening
    the connection and every later call made through it.
    """
    if local_path_override:
        local_path_override.parent.mkdir(parents=True, exist_ok=True)
        conn = await _call(timeout, _open_local, str(local_path_override))
        return _AsyncConnection(conn, timeout)

    if settings.turso_database_url:
        connect = partial(
            libsql.connect,
            database=settings.turso_database_url,
            auth_token=settings.turso_auth_token,
        )
        conn = await _call(timeout, connect)
        return _AsyncConnection(conn, timeout)

    # Local file fallback
    settings.database_path.parent.mkdir(parents=True, exist_ok=True)
    conn = await _call(timeout, _open_local, str(settings.database_path))
    return _AsyncConnection(conn, timeout)
