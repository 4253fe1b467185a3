"""ConversationStore — append-only message forest via libsql."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from src.config import settings
from src.conversation.errors import (
    ChainTooDeepError,
    CycleDetectedError,
    DuplicateMessageError,
    MessageNotFoundError,
    StorageError,
    StorageIOError,
    StorageTimeoutError,
)
from src.conversation.models import ROOT_PARENT_ID, Message, StoredMessage
from src.db import get_connection

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from src.db import _AsyncConnection

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS messages (
    id         TEXT PRIMARY KEY,
    parent_id  TEXT NOT NULL,
    role       TEXT NOT NULL,
    content    TEXT NOT NULL,
    created_at TEXT NOT NULL
)
"""

_CREATE_PARENT_INDEX = """
CREATE INDEX IF NOT EXISTS idx_messages_parent_id ON messages (parent_id)
"""

_COLUMNS = "id, parent_id, role, content, created_at"

# Closes deferred after a timeout, held until they finish.
_pending_closes: set[asyncio.Task[None]] = set()


def _close_in_background(db: _AsyncConnection) -> None:
    """Close *db* without waiting on a driver call that is still running.

    A libsql close blocks until the connection's in-flight statement ends, so
    after a timeout it runs as a task instead of holding up the caller.
    """
    task = asyncio.create_task(db.close())
    _pending_closes.add(task)
    task.add_done_callback(_on_close_done)


def _on_close_done(task: asyncio.Task[None]) -> None:
    _pending_closes.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.warning("Closing timed-out connection failed: %s", task.exception())


class ConversationStore:
    """Persists chat messages as a forest of parent pointers.

    Rows are only ever inserted.  Each operation opens its own connection, so
    concurrent chat turns never share a handle and rely on SQLite/Turso for
    row-level concurrency.

    Singleton accessed via ``ConversationStore.get()``.  Pass an explicit
    *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: ConversationStore | None = None

    def __init__(
        self,
        db_path: Path | None = None,
        *,
        root_parent_id: str = ROOT_PARENT_ID,
        max_depth: int | None = None,
        timeout: float | None = None,
    ) -> None:
        self._db_path = db_path
        self._root_parent_id = root_parent_id
        self._max_depth = max_depth if max_depth is not None else settings.max_context_depth
        self._timeout = timeout if timeout is not None else settings.storage_timeout
        self._initialised = False
        if self._max_depth <= 0:
            raise ValueError(f"max_depth must be positive, got {self._max_depth}")

    @classmethod
    def get(cls) -> ConversationStore:
        """Return the shared ConversationStore instance."""
        if cls._instance is None:
            cls._instance = cls(root_parent_id=settings.root_parent_id)
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    @property
    def root_parent_id(self) -> str:
        return self._root_parent_id

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> _AsyncConnection:
        db = await get_connection(local_path_override=self._db_path, timeout=self._timeout)
        if not self._initialised:
            try:
                await db.execute(_CREATE_TABLE)
                await db.execute(_CREATE_PARENT_INDEX)
                await db.commit()
            except TimeoutError:
                _close_in_background(db)
                raise
            except BaseException:
                await db.close()
                raise
            self._initialised = True
        return db

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[_AsyncConnection]:
        """Yield a connection, mapping driver failures onto ``StorageError``."""
        try:
            db = await self._connect()
        except TimeoutError as exc:
            raise StorageTimeoutError(f"opening database timed out after {self._timeout}s") from exc
        except Exception as exc:
            raise StorageIOError(f"opening database failed: {exc}") from exc

        timed_out = False
        try:
            yield db
        except StorageError:
            raise
        except TimeoutError as exc:
            timed_out = True
            raise StorageTimeoutError(f"database call timed out after {self._timeout}s") from exc
        except Exception as exc:
            raise StorageIOError(f"database call failed: {exc}") from exc
        finally:
            if timed_out:
                _close_in_background(db)
            else:
                await db.close()

    @staticmethod
    async def _fetch(db: _AsyncConnection, message_id: str) -> StoredMessage | None:
        cursor = await db.execute(
            f"SELECT {_COLUMNS} FROM messages WHERE id = ?", (message_id,)
        )
        row = await cursor.fetchone()
        return StoredMessage.from_row(row) if row else None

    # -- Write -----------------------------------------------------------------

    async def add_message(
        self, message_id: str, parent_id: str, message: Message
    ) -> StoredMessage:
        """Insert a new message. Returns the stored record.

        Raises ``DuplicateMessageError`` if *message_id* is already taken.
        """
        if not message_id:
            raise ValueError("message_id must not be empty")
        if not parent_id:
            raise ValueError("parent_id must not be empty")

        record = StoredMessage(id=message_id, parent_id=parent_id, message=message)
        row = record.to_row()
        async with self._session() as db:
            cursor = await db.execute(
                f"INSERT OR IGNORE INTO messages ({_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                row,
            )
            await db.commit()
            if cursor.rowcount == 0:
                raise DuplicateMessageError(message_id)

        logger.info("Stored %s message %s (parent=%s)", message.role, message_id, parent_id)
        return StoredMessage.from_row(row)

    # -- Read ------------------------------------------------------------------

    async def get_stored_message(self, message_id: str) -> StoredMessage:
        async with self._session() as db:
            record = await self._fetch(db, message_id)
        if record is None:
            raise MessageNotFoundError(message_id)
        return record

    async def get_message(self, message_id: str) -> tuple[Message, str]:
        """Return ``(message, parent_id)`` for *message_id*."""
        record = await self.get_stored_message(message_id)
        return record.message, record.parent_id

    async def exists(self, message_id: str) -> bool:
        async with self._session() as db:
            return await self._fetch(db, message_id) is not None

    async def get_context_chain(self, message_id: str) -> list[StoredMessage]:
        """Walk parent pointers from *message_id* up to the root.

        Returns the visited records newest first (the starting message comes
        first).  Traversal is bounded: a revisited id raises
        ``CycleDetectedError`` and more than ``max_depth`` hops raises
        ``ChainTooDeepError``.  A parent that is neither stored nor the root
        sentinel raises ``MessageNotFoundError``.
        """
        chain: list[StoredMessage] = []
        seen: set[str] = set()
        current = message_id

        async with self._session() as db:
            while True:
                if current in seen:
                    raise CycleDetectedError(current)
                if len(chain) >= self._max_depth:
                    raise ChainTooDeepError(message_id, self._max_depth)

                record = await self._fetch(db, current)
                if record is None:
                    raise MessageNotFoundError(current)
                seen.add(current)
                chain.append(record)

                current = record.parent_id
                if current == self._root_parent_id:
                    break

        logger.debug("Resolved context chain of %d message(s) from %s", len(chain), message_id)
        return chain

    async def get_context_messages(self, message_id: str) -> list[Message]:
        """Like ``get_context_chain`` but returns only the messages."""
        return [record.message for record in await self.get_context_chain(message_id)]

    async def list_children(self, parent_id: str) -> list[StoredMessage]:
        """Return the direct replies to *parent_id* in insertion order."""
        async with self._session() as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM messages WHERE parent_id = ? ORDER BY created_at, rowid",
                (parent_id,),
            )
            rows = await cursor.fetchall()
        return [StoredMessage.from_row(row) for row in rows]
