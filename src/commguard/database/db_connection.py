"""
The moderation core's single aiosqlite connection.

All repositories run on one connection opened at startup and closed at
shutdown; WAL journaling lets readers proceed while a write is in flight.

Writes are serialised in-process: ``transaction()`` holds a one-slot
semaphore for its whole body, so a queue disposition and its audit record,
or an enqueue and its idempotency claims, commit or roll back together and
never interleave with another writer. Transactions must not nest.

aiosqlite errors raised inside ``transaction()`` or ``read()`` are re-raised
as :class:`~commguard.errors.PersistenceError`.

Usage
-----
    manager = ConnectionManager()
    await manager.open(path)

    async with manager.transaction() as conn:
        await conn.execute("INSERT ...")

    async with manager.read() as conn:
        cursor = await conn.execute("SELECT ...")

    await manager.close()
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from commguard.errors import PersistenceError
from commguard.util.logger import get_logger

logger = get_logger("database_connection")

_PRAGMAS = [
    "PRAGMA journal_mode = WAL",
    "PRAGMA foreign_keys = ON",
    "PRAGMA synchronous = NORMAL",    # safe with WAL; faster than FULL
    "PRAGMA cache_size = -65536",     # 64 MB page cache
    "PRAGMA temp_store = MEMORY",
    "PRAGMA busy_timeout = 5000",
]


class ConnectionManager:
    """
    Wrapper around a single aiosqlite connection.

    One connection is opened for the whole service lifecycle. All
    repositories and services receive this object instead of opening their
    own connections.

    Thread / task safety
    --------------------
    * Reads  - ``async with read()``; WAL allows concurrent reads.
    * Writes - ``async with transaction()``; serialised by ``_write_sem``.
    """

    def __init__(self) -> None:
        self._conn: aiosqlite.Connection | None = None
        self._write_sem = asyncio.Semaphore(1)
        self._path: Path | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self, path: Path) -> None:
        """
        Open the database and apply pragmas.

        Args:
            path: Path to the SQLite database file.
        """
        if self._conn is not None:
            logger.warning("[DB CONNECTION] open() called but connection already exists, ignoring")
            return

        self._path = path
        path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(path)
        self._conn.row_factory = aiosqlite.Row

        for pragma in _PRAGMAS:
            await self._conn.execute(pragma)
        await self._conn.commit()

        logger.info("[DB CONNECTION] Opened connection to %s", path)

    async def close(self) -> None:
        """Flush the WAL and close the connection."""
        if self._conn is None:
            return

        try:
            await self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            await self._conn.commit()
        except aiosqlite.Error:
            logger.exception("[DB CONNECTION] WAL checkpoint failed during close")
        finally:
            await self._conn.close()
            self._conn = None
            logger.info("[DB CONNECTION] Connection closed")

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    # ------------------------------------------------------------------
    # Connection access
    # ------------------------------------------------------------------

    @property
    def connection(self) -> aiosqlite.Connection:
        """
        The raw aiosqlite connection.

        Raises:
            RuntimeError: If the connection has not been opened yet.
        """
        if self._conn is None:
            raise RuntimeError(
                "ConnectionManager: connection is not open. "
                "Call await manager.open(path) at startup."
            )
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Serialised write transaction.

        * Acquires the write semaphore so only one transaction is active.
        * Commits on clean exit.
        * Rolls back if anything is raised; aiosqlite errors are re-raised
          as PersistenceError, everything else unchanged.
        """
        conn = self.connection

        async with self._write_sem:
            try:
                yield conn
                await conn.commit()
            except aiosqlite.Error as exc:
                await conn.rollback()
                logger.error("[DB CONNECTION] Transaction rolled back: %s", exc)
                raise PersistenceError(str(exc)) from exc
            except BaseException:
                await conn.rollback()
                raise

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Read-only access, symmetrical with ``transaction()``.

        No semaphore is acquired.
        """
        conn = self.connection
        try:
            yield conn
        except aiosqlite.Error as exc:
            logger.error("[DB CONNECTION] Read failed: %s", exc)
            raise PersistenceError(str(exc)) from exc


# Process-wide instance used by the entry point
db_connection = ConnectionManager()
