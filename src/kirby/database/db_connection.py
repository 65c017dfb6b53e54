"""
Database connection management: a small bounded pool of aiosqlite connections.

Concurrency model
-----------------
``size`` connections are opened up front and handed out through an
``asyncio.Queue``. A caller that cannot get one within ``acquire_timeout``
seconds receives :class:`StoreConnectionError` instead of waiting forever.

SQLite itself is single-writer. Write transactions start with
``BEGIN IMMEDIATE`` so they take the write lock at once, and ``busy_timeout``
makes a second writer wait for it instead of failing. In WAL mode readers
never block and only ever see committed data.

Usage
-----
    pool = ConnectionPool(path, size=4)
    await pool.open()

    async with pool.read() as conn:
        cursor = await conn.execute("SELECT ...")

    async with pool.transaction() as conn:
        await conn.execute("DELETE ...")
        await conn.execute("INSERT ...")
        # commits on clean exit, rolls back on exception

    await pool.close()
"""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List

import aiosqlite

from kirby.exceptions import StoreConnectionError, TransactionError
from kirby.util.logger import get_logger

logger = get_logger("database_connection")

# ── Pragmas applied once per pooled connection ──────────────────────────────
_PRAGMAS = [
    "PRAGMA journal_mode = WAL",
    "PRAGMA foreign_keys = ON",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA busy_timeout = 5000",     # writers queue on the lock for up to 5 s
    "PRAGMA temp_store = MEMORY",
]


class ConnectionPool:
    """
    Bounded pool of aiosqlite connections for one database file.

    Connections run with ``isolation_level=None`` so transactions are only
    ever opened by :meth:`transaction`, never implicitly by the driver.
    """

    def __init__(self, path: Path, size: int = 4, acquire_timeout: float = 5.0) -> None:
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self.path = Path(path)
        self.size = size
        self.acquire_timeout = acquire_timeout
        self._connections: List[aiosqlite.Connection] = []
        self._idle: asyncio.Queue[aiosqlite.Connection] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._idle is not None

    async def open(self) -> None:
        """
        Open every pooled connection and check the database answers.

        Raises:
            StoreConnectionError: If a connection cannot be opened or pinged.
        """
        if self.is_open:
            logger.warning("[DB POOL] open() called but pool is already open, ignoring")
            return

        idle: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue(maxsize=self.size)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            for _ in range(self.size):
                idle.put_nowait(await self._connect())
        except (sqlite3.Error, OSError) as exc:
            await self._close_all()
            raise StoreConnectionError(
                f"Failed to open database at {self.path}: {exc}",
                operation="open",
            ) from exc

        self._idle = idle
        logger.info("[DB POOL] Opened %d connection(s) to %s", self.size, self.path)

    async def _connect(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(self.path, isolation_level=None)
        self._connections.append(conn)
        conn.row_factory = aiosqlite.Row
        for pragma in _PRAGMAS:
            await conn.execute(pragma)
        await conn.execute("SELECT 1")
        return conn

    async def close(self) -> None:
        """Checkpoint the WAL and close every connection."""
        if not self.is_open:
            return

        self._idle = None
        if self._connections:
            try:
                await self._connections[0].execute("PRAGMA wal_checkpoint(TRUNCATE)")
            except sqlite3.Error:
                logger.exception("[DB POOL] WAL checkpoint failed during close")
        await self._close_all()
        logger.info("[DB POOL] Pool closed")

    async def _close_all(self) -> None:
        connections, self._connections = self._connections, []
        for conn in connections:
            try:
                await conn.close()
            except sqlite3.Error:
                logger.exception("[DB POOL] Failed to close a pooled connection")

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Borrow a connection for the duration of the block.

        If the block does not finish cleanly, any transaction still open on
        the connection is rolled back before it goes back to the pool. This
        also covers a ``BEGIN`` that was cancelled while aiosqlite's worker
        thread was still running it.

        Raises:
            StoreConnectionError: If the pool is closed or no connection frees
                up within ``acquire_timeout`` seconds.
        """
        idle = self._idle
        if idle is None:
            raise StoreConnectionError("Connection pool is not open", operation="acquire")

        try:
            conn = await asyncio.wait_for(idle.get(), timeout=self.acquire_timeout)
        except asyncio.TimeoutError as exc:
            raise StoreConnectionError(
                f"No database connection available after {self.acquire_timeout:.1f}s",
                operation="acquire",
            ) from exc

        clean = False
        try:
            yield conn
            clean = True
        finally:
            await asyncio.shield(self._release(idle, conn, clean))

    async def _release(self, idle: asyncio.Queue, conn: aiosqlite.Connection, clean: bool) -> None:
        """Return ``conn`` to ``idle``, or replace it if its state cannot be restored."""
        if self._idle is not idle:
            return

        if not clean or conn.in_transaction:
            try:
                await conn.rollback()
            except sqlite3.Error:
                logger.exception("[DB POOL] Could not reset a returned connection, replacing it")
                conn = await self._replace(conn)
                if conn is None:
                    return

        if self._idle is idle:
            idle.put_nowait(conn)

    async def _replace(self, conn: aiosqlite.Connection) -> aiosqlite.Connection | None:
        if conn in self._connections:
            self._connections.remove(conn)
        try:
            await conn.close()
        except sqlite3.Error:
            logger.exception("[DB POOL] Failed to close a broken connection")
        try:
            return await self._connect()
        except sqlite3.Error:
            logger.exception("[DB POOL] Failed to open a replacement connection")
            return None

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Borrow a connection for reads.

        Each statement runs in autocommit mode and sees one consistent
        snapshot of committed data.
        """
        async with self.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Borrow a connection inside a write transaction.

        * ``BEGIN IMMEDIATE`` on entry.
        * Commits on clean exit.
        * Rolls back and re-raises if the block raises. ``sqlite3`` errors are
          wrapped in :class:`TransactionError`; Kirby errors pass through.
        * A cancelled caller never leaves the transaction open; see
          :meth:`acquire`.
        """
        async with self.acquire() as conn:
            try:
                await conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise TransactionError(f"Failed to begin transaction: {exc}", operation="begin") from exc

            try:
                yield conn
            except BaseException as exc:
                await self._rollback(conn)
                if isinstance(exc, sqlite3.Error):
                    raise TransactionError(f"Statement failed: {exc}", operation="execute") from exc
                raise

            try:
                await asyncio.shield(conn.commit())
            except sqlite3.Error as exc:
                await self._rollback(conn)
                raise TransactionError(f"Failed to commit transaction: {exc}", operation="commit") from exc

    @staticmethod
    async def _rollback(conn: aiosqlite.Connection) -> None:
        try:
            await asyncio.shield(conn.rollback())
        except sqlite3.Error as exc:
            logger.exception("[DB POOL] Rollback failed")
            raise TransactionError(f"Failed to roll back transaction: {exc}", operation="rollback") from exc
