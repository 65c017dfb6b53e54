"""
Tests for the aiosqlite connection pool.

Covers:
- Opening, pinging and closing the pool
- Commit and rollback semantics of transaction()
- Acquisition timeout on an exhausted pool
- Connections returned clean after a cancelled caller
"""

import asyncio
import contextlib
import sqlite3
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from kirby.database.db_connection import ConnectionPool
from kirby.database.db_schema import SCHEMA_VERSION, SchemaManager
from kirby.datatypes.discord_datatypes import GuildID
from kirby.datatypes.welcome_datatypes import WelcomeField
from kirby.exceptions import StoreConnectionError, TransactionError
from kirby.settings.guild_welcome_store import GuildWelcomeStore


@pytest_asyncio.fixture
async def pool(tmp_path):
    pool = ConnectionPool(tmp_path / "nested" / "test.db", size=2, acquire_timeout=0.2)
    await pool.open()
    async with pool.transaction() as conn:
        await SchemaManager.initialize_schema(conn)
    yield pool
    await pool.close()


async def _count_rows(pool: ConnectionPool) -> int:
    async with pool.read() as conn:
        async with conn.execute("SELECT COUNT(*) FROM guild_welcome") as cursor:
            row = await cursor.fetchone()
    return row[0]


async def _insert(conn, guild_id: str) -> None:
    await conn.execute(
        "INSERT INTO guild_welcome VALUES (?, '', 'text', 'hi', 'original', '')",
        (guild_id,),
    )


def test_pool_rejects_empty_size(tmp_path):
    with pytest.raises(ValueError):
        ConnectionPool(tmp_path / "x.db", size=0)


@pytest.mark.asyncio
async def test_open_creates_parent_directory_and_schema(pool, tmp_path):
    assert pool.is_open
    assert (tmp_path / "nested" / "test.db").exists()

    async with pool.read() as conn:
        async with conn.execute("SELECT version FROM schema_version") as cursor:
            versions = [row[0] for row in await cursor.fetchall()]
        async with conn.execute("PRAGMA journal_mode") as cursor:
            journal_mode = (await cursor.fetchone())[0]

    assert versions == [SCHEMA_VERSION]
    assert journal_mode.lower() == "wal"


@pytest.mark.asyncio
async def test_schema_initialization_is_idempotent(pool):
    async with pool.transaction() as conn:
        await SchemaManager.initialize_schema(conn)

    async with pool.read() as conn:
        async with conn.execute("SELECT COUNT(*) FROM schema_version") as cursor:
            assert (await cursor.fetchone())[0] == 1


@pytest.mark.asyncio
async def test_transaction_commits_on_success(pool):
    async with pool.transaction() as conn:
        await _insert(conn, "1")

    assert await _count_rows(pool) == 1


@pytest.mark.asyncio
async def test_transaction_rolls_back_and_reraises_plain_errors(pool):
    with pytest.raises(RuntimeError):
        async with pool.transaction() as conn:
            await _insert(conn, "1")
            raise RuntimeError("boom")

    assert await _count_rows(pool) == 0


@pytest.mark.asyncio
async def test_transaction_wraps_sqlite_errors(pool):
    async with pool.transaction() as conn:
        await _insert(conn, "1")

    with pytest.raises(TransactionError) as excinfo:
        async with pool.transaction() as conn:
            await _insert(conn, "2")
            await _insert(conn, "1")

    assert excinfo.value.operation == "execute"
    assert isinstance(excinfo.value.__cause__, sqlite3.IntegrityError)
    assert await _count_rows(pool) == 1


@pytest.mark.asyncio
async def test_connection_returns_to_pool_after_failure(pool):
    for _ in range(pool.size + 1):
        with pytest.raises(RuntimeError):
            async with pool.transaction():
                raise RuntimeError("boom")

    assert await _count_rows(pool) == 0


@pytest.mark.asyncio
async def test_acquire_times_out_when_pool_exhausted(pool):
    async with pool.acquire(), pool.acquire():
        with pytest.raises(StoreConnectionError) as excinfo:
            async with pool.acquire():
                pass

    assert excinfo.value.operation == "acquire"


@pytest.mark.asyncio
async def test_waiting_acquire_gets_released_connection(pool):
    async def hold():
        async with pool.acquire():
            await asyncio.sleep(0.05)

    async def wait_for_one():
        async with pool.acquire() as conn:
            return conn

    holders = [asyncio.create_task(hold()) for _ in range(pool.size)]
    await asyncio.sleep(0)
    assert await wait_for_one() is not None
    await asyncio.gather(*holders)


@pytest.mark.asyncio
async def test_acquire_on_closed_pool_raises(tmp_path):
    pool = ConnectionPool(tmp_path / "closed.db", size=1)

    with pytest.raises(StoreConnectionError):
        async with pool.acquire():
            pass


@pytest.mark.asyncio
async def test_open_failure_raises_connection_error(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("file in the way", encoding="utf-8")
    pool = ConnectionPool(blocker / "db.sqlite", size=1)

    with pytest.raises(StoreConnectionError):
        await pool.open()
    assert not pool.is_open


@pytest.mark.asyncio
async def test_close_is_idempotent(tmp_path):
    pool = ConnectionPool(tmp_path / "close.db", size=1)
    await pool.open()
    await pool.close()
    await pool.close()
    assert not pool.is_open


@pytest.mark.asyncio
@pytest.mark.parametrize("yields", range(1, 9))
async def test_cancelled_write_leaves_pool_usable(tmp_path, yields):
    guild = GuildID(7)
    store = GuildWelcomeStore(ConnectionPool(tmp_path / "cancel.db", size=1, acquire_timeout=1.0))
    await store.open()
    try:
        await store.ensure_default(guild)

        task = asyncio.create_task(store.set_field(guild, WelcomeField.CHANNEL, "1"))
        for _ in range(yields):
            await asyncio.sleep(0)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        config = await store.set_field(guild, WelcomeField.CHANNEL, "2")
        assert config.channel_id == "2"
        assert (await store.get(guild)).channel_id == "2"
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_cancelled_transaction_releases_write_lock(pool):
    entered = asyncio.Event()

    async def stuck_writer():
        async with pool.transaction() as conn:
            await _insert(conn, "1")
            entered.set()
            await asyncio.sleep(60)

    task = asyncio.create_task(stuck_writer())
    await entered.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    for _ in range(pool.size):
        async with pool.transaction() as conn:
            assert conn.in_transaction
            await _insert(conn, "2")
            await conn.execute("DELETE FROM guild_welcome WHERE guild_id = '2'")

    assert await _count_rows(pool) == 0


@pytest.mark.asyncio
async def test_connection_that_cannot_roll_back_is_replaced(pool, monkeypatch):
    with pytest.raises(RuntimeError):
        async with pool.acquire() as conn:
            broken = conn
            monkeypatch.setattr(conn, "rollback", AsyncMock(side_effect=sqlite3.OperationalError("gone")))
            raise RuntimeError("boom")

    assert broken not in pool._connections
    assert len(pool._connections) == pool.size

    async with pool.transaction() as conn:
        await _insert(conn, "1")
    assert await _count_rows(pool) == 1
