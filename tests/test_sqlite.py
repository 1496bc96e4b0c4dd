import asyncio
import sqlite3

import aiosqlite
import pytest

from txkeeper import (
    ContentionError,
    InterfaceError,
    SQLiteInterface,
    connect,
)
from txkeeper.interface.sqlite import is_contention
from txkeeper.transaction import runner as runner_module


async def test_committed_transaction_is_visible(db):
    async def body(tx):
        result = await tx.insert("users", {"name": "Alice", "balance": 10})
        return result.last_row_id

    row_id = await db.transaction(body)

    row = await db.first("users", {"id": row_id})
    assert row == {"id": row_id, "name": "Alice", "balance": 10}


async def test_nested_rollback_is_isolated(db):
    async def failing_update(tx):
        await tx.update("users", {"balance": 99}, {"name": "Alice"})
        assert (await tx.first("users", {"name": "Alice"}))["balance"] == 99
        raise RuntimeError("abort nested")

    async def body(tx):
        await tx.insert("users", {"name": "Alice", "balance": 10})
        with pytest.raises(RuntimeError):
            await tx.nested(failing_update)
        return await tx.first("users", {"name": "Alice"})

    row = await db.transaction(body)

    assert row["balance"] == 10
    assert (await db.first("users", {"name": "Alice"}))["balance"] == 10


async def test_outer_rollback_discards_everything(db):
    async def nested_insert(tx):
        await tx.insert("users", {"name": "Bob"})

    async def body(tx):
        await tx.insert("users", {"name": "Alice"})
        await tx.nested(nested_insert)
        raise RuntimeError("abort outer")

    with pytest.raises(RuntimeError):
        await db.transaction(body)

    assert await db.select("users") == []


async def test_snapshot_restores_state(db):
    async def body(tx):
        await tx.insert("users", {"name": "Alice", "balance": 10})
        revert = await tx.snapshot()
        await tx.update("users", {"balance": 0}, {"name": "Alice"})
        await tx.insert("users", {"name": "Bob"})

        await revert()
        after_revert = await tx.select("users")
        await revert()
        return after_revert, await tx.select("users")

    first, second = await db.transaction(body)

    assert first == [{"id": 1, "name": "Alice", "balance": 10}]
    assert second == first


async def test_constraint_error_propagates(db):
    await db.insert("users", {"name": "Alice"})

    async def body(tx):
        await tx.insert("users", {"name": "Alice"})

    with pytest.raises(sqlite3.IntegrityError):
        await db.transaction(body, tries=3)

    assert len(await db.select("users")) == 1


async def test_builders_round_trip(db):
    async def body(tx):
        await tx.create("users", {"name": "Alice", "balance": 5})
        await tx.create("users", {"name": "Bob", "balance": 7})
        await tx.update_one("users", {"balance": 8}, {"name": "Bob"})
        await tx.delete_one("users", {"name": "Alice"})
        return await tx.find("users", order_by=["id"])

    rows = await db.transaction(body)

    assert rows == [{"id": 2, "name": "Bob", "balance": 8}]
    assert await db.find_one("users", {"name": "Alice"}) is None


async def test_foreign_keys_pragma(db):
    assert not await db.foreign_keys_enabled()
    await db.enable_foreign_keys()
    assert await db.foreign_keys_enabled()


async def test_closed_interface():
    interface = SQLiteInterface(":memory:")
    with pytest.raises(InterfaceError):
        await interface.query_all("SELECT 1")

    await interface.open()
    assert interface.is_open
    assert await interface.query_one("SELECT 1 AS one") == {"one": 1}
    await interface.close()
    assert not interface.is_open


def test_is_contention():
    assert is_contention(sqlite3.OperationalError("database is locked"))
    assert is_contention(sqlite3.OperationalError("SQLITE_BUSY: busy"))
    assert not is_contention(sqlite3.OperationalError("no such table: x"))
    assert not is_contention(ValueError("database is locked"))


async def test_busy_database_is_retried(tmp_path, monkeypatch):
    path = str(tmp_path / "busy.db")
    db = await connect(path, busy_timeout_ms=0, timeout=0)
    await db.execute("CREATE TABLE items (name TEXT)")

    blocker = await aiosqlite.connect(path, isolation_level=None)
    await blocker.execute("BEGIN IMMEDIATE")

    delays = []

    async def release_lock(delay):
        delays.append(delay)
        await blocker.execute("COMMIT")

    monkeypatch.setattr(runner_module, "sleep", release_lock)

    attempts = 0

    async def body(tx):
        nonlocal attempts
        attempts += 1
        await tx.insert("items", {"name": "widget"})

    try:
        await db.transaction(body, tries=2, backoff_ms=10)
        assert attempts == 2
        assert delays == [0.01]
        assert await db.select("items") == [{"name": "widget"}]
    finally:
        await blocker.close()
        await db.close()


async def test_busy_database_exhausts_tries(tmp_path, monkeypatch):
    path = str(tmp_path / "busy.db")
    db = await connect(path, busy_timeout_ms=0, timeout=0)
    await db.execute("CREATE TABLE items (name TEXT)")

    blocker = await aiosqlite.connect(path, isolation_level=None)
    await blocker.execute("BEGIN IMMEDIATE")

    async def no_sleep(delay): ...

    monkeypatch.setattr(runner_module, "sleep", no_sleep)

    async def body(tx):
        await tx.insert("items", {"name": "widget"})

    try:
        with pytest.raises(ContentionError) as excinfo:
            await db.transaction(body, tries=3)
        assert isinstance(excinfo.value.__cause__, sqlite3.OperationalError)
    finally:
        await blocker.close()
        await db.close()


async def test_concurrent_nested_siblings(db):
    def add(name):
        async def child(tx):
            await asyncio.sleep(0.01)
            await tx.insert("users", {"name": name, "balance": 1})

        return child

    async def body(tx):
        await asyncio.gather(
            tx.nested(add("Alice")), tx.nested(add("Bob"))
        )

    await asyncio.wait_for(db.transaction(body), timeout=1)

    rows = await db.select("users", order_by=["name"])
    assert [row["name"] for row in rows] == ["Alice", "Bob"]


async def test_runners_do_not_share_active_transactions(tmp_path):
    one = await connect(str(tmp_path / "one.db"))
    two = await connect(str(tmp_path / "two.db"))
    for runner in (one, two):
        await runner.execute("CREATE TABLE t (x INTEGER)")

    async def write_two(tx):
        assert tx.depth == 1
        await tx.insert("t", {"x": 2})

    async def body(tx):
        await tx.insert("t", {"x": 1})
        await two.transaction(write_two)
        await two.execute("INSERT INTO t (x) VALUES (?)", (3,))

    try:
        await asyncio.wait_for(one.transaction(body), timeout=1)
        assert await one.select("t", order_by=["x"]) == [{"x": 1}]
        assert await two.select("t", order_by=["x"]) == [{"x": 2}, {"x": 3}]
    finally:
        await one.close()
        await two.close()
