"""WATCH/MULTI/EXEC transactions of the Redis State Store, against fakeredis."""

from __future__ import annotations

import asyncio
import json

import pytest
from fakeredis import FakeAsyncRedis

from orgaccess.repos.state_store import RedisStateStore, StoreConflict


def _run(body) -> None:
    """Run ``body(store, client)`` with a fresh in-process Redis."""

    async def _main() -> None:
        client = FakeAsyncRedis()
        try:
            await body(RedisStateStore(client), client)
        finally:
            await client.aclose()

    asyncio.run(_main())


async def _get(store: RedisStateStore, key: str):
    async with store.transaction() as txn:
        return await txn.get(key)


def test_commit_writes_prefixed_json() -> None:
    async def body(store: RedisStateStore, client: FakeAsyncRedis) -> None:
        async with store.transaction() as txn:
            txn.set("organization:1", {"name": "Acme", "current_seats": 1})

        assert json.loads(await client.get("state:organization:1")) == {
            "name": "Acme",
            "current_seats": 1,
        }
        assert await _get(store, "organization:1") == {"name": "Acme", "current_seats": 1}
        assert await _get(store, "organization:2") is None

    _run(body)


def test_reads_see_own_buffered_writes() -> None:
    async def body(store: RedisStateStore, client: FakeAsyncRedis) -> None:
        await client.set("state:k", json.dumps("stored"))
        async with store.transaction() as txn:
            assert await txn.get("k") == "stored"
            txn.set("k", "buffered")
            assert await txn.get("k") == "buffered"
            txn.delete("k")
            assert await txn.get("k") is None
            # nothing reaches Redis before commit
            assert json.loads(await client.get("state:k")) == "stored"

        assert await client.get("state:k") is None

    _run(body)


def test_body_error_discards_writes() -> None:
    async def body(store: RedisStateStore, client: FakeAsyncRedis) -> None:
        with pytest.raises(RuntimeError):
            async with store.transaction() as txn:
                await txn.get("a")
                txn.set("a", 1)
                txn.set("b", 2)
                raise RuntimeError("boom")

        assert await client.get("state:a") is None
        assert await client.get("state:b") is None
        # the aborted transaction left no WATCH behind
        async with store.transaction() as txn:
            txn.set("a", 3)
        assert await _get(store, "a") == 3

    _run(body)


def test_interleaved_writer_conflicts() -> None:
    async def body(store: RedisStateStore, client: FakeAsyncRedis) -> None:
        await client.set("state:seats", json.dumps(1))

        with pytest.raises(StoreConflict) as exc_info:
            async with store.transaction() as first:
                seats = await first.get("seats")
                # another writer commits between our read and our EXEC
                await client.set("state:seats", json.dumps(2))
                first.set("seats", seats + 1)
                first.set("member:x", {"user_id": "x"})

        assert exc_info.value.keys == ["seats"]
        assert await _get(store, "seats") == 2
        assert await client.get("state:member:x") is None

    _run(body)


def test_read_only_transaction_never_conflicts() -> None:
    async def body(store: RedisStateStore, client: FakeAsyncRedis) -> None:
        await client.set("state:k", json.dumps(1))
        async with store.transaction() as reader:
            value = await reader.get("k")
            await client.set("state:k", json.dumps(2))

        assert value == 1
        assert await _get(store, "k") == 2

    _run(body)


def test_unrelated_keys_do_not_conflict() -> None:
    async def body(store: RedisStateStore, client: FakeAsyncRedis) -> None:
        async with store.transaction() as txn:
            await txn.get("a")
            await client.set("state:b", json.dumps(1))
            txn.set("a", 1)

        assert await _get(store, "a") == 1
        assert await _get(store, "b") == 1

    _run(body)


def test_backend_name() -> None:
    assert RedisStateStore(FakeAsyncRedis()).backend == "redis"
