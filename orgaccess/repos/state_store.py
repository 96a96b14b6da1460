"""Key-value State Store with optimistic multi-key transactions.

All access-control state lives here, addressed by composite keys
(see repos/keys.py).  Every read and write goes through a transaction:

    async with state_store.transaction() as txn:
        org = await txn.get("organization:42")      # read + watch
        txn.set("organization:42", {...})            # buffered
        txn.delete("invitation:abc")                 # buffered
    # commit happens here, all-or-nothing

HOW THE COMMIT WORKS
----------------------
Reads remember the version of every key they touched.  At commit time
the store checks that none of those keys changed since they were read;
if any did, nothing is written and StoreConflict is raised.  This is
optimistic concurrency: two concurrent ``accept`` calls on the same
invitation both read ``status=pending``, but only the first commit wins.
The second sees a conflict, and a retry will observe ``accepted``.

  In-memory:  per-key version numbers, checked and applied under a lock.
  Redis:      WATCH on every read key, then MULTI/EXEC for the writes.
              EXEC aborts (WatchError) if any watched key was modified.

If the ``async with`` body raises, buffered writes are discarded.

Reads inside a transaction see that transaction's own buffered writes.
Transactions that only read never conflict.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Protocol, runtime_checkable

from redis.exceptions import WatchError

from orgaccess.db.redis import redis_pool

logger = logging.getLogger(__name__)

_DELETED = object()


class StoreConflict(Exception):
    """A key read inside the transaction changed before commit."""

    def __init__(self, keys: list[str]) -> None:
        super().__init__(f"concurrent modification of {', '.join(keys) or 'watched keys'}")
        self.keys = keys


@runtime_checkable
class Transaction(Protocol):
    async def get(self, key: str) -> Any | None: ...
    def set(self, key: str, value: Any) -> None: ...
    def delete(self, key: str) -> None: ...


@runtime_checkable
class StateStore(Protocol):
    def transaction(self) -> AbstractAsyncContextManager[Transaction]: ...
    @property
    def backend(self) -> str: ...


class _BufferedWrites:
    """Write buffer shared by both transaction implementations."""

    def __init__(self) -> None:
        self._writes: dict[str, object] = {}

    def set(self, key: str, value: Any) -> None:
        self._writes[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._writes[key] = _DELETED

    def _buffered(self, key: str) -> tuple[bool, Any | None]:
        if key not in self._writes:
            return False, None
        raw = self._writes[key]
        if raw is _DELETED:
            return True, None
        return True, json.loads(raw)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class _InMemoryTransaction(_BufferedWrites):
    def __init__(self, store: InMemoryStateStore) -> None:
        super().__init__()
        self._store = store
        self._read_versions: dict[str, int] = {}

    async def get(self, key: str) -> Any | None:
        hit, value = self._buffered(key)
        if hit:
            return value
        raw, version = self._store._read(key)
        self._read_versions.setdefault(key, version)
        return None if raw is None else json.loads(raw)


class InMemoryStateStore:
    """Dict-backed store for dev and tests.

    Values are kept as JSON text so callers never share mutable objects
    with the store.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._versions: dict[str, int] = {}
        self._clock = 0
        # threading.Lock, not asyncio.Lock: the TestClient runs the app on
        # its own event loop thread while tests drive services directly.
        self._lock = threading.Lock()

    @property
    def backend(self) -> str:
        return "in_memory"

    def _read(self, key: str) -> tuple[str | None, int]:
        with self._lock:
            return self._data.get(key), self._versions.get(key, 0)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        txn = _InMemoryTransaction(self)
        yield txn
        self._commit(txn)

    def _commit(self, txn: _InMemoryTransaction) -> None:
        if not txn._writes:
            return
        with self._lock:
            stale = [
                key
                for key, version in txn._read_versions.items()
                if self._versions.get(key, 0) != version
            ]
            if stale:
                logger.debug("Commit rejected, stale keys=%s", stale)
                raise StoreConflict(stale)
            for key, value in txn._writes.items():
                self._clock += 1
                # deleted keys keep a version so delete-then-recreate is detected
                self._versions[key] = self._clock
                if value is _DELETED:
                    self._data.pop(key, None)
                else:
                    self._data[key] = value  # type: ignore[assignment]


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


class _RedisTransaction(_BufferedWrites):
    def __init__(self, pipe, prefix: str) -> None:
        super().__init__()
        self._pipe = pipe
        self._prefix = prefix
        self._watched: list[str] = []

    async def get(self, key: str) -> Any | None:
        hit, value = self._buffered(key)
        if hit:
            return value
        full_key = f"{self._prefix}{key}"
        if key not in self._watched:
            # WATCH before GET: a write landing between the two aborts EXEC
            await self._pipe.watch(full_key)
            self._watched.append(key)
        raw = await self._pipe.get(full_key)
        return None if raw is None else json.loads(raw)

    async def commit(self) -> None:
        if not self._writes:
            return
        self._pipe.multi()
        for key, value in self._writes.items():
            full_key = f"{self._prefix}{key}"
            if value is _DELETED:
                self._pipe.delete(full_key)
            else:
                self._pipe.set(full_key, value)
        try:
            await self._pipe.execute()
        except WatchError:
            raise StoreConflict(list(self._watched)) from None


class RedisStateStore:
    """Redis-backed store using WATCH/MULTI/EXEC for optimistic commits."""

    _PREFIX = "state:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    @property
    def backend(self) -> str:
        return "redis"

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        # The pipeline context manager resets it (and UNWATCHes) on exit,
        # including when the body raises.
        async with self._redis.pipeline(transaction=True) as pipe:
            txn = _RedisTransaction(pipe, self._PREFIX)
            yield txn
            await txn.commit()


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    state_store: StateStore = RedisStateStore(redis_pool)
else:
    state_store = InMemoryStateStore()
