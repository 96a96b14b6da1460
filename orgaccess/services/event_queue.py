"""Event queue for the collaborators that react to access-control changes.

Two streams leave this service:

  invitation_delivery   "invitation created / resent" → the mail sender
  membership_events     "member joined / role changed / removed" → audit
                        sinks and UI refresh

Neither is part of the transactional core.  Events are published AFTER
the state change has committed, and a publishing failure never undoes or
fails the request that caused it (see services/events.py).

  Producer (API):    LPUSH event onto a Redis list, returns immediately
  Consumer (worker): BRPOP from the list, dispatches to a handler

LPUSH at the head plus BRPOP at the tail gives FIFO order.  BRPOP blocks
server-side until an event arrives, so an idle worker costs nothing.

Delivery is at-most-once: an event popped by a worker that then crashes
is lost.  A lost invitation mail is recovered by ``resend``, which is why
at-least-once machinery (LMOVE to a processing list) is not used here.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from orgaccess.db.redis import redis_pool


@dataclass(frozen=True, slots=True)
class Event:
    id: str
    queue: str
    type: str
    payload: dict


@runtime_checkable
class EventQueue(Protocol):
    async def enqueue(self, queue: str, event_type: str, payload: dict) -> Event: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Event | None: ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryEventQueue:
    """In-memory event queue for dev and tests."""

    def __init__(self) -> None:
        self._queues: dict[str, list[Event]] = {}

    async def enqueue(self, queue: str, event_type: str, payload: dict) -> Event:
        event = Event(id=str(uuid.uuid4()), queue=queue, type=event_type, payload=payload)
        self._queues.setdefault(queue, []).append(event)
        return event

    async def dequeue(self, queue: str, timeout: int = 0) -> Event | None:
        events = self._queues.get(queue, [])
        if events:
            return events.pop(0)
        return None

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, []))

    def pending(self, queue: str) -> list[Event]:
        return list(self._queues.get(queue, []))


class RedisEventQueue:
    """Redis-backed event queue using LPUSH/BRPOP."""

    _PREFIX = "events:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def enqueue(self, queue: str, event_type: str, payload: dict) -> Event:
        event = Event(id=str(uuid.uuid4()), queue=queue, type=event_type, payload=payload)
        await self._redis.lpush(
            f"{self._PREFIX}{queue}",
            json.dumps(
                {
                    "id": event.id,
                    "queue": event.queue,
                    "type": event.type,
                    "payload": event.payload,
                }
            ),
        )
        return event

    async def dequeue(self, queue: str, timeout: int = 5) -> Event | None:
        result = await self._redis.brpop(f"{self._PREFIX}{queue}", timeout=timeout)
        if result is None:
            return None
        _, raw = result
        return Event(**json.loads(raw))

    async def queue_length(self, queue: str) -> int:
        return await self._redis.llen(f"{self._PREFIX}{queue}")


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    event_queue: EventQueue = RedisEventQueue(redis_pool)
else:
    event_queue = InMemoryEventQueue()
