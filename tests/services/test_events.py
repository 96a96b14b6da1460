from __future__ import annotations

import asyncio

from prometheus_client import REGISTRY
from redis.exceptions import ConnectionError as RedisConnectionError

from orgaccess.models.organization import MemberRole, OrganizationMember
from orgaccess.services.event_queue import InMemoryEventQueue
from orgaccess.services.events import (
    MEMBER_ROLE_CHANGED,
    MEMBERSHIP_EVENTS_QUEUE,
    EventPublisher,
)


def _published(result: str) -> float:
    return (
        REGISTRY.get_sample_value(
            "events_published_total", {"queue": MEMBERSHIP_EVENTS_QUEUE, "result": result}
        )
        or 0.0
    )


def _member() -> OrganizationMember:
    return OrganizationMember.new(
        organization_id="org-1",
        user_id="u-2",
        email="u2@example.com",
        name="U2",
        role=MemberRole.ADMIN,
        invited_by_user_id="owner-1",
    )


def test_membership_event_payload() -> None:
    queue = InMemoryEventQueue()
    before = _published("ok")
    asyncio.run(
        EventPublisher(queue).membership_changed(
            MEMBER_ROLE_CHANGED, _member(), actor_user_id="owner-1", previous_role="member"
        )
    )

    [event] = queue.pending(MEMBERSHIP_EVENTS_QUEUE)
    assert event.type == MEMBER_ROLE_CHANGED
    assert event.payload == {
        "organization_id": "org-1",
        "user_id": "u-2",
        "email": "u2@example.com",
        "role": "admin",
        "actor_user_id": "owner-1",
        "previous_role": "member",
    }
    assert _published("ok") == before + 1


def test_queue_failure_is_swallowed_and_counted() -> None:
    class DownQueue(InMemoryEventQueue):
        async def enqueue(self, queue, event_type, payload):
            raise RedisConnectionError("connection refused")

    before = _published("failed")
    asyncio.run(
        EventPublisher(DownQueue()).membership_changed(
            MEMBER_ROLE_CHANGED, _member(), actor_user_id="owner-1"
        )
    )
    assert _published("failed") == before + 1
