from __future__ import annotations

import logging

from redis.exceptions import RedisError

from orgaccess.core.metrics import EVENTS_PUBLISHED
from orgaccess.models.invitation import PendingInvitation
from orgaccess.models.organization import OrganizationMember
from orgaccess.services.event_queue import EventQueue

logger = logging.getLogger(__name__)

INVITATION_DELIVERY_QUEUE = "invitation_delivery"
MEMBERSHIP_EVENTS_QUEUE = "membership_events"

INVITATION_CREATED = "invitation.created"
INVITATION_RESENT = "invitation.resent"
MEMBER_JOINED = "membership.joined"
MEMBER_ROLE_CHANGED = "membership.role_changed"
MEMBER_REMOVED = "membership.removed"


class EventPublisher:
    """Fire-and-forget publishing of post-commit events.

    A broken queue is logged and counted but never turns a committed
    change into a failed request.
    """

    def __init__(self, queue: EventQueue) -> None:
        self._queue = queue

    async def invitation_sent(
        self, invitation: PendingInvitation, *, invitation_url: str, resent: bool = False
    ) -> None:
        await self._publish(
            INVITATION_DELIVERY_QUEUE,
            INVITATION_RESENT if resent else INVITATION_CREATED,
            {
                "invitation_id": invitation.id,
                "organization_id": invitation.organization_id,
                "organization_name": invitation.organization_name,
                "email": invitation.email,
                "role": invitation.role.value,
                "invited_by_name": invitation.invited_by_name,
                "invitation_url": invitation_url,
                "expires_at": invitation.expires_at.isoformat(),
            },
        )

    async def membership_changed(
        self,
        event_type: str,
        member: OrganizationMember,
        *,
        actor_user_id: str,
        previous_role: str | None = None,
    ) -> None:
        payload = {
            "organization_id": member.organization_id,
            "user_id": member.user_id,
            "email": member.email,
            "role": member.role.value,
            "actor_user_id": actor_user_id,
        }
        if previous_role is not None:
            payload["previous_role"] = previous_role
        await self._publish(MEMBERSHIP_EVENTS_QUEUE, event_type, payload)

    async def _publish(self, queue: str, event_type: str, payload: dict) -> None:
        try:
            await self._queue.enqueue(queue, event_type, payload)
        except (RedisError, OSError):
            EVENTS_PUBLISHED.labels(queue=queue, result="failed").inc()
            logger.exception("Failed to publish %s on [%s]", event_type, queue)
            return
        EVENTS_PUBLISHED.labels(queue=queue, result="ok").inc()
        logger.debug("Published %s on [%s]", event_type, queue)
