"""Background worker: consumes access-control events.

RUN:  python -m orgaccess.worker

Same image as the API, different command:
  api:    uvicorn orgaccess.main:app --host 0.0.0.0 --port 8000
  worker: python -m orgaccess.worker

Queues:
  invitation_delivery  invitation created/resent → POST to MAIL_WEBHOOK_URL
                       (the mail-delivery collaborator), or just logged
                       when no webhook is configured
  membership_events    joined / role changed / removed → audit trail

The loop polls every registered queue round-robin and dispatches one
event at a time.  A failing handler is logged and the event dropped;
for invitations the recovery path is ``resend``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

import httpx

from orgaccess.core import audit
from orgaccess.core.config import SETTINGS
from orgaccess.core.logging import setup_logging
from orgaccess.core.metrics import QUEUE_DEPTH
from orgaccess.services.event_queue import Event, EventQueue, event_queue
from orgaccess.services.events import INVITATION_DELIVERY_QUEUE, MEMBERSHIP_EVENTS_QUEUE

EventHandler = Callable[[Event], Coroutine[Any, Any, None]]

logger = logging.getLogger("orgaccess.worker")

MAIL_TIMEOUT_SECONDS = 10.0


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, EventHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def deliver_invitation(
    event: Event,
    *,
    webhook_url: str | None,
    client: httpx.AsyncClient | None = None,
) -> bool:
    """Hand one invitation mail to the delivery webhook.

    Returns False when no webhook is configured.  Raises
    httpx.HTTPError when the webhook rejects the message.
    """
    payload = event.payload
    if not webhook_url:
        logger.info(
            "No MAIL_WEBHOOK_URL; invitation %s for org=%s not mailed (%s)",
            payload.get("invitation_id"),
            payload.get("organization_id"),
            event.type,
        )
        return False

    message = {
        "type": event.type,
        "to": payload["email"],
        "organization_name": payload.get("organization_name"),
        "invited_by_name": payload.get("invited_by_name"),
        "role": payload.get("role"),
        "invitation_url": payload["invitation_url"],
        "expires_at": payload.get("expires_at"),
    }
    if client is None:
        async with httpx.AsyncClient(timeout=MAIL_TIMEOUT_SECONDS) as owned:
            resp = await owned.post(webhook_url, json=message)
    else:
        resp = await client.post(webhook_url, json=message)
    resp.raise_for_status()
    logger.info("Invitation %s handed to mail delivery", payload.get("invitation_id"))
    return True


@register_handler(INVITATION_DELIVERY_QUEUE)
async def handle_invitation_delivery(event: Event) -> None:
    await deliver_invitation(event, webhook_url=SETTINGS.mail_webhook_url)


@register_handler(MEMBERSHIP_EVENTS_QUEUE)
async def handle_membership_event(event: Event) -> None:
    payload = event.payload
    audit.record(
        event.type,
        "applied",
        user_id=payload.get("actor_user_id"),
        organization_id=payload.get("organization_id"),
        member_user_id=payload.get("user_id"),
        role=payload.get("role"),
    )


# ---------------------------------------------------------------------------
# Main worker loop
# ---------------------------------------------------------------------------


async def process_next(queue: EventQueue, queue_name: str, timeout: int = 1) -> bool:
    """Dequeue and handle one event from ``queue_name``; False if the queue was empty."""
    event = await queue.dequeue(queue_name, timeout=timeout)
    QUEUE_DEPTH.labels(queue_name=queue_name).set(await queue.queue_length(queue_name))
    if event is None:
        return False

    handler = HANDLERS[queue_name]
    try:
        await handler(event)
        logger.info("Event %s (%s) on [%s] handled", event.id, event.type, queue_name)
    except Exception:
        # No dead-letter queue: the event is dropped after logging.
        logger.exception("Event %s (%s) on [%s] failed", event.id, event.type, queue_name)
    return True


async def run_worker(queue: EventQueue = event_queue) -> None:
    queues = list(HANDLERS.keys())
    logger.info("Worker started, listening on queues: %s", queues)

    while True:
        handled = False
        for queue_name in queues:
            handled = await process_next(queue, queue_name) or handled
        if not handled:
            # the in-memory queue returns immediately instead of blocking like BRPOP
            await asyncio.sleep(0.5)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
