from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from orgaccess.core.metrics import STORE_CONFLICTS
from orgaccess.repos.state_store import StateStore, StoreConflict, Transaction
from orgaccess.services.errors import ConcurrencyConflict

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


@asynccontextmanager
async def atomic(store: StateStore, operation: str) -> AsyncIterator[Transaction]:
    """Run the body as one all-or-nothing store transaction.

    A lost optimistic race surfaces as the retryable ConcurrencyConflict;
    domain errors raised by the body propagate unchanged and nothing is
    written.
    """
    try:
        async with store.transaction() as txn:
            yield txn
    except StoreConflict as e:
        STORE_CONFLICTS.labels(operation=operation).inc()
        logger.warning("Concurrent update aborted %s: %s", operation, e)
        raise ConcurrencyConflict(operation=operation) from None
