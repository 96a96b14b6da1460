"""Redis connection management.

When REDIS_URL is configured, the State Store and the event queue are
backed by Redis; when it is not (local dev, tests) both fall back to
in-memory implementations and no server is needed.

WHY REDIS FOR THE STATE STORE
-------------------------------
Access-control records are small, addressed by composite keys
(``organization:{id}:member:{user_id}``) and read on every protected
request.  Redis gives sub-millisecond reads and, more importantly for
seat accounting, optimistic multi-key transactions:

  WATCH organization:{id} invitation:{token} ...   # remember versions
  GET ...                                          # read current state
  MULTI                                            # start queueing
  SET ... / DEL ...                                # buffered writes
  EXEC                                             # applied only if no
                                                   # watched key changed

That is exactly the compare-and-set the accept/remove flows need to keep
``current_seats`` equal to the number of active memberships.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from orgaccess.core.config import SETTINGS

logger = logging.getLogger(__name__)

# Every consumer of redis_pool checks for None and falls back to in-memory.
if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Verify the connection on startup and release the pool on shutdown."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured; state store and events are in-memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
    except (RedisError, OSError):
        # Start anyway; /health reports redis as degraded until it recovers.
        logger.exception("Redis connection failed on startup")
    else:
        logger.info("Redis connected: %s", SETTINGS.redis_url)

    try:
        yield
    finally:
        await redis_pool.aclose()
        logger.info("Redis connection pool closed")
