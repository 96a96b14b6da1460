"""Health, readiness and Prometheus endpoints.

  /health   liveness plus dependency status.  Always 200; the ``status``
            field says "ok" or "degraded".
  /ready    readiness.  503 when Redis is configured but unreachable,
            because then the State Store (the sole source of truth for
            access decisions) is unavailable and every protected request
            would fail.
  /metrics  Prometheus text exposition (not instrumented itself).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from redis.exceptions import RedisError

from orgaccess.db.redis import redis_pool
from orgaccess.repos.state_store import state_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["observability"])


async def _redis_status() -> str:
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except (RedisError, OSError):
        logger.warning("Redis ping failed", exc_info=True)
        return "degraded"
    return "ok"


@router.get("/health")
async def health() -> dict:
    redis_status = await _redis_status()
    return {
        "status": "degraded" if redis_status == "degraded" else "ok",
        "checks": {
            "redis": redis_status,
            "state_store": state_store.backend,
        },
    }


@router.get("/ready")
async def ready() -> Response:
    if await _redis_status() == "degraded":
        return Response(status_code=503)
    return Response(status_code=200)


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
