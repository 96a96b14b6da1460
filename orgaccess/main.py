from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from orgaccess.api.health import router as health_router
from orgaccess.api.invitations import public_router as invitation_link_router
from orgaccess.api.invitations import router as invitations_router
from orgaccess.api.organization import router as organization_router
from orgaccess.core.config import SETTINGS
from orgaccess.core.logging import setup_logging
from orgaccess.db.redis import lifespan_redis
from orgaccess.middleware.metrics import MetricsMiddleware
from orgaccess.middleware.request_context import RequestContextMiddleware
from orgaccess.repos.state_store import state_store

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    async with lifespan_redis():
        yield


app = FastAPI(
    title="orgaccess",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[SETTINGS.app_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last added runs first: RequestContext (outermost) → Metrics → CORS → route
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(health_router)
app.include_router(organization_router)
app.include_router(invitations_router)
app.include_router(invitation_link_router)

logger.info(
    "orgaccess started  env=%s log_level=%s port=%d store=%s seat_reservation=%s docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    state_store.backend,
    "on" if SETTINGS.reserve_seats_for_pending else "off",
    "on" if SETTINGS.is_dev else "off",
)
