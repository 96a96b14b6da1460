"""Request context middleware: request IDs, timing and the request summary log line.

Every request gets an ID (the client's X-Request-ID or a fresh UUID),
kept in a ContextVar so any log line emitted while serving the request
carries it, whatever module logs it.  The ID is echoed back in the
X-Request-ID response header.

The summary line logs the ROUTE TEMPLATE, not the raw URL path:

    POST /v1/invitations/{token}/accept → 200 (4.1ms)

Invitation tokens are bearer capabilities; the raw path would write them
into the logs.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

UNMATCHED_ROUTE = "unmatched"


def route_path(request: Request) -> str:
    """Route template that served the request (set by the router once matched)."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if isinstance(path, str) else UNMATCHED_ROUTE


def _install_record_factory() -> None:
    """Stamp the current request ID on every LogRecord, whichever logger creates it."""
    base_factory = logging.getLogRecordFactory()
    if getattr(base_factory, "_stamps_request_id", False):
        return

    def factory(*args, **kwargs) -> logging.LogRecord:
        record = base_factory(*args, **kwargs)
        record.request_id = request_id_var.get()
        return record

    factory._stamps_request_id = True  # type: ignore[attr-defined]
    logging.setLogRecordFactory(factory)


_install_record_factory()


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request_id_var.set(req_id)

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        path = route_path(request)
        logger.info(
            "%s %s → %d (%.1fms)",
            request.method,
            path,
            response.status_code,
            duration_ms,
            extra={
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response
