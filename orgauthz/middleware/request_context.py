"""Request context: request IDs, timing, and authorization context for logs.

Every request gets an ID (the client's X-Request-ID if sent, else a
UUID4).  It lives in a ContextVar rather than a thread-local because
concurrent async requests share a thread.

The enforcement pipeline also records the profile and organization it
evaluated in ContextVars, so every log line a service emits while
handling an authorized request carries profile_id and organization_id
without those being threaded through every call.
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
profile_id_var: ContextVar[int | None] = ContextVar("profile_id", default=None)
organization_id_var: ContextVar[int | None] = ContextVar(
    "organization_id", default=None
)


class _RequestContextFilter(logging.Filter):
    """Copy the current request's context onto every LogRecord."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        if getattr(record, "profile_id", None) is None:
            record.profile_id = profile_id_var.get()  # type: ignore[attr-defined]
        if getattr(record, "organization_id", None) is None:
            record.organization_id = organization_id_var.get()  # type: ignore[attr-defined]
        return True


def install_log_filter() -> None:
    # Filters on the root *logger* don't see records propagated from child
    # loggers, so attach to every root handler instead.
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, _RequestContextFilter) for f in handler.filters):
            handler.addFilter(_RequestContextFilter())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, time the request, log one summary line."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request_id_var.set(req_id)
        profile_id_var.set(None)
        organization_id_var.set(None)

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        logger.info(
            "%s %s → %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response
