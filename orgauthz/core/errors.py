"""Authorization error taxonomy.

Services and the enforcement pipeline raise these; the handler
registered by ``register_exception_handlers`` renders them as
``{"detail": ...}`` with the mapped status code, the same body shape
FastAPI uses for HTTPException.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AuthzError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class Unauthorized(AuthzError):
    """No identity, or the credential could not be resolved."""

    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(AuthzError):
    """Identity resolved but lacks the required role or permission."""

    status_code = status.HTTP_403_FORBIDDEN


class BadRequest(AuthzError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(AuthzError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(AuthzError):
    status_code = status.HTTP_409_CONFLICT


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthzError)
    async def _handle_authz_error(_: Request, exc: AuthzError) -> JSONResponse:
        headers = None
        if isinstance(exc, Unauthorized):
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=headers,
        )
