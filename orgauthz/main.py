from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from orgauthz.api.courses import router as courses_router
from orgauthz.api.health import router as health_router
from orgauthz.api.metrics_endpoint import router as metrics_router
from orgauthz.api.orgs import router as orgs_router
from orgauthz.api.permissions import router as permissions_router
from orgauthz.core.config import SETTINGS
from orgauthz.core.errors import register_exception_handlers
from orgauthz.core.logging import setup_logging
from orgauthz.db.engine import lifespan_db
from orgauthz.middleware.metrics import MetricsMiddleware
from orgauthz.middleware.request_context import (
    RequestContextMiddleware,
    install_log_filter,
)

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
install_log_filter()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    async with lifespan_db():
        yield


app = FastAPI(
    title="org-authz-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

register_exception_handlers(app)

# Last-added runs first: RequestContext (outermost) → Metrics → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(orgs_router)
app.include_router(permissions_router)
app.include_router(courses_router)

logger.info(
    "org-authz-service started  env=%s log_level=%s port=%d db=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "postgres" if SETTINGS.database_url else "in-memory",
)
