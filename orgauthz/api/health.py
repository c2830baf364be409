"""Health and readiness endpoints.

/health (liveness): is the process alive.  Reports whether a database is
configured, and the running authorization decision counts.
/ready (readiness): can this instance take traffic.  With a database
configured that means the database answers a trivial query.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response
from prometheus_client import REGISTRY
from sqlalchemy import text

from orgauthz.db import engine as db_engine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _decision_counts() -> dict[str, int]:
    """authz_decisions_total summed per outcome, across mechanisms."""
    counts = {"allow": 0, "deny": 0}
    for metric in REGISTRY.collect():
        for sample in metric.samples:
            if sample.name != "authz_decisions_total":
                continue
            outcome = sample.labels.get("outcome")
            if outcome in counts:
                counts[outcome] += int(sample.value)
    return counts


@router.get("/health")
async def health() -> dict:
    return {
        "status": "ok",
        "checks": {
            "database": "configured" if db_engine.engine is not None else "not_configured",
        },
        "authz_decisions": _decision_counts(),
    }


@router.get("/ready")
async def ready() -> Response:
    if db_engine.engine is None:
        return Response(status_code=200)
    try:
        async with db_engine.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Readiness check failed: database unreachable")
        return Response(status_code=503)
    return Response(status_code=200)
