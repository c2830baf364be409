"""Resolve which organization a request acts against.

Requirements say *what* a caller needs; the organization id they need it
in has to be read from the request itself, and endpoints disagree on
where they put it.  Each location is an extractor; a chain tries them in
order and the first one yielding a valid id wins.

A value that is present but not a positive integer counts as absent.
Nothing is ever coerced to a default organization.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from starlette.requests import Request

logger = logging.getLogger(__name__)

ORGANIZATION_ID_FIELD = "organizationId"

Extractor = Callable[[Request], Awaitable[Any]]


def parse_organization_id(raw: Any) -> int | None:
    """Positive integer or None.  Booleans, floats and "12abc" are None."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str):
        text = raw.strip()
        if not (text.isascii() and text.isdigit()):
            return None
        value = int(text)
    else:
        return None
    return value if value > 0 else None


def from_path(name: str) -> Extractor:
    async def _extract(request: Request) -> Any:
        return request.path_params.get(name)

    _extract.__name__ = f"path:{name}"
    return _extract


def from_body(name: str) -> Extractor:
    async def _extract(request: Request) -> Any:
        if not await request.body():
            return None
        try:
            payload = await request.json()
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None
        return payload.get(name)

    _extract.__name__ = f"body:{name}"
    return _extract


def from_query(name: str) -> Extractor:
    async def _extract(request: Request) -> Any:
        return request.query_params.get(name)

    _extract.__name__ = f"query:{name}"
    return _extract


# Fine-grained guard: path, then body, then query string.
PERMISSION_SCOPE_CHAIN: tuple[Extractor, ...] = (
    from_path(ORGANIZATION_ID_FIELD),
    from_body(ORGANIZATION_ID_FIELD),
    from_query(ORGANIZATION_ID_FIELD),
)


def structural_scope_chain(param_name: str = "id") -> tuple[Extractor, ...]:
    """Structural guard: one path parameter, name chosen per route."""
    return (from_path(param_name),)


async def extract_organization_id(
    request: Request, chain: Sequence[Extractor]
) -> int | None:
    for extractor in chain:
        raw = await extractor(request)
        organization_id = parse_organization_id(raw)
        if organization_id is not None:
            return organization_id
        if raw is not None:
            logger.debug("Ignoring unparseable organization id from %s", extractor.__name__)
    return None
