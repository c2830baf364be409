"""Classify IntegrityErrors raised by the PostgreSQL repos.

Only unique violations mean "this row already exists".  Foreign-key and
not-null failures are bugs or bad input and propagate unchanged.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

UNIQUE_VIOLATION = "23505"


def sqlstate(exc: IntegrityError) -> str | None:
    orig = exc.orig
    # asyncpg's adapted errors expose sqlstate; psycopg's expose pgcode
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_unique_violation(exc: IntegrityError) -> bool:
    return sqlstate(exc) == UNIQUE_VIOLATION
