"""PostgreSQL implementation of PermissionRepo.

"Active" is evaluated in SQL as ``expires_at IS NULL OR expires_at > :now``
with ``now`` supplied by the caller, so the in-memory and PostgreSQL
stores agree on the boundary.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import ColumnElement, and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orgauthz.db.tables import PermissionGrantRow
from orgauthz.models.permission import PermissionGrant, PermissionKind
from orgauthz.repos.permission_repo import DuplicateGrantError
from orgauthz.repos.pg_errors import is_unique_violation

_NEWEST_FIRST = (PermissionGrantRow.created_at.desc(), PermissionGrantRow.id.desc())


def _active_at(now: datetime) -> ColumnElement[bool]:
    return or_(
        PermissionGrantRow.expires_at.is_(None),
        PermissionGrantRow.expires_at > now,
    )


def _tuple(
    organization_id: int, profile_id: int, permission: PermissionKind
) -> ColumnElement[bool]:
    return and_(
        PermissionGrantRow.organization_id == organization_id,
        PermissionGrantRow.profile_id == profile_id,
        PermissionGrantRow.permission == permission.value,
    )


class PgPermissionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(
        self,
        *,
        organization_id: int,
        profile_id: int,
        permission: PermissionKind,
        granted_by_profile_id: int,
        expires_at: datetime | None,
    ) -> PermissionGrant:
        row = PermissionGrantRow(
            organization_id=organization_id,
            profile_id=profile_id,
            permission=permission.value,
            granted_by_profile_id=granted_by_profile_id,
            created_at=datetime.now(UTC),
            expires_at=expires_at,
        )
        try:
            # The unique constraint is what serializes concurrent grants;
            # the loser lands here.
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError as e:
            if not is_unique_violation(e):
                raise
            raise DuplicateGrantError(
                f"org={organization_id} profile={profile_id} permission={permission}"
            ) from e
        return _row_to_grant(row)

    async def get_by_id(self, grant_id: int) -> PermissionGrant | None:
        row = await self._session.get(PermissionGrantRow, grant_id)
        return _row_to_grant(row) if row is not None else None

    async def delete_matching(
        self, organization_id: int, profile_id: int, permission: PermissionKind
    ) -> int:
        stmt = delete(PermissionGrantRow).where(
            _tuple(organization_id, profile_id, permission)
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def update_expiry(
        self, grant_id: int, expires_at: datetime | None
    ) -> PermissionGrant | None:
        stmt = (
            update(PermissionGrantRow)
            .where(PermissionGrantRow.id == grant_id)
            .values(expires_at=expires_at)
            .returning(PermissionGrantRow)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_grant(row) if row is not None else None

    async def has_active(
        self,
        profile_id: int,
        organization_id: int,
        permission: PermissionKind,
        now: datetime,
    ) -> bool:
        stmt = (
            select(PermissionGrantRow.id)
            .where(_tuple(organization_id, profile_id, permission), _active_at(now))
            .limit(1)
        )
        return (await self._session.execute(stmt)).first() is not None

    async def list_by_organization(self, organization_id: int) -> list[PermissionGrant]:
        return await self._list(PermissionGrantRow.organization_id == organization_id)

    async def list_by_profile(self, profile_id: int) -> list[PermissionGrant]:
        return await self._list(PermissionGrantRow.profile_id == profile_id)

    async def list_active(
        self, profile_id: int, organization_id: int, now: datetime
    ) -> list[PermissionGrant]:
        return await self._list(
            PermissionGrantRow.profile_id == profile_id,
            PermissionGrantRow.organization_id == organization_id,
            _active_at(now),
        )

    async def list_history(
        self, organization_id: int, profile_id: int | None = None
    ) -> list[PermissionGrant]:
        clauses = [PermissionGrantRow.organization_id == organization_id]
        if profile_id is not None:
            clauses.append(PermissionGrantRow.profile_id == profile_id)
        return await self._list(*clauses)

    async def list_expired(self, now: datetime) -> list[PermissionGrant]:
        return await self._list(
            PermissionGrantRow.expires_at.is_not(None),
            PermissionGrantRow.expires_at <= now,
        )

    async def _list(self, *clauses: ColumnElement[bool]) -> list[PermissionGrant]:
        stmt = select(PermissionGrantRow).where(*clauses).order_by(*_NEWEST_FIRST)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_grant(r) for r in rows]


def _row_to_grant(row: PermissionGrantRow) -> PermissionGrant:
    return PermissionGrant(
        id=row.id,
        organization_id=row.organization_id,
        profile_id=row.profile_id,
        permission=PermissionKind(row.permission),
        granted_by_profile_id=row.granted_by_profile_id,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )
