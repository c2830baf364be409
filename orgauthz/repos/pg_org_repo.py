"""PostgreSQL implementation of OrgRepo."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgauthz.db.tables import OrganizationRow
from orgauthz.models.organization import Organization


class PgOrgRepo:
    """Satisfies the OrgRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, organization_id: int) -> Organization | None:
        row = await self._session.get(OrganizationRow, organization_id)
        return _row_to_org(row) if row is not None else None

    async def create(
        self, *, name: str, type: str, main_admin_profile_id: int
    ) -> Organization:
        row = OrganizationRow(
            name=name,
            type=type,
            main_admin_profile_id=main_admin_profile_id,
            created_at=datetime.now(UTC),
        )
        self._session.add(row)
        await self._session.flush()
        return _row_to_org(row)

    async def list_by_main_admin(self, profile_id: int) -> list[Organization]:
        stmt = (
            select(OrganizationRow)
            .where(OrganizationRow.main_admin_profile_id == profile_id)
            .order_by(OrganizationRow.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_org(r) for r in rows]

    async def list_by_ids(self, organization_ids: list[int]) -> list[Organization]:
        if not organization_ids:
            return []
        stmt = select(OrganizationRow).where(OrganizationRow.id.in_(organization_ids))
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_org(r) for r in rows]


def _row_to_org(row: OrganizationRow) -> Organization:
    return Organization(
        id=row.id,
        name=row.name,
        type=row.type,
        main_admin_profile_id=row.main_admin_profile_id,
        created_at=row.created_at,
    )
