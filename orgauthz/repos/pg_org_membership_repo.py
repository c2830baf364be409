"""PostgreSQL implementation of OrgMembershipRepo."""

from __future__ import annotations

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orgauthz.db.tables import OrgMembershipRow
from orgauthz.models.organization import OrganizationRole, OrgMembership
from orgauthz.repos.org_membership_repo import DuplicateMembershipError
from orgauthz.repos.pg_errors import is_unique_violation


class PgOrgMembershipRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, profile_id: int, organization_id: int) -> OrgMembership | None:
        stmt = select(OrgMembershipRow).where(
            OrgMembershipRow.profile_id == profile_id,
            OrgMembershipRow.organization_id == organization_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_membership(row) if row is not None else None

    async def add(self, membership: OrgMembership) -> None:
        row = OrgMembershipRow(
            profile_id=membership.profile_id,
            organization_id=membership.organization_id,
            role=membership.role.value,
            created_at=membership.created_at,
        )
        try:
            # Savepoint: a unique violation must not poison the outer transaction
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError as e:
            if not is_unique_violation(e):
                raise
            raise DuplicateMembershipError(
                f"profile={membership.profile_id} "
                f"organization={membership.organization_id}"
            ) from e

    async def update_role(
        self, profile_id: int, organization_id: int, new_role: OrganizationRole
    ) -> OrgMembership | None:
        stmt = (
            update(OrgMembershipRow)
            .where(
                OrgMembershipRow.profile_id == profile_id,
                OrgMembershipRow.organization_id == organization_id,
            )
            .values(role=new_role.value)
        )
        try:
            async with self._session.begin_nested():
                result = await self._session.execute(stmt)
        except IntegrityError as e:
            if not is_unique_violation(e):
                raise
            raise DuplicateMembershipError(
                f"organization={organization_id} already has a main admin"
            ) from e
        if result.rowcount == 0:
            return None
        return await self.get(profile_id, organization_id)

    async def remove(self, profile_id: int, organization_id: int) -> bool:
        stmt = delete(OrgMembershipRow).where(
            OrgMembershipRow.profile_id == profile_id,
            OrgMembershipRow.organization_id == organization_id,
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def list_by_org(self, organization_id: int) -> list[OrgMembership]:
        stmt = (
            select(OrgMembershipRow)
            .where(OrgMembershipRow.organization_id == organization_id)
            .order_by(OrgMembershipRow.created_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_membership(r) for r in rows]

    async def list_by_org_and_role(
        self, organization_id: int, role: OrganizationRole
    ) -> list[OrgMembership]:
        stmt = (
            select(OrgMembershipRow)
            .where(
                OrgMembershipRow.organization_id == organization_id,
                OrgMembershipRow.role == role.value,
            )
            .order_by(OrgMembershipRow.created_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_membership(r) for r in rows]

    async def list_by_profile(self, profile_id: int) -> list[OrgMembership]:
        stmt = select(OrgMembershipRow).where(OrgMembershipRow.profile_id == profile_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_membership(r) for r in rows]


def _row_to_membership(row: OrgMembershipRow) -> OrgMembership:
    return OrgMembership(
        profile_id=row.profile_id,
        organization_id=row.organization_id,
        role=OrganizationRole(row.role),
        created_at=row.created_at,
    )
