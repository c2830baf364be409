"""PostgreSQL implementation of ProfileRepo."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgauthz.db.tables import ProfileRow
from orgauthz.models.profile import Profile


class PgProfileRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, profile_id: int) -> Profile | None:
        row = await self._session.get(ProfileRow, profile_id)
        return _row_to_profile(row) if row is not None else None

    async def get_many(self, profile_ids: set[int]) -> dict[int, Profile]:
        if not profile_ids:
            return {}
        stmt = select(ProfileRow).where(ProfileRow.id.in_(profile_ids))
        rows = (await self._session.execute(stmt)).scalars().all()
        return {r.id: _row_to_profile(r) for r in rows}

    async def create(self, *, user_id: int, name: str, role: str) -> Profile:
        row = ProfileRow(user_id=user_id, name=name, role=role)
        self._session.add(row)
        await self._session.flush()
        return _row_to_profile(row)


def _row_to_profile(row: ProfileRow) -> Profile:
    return Profile(id=row.id, user_id=row.user_id, name=row.name, role=row.role)
