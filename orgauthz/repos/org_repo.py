from __future__ import annotations

from datetime import UTC, datetime
from itertools import count
from typing import Protocol

from orgauthz.models.organization import Organization


class OrgRepo(Protocol):
    async def get_by_id(self, organization_id: int) -> Organization | None: ...
    async def create(
        self, *, name: str, type: str, main_admin_profile_id: int
    ) -> Organization: ...
    async def list_by_main_admin(self, profile_id: int) -> list[Organization]: ...
    async def list_by_ids(self, organization_ids: list[int]) -> list[Organization]: ...


class InMemoryOrgRepo:
    def __init__(self) -> None:
        self._by_id: dict[int, Organization] = {}
        self._ids = count(1)

    async def get_by_id(self, organization_id: int) -> Organization | None:
        return self._by_id.get(organization_id)

    async def create(
        self, *, name: str, type: str, main_admin_profile_id: int
    ) -> Organization:
        org = Organization(
            id=next(self._ids),
            name=name,
            type=type,
            main_admin_profile_id=main_admin_profile_id,
            created_at=datetime.now(UTC),
        )
        self._by_id[org.id] = org
        return org

    async def list_by_main_admin(self, profile_id: int) -> list[Organization]:
        return [
            o for o in self._by_id.values() if o.main_admin_profile_id == profile_id
        ]

    async def list_by_ids(self, organization_ids: list[int]) -> list[Organization]:
        return [self._by_id[i] for i in organization_ids if i in self._by_id]

    def clear(self) -> None:
        self._by_id.clear()
        self._ids = count(1)
