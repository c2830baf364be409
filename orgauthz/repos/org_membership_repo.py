from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from orgauthz.models.organization import OrganizationRole, OrgMembership


class DuplicateMembershipError(Exception):
    """The write would break a membership uniqueness rule.

    Either the (profile, organization) pair already has a membership, or
    the organization already has its MAIN_ADMIN.
    """


class OrgMembershipRepo(Protocol):
    async def get(
        self, profile_id: int, organization_id: int
    ) -> OrgMembership | None: ...
    async def add(self, membership: OrgMembership) -> None: ...
    async def update_role(
        self, profile_id: int, organization_id: int, new_role: OrganizationRole
    ) -> OrgMembership | None: ...
    async def remove(self, profile_id: int, organization_id: int) -> bool: ...
    async def list_by_org(self, organization_id: int) -> list[OrgMembership]: ...
    async def list_by_org_and_role(
        self, organization_id: int, role: OrganizationRole
    ) -> list[OrgMembership]: ...
    async def list_by_profile(self, profile_id: int) -> list[OrgMembership]: ...


class InMemoryOrgMembershipRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[int, int], OrgMembership] = {}

    async def get(self, profile_id: int, organization_id: int) -> OrgMembership | None:
        return self._store.get((profile_id, organization_id))

    async def add(self, membership: OrgMembership) -> None:
        key = (membership.profile_id, membership.organization_id)
        if key in self._store:
            raise DuplicateMembershipError(
                f"profile={key[0]} already a member of organization={key[1]}"
            )
        self._check_single_main_admin(membership)
        self._store[key] = membership

    async def update_role(
        self, profile_id: int, organization_id: int, new_role: OrganizationRole
    ) -> OrgMembership | None:
        key = (profile_id, organization_id)
        existing = self._store.get(key)
        if existing is None:
            return None
        updated = replace(existing, role=new_role)
        self._check_single_main_admin(updated)
        self._store[key] = updated
        return updated

    async def remove(self, profile_id: int, organization_id: int) -> bool:
        return self._store.pop((profile_id, organization_id), None) is not None

    async def list_by_org(self, organization_id: int) -> list[OrgMembership]:
        members = [m for m in self._store.values() if m.organization_id == organization_id]
        return sorted(members, key=lambda m: m.created_at, reverse=True)

    async def list_by_org_and_role(
        self, organization_id: int, role: OrganizationRole
    ) -> list[OrgMembership]:
        return [m for m in await self.list_by_org(organization_id) if m.role == role]

    async def list_by_profile(self, profile_id: int) -> list[OrgMembership]:
        return [m for m in self._store.values() if m.profile_id == profile_id]

    def clear(self) -> None:
        self._store.clear()

    def _check_single_main_admin(self, membership: OrgMembership) -> None:
        # Mirrors the partial unique index uq_org_memberships_main_admin.
        if membership.role != OrganizationRole.MAIN_ADMIN:
            return
        for m in self._store.values():
            if (
                m.organization_id == membership.organization_id
                and m.role == OrganizationRole.MAIN_ADMIN
                and m.profile_id != membership.profile_id
            ):
                raise DuplicateMembershipError(
                    f"organization={membership.organization_id} already has a main admin"
                )
