from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from itertools import count
from typing import Protocol

from orgauthz.models.permission import PermissionGrant, PermissionKind


class DuplicateGrantError(Exception):
    """A grant row already exists for this (organization, profile, permission).

    Raised whether or not the existing row is still active: uniqueness is
    on the tuple, so a lapsed grant must be revoked before re-granting.
    """


class PermissionRepo(Protocol):
    async def add(
        self,
        *,
        organization_id: int,
        profile_id: int,
        permission: PermissionKind,
        granted_by_profile_id: int,
        expires_at: datetime | None,
    ) -> PermissionGrant: ...
    async def get_by_id(self, grant_id: int) -> PermissionGrant | None: ...
    async def delete_matching(
        self, organization_id: int, profile_id: int, permission: PermissionKind
    ) -> int: ...
    async def update_expiry(
        self, grant_id: int, expires_at: datetime | None
    ) -> PermissionGrant | None: ...
    async def has_active(
        self,
        profile_id: int,
        organization_id: int,
        permission: PermissionKind,
        now: datetime,
    ) -> bool: ...
    async def list_by_organization(
        self, organization_id: int
    ) -> list[PermissionGrant]: ...
    async def list_by_profile(self, profile_id: int) -> list[PermissionGrant]: ...
    async def list_active(
        self, profile_id: int, organization_id: int, now: datetime
    ) -> list[PermissionGrant]: ...
    async def list_history(
        self, organization_id: int, profile_id: int | None = None
    ) -> list[PermissionGrant]: ...
    async def list_expired(self, now: datetime) -> list[PermissionGrant]: ...


def _newest_first(grants: list[PermissionGrant]) -> list[PermissionGrant]:
    return sorted(grants, key=lambda g: (g.created_at, g.id), reverse=True)


class InMemoryPermissionRepo:
    """Dict-backed grant store.

    add() checks and inserts without awaiting in between, so on a single
    event loop the uniqueness check cannot interleave with another add().
    """

    def __init__(self) -> None:
        self._by_id: dict[int, PermissionGrant] = {}
        self._ids = count(1)

    async def add(
        self,
        *,
        organization_id: int,
        profile_id: int,
        permission: PermissionKind,
        granted_by_profile_id: int,
        expires_at: datetime | None,
    ) -> PermissionGrant:
        if any(
            g.matches(organization_id, profile_id, permission)
            for g in self._by_id.values()
        ):
            raise DuplicateGrantError(
                f"org={organization_id} profile={profile_id} permission={permission}"
            )
        grant = PermissionGrant(
            id=next(self._ids),
            organization_id=organization_id,
            profile_id=profile_id,
            permission=permission,
            granted_by_profile_id=granted_by_profile_id,
            created_at=datetime.now(UTC),
            expires_at=expires_at,
        )
        self._by_id[grant.id] = grant
        return grant

    async def get_by_id(self, grant_id: int) -> PermissionGrant | None:
        return self._by_id.get(grant_id)

    async def delete_matching(
        self, organization_id: int, profile_id: int, permission: PermissionKind
    ) -> int:
        doomed = [
            g.id
            for g in self._by_id.values()
            if g.matches(organization_id, profile_id, permission)
        ]
        for grant_id in doomed:
            del self._by_id[grant_id]
        return len(doomed)

    async def update_expiry(
        self, grant_id: int, expires_at: datetime | None
    ) -> PermissionGrant | None:
        existing = self._by_id.get(grant_id)
        if existing is None:
            return None
        updated = replace(existing, expires_at=expires_at)
        self._by_id[grant_id] = updated
        return updated

    async def has_active(
        self,
        profile_id: int,
        organization_id: int,
        permission: PermissionKind,
        now: datetime,
    ) -> bool:
        return any(
            g.matches(organization_id, profile_id, permission) and g.is_active(now)
            for g in self._by_id.values()
        )

    async def list_by_organization(self, organization_id: int) -> list[PermissionGrant]:
        return _newest_first(
            [g for g in self._by_id.values() if g.organization_id == organization_id]
        )

    async def list_by_profile(self, profile_id: int) -> list[PermissionGrant]:
        return _newest_first(
            [g for g in self._by_id.values() if g.profile_id == profile_id]
        )

    async def list_active(
        self, profile_id: int, organization_id: int, now: datetime
    ) -> list[PermissionGrant]:
        return _newest_first(
            [
                g
                for g in self._by_id.values()
                if g.profile_id == profile_id
                and g.organization_id == organization_id
                and g.is_active(now)
            ]
        )

    async def list_history(
        self, organization_id: int, profile_id: int | None = None
    ) -> list[PermissionGrant]:
        return _newest_first(
            [
                g
                for g in self._by_id.values()
                if g.organization_id == organization_id
                and (profile_id is None or g.profile_id == profile_id)
            ]
        )

    async def list_expired(self, now: datetime) -> list[PermissionGrant]:
        return _newest_first(
            [g for g in self._by_id.values() if not g.is_active(now)]
        )

    def clear(self) -> None:
        self._by_id.clear()
        self._ids = count(1)
