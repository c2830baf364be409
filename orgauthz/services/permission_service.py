"""Fine-grained permission grants.

A grant is active iff it has no expiry or its expiry is after "now".
Activeness is recomputed on every check; there is no sweeper and no
decision cache, so a revoke or an expiry takes effect on the very next
request.

Every mutation requires the acting profile to hold an active
MANAGE_PERMISSIONS grant in the organization the grant belongs to.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from orgauthz.core.errors import Conflict, Forbidden, NotFound
from orgauthz.models.permission import PermissionGrant, PermissionKind
from orgauthz.repos.permission_repo import DuplicateGrantError
from orgauthz.repos.stores import Stores

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class GrantView:
    """A grant plus the display names a client needs to render it."""

    grant: PermissionGrant
    is_active: bool
    organization_name: str | None = None
    profile_name: str | None = None
    granted_by_name: str | None = None


async def _views(
    stores: Stores, grants: list[PermissionGrant], now: datetime
) -> list[GrantView]:
    profile_ids = {g.profile_id for g in grants} | {
        g.granted_by_profile_id for g in grants
    }
    profiles = await stores.profiles.get_many(profile_ids)
    orgs = {
        o.id: o
        for o in await stores.orgs.list_by_ids(
            sorted({g.organization_id for g in grants})
        )
    }
    views = []
    for g in grants:
        org = orgs.get(g.organization_id)
        profile = profiles.get(g.profile_id)
        grantor = profiles.get(g.granted_by_profile_id)
        views.append(
            GrantView(
                grant=g,
                is_active=g.is_active(now),
                organization_name=org.name if org else None,
                profile_name=profile.name if profile else None,
                granted_by_name=grantor.name if grantor else None,
            )
        )
    return views


async def check_permission(
    stores: Stores,
    profile_id: int,
    organization_id: int,
    permission: PermissionKind,
    *,
    now: datetime | None = None,
) -> bool:
    """Single source of truth for every fine-grained guard."""
    return await stores.permissions.has_active(
        profile_id, organization_id, permission, now or _utcnow()
    )


async def _require_manager(
    stores: Stores, actor_profile_id: int, organization_id: int, now: datetime
) -> None:
    if not await check_permission(
        stores,
        actor_profile_id,
        organization_id,
        PermissionKind.MANAGE_PERMISSIONS,
        now=now,
    ):
        logger.warning(
            "Permission management denied: profile=%d org=%d lacks %s",
            actor_profile_id,
            organization_id,
            PermissionKind.MANAGE_PERMISSIONS,
        )
        raise Forbidden(
            f"Missing permission {PermissionKind.MANAGE_PERMISSIONS.name} "
            f"in organization {organization_id}"
        )


async def grant(
    stores: Stores,
    organization_id: int,
    profile_id: int,
    permission: PermissionKind,
    *,
    granted_by_profile_id: int,
    expires_at: datetime | None = None,
    now: datetime | None = None,
) -> GrantView:
    now = now or _utcnow()
    await _require_manager(stores, granted_by_profile_id, organization_id, now)

    if await stores.profiles.get_by_id(profile_id) is None:
        raise NotFound("Profile not found")

    if await check_permission(stores, profile_id, organization_id, permission, now=now):
        raise Conflict(f"Permission {permission} is already granted")

    try:
        created = await stores.permissions.add(
            organization_id=organization_id,
            profile_id=profile_id,
            permission=permission,
            granted_by_profile_id=granted_by_profile_id,
            expires_at=expires_at,
        )
    except DuplicateGrantError:
        # Either a concurrent grant won the race, or an expired row for the
        # same tuple is still on file.  Both need an explicit revoke first.
        raise Conflict(
            f"A grant of {permission} already exists for this profile; "
            "revoke it before granting again"
        ) from None

    logger.info(
        "Granted %s to profile=%d org=%d by=%d expires_at=%s",
        permission,
        profile_id,
        organization_id,
        granted_by_profile_id,
        expires_at.isoformat() if expires_at else "never",
    )
    return (await _views(stores, [created], now))[0]


async def revoke(
    stores: Stores,
    organization_id: int,
    profile_id: int,
    permission: PermissionKind,
    *,
    revoked_by_profile_id: int,
    now: datetime | None = None,
) -> int:
    """Delete matching grants; returns how many rows went.

    Zero is still a success: the permission is not held afterwards, which
    is what the caller asked for.
    """
    await _require_manager(
        stores, revoked_by_profile_id, organization_id, now or _utcnow()
    )
    removed = await stores.permissions.delete_matching(
        organization_id, profile_id, permission
    )
    logger.info(
        "Revoked %s from profile=%d org=%d by=%d rows=%d",
        permission,
        profile_id,
        organization_id,
        revoked_by_profile_id,
        removed,
    )
    return removed


async def update_permission(
    stores: Stores,
    grant_id: int,
    *,
    expires_at: datetime | None,
    updated_by_profile_id: int,
    now: datetime | None = None,
) -> GrantView:
    now = now or _utcnow()
    existing = await stores.permissions.get_by_id(grant_id)
    if existing is None:
        raise NotFound("Permission grant not found")

    # Checked against the grant's own organization, whatever org the caller
    # is currently working in.
    await _require_manager(stores, updated_by_profile_id, existing.organization_id, now)

    updated = await stores.permissions.update_expiry(grant_id, expires_at)
    if updated is None:
        raise NotFound("Permission grant not found")
    logger.info(
        "Updated grant=%d expires_at=%s by=%d",
        grant_id,
        expires_at.isoformat() if expires_at else "never",
        updated_by_profile_id,
    )
    return (await _views(stores, [updated], now))[0]


async def list_by_organization(stores: Stores, organization_id: int) -> list[GrantView]:
    grants = await stores.permissions.list_by_organization(organization_id)
    return await _views(stores, grants, _utcnow())


async def list_by_profile(stores: Stores, profile_id: int) -> list[GrantView]:
    grants = await stores.permissions.list_by_profile(profile_id)
    return await _views(stores, grants, _utcnow())


async def list_active(
    stores: Stores, profile_id: int, organization_id: int
) -> list[GrantView]:
    now = _utcnow()
    grants = await stores.permissions.list_active(profile_id, organization_id, now)
    return await _views(stores, grants, now)


async def list_history(
    stores: Stores, organization_id: int, profile_id: int | None = None
) -> list[GrantView]:
    """All grants for the organization, expired included, each flagged."""
    grants = await stores.permissions.list_history(organization_id, profile_id)
    return await _views(stores, grants, _utcnow())


async def list_expired(stores: Stores) -> list[GrantView]:
    now = _utcnow()
    grants = await stores.permissions.list_expired(now)
    return await _views(stores, grants, now)


async def validate_permission(
    stores: Stores, profile_id: int, organization_id: int, permission: PermissionKind
) -> None:
    if not await check_permission(stores, profile_id, organization_id, permission):
        raise Forbidden(f"Missing permission {permission.name} ({permission.value})")


async def validate_all_permissions(
    stores: Stores,
    profile_id: int,
    organization_id: int,
    permissions: Iterable[PermissionKind],
) -> None:
    """Raise Forbidden naming the first permission not held."""
    now = _utcnow()
    for permission in permissions:
        if not await check_permission(
            stores, profile_id, organization_id, permission, now=now
        ):
            raise Forbidden(f"Missing permission {permission.name} ({permission.value})")


async def validate_any_permission(
    stores: Stores,
    profile_id: int,
    organization_id: int,
    permissions: Iterable[PermissionKind],
) -> None:
    now = _utcnow()
    for permission in permissions:
        if await check_permission(
            stores, profile_id, organization_id, permission, now=now
        ):
            return
    raise Forbidden("None of the required permissions are held")
