"""Permission grant endpoints.

Mutations only need a caller with a profile here; the service checks that
the caller holds MANAGE_PERMISSIONS in the grant's organization.  Read
endpoints are gated by organization membership, or restricted to the
caller's own profile.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import AwareDatetime, Field

from orgauthz.api.dependencies import (
    get_stores,
    require_identity,
    require_profile,
    require_structural_role,
)
from orgauthz.api.schemas import CamelModel
from orgauthz.core.errors import Forbidden
from orgauthz.models.identity import IdentityContext
from orgauthz.models.organization import ADMIN_ROLES, ALL_ROLES
from orgauthz.models.permission import PermissionKind
from orgauthz.models.requirement import AuthorizationDecision
from orgauthz.repos.stores import Stores
from orgauthz.services import organization_service, permission_service
from orgauthz.services.permission_service import GrantView

router = APIRouter(prefix="/permissions", tags=["permissions"])

PLATFORM_ADMIN_ROLE = "ADMIN"

_org_member = require_structural_role(ALL_ROLES, org_id_param="organizationId")
_org_admin = require_structural_role(ADMIN_ROLES, org_id_param="organizationId")

OrganizationIdPath = Annotated[int, Path(alias="organizationId", gt=0)]
ProfileIdPath = Annotated[int, Path(alias="profileId", gt=0)]


# --- Pydantic schemas ---


class GrantIn(CamelModel):
    profile_id: int = Field(gt=0)
    permission: PermissionKind
    expires_at: AwareDatetime | None = None


class UpdateGrantIn(CamelModel):
    expires_at: AwareDatetime | None = None


class NamedRef(CamelModel):
    id: int
    name: str


class GrantOut(CamelModel):
    id: int
    organization_id: int
    profile_id: int
    permission: PermissionKind
    granted_by_profile_id: int
    created_at: datetime
    expires_at: datetime | None
    is_active: bool
    organization: NamedRef | None = None
    profile: NamedRef | None = None
    granted_by: NamedRef | None = None

    @staticmethod
    def of(view: GrantView) -> GrantOut:
        g = view.grant

        def _ref(ref_id: int, name: str | None) -> NamedRef | None:
            return NamedRef(id=ref_id, name=name) if name is not None else None

        return GrantOut(
            id=g.id,
            organization_id=g.organization_id,
            profile_id=g.profile_id,
            permission=g.permission,
            granted_by_profile_id=g.granted_by_profile_id,
            created_at=g.created_at,
            expires_at=g.expires_at,
            is_active=view.is_active,
            organization=_ref(g.organization_id, view.organization_name),
            profile=_ref(g.profile_id, view.profile_name),
            granted_by=_ref(g.granted_by_profile_id, view.granted_by_name),
        )


class CheckOut(CamelModel):
    has_permission: bool
    permission: PermissionKind
    organization_id: int
    profile_id: int


def _out(views: list[GrantView]) -> list[GrantOut]:
    return [GrantOut.of(v) for v in views]


# --- Mutations ---


@router.post(
    "/organizations/{organizationId}",
    response_model=GrantOut,
    status_code=status.HTTP_201_CREATED,
)
async def grant_permission(
    organization_id: OrganizationIdPath,
    body: GrantIn,
    identity: Annotated[IdentityContext, Depends(require_profile)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> GrantOut:
    view = await permission_service.grant(
        stores,
        organization_id,
        body.profile_id,
        body.permission,
        granted_by_profile_id=identity.profile_id,
        expires_at=body.expires_at,
    )
    return GrantOut.of(view)


@router.delete(
    "/organizations/{organizationId}/profiles/{profileId}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def revoke_permission(
    organization_id: OrganizationIdPath,
    profile_id: ProfileIdPath,
    permission: Annotated[PermissionKind, Query()],
    identity: Annotated[IdentityContext, Depends(require_profile)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> None:
    """Revoke a grant.  Revoking a permission that is not held succeeds."""
    await permission_service.revoke(
        stores,
        organization_id,
        profile_id,
        permission,
        revoked_by_profile_id=identity.profile_id,
    )


@router.put("/{id}", response_model=GrantOut)
async def update_permission(
    id: Annotated[int, Path(gt=0)],
    body: UpdateGrantIn,
    identity: Annotated[IdentityContext, Depends(require_profile)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> GrantOut:
    """Change only the expiry of a grant.  Null makes it permanent."""
    view = await permission_service.update_permission(
        stores,
        id,
        expires_at=body.expires_at,
        updated_by_profile_id=identity.profile_id,
    )
    return GrantOut.of(view)


# --- Reads ---


@router.get("/check", response_model=CheckOut)
async def check_permission(
    profile_id: Annotated[int, Query(alias="profileId", gt=0)],
    organization_id: Annotated[int, Query(alias="organizationId", gt=0)],
    permission: Annotated[PermissionKind, Query()],
    identity: Annotated[IdentityContext, Depends(require_profile)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> CheckOut:
    """Anyone may check themselves; checking another profile takes an
    admin role in the organization."""
    if profile_id != identity.profile_id and not (
        await organization_service.check_structural_role(
            stores, identity.profile_id, organization_id, ADMIN_ROLES
        )
    ):
        raise Forbidden("Only organization admins can check other profiles")
    has_permission = await permission_service.check_permission(
        stores, profile_id, organization_id, permission
    )
    return CheckOut(
        has_permission=has_permission,
        permission=permission,
        organization_id=organization_id,
        profile_id=profile_id,
    )


@router.get("/expired", response_model=list[GrantOut])
async def list_expired(
    identity: Annotated[IdentityContext, Depends(require_identity)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> list[GrantOut]:
    """Every lapsed grant across all organizations.  Platform admins only."""
    if identity.role != PLATFORM_ADMIN_ROLE:
        raise Forbidden("Platform admin role required")
    return _out(await permission_service.list_expired(stores))


@router.get("/organizations/{organizationId}", response_model=list[GrantOut])
async def list_organization_permissions(
    decision: Annotated[AuthorizationDecision, Depends(_org_member)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> list[GrantOut]:
    return _out(
        await permission_service.list_by_organization(
            stores, decision.organization_id
        )
    )


@router.get("/organizations/{organizationId}/history", response_model=list[GrantOut])
async def permission_history(
    decision: Annotated[AuthorizationDecision, Depends(_org_admin)],
    stores: Annotated[Stores, Depends(get_stores)],
    profile_id: Annotated[int | None, Query(alias="profileId", gt=0)] = None,
) -> list[GrantOut]:
    """All grants ever made in the organization, lapsed ones included."""
    return _out(
        await permission_service.list_history(
            stores, decision.organization_id, profile_id
        )
    )


@router.get("/profiles/{profileId}", response_model=list[GrantOut])
async def list_profile_permissions(
    profile_id: ProfileIdPath,
    identity: Annotated[IdentityContext, Depends(require_profile)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> list[GrantOut]:
    """Grants held by a profile across organizations; own profile only."""
    if profile_id != identity.profile_id:
        raise Forbidden("You can only list your own permissions")
    return _out(await permission_service.list_by_profile(stores, profile_id))


@router.get(
    "/profiles/{profileId}/organizations/{organizationId}/active",
    response_model=list[GrantOut],
)
async def list_active_permissions(
    profile_id: ProfileIdPath,
    decision: Annotated[AuthorizationDecision, Depends(_org_member)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> list[GrantOut]:
    return _out(
        await permission_service.list_active(
            stores, profile_id, decision.organization_id
        )
    )
