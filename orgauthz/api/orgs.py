"""Organization and membership endpoints.

The organization id is the ``id`` path parameter on every scoped route;
the structural guard reads it from there.  The my-* routes are declared
before ``/{id}`` so they are not captured by it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Path, status
from pydantic import Field

from orgauthz.api.dependencies import (
    get_stores,
    require_profile,
    require_structural_role,
)
from orgauthz.api.schemas import CamelModel
from orgauthz.core.config import SETTINGS
from orgauthz.models.identity import IdentityContext
from orgauthz.models.organization import (
    ADMIN_ROLES,
    ALL_ROLES,
    Organization,
    OrganizationRole,
    OrgMembership,
)
from orgauthz.models.requirement import AuthorizationDecision
from orgauthz.repos.stores import Stores
from orgauthz.services import organization_service

router = APIRouter(prefix="/organizations", tags=["organizations"])

_any_member = require_structural_role(ALL_ROLES)
_admin = require_structural_role(ADMIN_ROLES)
_main_admin = require_structural_role({OrganizationRole.MAIN_ADMIN})


# --- Pydantic schemas ---


class OrganizationCreateIn(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    type: str = Field(min_length=1, max_length=50)


class OrganizationOut(CamelModel):
    id: int
    name: str
    type: str
    main_admin_profile_id: int
    created_at: datetime

    @staticmethod
    def of(org: Organization) -> OrganizationOut:
        return OrganizationOut(
            id=org.id,
            name=org.name,
            type=org.type,
            main_admin_profile_id=org.main_admin_profile_id,
            created_at=org.created_at,
        )


class MyOrganizationOut(OrganizationOut):
    role: OrganizationRole


class MemberOut(CamelModel):
    profile_id: int
    organization_id: int
    role: OrganizationRole
    created_at: datetime

    @staticmethod
    def of(m: OrgMembership) -> MemberOut:
        return MemberOut(
            profile_id=m.profile_id,
            organization_id=m.organization_id,
            role=m.role,
            created_at=m.created_at,
        )


class AddMemberIn(CamelModel):
    profile_id: int = Field(gt=0)
    role: OrganizationRole


class UpdateRoleIn(CamelModel):
    role: OrganizationRole


# --- Endpoints ---


@router.post("", response_model=OrganizationOut, status_code=status.HTTP_201_CREATED)
async def create_organization(
    body: OrganizationCreateIn,
    identity: Annotated[IdentityContext, Depends(require_profile)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> OrganizationOut:
    """Create an organization. The creator becomes its MAIN_ADMIN."""
    org = await organization_service.create_organization(
        stores,
        name=body.name,
        type=body.type,
        creator=identity,
        creator_roles=SETTINGS.org_creator_roles,
    )
    return OrganizationOut.of(org)


@router.get("/my-organizations", response_model=list[MyOrganizationOut])
async def my_organizations(
    identity: Annotated[IdentityContext, Depends(require_profile)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> list[MyOrganizationOut]:
    rows = await organization_service.list_organizations_for_profile(
        stores, identity.profile_id
    )
    return [
        MyOrganizationOut(**OrganizationOut.of(org).model_dump(), role=role)
        for org, role in rows
    ]


@router.get("/my-admin-organizations", response_model=list[OrganizationOut])
async def my_admin_organizations(
    identity: Annotated[IdentityContext, Depends(require_profile)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> list[OrganizationOut]:
    """Organizations the caller is MAIN_ADMIN of."""
    orgs = await organization_service.list_organizations_administered_by(
        stores, identity.profile_id
    )
    return [OrganizationOut.of(o) for o in orgs]


@router.get("/{id}", response_model=OrganizationOut)
async def get_organization(
    decision: Annotated[AuthorizationDecision, Depends(_any_member)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> OrganizationOut:
    org = await organization_service.get_organization(stores, decision.organization_id)
    return OrganizationOut.of(org)


@router.get("/{id}/members", response_model=list[MemberOut])
async def list_members(
    decision: Annotated[AuthorizationDecision, Depends(_admin)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> list[MemberOut]:
    members = await organization_service.list_members(
        stores, decision.organization_id
    )
    return [MemberOut.of(m) for m in members]


@router.get("/{id}/members/role/{role}", response_model=list[MemberOut])
async def list_members_by_role(
    role: OrganizationRole,
    decision: Annotated[AuthorizationDecision, Depends(_admin)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> list[MemberOut]:
    members = await organization_service.list_members_by_role(
        stores, decision.organization_id, role
    )
    return [MemberOut.of(m) for m in members]


@router.post(
    "/{id}/members",
    response_model=MemberOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_member(
    body: AddMemberIn,
    decision: Annotated[AuthorizationDecision, Depends(_admin)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> MemberOut:
    membership = await organization_service.add_member(
        stores,
        decision.organization_id,
        profile_id=body.profile_id,
        role=body.role,
        requester_profile_id=decision.profile_id,
    )
    return MemberOut.of(membership)


@router.put("/{id}/members/{profileId}/role", response_model=MemberOut)
async def update_member_role(
    profile_id: Annotated[int, Path(alias="profileId")],
    body: UpdateRoleIn,
    decision: Annotated[AuthorizationDecision, Depends(_main_admin)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> MemberOut:
    updated = await organization_service.update_role(
        stores,
        decision.organization_id,
        profile_id=profile_id,
        new_role=body.role,
        requester_profile_id=decision.profile_id,
    )
    return MemberOut.of(updated)


@router.delete("/{id}/members/{profileId}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    profile_id: Annotated[int, Path(alias="profileId")],
    decision: Annotated[AuthorizationDecision, Depends(_main_admin)],
    stores: Annotated[Stores, Depends(get_stores)],
) -> None:
    await organization_service.remove_membership(
        stores,
        decision.organization_id,
        profile_id=profile_id,
        requester_profile_id=decision.profile_id,
    )
