"""Organization membership and structural-role authorization.

Structural roles answer "who belongs here and who administers it".
They are a small closed set checked by plain set membership, with no
expiry.  The MAIN_ADMIN membership is written once, when the
organization is created, and every mutation below refuses to touch it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from orgauthz.core.errors import BadRequest, Conflict, Forbidden, NotFound, Unauthorized
from orgauthz.models.identity import IdentityContext
from orgauthz.models.organization import (
    ADMIN_ROLES,
    Organization,
    OrganizationRole,
    OrgMembership,
)
from orgauthz.models.permission import PermissionKind
from orgauthz.repos.org_membership_repo import DuplicateMembershipError
from orgauthz.repos.stores import Stores

logger = logging.getLogger(__name__)


async def get_organization(stores: Stores, organization_id: int) -> Organization:
    org = await stores.orgs.get_by_id(organization_id)
    if org is None:
        raise NotFound("Organization not found")
    return org


async def create_organization(
    stores: Stores,
    *,
    name: str,
    type: str,
    creator: IdentityContext,
    creator_roles: Iterable[str],
) -> Organization:
    """Create an organization with the creator as its MAIN_ADMIN.

    Also grants the creator MANAGE_PERMISSIONS without expiry: grants can
    only be issued by a holder of that permission, so someone has to
    start with it.
    """
    profile_id = creator.profile_id
    if profile_id is None or profile_id <= 0:
        raise Unauthorized("Profile required for this operation")
    if creator.role not in set(creator_roles):
        logger.warning(
            "Organization creation denied: profile=%s platform_role=%s",
            creator.profile_id,
            creator.role,
        )
        raise Forbidden("Platform role may not create organizations")

    profile = await stores.profiles.get_by_id(profile_id)
    if profile is None or profile.user_id != creator.user_id:
        raise NotFound("Creator profile not found")

    org = await stores.orgs.create(
        name=name, type=type, main_admin_profile_id=profile.id
    )
    await _set_main_admin(stores, org.id, profile.id)
    await stores.permissions.add(
        organization_id=org.id,
        profile_id=profile.id,
        permission=PermissionKind.MANAGE_PERMISSIONS,
        granted_by_profile_id=profile.id,
        expires_at=None,
    )
    logger.info("Created organization=%d main_admin=%d", org.id, profile.id)
    return org


async def _set_main_admin(stores: Stores, organization_id: int, profile_id: int) -> None:
    # The only writer of MAIN_ADMIN rows; called once per organization.
    await _insert_membership(
        stores, profile_id, organization_id, OrganizationRole.MAIN_ADMIN
    )


async def create_membership(
    stores: Stores,
    profile_id: int,
    organization_id: int,
    role: OrganizationRole,
) -> OrgMembership:
    """Insert a membership with any role but MAIN_ADMIN.

    MAIN_ADMIN is refused: an organization gets exactly one, written when
    it is created.
    """
    if role == OrganizationRole.MAIN_ADMIN:
        raise BadRequest("Main admin already exists and cannot be assigned")
    return await _insert_membership(stores, profile_id, organization_id, role)


async def _insert_membership(
    stores: Stores,
    profile_id: int,
    organization_id: int,
    role: OrganizationRole,
) -> OrgMembership:
    membership = OrgMembership(
        profile_id=profile_id,
        organization_id=organization_id,
        role=role,
        created_at=datetime.now(UTC),
    )
    try:
        await stores.memberships.add(membership)
    except DuplicateMembershipError:
        raise Conflict("Profile is already a member of this organization") from None
    return membership


async def _requester_role(
    stores: Stores, requester_profile_id: int, organization_id: int
) -> OrganizationRole | None:
    # A missing organization has no members, so callers see Forbidden
    # rather than learning whether the organization exists.
    membership = await stores.memberships.get(requester_profile_id, organization_id)
    return membership.role if membership is not None else None


async def add_member(
    stores: Stores,
    organization_id: int,
    *,
    profile_id: int,
    role: OrganizationRole,
    requester_profile_id: int,
) -> OrgMembership:
    requester_role = await _requester_role(stores, requester_profile_id, organization_id)
    if requester_role is None:
        raise Forbidden("You are not a member of this organization")
    if requester_role not in ADMIN_ROLES:
        raise Forbidden("Only admins can add members")

    if role == OrganizationRole.MAIN_ADMIN:
        raise BadRequest("Main admin already exists and cannot be assigned")

    if await stores.profiles.get_by_id(profile_id) is None:
        raise NotFound("Profile not found")

    membership = await create_membership(stores, profile_id, organization_id, role)
    logger.info(
        "Added member profile=%d org=%d role=%s by=%d",
        profile_id,
        organization_id,
        role,
        requester_profile_id,
    )
    return membership


async def update_role(
    stores: Stores,
    organization_id: int,
    *,
    profile_id: int,
    new_role: OrganizationRole,
    requester_profile_id: int,
) -> OrgMembership:
    requester_role = await _requester_role(stores, requester_profile_id, organization_id)
    if requester_role != OrganizationRole.MAIN_ADMIN:
        raise Forbidden("Only main admin can update member roles")

    if new_role == OrganizationRole.MAIN_ADMIN:
        raise BadRequest("Main admin role cannot be assigned to other members")

    target = await stores.memberships.get(profile_id, organization_id)
    if target is None:
        raise NotFound("Member not found in organization")
    if target.is_main_admin:
        raise BadRequest("Main admin role cannot be changed")

    updated = await stores.memberships.update_role(profile_id, organization_id, new_role)
    if updated is None:
        raise NotFound("Member not found in organization")
    logger.info(
        "Changed role profile=%d org=%d %s -> %s",
        profile_id,
        organization_id,
        target.role,
        new_role,
    )
    return updated


async def remove_membership(
    stores: Stores,
    organization_id: int,
    *,
    profile_id: int,
    requester_profile_id: int,
) -> None:
    requester_role = await _requester_role(stores, requester_profile_id, organization_id)
    if requester_role != OrganizationRole.MAIN_ADMIN:
        raise Forbidden("Only main admin can remove members")

    target = await stores.memberships.get(profile_id, organization_id)
    if target is None:
        raise NotFound("Member not found in organization")
    if target.is_main_admin:
        raise BadRequest("Main admin cannot be removed")

    await stores.memberships.remove(profile_id, organization_id)
    logger.info(
        "Removed member profile=%d org=%d by=%d",
        profile_id,
        organization_id,
        requester_profile_id,
    )


async def check_structural_role(
    stores: Stores,
    profile_id: int,
    organization_id: int,
    allowed_roles: Iterable[OrganizationRole],
) -> bool:
    """True iff the profile's membership role is in allowed_roles.

    No membership is an ordinary deny, not an error.
    """
    membership = await stores.memberships.get(profile_id, organization_id)
    if membership is None:
        return False
    return membership.role in set(allowed_roles)


async def list_members(stores: Stores, organization_id: int) -> list[OrgMembership]:
    await get_organization(stores, organization_id)
    return await stores.memberships.list_by_org(organization_id)


async def list_members_by_role(
    stores: Stores, organization_id: int, role: OrganizationRole
) -> list[OrgMembership]:
    await get_organization(stores, organization_id)
    return await stores.memberships.list_by_org_and_role(organization_id, role)


async def list_organizations_for_profile(
    stores: Stores, profile_id: int
) -> list[tuple[Organization, OrganizationRole]]:
    memberships = await stores.memberships.list_by_profile(profile_id)
    roles = {m.organization_id: m.role for m in memberships}
    orgs = await stores.orgs.list_by_ids(list(roles))
    return [(o, roles[o.id]) for o in sorted(orgs, key=lambda o: o.id)]


async def list_organizations_administered_by(
    stores: Stores, profile_id: int
) -> list[Organization]:
    return await stores.orgs.list_by_main_admin(profile_id)
