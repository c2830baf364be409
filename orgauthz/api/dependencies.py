from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from orgauthz.api.scope import (
    PERMISSION_SCOPE_CHAIN,
    extract_organization_id,
    structural_scope_chain,
)
from orgauthz.core.errors import BadRequest, Forbidden, Unauthorized
from orgauthz.core.metrics import AUTHZ_DECISIONS
from orgauthz.db import engine as db_engine
from orgauthz.middleware.request_context import organization_id_var, profile_id_var
from orgauthz.models.identity import IdentityContext
from orgauthz.models.organization import OrganizationRole
from orgauthz.models.permission import PermissionKind
from orgauthz.models.requirement import (
    AuthorizationDecision,
    PermissionRequirement,
    Requirement,
    StructuralRequirement,
)
from orgauthz.repos.stores import Stores
from orgauthz.services import identity_service, organization_service, permission_service

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)

# Process-wide stores used when DATABASE_URL is not configured.
memory_stores = Stores.in_memory()


async def get_stores() -> AsyncGenerator[Stores, None]:
    """Per-request stores: Pg repos sharing one transaction, or the
    process-wide in-memory bundle."""
    if db_engine.async_session_factory is None:
        yield memory_stores
        return
    async with db_engine.session_scope() as session:
        yield Stores.for_session(session)


async def require_identity(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
) -> IdentityContext:
    """Resolve the bearer credential into an IdentityContext, or 401."""
    if credentials is None:
        raise Unauthorized("Not authenticated")
    identity = identity_service.resolve_identity(credentials.credentials)
    logger.debug(
        "Token validated for user=%d profile=%s",
        identity.user_id,
        identity.profile_id,
    )
    return identity


def _acting_profile_id(identity: IdentityContext) -> int:
    """The profile id the identity acts as, or 401."""
    profile_id = identity.profile_id
    if profile_id is None or profile_id <= 0:
        logger.warning("Access denied: user=%d has no profile", identity.user_id)
        raise Unauthorized("Profile required for this operation")
    profile_id_var.set(profile_id)
    return profile_id


async def require_profile(
    identity: Annotated[IdentityContext, Depends(require_identity)],
) -> IdentityContext:
    """Like require_identity, but the identity must act as a profile."""
    _acting_profile_id(identity)
    return identity


# ---------------------------------------------------------------------------
# Requirement enforcement
# ---------------------------------------------------------------------------


def enforce(requirement: Requirement):
    """Dependency factory: run the authorization pipeline for one route.

    Order is fixed: identity and profile (401), empty requirement (allow),
    organization scope (400), evaluation (403).  A deny never falls
    through to the handler.

    Usage::

        @router.get("/{id}")
        async def get_org(
            decision: Annotated[
                AuthorizationDecision,
                Depends(enforce(StructuralRequirement.of(ALL_ROLES))),
            ],
        ): ...
    """
    if isinstance(requirement, StructuralRequirement):
        mechanism = "structural"
        chain = structural_scope_chain(requirement.org_id_param)
    else:
        mechanism = "permission"
        chain = PERMISSION_SCOPE_CHAIN

    async def _guard(
        request: Request,
        identity: Annotated[IdentityContext, Depends(require_identity)],
        stores: Annotated[Stores, Depends(get_stores)],
    ) -> AuthorizationDecision:
        profile_id = _acting_profile_id(identity)
        if requirement.is_empty:
            return AuthorizationDecision(
                identity=identity, profile_id=profile_id, requirement=requirement
            )

        organization_id = await extract_organization_id(request, chain)
        if organization_id is None:
            logger.warning(
                "Access denied: profile=%d no organization id (%s)",
                profile_id,
                mechanism,
            )
            raise BadRequest("organization id required")
        organization_id_var.set(organization_id)

        decision = AuthorizationDecision(
            identity=identity,
            profile_id=profile_id,
            requirement=requirement,
            organization_id=organization_id,
        )

        if isinstance(requirement, StructuralRequirement):
            allowed = await organization_service.check_structural_role(
                stores, profile_id, organization_id, requirement.roles
            )
            if not allowed:
                _record(mechanism, "deny")
                logger.warning(
                    "Access denied: profile=%d org=%d required_any=%s",
                    profile_id,
                    organization_id,
                    sorted(requirement.roles),
                )
                raise Forbidden("Insufficient organization role")
        else:
            try:
                await permission_service.validate_all_permissions(
                    stores, profile_id, organization_id, requirement.kinds
                )
            except Forbidden as e:
                _record(mechanism, "deny")
                logger.warning(
                    "Access denied: profile=%d org=%d %s",
                    profile_id,
                    organization_id,
                    e.detail,
                )
                raise

        _record(mechanism, "allow")
        logger.debug(
            "Access granted: profile=%d org=%d %s",
            profile_id,
            organization_id,
            mechanism,
        )
        return decision

    return _guard


def _record(mechanism: str, outcome: str) -> None:
    AUTHZ_DECISIONS.labels(mechanism=mechanism, outcome=outcome).inc()


def require_structural_role(
    roles: set[OrganizationRole] | frozenset[OrganizationRole],
    org_id_param: str = "id",
):
    """Usage: Depends(require_structural_role(ADMIN_ROLES))"""
    return enforce(StructuralRequirement.of(roles, org_id_param))


def require_permissions(*kinds: PermissionKind):
    """Usage: Depends(require_permissions(PermissionKind.CREATE_COURSE))

    With no kinds the route only needs a profile.
    """
    return enforce(PermissionRequirement.of(*kinds))
