"""Per-operation authorization requirements.

A route declares what it needs by passing one of these values to
``enforce()`` (or the ``require_*`` shortcuts) when it is registered.
Nothing is looked up reflectively at request time.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from orgauthz.models.identity import IdentityContext
from orgauthz.models.organization import OrganizationRole
from orgauthz.models.permission import PermissionKind


@dataclass(frozen=True, slots=True)
class StructuralRequirement:
    """Caller must hold one of ``roles`` in the organization named by the
    path parameter ``org_id_param``."""

    roles: frozenset[OrganizationRole]
    org_id_param: str = "id"

    @staticmethod
    def of(
        roles: Iterable[OrganizationRole], org_id_param: str = "id"
    ) -> StructuralRequirement:
        return StructuralRequirement(frozenset(roles), org_id_param)

    @property
    def is_empty(self) -> bool:
        return not self.roles


@dataclass(frozen=True, slots=True)
class PermissionRequirement:
    """Caller must hold every kind in ``kinds`` (checked in order)."""

    kinds: tuple[PermissionKind, ...]

    @staticmethod
    def of(*kinds: PermissionKind) -> PermissionRequirement:
        # Preserve declaration order, drop repeats
        return PermissionRequirement(tuple(dict.fromkeys(kinds)))

    @property
    def is_empty(self) -> bool:
        return not self.kinds


Requirement = StructuralRequirement | PermissionRequirement


@dataclass(frozen=True, slots=True)
class AuthorizationDecision:
    """What a protected handler receives once its requirement passed.

    organization_id is None only for routes that declared no requirement.
    profile_id is the acting profile, already checked present.
    """

    identity: IdentityContext
    profile_id: int
    requirement: Requirement
    organization_id: int | None = None
