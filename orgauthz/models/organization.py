from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class OrganizationRole(StrEnum):
    MAIN_ADMIN = "MAIN_ADMIN"  # exactly one per organization, fixed at creation
    SUB_ADMIN = "SUB_ADMIN"
    STUDENT = "STUDENT"
    PARENT = "PARENT"


ADMIN_ROLES = frozenset({OrganizationRole.MAIN_ADMIN, OrganizationRole.SUB_ADMIN})
ALL_ROLES = frozenset(OrganizationRole)


@dataclass(frozen=True, slots=True)
class Organization:
    id: int
    name: str
    type: str
    main_admin_profile_id: int
    created_at: datetime


@dataclass(frozen=True, slots=True)
class OrgMembership:
    profile_id: int
    organization_id: int
    role: OrganizationRole
    created_at: datetime

    @property
    def is_main_admin(self) -> bool:
        return self.role == OrganizationRole.MAIN_ADMIN
