from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class PermissionKind(StrEnum):
    CREATE_COURSE = "course:create"
    UPDATE_COURSE = "course:update"
    DELETE_COURSE = "course:delete"
    MANAGE_ENROLLMENTS = "course:enrollment:manage"
    MANAGE_ATTENDANCE = "course:attendance:manage"
    ASSIGN_INSTRUCTOR = "course:instructor:assign"
    VIEW_COURSE_DETAILS = "course:view"
    MANAGE_SESSIONS = "course:session:manage"
    MANAGE_CLASSES = "course:class:manage"
    # Required to grant, revoke or re-date any other grant in the organization.
    MANAGE_PERMISSIONS = "permission:manage"


@dataclass(frozen=True, slots=True)
class PermissionGrant:
    id: int
    organization_id: int
    profile_id: int
    permission: PermissionKind
    granted_by_profile_id: int
    created_at: datetime
    expires_at: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        """A grant without expiry never lapses; otherwise it must end after now."""
        return self.expires_at is None or self.expires_at > now

    def matches(
        self, organization_id: int, profile_id: int, permission: PermissionKind
    ) -> bool:
        return (
            self.organization_id == organization_id
            and self.profile_id == profile_id
            and self.permission == permission
        )
