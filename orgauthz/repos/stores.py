"""Bundle of the four stores a service call may touch.

In-memory mode uses one long-lived bundle for the whole process; with
DATABASE_URL set, a fresh bundle of Pg repos is built per request around
that request's session so every write in the request shares a
transaction.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from orgauthz.repos.org_membership_repo import (
    InMemoryOrgMembershipRepo,
    OrgMembershipRepo,
)
from orgauthz.repos.org_repo import InMemoryOrgRepo, OrgRepo
from orgauthz.repos.permission_repo import InMemoryPermissionRepo, PermissionRepo
from orgauthz.repos.pg_org_membership_repo import PgOrgMembershipRepo
from orgauthz.repos.pg_org_repo import PgOrgRepo
from orgauthz.repos.pg_permission_repo import PgPermissionRepo
from orgauthz.repos.pg_profile_repo import PgProfileRepo
from orgauthz.repos.profile_repo import InMemoryProfileRepo, ProfileRepo


@dataclass(frozen=True, slots=True)
class Stores:
    orgs: OrgRepo
    memberships: OrgMembershipRepo
    profiles: ProfileRepo
    permissions: PermissionRepo

    @staticmethod
    def in_memory() -> Stores:
        return Stores(
            orgs=InMemoryOrgRepo(),
            memberships=InMemoryOrgMembershipRepo(),
            profiles=InMemoryProfileRepo(),
            permissions=InMemoryPermissionRepo(),
        )

    @staticmethod
    def for_session(session: AsyncSession) -> Stores:
        return Stores(
            orgs=PgOrgRepo(session),
            memberships=PgOrgMembershipRepo(session),
            profiles=PgProfileRepo(session),
            permissions=PgPermissionRepo(session),
        )
