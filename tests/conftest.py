from __future__ import annotations

import asyncio
from itertools import count

import pytest
from fastapi.testclient import TestClient

from orgauthz.api.courses import reset_courses
from orgauthz.api.dependencies import memory_stores
from orgauthz.main import app
from orgauthz.models.identity import IdentityContext
from orgauthz.models.organization import Organization, OrganizationRole, OrgMembership
from orgauthz.models.profile import Profile
from orgauthz.repos.stores import Stores
from orgauthz.services import identity_service, organization_service

_user_ids = count(100)


@pytest.fixture(autouse=True)
def reset_stores() -> None:
    """Clear the process-wide in-memory stores between tests."""
    memory_stores.orgs.clear()  # type: ignore[attr-defined]
    memory_stores.memberships.clear()  # type: ignore[attr-defined]
    memory_stores.profiles.clear()  # type: ignore[attr-defined]
    memory_stores.permissions.clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def reset_course_state() -> None:
    reset_courses()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def stores() -> Stores:
    """A private in-memory bundle for service-level tests."""
    return Stores.in_memory()


def mint_token(
    profile: Profile | None = None, *, user_id: int = 1, role: str | None = None
) -> str:
    """Create a valid ES256 JWT, acting as ``profile`` when given."""
    if profile is None:
        return identity_service.create_access_token(
            user_id=user_id, email=f"user{user_id}@example.com", role=role
        )
    return identity_service.create_access_token(
        user_id=profile.user_id,
        email=f"user{profile.user_id}@example.com",
        profile_id=profile.id,
        role=profile.role,
    )


def auth(token: str | None) -> dict[str, str]:
    if token is None:
        return {}
    return {"Authorization": f"Bearer {token}"}


def identity_of(profile: Profile) -> IdentityContext:
    return IdentityContext(
        user_id=profile.user_id,
        email=f"user{profile.user_id}@example.com",
        profile_id=profile.id,
        role=profile.role,
    )


# ---------------------------------------------------------------------------
# Seeding helpers (operate on the app's in-memory stores unless given others)
# ---------------------------------------------------------------------------


def create_test_profile(
    name: str = "Test Profile", role: str = "TEACHER", stores: Stores = memory_stores
) -> Profile:
    return asyncio.run(
        stores.profiles.create(user_id=next(_user_ids), name=name, role=role)
    )


def create_test_org(
    main_admin: Profile, name: str = "Test Academy", stores: Stores = memory_stores
) -> Organization:
    """Create an org through the service, so the bootstrap grant exists."""
    return asyncio.run(
        organization_service.create_organization(
            stores,
            name=name,
            type="ACADEMY",
            creator=identity_of(main_admin),
            creator_roles={"TEACHER", "ADMIN"},
        )
    )


def add_test_member(
    org_id: int,
    profile: Profile,
    role: OrganizationRole,
    stores: Stores = memory_stores,
) -> OrgMembership:
    return asyncio.run(
        organization_service.create_membership(stores, profile.id, org_id, role)
    )
