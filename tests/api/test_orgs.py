from __future__ import annotations

from fastapi.testclient import TestClient

from orgauthz.models.organization import OrganizationRole
from tests.conftest import (
    add_test_member,
    auth,
    create_test_org,
    create_test_profile,
    mint_token,
)

# ---- create ----


def test_teacher_creates_organization(client: TestClient) -> None:
    teacher = create_test_profile("Kim", role="TEACHER")
    resp = client.post(
        "/organizations",
        json={"name": "Kim's Academy", "type": "ACADEMY"},
        headers=auth(mint_token(teacher)),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["name"] == "Kim's Academy"
    assert body["mainAdminProfileId"] == teacher.id
    assert "createdAt" in body

    # creator can immediately read it and see itself as MAIN_ADMIN
    org_id = body["id"]
    members = client.get(
        f"/organizations/{org_id}/members", headers=auth(mint_token(teacher))
    ).json()
    assert [(m["profileId"], m["role"]) for m in members] == [(teacher.id, "MAIN_ADMIN")]


def test_student_cannot_create_organization(client: TestClient) -> None:
    student = create_test_profile("Lee", role="STUDENT")
    resp = client.post(
        "/organizations",
        json={"name": "Nope", "type": "ACADEMY"},
        headers=auth(mint_token(student)),
    )
    assert resp.status_code == 403


def test_create_organization_without_profile_is_401(client: TestClient) -> None:
    resp = client.post(
        "/organizations",
        json={"name": "Nope", "type": "ACADEMY"},
        headers=auth(mint_token(user_id=9, role="TEACHER")),
    )
    assert resp.status_code == 401


def test_create_organization_validates_body(client: TestClient) -> None:
    teacher = create_test_profile()
    resp = client.post(
        "/organizations", json={"name": ""}, headers=auth(mint_token(teacher))
    )
    assert resp.status_code == 422


# ---- my-* listings ----


def test_my_organizations_lists_every_membership(client: TestClient) -> None:
    me = create_test_profile("Me")
    own = create_test_org(me, name="Mine")
    other_admin = create_test_profile("Other")
    joined = create_test_org(other_admin, name="Theirs")
    add_test_member(joined.id, me, OrganizationRole.PARENT)

    resp = client.get("/organizations/my-organizations", headers=auth(mint_token(me)))
    assert resp.status_code == 200
    assert [(o["id"], o["role"]) for o in resp.json()] == [
        (own.id, "MAIN_ADMIN"),
        (joined.id, "PARENT"),
    ]


def test_my_admin_organizations_only_main_admin(client: TestClient) -> None:
    me = create_test_profile("Me")
    own = create_test_org(me, name="Mine")
    other_admin = create_test_profile("Other")
    joined = create_test_org(other_admin, name="Theirs")
    add_test_member(joined.id, me, OrganizationRole.SUB_ADMIN)

    resp = client.get(
        "/organizations/my-admin-organizations", headers=auth(mint_token(me))
    )
    assert [o["id"] for o in resp.json()] == [own.id]


# ---- membership mutations through HTTP ----


def test_add_member_rejects_main_admin_role(client: TestClient) -> None:
    main = create_test_profile("Main")
    org = create_test_org(main)
    newcomer = create_test_profile("New")
    resp = client.post(
        f"/organizations/{org.id}/members",
        json={"profileId": newcomer.id, "role": "MAIN_ADMIN"},
        headers=auth(mint_token(main)),
    )
    assert resp.status_code == 400


def test_add_existing_member_conflicts(client: TestClient) -> None:
    main = create_test_profile("Main")
    org = create_test_org(main)
    student = create_test_profile("Student", role="STUDENT")
    add_test_member(org.id, student, OrganizationRole.STUDENT)

    resp = client.post(
        f"/organizations/{org.id}/members",
        json={"profileId": student.id, "role": "PARENT"},
        headers=auth(mint_token(main)),
    )
    assert resp.status_code == 409


def test_main_admin_cannot_demote_or_remove_self(client: TestClient) -> None:
    main = create_test_profile("Main")
    org = create_test_org(main)
    headers = auth(mint_token(main))

    resp = client.put(
        f"/organizations/{org.id}/members/{main.id}/role",
        json={"role": "STUDENT"},
        headers=headers,
    )
    assert resp.status_code == 400

    resp = client.delete(f"/organizations/{org.id}/members/{main.id}", headers=headers)
    assert resp.status_code == 400

    org_body = client.get(f"/organizations/{org.id}", headers=headers).json()
    assert org_body["mainAdminProfileId"] == main.id


def test_sub_admin_remove_forbidden_main_admin_succeeds(client: TestClient) -> None:
    main = create_test_profile("Main")
    sub = create_test_profile("Sub")
    student = create_test_profile("Student", role="STUDENT")
    org = create_test_org(main)
    add_test_member(org.id, sub, OrganizationRole.SUB_ADMIN)
    add_test_member(org.id, student, OrganizationRole.STUDENT)
    url = f"/organizations/{org.id}/members/{student.id}"

    assert client.delete(url, headers=auth(mint_token(sub))).status_code == 403
    assert client.delete(url, headers=auth(mint_token(main))).status_code == 204
    assert client.delete(url, headers=auth(mint_token(main))).status_code == 404


def test_list_members_by_role_filters(client: TestClient) -> None:
    main = create_test_profile("Main")
    org = create_test_org(main)
    parent = create_test_profile("Parent", role="PARENT")
    add_test_member(org.id, parent, OrganizationRole.PARENT)

    resp = client.get(
        f"/organizations/{org.id}/members/role/PARENT", headers=auth(mint_token(main))
    )
    assert [m["profileId"] for m in resp.json()] == [parent.id]
