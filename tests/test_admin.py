import pytest
from fastapi import status
from httpx import AsyncClient

from taskhub.accounts.models import Organization, User

from tests.conftest import auth_headers


@pytest.mark.anyio
async def test_console_is_super_admin_only(client: AsyncClient, admin: User):
    response = await client.get("/api/super-admin/organizations", headers=auth_headers(admin))
    assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.anyio
async def test_list_organizations_with_counts(
    client: AsyncClient,
    super_admin: User,
    admin: User,
    employee: User,
    other_employee: User,
    other_admin: User,
    org: Organization,
):
    response = await client.get(
        "/api/super-admin/organizations", headers=auth_headers(super_admin)
    )
    assert response.status_code == status.HTTP_200_OK
    summaries = {o["id"]: o for o in response.json()}
    assert summaries[org.id]["admin_count"] == 1
    assert summaries[org.id]["employee_count"] == 2

    response = await client.get(
        "/api/super-admin/organizations",
        params={"search": "globex"},
        headers=auth_headers(super_admin),
    )
    assert [o["name"] for o in response.json()] == ["Globex"]

    for wildcard in ("%", "_"):
        response = await client.get(
            "/api/super-admin/organizations",
            params={"search": wildcard},
            headers=auth_headers(super_admin),
        )
        assert response.json() == []

    response = await client.get(
        f"/api/super-admin/organizations/{org.id}", headers=auth_headers(super_admin)
    )
    detail = response.json()
    assert detail["organization"]["slug"] == org.slug
    assert {u["email"] for u in detail["users"]} == {
        admin.email,
        employee.email,
        other_employee.email,
    }

    response = await client.get(
        "/api/super-admin/organizations/999", headers=auth_headers(super_admin)
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.anyio
async def test_disabling_an_organization_locks_out_members(
    client: AsyncClient, super_admin: User, employee: User, org: Organization
):
    url = f"/api/super-admin/organizations/{org.id}/toggle-status"
    response = await client.patch(url, headers=auth_headers(super_admin))
    assert response.json()["is_active"] is False

    response = await client.get("/api/tasks", headers=auth_headers(employee))
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = await client.get(
        "/api/super-admin/organizations",
        params={"is_active": False},
        headers=auth_headers(super_admin),
    )
    assert [o["id"] for o in response.json()] == [org.id]

    response = await client.patch(url, headers=auth_headers(super_admin))
    assert response.json()["is_active"] is True
    response = await client.get("/api/tasks", headers=auth_headers(employee))
    assert response.status_code == status.HTTP_200_OK

    logs = (
        await client.get(
            "/api/super-admin/audit-logs",
            params={"organization_id": org.id},
            headers=auth_headers(super_admin),
        )
    ).json()
    assert [log["action"] for log in logs] == [
        "ORGANIZATION_ENABLED",
        "ORGANIZATION_DISABLED",
    ]
    assert logs[0]["user"]["id"] == super_admin.id


@pytest.mark.anyio
async def test_audit_log_filters(
    client: AsyncClient, super_admin: User, admin: User, org: Organization
):
    await client.post(
        "/api/users",
        json={"name": "Dan", "email": "dan@example.com", "password": "password123"},
        headers=auth_headers(admin),
    )
    await client.post(
        "/api/auth/impersonate",
        json={"organization_id": org.id},
        headers=auth_headers(super_admin),
    )
    client.cookies.clear()

    response = await client.get(
        "/api/super-admin/audit-logs",
        params={"action": "USER_CREATED"},
        headers=auth_headers(super_admin),
    )
    logs = response.json()
    assert len(logs) == 1
    assert logs[0]["user_id"] == admin.id
    assert logs[0]["payload"]["email"] == "dan@example.com"

    response = await client.get(
        "/api/super-admin/audit-logs",
        params={"user_id": super_admin.id},
        headers=auth_headers(super_admin),
    )
    assert [log["action"] for log in response.json()] == ["IMPERSONATION_START"]
