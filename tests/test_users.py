import pytest
from fastapi import status
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.accounts.models import Organization, PushToken, User
from taskhub.auth import security

from tests.conftest import PASSWORD, auth_headers


@pytest.mark.anyio
async def test_admin_manages_employees(client: AsyncClient, admin: User, employee: User):
    response = await client.post(
        "/api/users",
        json={"name": "Carol", "email": "carol@example.com", "password": PASSWORD},
        headers=auth_headers(admin),
    )
    assert response.status_code == status.HTTP_201_CREATED
    carol = response.json()
    assert carol["role"] == "EMPLOYEE"
    assert carol["organization_id"] == admin.organization_id

    response = await client.post(
        "/api/users",
        json={"name": "Carol again", "email": "CAROL@example.com", "password": PASSWORD},
        headers=auth_headers(admin),
    )
    assert response.status_code == status.HTTP_409_CONFLICT

    response = await client.get("/api/users", headers=auth_headers(admin))
    assert {u["email"] for u in response.json()} == {
        "admin@example.com",
        "alice@example.com",
        "carol@example.com",
    }

    response = await client.patch(
        f"/api/users/{carol['id']}",
        json={"name": "Carol C.", "role": "ADMIN"},
        headers=auth_headers(admin),
    )
    assert response.json()["name"] == "Carol C."
    assert response.json()["role"] == "ADMIN"


@pytest.mark.anyio
async def test_employees_cannot_manage_users(client: AsyncClient, employee: User):
    response = await client.get("/api/users", headers=auth_headers(employee))
    assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.anyio
async def test_super_admin_role_cannot_be_granted(client: AsyncClient, admin: User):
    response = await client.post(
        "/api/users",
        json={
            "name": "Mallory",
            "email": "mallory@example.com",
            "password": PASSWORD,
            "role": "SUPER_ADMIN",
        },
        headers=auth_headers(admin),
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.anyio
async def test_last_admin_is_protected(client: AsyncClient, admin: User):
    response = await client.patch(
        f"/api/users/{admin.id}", json={"role": "EMPLOYEE"}, headers=auth_headers(admin)
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    response = await client.delete(f"/api/users/{admin.id}", headers=auth_headers(admin))
    assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.anyio
async def test_deleted_employee_loses_access(
    client: AsyncClient, admin: User, employee: User
):
    headers = auth_headers(employee)
    response = await client.delete(f"/api/users/{employee.id}", headers=auth_headers(admin))
    assert response.status_code == status.HTTP_204_NO_CONTENT

    assert (await client.get("/api/auth/me", headers=headers)).status_code == 401
    response = await client.get(f"/api/users/{employee.id}", headers=auth_headers(admin))
    assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.anyio
async def test_users_of_other_tenants_are_hidden(
    client: AsyncClient, admin: User, other_admin: User
):
    response = await client.get(f"/api/users/{other_admin.id}", headers=auth_headers(admin))
    assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.anyio
async def test_profile_and_notification_settings(client: AsyncClient, employee: User):
    headers = auth_headers(employee)
    profile = (await client.get("/api/users/profile", headers=headers)).json()
    assert profile["notification_settings"]["push_notifications"] is True

    settings_in = dict(profile["notification_settings"], notify_task_updated=False)
    response = await client.patch(
        "/api/users/profile",
        json={"name": "Alice B.", "notification_settings": settings_in},
        headers=headers,
    )
    body = response.json()
    assert body["name"] == "Alice B."
    assert body["notification_settings"]["notify_task_updated"] is False


@pytest.mark.anyio
async def test_notification_settings_are_merged(client: AsyncClient, employee: User):
    headers = auth_headers(employee)
    await client.patch(
        "/api/users/profile",
        json={"notification_settings": {"notify_task_assigned": False}},
        headers=headers,
    )
    response = await client.patch(
        "/api/users/profile",
        json={"notification_settings": {"push_notifications": False}},
        headers=headers,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["notification_settings"] == {
        "email_notifications": True,
        "push_notifications": False,
        "notify_task_assigned": False,
        "notify_task_updated": True,
        "notify_task_completed": True,
    }


@pytest.mark.anyio
async def test_wrong_current_password(client: AsyncClient, employee: User):
    response = await client.post(
        "/api/users/change-password",
        json={"current_password": "wrong-password", "new_password": "another-one"},
        headers=auth_headers(employee),
    )
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.anyio
async def test_employee_stats(client: AsyncClient, admin: User, employee: User):
    for title in ("One", "Two"):
        await client.post(
            "/api/tasks",
            json={"title": title, "assigned_to": [employee.id]},
            headers=auth_headers(admin),
        )
    tasks = (await client.get("/api/tasks", headers=auth_headers(admin))).json()
    await client.patch(
        f"/api/tasks/{tasks[0]['id']}", json={"status": "COMPLETED"}, headers=auth_headers(admin)
    )

    stats = (
        await client.get(f"/api/users/{employee.id}/stats", headers=auth_headers(admin))
    ).json()
    assert stats == {
        "total": 2,
        "completed": 1,
        "in_progress": 0,
        "overdue": 0,
        "completion_rate": 50,
    }


@pytest.mark.anyio
async def test_force_change_password_requires_impersonation(
    client: AsyncClient, admin: User, employee: User, super_admin: User, org: Organization
):
    body = {"user_id": employee.id, "new_password": "reset-by-support"}
    response = await client.post(
        "/api/users/force-change-password", json=body, headers=auth_headers(admin)
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN

    token = security.create_impersonation_token(super_admin, org.id)
    response = await client.post(
        "/api/users/force-change-password",
        json=body,
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == status.HTTP_200_OK

    response = await client.post(
        "/api/auth/login", json={"email": employee.email, "password": "reset-by-support"}
    )
    assert response.status_code == status.HTTP_200_OK


@pytest.mark.anyio
async def test_push_token_registration(
    client: AsyncClient, dbsession: AsyncSession, employee: User
):
    headers = auth_headers(employee)
    for _ in range(2):
        response = await client.post(
            "/api/users/fcm-token", json={"token": "device-1"}, headers=headers
        )
        assert response.status_code == status.HTTP_204_NO_CONTENT

    tokens = (await dbsession.execute(select(PushToken.token))).scalars().all()
    assert tokens == ["device-1"]

    response = await client.request(
        "DELETE", "/api/users/fcm-token", json={"token": "device-1"}, headers=headers
    )
    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert (await dbsession.execute(select(PushToken.token))).scalars().all() == []

    # push tokens are only managed under /api/users
    response = await client.post(
        "/api/auth/fcm-token", json={"token": "device-1"}, headers=headers
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
