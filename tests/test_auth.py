from datetime import timedelta

import pytest
from fastapi import status
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.accounts.models import Organization, User
from taskhub.admin.enums import AuditAction
from taskhub.admin.models import AuditLog
from taskhub.auth import security
from taskhub.auth.dependencies import resolve_context
from taskhub.settings import settings
from taskhub.utils import Forbidden, Unauthorized

from tests.conftest import PASSWORD, auth_headers


@pytest.mark.anyio
async def test_signup_creates_organization_and_admin(client: AsyncClient, dbsession: AsyncSession):
    response = await client.post(
        "/api/auth/signup",
        json={
            "company_name": "Initech LLC",
            "admin_name": "Peter",
            "admin_email": "Peter@Example.com",
            "password": PASSWORD,
        },
    )
    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["user"]["role"] == "ADMIN"
    assert body["user"]["email"] == "peter@example.com"
    assert body["organization"]["slug"].startswith("initech-llc-")
    assert body["redirect_to"] == f"/{body['organization']['slug']}/dashboard"
    assert response.cookies.get(settings.cookie_name) == body["token"]

    logs = (await dbsession.execute(select(AuditLog))).scalars().all()
    assert [log.action for log in logs] == [AuditAction.ORGANIZATION_CREATED]


@pytest.mark.anyio
async def test_signup_duplicate_email(client: AsyncClient, admin: User):
    response = await client.post(
        "/api/auth/signup",
        json={
            "company_name": "Again",
            "admin_name": "Ada",
            "admin_email": admin.email,
            "password": PASSWORD,
        },
    )
    assert response.status_code == status.HTTP_409_CONFLICT


@pytest.mark.anyio
async def test_login_and_me(client: AsyncClient, admin: User, org: Organization):
    response = await client.post(
        "/api/auth/login", json={"email": admin.email, "password": PASSWORD}
    )
    assert response.status_code == status.HTTP_200_OK
    token = response.json()["token"]

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == status.HTTP_200_OK
    body = me.json()
    assert body["user"]["id"] == admin.id
    assert body["organization"]["id"] == org.id
    assert body["has_admin_privileges"] is True
    assert body["is_impersonating"] is False


@pytest.mark.anyio
async def test_login_wrong_password(client: AsyncClient, admin: User):
    response = await client.post(
        "/api/auth/login", json={"email": admin.email, "password": "not-the-password"}
    )
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.anyio
async def test_login_into_disabled_organization(
    client: AsyncClient, dbsession: AsyncSession, employee: User, org: Organization
):
    org.is_active = False
    await dbsession.flush()

    response = await client.post(
        "/api/auth/login", json={"email": employee.email, "password": PASSWORD}
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.anyio
async def test_requests_without_token_are_rejected(client: AsyncClient):
    response = await client.get("/api/auth/me")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

    response = await client.get(
        "/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.anyio
async def test_logout_clears_cookie(client: AsyncClient, admin: User):
    await client.post("/api/auth/login", json={"email": admin.email, "password": PASSWORD})
    assert client.cookies.get(settings.cookie_name)

    response = await client.post("/api/auth/logout")
    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert not client.cookies.get(settings.cookie_name)


@pytest.mark.anyio
async def test_password_change_revokes_old_tokens(client: AsyncClient, employee: User):
    headers = auth_headers(employee)
    response = await client.post(
        "/api/users/change-password",
        json={"current_password": PASSWORD, "new_password": "a-new-password"},
        headers=headers,
    )
    assert response.status_code == status.HTTP_204_NO_CONTENT

    response = await client.get("/api/auth/me", headers=headers)
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

    response = await client.post(
        "/api/auth/login", json={"email": employee.email, "password": "a-new-password"}
    )
    assert response.status_code == status.HTTP_200_OK


@pytest.mark.anyio
async def test_super_admin_login(client: AsyncClient, super_admin: User, admin: User):
    response = await client.post(
        "/api/auth/super-admin/login",
        json={"email": super_admin.email, "password": PASSWORD},
    )
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["organization"] is None
    assert body["redirect_to"] == "/super-admin"

    response = await client.post(
        "/api/auth/super-admin/login", json={"email": admin.email, "password": PASSWORD}
    )
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.anyio
async def test_impersonation_round_trip(
    client: AsyncClient, dbsession: AsyncSession, super_admin: User, org: Organization
):
    # no organization context before impersonating
    response = await client.get("/api/tasks", headers=auth_headers(super_admin))
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    response = await client.post(
        "/api/auth/impersonate",
        json={"organization_id": org.id},
        headers=auth_headers(super_admin),
    )
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["is_impersonating"] is True
    assert body["redirect_to"] == f"/{org.slug}/dashboard"
    imp_headers = {"Authorization": f"Bearer {body['token']}"}

    response = await client.get("/api/tasks", headers=imp_headers)
    assert response.status_code == status.HTTP_200_OK

    me = (await client.get("/api/auth/me", headers=imp_headers)).json()
    assert me["is_impersonating"] is True
    assert me["organization"]["id"] == org.id

    response = await client.post("/api/auth/exit-impersonation", headers=imp_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["is_impersonating"] is False

    actions = (await dbsession.execute(select(AuditLog.action))).scalars().all()
    assert AuditAction.IMPERSONATION_START in actions
    assert AuditAction.IMPERSONATION_END in actions


@pytest.mark.anyio
async def test_exit_without_impersonating(client: AsyncClient, super_admin: User):
    response = await client.post(
        "/api/auth/exit-impersonation", headers=auth_headers(super_admin)
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.anyio
async def test_only_super_admin_can_impersonate(
    client: AsyncClient, admin: User, other_org: Organization
):
    response = await client.post(
        "/api/auth/impersonate",
        json={"organization_id": other_org.id},
        headers=auth_headers(admin),
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.anyio
async def test_resolve_context(
    dbsession: AsyncSession, employee: User, super_admin: User, org: Organization
):
    ctx = await resolve_context(dbsession, security.create_access_token(employee))
    assert ctx.organization_id == org.id
    assert ctx.is_employee

    ctx = await resolve_context(
        dbsession, security.create_impersonation_token(super_admin, org.id)
    )
    assert ctx.is_impersonating
    assert ctx.organization_id == org.id
    assert ctx.has_admin_privileges

    with pytest.raises(Unauthorized):
        await resolve_context(dbsession, None)

    org.is_active = False
    await dbsession.flush()
    with pytest.raises(Forbidden):
        await resolve_context(dbsession, security.create_access_token(employee))


@pytest.mark.anyio
async def test_impersonation_claim_needs_super_admin(dbsession: AsyncSession, admin: User):
    forged = security._encode(
        {"sub": str(admin.id), "rtp": 0, "imp": True, "org": admin.organization_id},
        timedelta(minutes=5),
    )
    with pytest.raises(Unauthorized):
        await resolve_context(dbsession, forged)
