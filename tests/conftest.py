from typing import Any, AsyncGenerator, Dict
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from taskhub.accounts import services as accounts
from taskhub.accounts.enums import UserRole
from taskhub.accounts.models import Organization, User
from taskhub.auth import security
from taskhub.auth.dependencies import RequestContext
from taskhub.db.dependencies import get_db_session
from taskhub.db.meta import meta
from taskhub.db.models import load_all_models
from taskhub.notifications import push
from taskhub.notifications.realtime import manager
from taskhub.settings import settings
from taskhub.web.application import get_app

PASSWORD = "password123"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """
    Backend for anyio pytest plugin.

    :return: backend name.
    """
    return "asyncio"


@pytest.fixture
async def _engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Create an in-memory database with every table.

    :yield: new engine.
    """
    load_all_models()
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(meta.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
async def dbsession(_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """
    Get session to database.

    The same session serves the test body and every request it makes.

    :param _engine: current engine.
    :yields: async session.
    """
    session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def _isolate(monkeypatch: pytest.MonkeyPatch, tmp_path) -> AsyncMock:
    """Keep uploads in a temp dir, never reach Firebase, and start with no sockets."""
    monkeypatch.setattr(settings, "upload_dir", tmp_path / "uploads")
    send_push = AsyncMock(return_value=[])
    monkeypatch.setattr(push, "send_push", send_push)
    manager.rooms.clear()
    return send_push


@pytest.fixture
def send_push(_isolate: AsyncMock) -> AsyncMock:
    return _isolate


@pytest.fixture
def fastapi_app(dbsession: AsyncSession, _engine: AsyncEngine) -> FastAPI:
    """
    Fixture for creating FastAPI app.

    :return: fastapi app with mocked dependencies.
    """
    application = get_app()

    async def _get_db_session() -> AsyncGenerator[AsyncSession, None]:
        # A savepoint per request: a failed request only undoes its own work,
        # leaving the (flushed) fixture rows and the test's objects intact.
        async with dbsession.begin_nested():
            yield dbsession
        await dbsession.commit()

    application.dependency_overrides[get_db_session] = _get_db_session
    application.state.db_session_factory = async_sessionmaker(
        _engine, expire_on_commit=False
    )
    return application


@pytest.fixture
async def client(fastapi_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """
    Fixture that creates client for requesting server.

    :param fastapi_app: the application.
    :yield: client for the app.
    """
    async with AsyncClient(
        transport=ASGITransport(app=fastapi_app), base_url="http://test", timeout=2.0
    ) as ac:
        yield ac


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {security.create_access_token(user)}"}


def context(user: User, organization_id: Any = None, impersonating: bool = False) -> RequestContext:
    return RequestContext(
        user=user,
        organization_id=organization_id if organization_id is not None else user.organization_id,
        is_impersonating=impersonating,
    )


async def _user(
    session: AsyncSession,
    organization: Any,
    email: str,
    name: str,
    role: UserRole = UserRole.EMPLOYEE,
) -> User:
    return await accounts.create_user(
        session,
        organization_id=organization.id if organization is not None else None,
        name=name,
        email=email,
        password=PASSWORD,
        role=role,
    )


@pytest.fixture
async def org(dbsession: AsyncSession) -> Organization:
    return await accounts.create_organization(dbsession, name="Acme Corp")


@pytest.fixture
async def admin(dbsession: AsyncSession, org: Organization) -> User:
    return await _user(dbsession, org, "admin@example.com", "Ada Admin", UserRole.ADMIN)


@pytest.fixture
async def employee(dbsession: AsyncSession, org: Organization) -> User:
    return await _user(dbsession, org, "alice@example.com", "Alice")


@pytest.fixture
async def other_employee(dbsession: AsyncSession, org: Organization) -> User:
    return await _user(dbsession, org, "bob@example.com", "Bob")


@pytest.fixture
async def other_org(dbsession: AsyncSession) -> Organization:
    return await accounts.create_organization(dbsession, name="Globex")


@pytest.fixture
async def other_admin(dbsession: AsyncSession, other_org: Organization) -> User:
    return await _user(
        dbsession, other_org, "eve@example.org", "Eve Admin", UserRole.ADMIN
    )


@pytest.fixture
async def super_admin(dbsession: AsyncSession) -> User:
    return await _user(
        dbsession,
        None,
        settings.super_admin_email,
        settings.super_admin_name,
        UserRole.SUPER_ADMIN,
    )
