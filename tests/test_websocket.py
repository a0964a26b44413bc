from contextlib import asynccontextmanager
from typing import Any, Dict, Iterator

import pytest
from fastapi import FastAPI, status
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from starlette.websockets import WebSocketDisconnect

from taskhub.db.meta import meta
from taskhub.db.models import load_all_models
from taskhub.web.application import get_app

from tests.conftest import PASSWORD


@asynccontextmanager
async def _no_lifespan(app: FastAPI):
    yield


@pytest.fixture
def ws_client(tmp_path) -> Iterator[TestClient]:
    """
    A client whose requests and sockets all run on one event loop, backed by
    a sqlite file so every connection is opened on that loop.
    """
    load_all_models()
    db_file = tmp_path / "realtime.db"
    schema_engine = create_engine(f"sqlite:///{db_file}")
    meta.create_all(schema_engine)
    schema_engine.dispose()

    app = get_app()
    app.router.lifespan_context = _no_lifespan
    app.state.db_session_factory = async_sessionmaker(
        create_async_engine(f"sqlite+aiosqlite:///{db_file}", poolclass=NullPool),
        expire_on_commit=False,
    )
    with TestClient(app) as client:
        yield client


def _bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _tenant(client: TestClient) -> Dict[str, Any]:
    """Sign up a company with one employee and return both tokens."""
    response = client.post(
        "/api/auth/signup",
        json={
            "company_name": "Acme Corp",
            "admin_name": "Ada Admin",
            "admin_email": "admin@example.com",
            "password": PASSWORD,
        },
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    admin_token = response.json()["token"]

    response = client.post(
        "/api/users",
        json={"name": "Alice", "email": "alice@example.com", "password": PASSWORD},
        headers=_bearer(admin_token),
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    employee_id = response.json()["id"]

    response = client.post(
        "/api/auth/login", json={"email": "alice@example.com", "password": PASSWORD}
    )
    employee_token = response.json()["token"]
    client.cookies.clear()
    return {
        "admin_token": admin_token,
        "employee_token": employee_token,
        "employee_id": employee_id,
    }


@pytest.mark.parametrize("query", ["", "?token=not-a-token"])
def test_socket_requires_a_valid_session(ws_client: TestClient, query: str):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with ws_client.websocket_connect(f"/api/notifications/ws{query}"):
            pass
    assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION


def test_task_updates_are_relayed_to_the_rest_of_the_organization(ws_client: TestClient):
    tenant = _tenant(ws_client)
    url = "/api/notifications/ws?token={}"

    with ws_client.websocket_connect(url.format(tenant["admin_token"])) as admin_ws:
        with ws_client.websocket_connect(url.format(tenant["employee_token"])) as employee_ws:
            # malformed frames are ignored and the socket stays open
            employee_ws.send_text("not json")
            employee_ws.send_json(["not", "an", "object"])
            employee_ws.send_json({"event": "task-update", "data": {"taskId": 1}})
            assert admin_ws.receive_json() == {"event": "task-updated", "data": {"taskId": 1}}

            admin_ws.send_json({"event": "task-update", "data": {"taskId": 2}})
            # the first frame the employee gets is the admin's, not an echo of its own
            assert employee_ws.receive_json() == {
                "event": "task-updated",
                "data": {"taskId": 2},
            }


def test_socket_joins_the_user_and_organization_rooms(ws_client: TestClient):
    tenant = _tenant(ws_client)

    with ws_client.websocket_connect(
        f"/api/notifications/ws?token={tenant['employee_token']}"
    ) as employee_ws:
        response = ws_client.post(
            "/api/tasks",
            json={"title": "Live", "assigned_to": [tenant["employee_id"]]},
            headers=_bearer(tenant["admin_token"]),
        )
        assert response.status_code == status.HTTP_201_CREATED, response.text

        notification = employee_ws.receive_json()
        assert notification["event"] == "notification"
        assert notification["data"]["type"] == "TASK_ASSIGNED"
        assert notification["data"]["task_id"] == response.json()["id"]

        event = employee_ws.receive_json()
        assert event["event"] == "task-created"
        assert event["data"]["title"] == "Live"
