"""Tests for the gated to-do resource and the health endpoints."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import pytest

from fastapi.testclient import TestClient

from todoapi import __version__
from todoapi.app import create_app


@pytest.fixture
def app(settings, mock_provider):
    return create_app(settings, provider=mock_provider)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app, follow_redirects=False)


@pytest.fixture
def authed_client(client) -> TestClient:
    """A client whose session has completed a login."""
    resp = client.get("/api/auth/login")
    state = parse_qs(urlparse(resp.headers["location"]).query)["state"][0]
    client.get(f"/api/auth/callback?code=c&state={state}")
    return client


class TestHealth:
    """Tests for the liveness endpoints."""

    @pytest.mark.parametrize("path", ["/health", "/api/health"])
    def test_health(self, client, path) -> None:
        resp = client.get(path)
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["service"] == "todoapi"
        assert body["version"] == __version__
        assert body["timestamp"]

    def test_index(self, client) -> None:
        body = client.get("/").json()
        assert body["version"] == __version__
        assert body["endpoints"]["todos"] == "/api/todos"


class TestTodosGate:
    """Tests that the to-do resource requires a login."""

    def test_anonymous_rejected(self, client) -> None:
        resp = client.get("/api/todos")
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "message": "Not authenticated"}

    def test_pending_login_rejected(self, client) -> None:
        client.get("/api/auth/login")
        assert client.post("/api/todos", json={"title": "x"}).status_code == 401


class TestTodosCrud:
    """Tests for the to-do CRUD routes."""

    def test_list_seeded(self, authed_client) -> None:
        body = authed_client.get("/api/todos").json()
        assert body["success"] is True
        assert body["count"] == 1
        assert body["data"][0]["id"] == "1"

    def test_create_get_update_delete(self, authed_client) -> None:
        created = authed_client.post(
            "/api/todos", json={"title": "  Buy milk ", "description": " 2L "}
        )
        assert created.status_code == 201
        todo = created.json()["data"]
        assert todo["title"] == "Buy milk"
        assert todo["description"] == "2L"
        assert todo["completed"] is False

        fetched = authed_client.get(f"/api/todos/{todo['id']}")
        assert fetched.json()["data"]["title"] == "Buy milk"

        updated = authed_client.put(f"/api/todos/{todo['id']}", json={"completed": True})
        assert updated.json()["data"]["completed"] is True
        assert updated.json()["data"]["title"] == "Buy milk"

        deleted = authed_client.delete(f"/api/todos/{todo['id']}")
        assert deleted.json()["message"] == "Todo deleted successfully"
        assert authed_client.get(f"/api/todos/{todo['id']}").status_code == 404

    @pytest.mark.parametrize("body", [{}, {"title": ""}, {"title": "   "}])
    def test_title_required(self, authed_client, body) -> None:
        resp = authed_client.post("/api/todos", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "message": "Title is required"}

    def test_ids_are_unique(self, authed_client) -> None:
        ids = {authed_client.post("/api/todos", json={"title": "t"}).json()["data"]["id"] for _ in range(5)}
        assert len(ids) == 5

    @pytest.mark.parametrize("method", ["get", "put", "delete"])
    def test_not_found(self, authed_client, method) -> None:
        kwargs = {"json": {}} if method == "put" else {}
        resp = getattr(authed_client, method)("/api/todos/nope", **kwargs)
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "message": "Todo not found"}
