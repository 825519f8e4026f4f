"""Integration tests for the login flow FastAPI routes."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

import asyncio

from urllib.parse import parse_qs, urlparse

import pytest

from fastapi.testclient import TestClient

from todoapi.app import create_app
from todoapi.auth.session import unsign_session_id
from todoapi.exceptions import ConfigurationError, ExchangeError, SessionPersistenceError
from todoapi.state.memory import MemorySessionStore, MemoryStateTokenBackend
from todoapi.state.types import ValidationOutcome


FRONTEND = "http://frontend.test"
SECRET = "test-session-secret"  # noqa: S105


# ── Helpers ──────────────────────────────────────────────────────────


@pytest.fixture
def app(settings, mock_provider):
    return create_app(settings, provider=mock_provider)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app, follow_redirects=False)


def _login(client: TestClient, prefix: str = "/api/auth") -> str:
    """Start a login and return the issued state token."""
    resp = client.get(f"{prefix}/login")
    assert resp.status_code == 302
    return parse_qs(urlparse(resp.headers["location"]).query)["state"][0]


def _stored_record(client: TestClient, app):
    session_id = unsign_session_id(client.cookies["todoapi.sid"], SECRET)
    return asyncio.run(app.state.context.session_store.load(session_id))


# ── Tests ────────────────────────────────────────────────────────────


class TestLoginRoute:
    """Tests for GET /auth/login."""

    def test_login_redirects_and_sets_cookie(self, client, app) -> None:
        resp = client.get("/auth/login")

        assert resp.status_code == 302
        assert resp.headers["location"].startswith("https://idp.example.com/authorize?state=")
        assert "todoapi.sid=" in resp.headers["set-cookie"]

        record = _stored_record(client, app)
        state = parse_qs(urlparse(resp.headers["location"]).query)["state"][0]
        assert record.pending_state_token == state

    def test_api_prefix_mount(self, client) -> None:
        assert client.get("/api/auth/login").status_code == 302

    def test_configuration_error(self, client, mock_provider) -> None:
        mock_provider.resolve.side_effect = ConfigurationError("OIDC client id is required")

        resp = client.get("/auth/login")

        assert resp.status_code == 500
        body = resp.json()
        assert body["success"] is False
        assert body["message"] == "Failed to initiate login"
        assert body["error"] == "OIDC client id is required"

    def test_session_save_failure(self, settings, mock_provider) -> None:
        class FailingStore(MemorySessionStore):
            async def save(self, record, ttl):
                raise SessionPersistenceError("store down")

        app = create_app(settings, provider=mock_provider, session_store=FailingStore())
        client = TestClient(app, follow_redirects=False)

        resp = client.get("/auth/login")

        assert resp.status_code == 500
        assert resp.json()["success"] is False
        assert "set-cookie" not in resp.headers


class TestCallbackRoute:
    """Tests for GET /auth/callback."""

    def test_full_login(self, client, app) -> None:
        state = _login(client)

        resp = client.get(f"/api/auth/callback?code=code-1&state={state}")

        assert resp.status_code == 302
        assert resp.headers["location"] == FRONTEND
        record = _stored_record(client, app)
        assert record.is_authenticated is True
        assert record.pending_state_token is None

        me = client.get("/api/auth/me")
        assert me.status_code == 200
        assert me.json() == {
            "success": True,
            "data": {
                "sub": "user-1",
                "name": "Test User",
                "email": "user@test.com",
                "preferred_username": None,
            },
        }

    def test_tokens_never_sent_to_browser(self, client) -> None:
        state = _login(client)
        resp = client.get(f"/api/auth/callback?code=code-1&state={state}")
        me = client.get("/api/auth/me")

        for body in (resp.text, me.text, resp.headers.get("location", "")):
            assert "at_test" not in body
            assert "idt_test" not in body

    def test_provider_error(self, client, app) -> None:
        state = _login(client)

        resp = client.get(f"/api/auth/callback?error=access_denied&state={state}")

        assert resp.status_code == 302
        assert resp.headers["location"] == f"{FRONTEND}?error=access_denied"
        assert _stored_record(client, app).pending_state_token == state

    def test_missing_code(self, client) -> None:
        state = _login(client)
        resp = client.get(f"/api/auth/callback?state={state}")
        assert resp.headers["location"] == f"{FRONTEND}?error=missing_code_or_state"

    def test_repeated_state_param(self, client) -> None:
        state = _login(client)
        resp = client.get(f"/api/auth/callback?code=c&state={state}&state={state}")
        assert resp.headers["location"] == f"{FRONTEND}?error=missing_code_or_state"

    def test_invalid_state(self, client) -> None:
        _login(client)
        resp = client.get("/api/auth/callback?code=c&state=forged")
        assert resp.headers["location"] == f"{FRONTEND}?error=invalid_state"

    def test_callback_without_session(self, client) -> None:
        resp = client.get("/api/auth/callback?code=c&state=abc")
        assert resp.headers["location"] == f"{FRONTEND}?error=invalid_state"
        assert "set-cookie" not in resp.headers

    def test_exchange_failure(self, client, app, mock_provider) -> None:
        mock_provider.exchange_code.side_effect = ExchangeError("Token exchange failed: 401")
        state = _login(client)

        resp = client.get(f"/api/auth/callback?code=c&state={state}")

        assert resp.headers["location"].startswith(f"{FRONTEND}?error=Token%20exchange")
        record = _stored_record(client, app)
        assert record.is_authenticated is False
        assert record.pending_state_token is None
        assert client.get("/api/auth/me").status_code == 401

    def test_replay_rejected(self, client) -> None:
        state = _login(client)
        client.get(f"/api/auth/callback?code=c&state={state}")
        resp = client.get(f"/api/auth/callback?code=c&state={state}")
        assert resp.headers["location"] == f"{FRONTEND}?error=invalid_state"

    def test_callback_on_other_replica(self, settings, mock_provider) -> None:
        shared = MemoryStateTokenBackend()
        app_a = create_app(settings, provider=mock_provider, state_backend=shared)
        app_b = create_app(settings, provider=mock_provider, state_backend=shared)
        client_a = TestClient(app_a, follow_redirects=False)
        client_b = TestClient(app_b, follow_redirects=False)
        state = _login(client_a)
        client_b.cookies.set("todoapi.sid", client_a.cookies["todoapi.sid"])

        resp = client_b.get(f"/api/auth/callback?code=c&state={state}")

        assert resp.headers["location"] == FRONTEND
        counts = app_b.state.context.state_tokens.outcome_counts
        assert counts[ValidationOutcome.VALID_FROM_MEMORY] == 1
        assert client_b.get("/api/auth/me").status_code == 200


class TestMeRoute:
    """Tests for GET /auth/me."""

    def test_not_authenticated(self, client) -> None:
        resp = client.get("/auth/me")
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "message": "Not authenticated"}

    def test_pending_login_is_not_authenticated(self, client) -> None:
        _login(client)
        assert client.get("/auth/me").status_code == 401


class TestLogoutRoute:
    """Tests for POST /auth/logout."""

    def test_logout_without_login(self, client) -> None:
        resp = client.post("/auth/logout")
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Logged out successfully"}

    def test_logout_ends_session(self, client, app) -> None:
        state = _login(client)
        client.get(f"/api/auth/callback?code=c&state={state}")
        session_id = unsign_session_id(client.cookies["todoapi.sid"], SECRET)

        resp = client.post("/api/auth/logout")

        assert resp.status_code == 200
        assert asyncio.run(app.state.context.session_store.load(session_id)) is None
        assert client.get("/api/auth/me").status_code == 401

    def test_logout_store_failure_still_succeeds(self, settings, mock_provider) -> None:
        class FailingStore(MemorySessionStore):
            async def destroy(self, session_id):
                raise SessionPersistenceError("store down")

        app = create_app(settings, provider=mock_provider, session_store=FailingStore())
        client = TestClient(app, follow_redirects=False)
        state = _login(client)
        client.get(f"/api/auth/callback?code=c&state={state}")

        assert client.post("/api/auth/logout").status_code == 200
