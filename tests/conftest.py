"""Pytest configuration and fixtures."""

from __future__ import annotations

import time

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import pytest

from todoapi.config import (
    AuthSettings,
    OIDCSettings,
    SessionSettings,
    StateSettings,
    TodoApiSettings,
    clear_settings,
)
from todoapi.state.types import OAuthTokenSet


if TYPE_CHECKING:
    from collections.abc import Generator


FRONTEND_URL = "http://frontend.test"
SESSION_SECRET = "test-session-secret"  # noqa: S105


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _reset_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Isolate tests from the developer's environment and config files."""
    monkeypatch.delenv("TODOAPI_CONFIG_FILE", raising=False)
    clear_settings()
    yield
    clear_settings()


@pytest.fixture
def clock() -> FakeClock:
    """A fake clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def oidc_settings() -> OIDCSettings:
    """Static provider settings pointing at a fictional IdP."""
    return OIDCSettings(
        mode="static",
        issuer_url="https://idp.example.com",
        client_id="test-client",
        client_secret="test-client-secret",
        redirect_uri="http://testserver/api/auth/callback",
        authorization_endpoint="https://idp.example.com/authorize",
        token_endpoint="https://idp.example.com/token",
        userinfo_endpoint="https://idp.example.com/userinfo",
    )


@pytest.fixture
def session_settings() -> SessionSettings:
    """Cookie settings usable over plain http in tests."""
    return SessionSettings(secret=SESSION_SECRET, secure=False, same_site="lax")


@pytest.fixture
def settings(oidc_settings: OIDCSettings, session_settings: SessionSettings) -> TodoApiSettings:
    """Full application settings with in-memory backends."""
    return TodoApiSettings(
        oidc=oidc_settings,
        session=session_settings,
        state=StateSettings(backend="local", ttl=600, sweep_interval=600.0),
        auth=AuthSettings(gate_policy="session", frontend_url=FRONTEND_URL),
    )


def make_mock_provider(oidc_settings: OIDCSettings) -> MagicMock:
    """Create a mock IdentityProviderClient."""
    provider = MagicMock()
    provider.settings = oidc_settings
    provider.name = oidc_settings.issuer_url
    provider.resolve = AsyncMock()
    provider.build_authorization_url.side_effect = (
        lambda state_token, scopes=None: f"https://idp.example.com/authorize?state={state_token}"
    )
    provider.exchange_code = AsyncMock(
        return_value=OAuthTokenSet(
            access_token="at_test",
            id_token="idt_test",
            expires_in=3600,
            issued_at=time.time(),
        )
    )
    provider.fetch_user_info = AsyncMock(
        return_value={"sub": "user-1", "name": "Test User", "email": "user@test.com"}
    )
    provider.close = AsyncMock()
    return provider


@pytest.fixture
def mock_provider(oidc_settings: OIDCSettings) -> MagicMock:
    """A mock provider that accepts any code."""
    return make_mock_provider(oidc_settings)
