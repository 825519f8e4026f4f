"""Tests for the authentication gate."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

import pytest

from todoapi.auth.gate import AuthGate
from todoapi.auth.session import SessionManager
from todoapi.exceptions import UnauthenticatedError, UserInfoError
from todoapi.state.memory import MemorySessionStore
from todoapi.state.types import SessionRecord, User


@pytest.fixture
def session_store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def sessions(session_store, session_settings) -> SessionManager:
    return SessionManager(session_store, session_settings)


def _authenticated(session_id: str = "sid-1") -> SessionRecord:
    return SessionRecord(
        session_id=session_id,
        is_authenticated=True,
        user=User(sub="user-1"),
        access_token="at",
    )


class TestSessionPolicy:
    """Tests for the default policy, which trusts the session record."""

    @pytest.mark.asyncio
    async def test_authenticated(self, sessions, mock_provider) -> None:
        gate = AuthGate(sessions, mock_provider)
        assert await gate.authorize(_authenticated()) == User(sub="user-1")
        mock_provider.fetch_user_info.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_session(self, sessions, mock_provider) -> None:
        gate = AuthGate(sessions, mock_provider)
        with pytest.raises(UnauthenticatedError, match="Not authenticated"):
            await gate.authorize(None)

    @pytest.mark.asyncio
    async def test_anonymous_session(self, sessions, mock_provider) -> None:
        gate = AuthGate(sessions, mock_provider)
        with pytest.raises(UnauthenticatedError, match="Not authenticated"):
            await gate.authorize(SessionRecord(session_id="sid-1"))

    @pytest.mark.asyncio
    async def test_missing_user(self, sessions, mock_provider) -> None:
        gate = AuthGate(sessions, mock_provider)
        record = SessionRecord(session_id="sid-1", is_authenticated=True)
        with pytest.raises(UnauthenticatedError) as exc_info:
            await gate.authorize(record)
        assert exc_info.value.message == "User not found in session"


class TestUserInfoPolicy:
    """Tests for the policy that re-validates the access token."""

    @pytest.mark.asyncio
    async def test_valid_token(self, sessions, mock_provider) -> None:
        gate = AuthGate(sessions, mock_provider, policy="userinfo")
        assert await gate.authorize(_authenticated()) == User(sub="user-1")
        mock_provider.fetch_user_info.assert_awaited_once_with("at")

    @pytest.mark.asyncio
    async def test_revoked_token_destroys_session(
        self, sessions, session_store, mock_provider
    ) -> None:
        record = _authenticated()
        await sessions.save(record)
        mock_provider.fetch_user_info.side_effect = UserInfoError("Access token rejected")
        gate = AuthGate(sessions, mock_provider, policy="userinfo")

        with pytest.raises(UnauthenticatedError, match="Not authenticated"):
            await gate.authorize(record)
        assert await session_store.load("sid-1") is None
