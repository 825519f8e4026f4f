"""Tests for todoapi.exceptions module.

These tests verify the exception hierarchy, message formatting,
context storage, and inheritance relationships.
"""

from __future__ import annotations

import pytest

from todoapi.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ExchangeError,
    InvalidStateError,
    MissingParametersError,
    SessionPersistenceError,
    TodoApiException,
    UnauthenticatedError,
    UserInfoError,
)
from todoapi.state.types import ValidationOutcome


class TestTodoApiException:
    """Test base exception class behavior."""

    def test_message_only(self) -> None:
        exc = TodoApiException("Something went wrong")
        assert exc.message == "Something went wrong"
        assert not exc.context
        assert str(exc) == "Something went wrong"

    def test_with_context(self) -> None:
        """Context appears in the string representation."""
        exc = TodoApiException("Failed", session="abcd1234...", attempt=2)
        assert exc.context == {"session": "abcd1234...", "attempt": 2}
        assert str(exc) == "Failed (session='abcd1234...', attempt=2)"

    def test_args_preserved(self) -> None:
        assert TodoApiException("message").args == ("message",)


class TestSubclasses:
    """Test the specific exception types."""

    def test_configuration_error_setting(self) -> None:
        exc = ConfigurationError("Missing client id", setting="TODOAPI_OIDC__CLIENT_ID")
        assert exc.setting == "TODOAPI_OIDC__CLIENT_ID"
        assert "TODOAPI_OIDC__CLIENT_ID" in str(exc)

    def test_authentication_error_provider(self) -> None:
        exc = ExchangeError("Token exchange failed", provider="https://idp.example.com")
        assert exc.provider == "https://idp.example.com"
        assert exc.message == "Token exchange failed"

    def test_invalid_state_outcome(self) -> None:
        exc = InvalidStateError("invalid_state", outcome=ValidationOutcome.EXPIRED)
        assert exc.outcome is ValidationOutcome.EXPIRED
        assert exc.message == "invalid_state"

    def test_session_persistence_error(self) -> None:
        exc = SessionPersistenceError("Failed to save session", session_id="abcd1234...")
        assert exc.session_id == "abcd1234..."

    @pytest.mark.parametrize(
        "exc_class",
        [ExchangeError, UserInfoError, InvalidStateError, MissingParametersError, UnauthenticatedError],
    )
    def test_login_errors_are_authentication_errors(self, exc_class) -> None:
        with pytest.raises(AuthenticationError):
            raise exc_class("boom")

    @pytest.mark.parametrize(
        "exc_class", [ConfigurationError, AuthenticationError, SessionPersistenceError]
    )
    def test_catch_all(self, exc_class) -> None:
        with pytest.raises(TodoApiException):
            raise exc_class("boom")
