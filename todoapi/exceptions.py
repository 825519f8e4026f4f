"""todoapi exception hierarchy.

All todoapi-specific exceptions inherit from TodoApiException, enabling
catch-all handling while supporting specific error types.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from .state.types import ValidationOutcome


class TodoApiException(Exception):
    """Base exception for all todoapi errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize todoapi exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (provider, session prefix, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class ConfigurationError(TodoApiException):
    """Identity provider configuration is unusable.

    Raised when client credentials are absent or blank, when a static
    configuration lacks a required endpoint, or when discovery fails.
    Fatal at first use rather than per request.
    """

    def __init__(self, message: str, setting: str | None = None, **context: Any) -> None:
        """Initialize configuration error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        setting : str, optional
            The setting that is missing or invalid.
        **context : Any
            Additional context.
        """
        super().__init__(message, setting=setting, **context)
        self.setting = setting


class AuthenticationError(TodoApiException):
    """Base exception for all login flow failures.

    Raised when an authentication operation fails, including
    code exchange, user-info lookup, and state validation.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize authentication error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The identity provider issuer or name.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, **context)
        self.provider = provider


class ExchangeError(AuthenticationError):
    """Authorization code exchange failed.

    Raised on transport failure, a provider-reported error,
    or a state mismatch detected during the exchange.
    """


class UserInfoError(AuthenticationError):
    """User-info lookup failed.

    Raised when the access token is rejected or the
    user-info endpoint cannot be reached.
    """


class InvalidStateError(AuthenticationError):
    """CSRF state check failed.

    Expired and mismatched tokens are reported the same way.
    """

    def __init__(
        self,
        message: str,
        outcome: ValidationOutcome | None = None,
        **context: Any,
    ) -> None:
        """Initialize invalid state error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        outcome : ValidationOutcome, optional
            The rejecting validation outcome (kept for logs only).
        **context : Any
            Additional context.
        """
        super().__init__(message, **context)
        self.outcome = outcome


class MissingParametersError(AuthenticationError):
    """Callback query is missing ``code`` or ``state``."""


class UnauthenticatedError(AuthenticationError):
    """Request to a protected resource has no authenticated session."""


class SessionPersistenceError(TodoApiException):
    """Explicit session save failed.

    The flow must abort instead of continuing with an
    unconfirmed session cookie.
    """

    def __init__(self, message: str, session_id: str | None = None, **context: Any) -> None:
        """Initialize session persistence error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        session_id : str, optional
            Prefix of the session id that failed to persist.
        **context : Any
            Additional context.
        """
        super().__init__(message, session_id=session_id, **context)
        self.session_id = session_id
