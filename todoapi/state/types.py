"""Type definitions for todoapi state management.

Shared types used across session and login-state store implementations.
"""

from __future__ import annotations

import time

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class SessionBackend(str, Enum):
    """Available session storage backends."""

    MEMORY = "memory"
    REDIS = "redis"


class StateTokenBackendKind(str, Enum):
    """Available login state token backends."""

    LOCAL = "local"
    SHARED = "shared"


class ValidationOutcome(str, Enum):
    """Result of checking a callback's state token."""

    VALID_FROM_SESSION = "valid_from_session"
    VALID_FROM_MEMORY = "valid_from_memory"
    EXPIRED = "expired"
    MISMATCH = "mismatch"
    MISSING = "missing"

    @property
    def is_valid(self) -> bool:
        """Whether the outcome lets the callback proceed."""
        return self in (ValidationOutcome.VALID_FROM_SESSION, ValidationOutcome.VALID_FROM_MEMORY)


class LoginState(str, Enum):
    """Position of a browser session in the login state machine."""

    ANONYMOUS = "anonymous"
    PENDING_CALLBACK = "pending_callback"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class LoginAttempt:
    """A pending login, keyed by the session id that initiated it.

    Attributes
    ----------
    state_token : str
        One-time CSRF token sent to the provider as ``state``.
    created_at : float
        Unix timestamp when the attempt was issued.
    """

    state_token: str
    created_at: float

    def is_expired(self, ttl: float, now: float | None = None) -> bool:
        """Check whether the attempt is at least ``ttl`` seconds old."""
        now = time.time() if now is None else now
        return now - self.created_at >= ttl


@dataclass
class User:
    """Normalized identity stored in the session.

    Attributes
    ----------
    sub : str
        Stable subject id. Never empty.
    name : str or None
        Display name.
    email : str or None
        Email address.
    preferred_username : str or None
        Provider login name.
    """

    sub: str
    name: str | None = None
    email: str | None = None
    preferred_username: str | None = None

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> User:
        """Build a user from user-info claims.

        The subject falls back to ``preferred_username``, then ``email``,
        then ``"unknown"`` when the provider omits ``sub``.
        """
        sub = (
            claims.get("sub")
            or claims.get("preferred_username")
            or claims.get("email")
            or "unknown"
        )
        return cls(
            sub=str(sub),
            name=claims.get("name"),
            email=claims.get("email"),
            preferred_username=claims.get("preferred_username"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses and storage."""
        return asdict(self)


@dataclass
class SessionRecord:
    """Server-side state for one browser session.

    Attributes
    ----------
    session_id : str
        Opaque id carried in the signed session cookie.
    is_authenticated : bool
        False until a callback succeeds.
    user : User or None
        The authenticated user.
    access_token : str or None
        Provider access token (server-side only).
    id_token : str or None
        Provider ID token (server-side only).
    pending_state_token : str or None
        In-flight CSRF token of an attempt not yet completed.
    pending_state_created_at : float or None
        When the pending token was issued.
    created_at : float
        Unix timestamp when the session was created.
    expires_at : float or None
        Unix timestamp when the session expires.
    is_new : bool
        True when the record has never been saved. Not persisted.
    """

    session_id: str
    is_authenticated: bool = False
    user: User | None = None
    access_token: str | None = None
    id_token: str | None = None
    pending_state_token: str | None = None
    pending_state_created_at: float | None = None
    created_at: float = field(default_factory=time.time)
    expires_at: float | None = None
    is_new: bool = field(default=False, compare=False)

    @property
    def pending_attempt(self) -> LoginAttempt | None:
        """The pending login attempt held by this record, if any."""
        if not self.pending_state_token or self.pending_state_created_at is None:
            return None
        return LoginAttempt(self.pending_state_token, self.pending_state_created_at)

    def set_pending(self, attempt: LoginAttempt) -> None:
        """Record an attempt, replacing any earlier one."""
        self.pending_state_token = attempt.state_token
        self.pending_state_created_at = attempt.created_at

    def clear_pending(self) -> None:
        """Forget the pending attempt."""
        self.pending_state_token = None
        self.pending_state_created_at = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize the persisted fields."""
        return {
            "session_id": self.session_id,
            "is_authenticated": self.is_authenticated,
            "user": self.user.to_dict() if self.user else None,
            "access_token": self.access_token,
            "id_token": self.id_token,
            "pending_state_token": self.pending_state_token,
            "pending_state_created_at": self.pending_state_created_at,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionRecord:
        """Rebuild a record from :meth:`to_dict` output."""
        user = data.get("user")
        return cls(
            session_id=data["session_id"],
            is_authenticated=bool(data.get("is_authenticated", False)),
            user=User(**user) if user else None,
            access_token=data.get("access_token"),
            id_token=data.get("id_token"),
            pending_state_token=data.get("pending_state_token"),
            pending_state_created_at=data.get("pending_state_created_at"),
            created_at=data.get("created_at", 0.0),
            expires_at=data.get("expires_at"),
        )


@dataclass
class OAuthTokenSet:
    """OAuth2 token set returned by a provider.

    Attributes
    ----------
    access_token : str
        The access token for API requests.
    token_type : str
        Token type, typically "Bearer".
    refresh_token : str or None
        Optional refresh token.
    expires_in : int or None
        Token lifetime in seconds from issuance.
    id_token : str or None
        Optional OIDC ID token (JWT).
    scope : str
        Space-separated list of granted scopes.
    raw : dict[str, Any]
        The raw token response from the provider.
    issued_at : float
        Unix timestamp when the token was issued.
    """

    access_token: str
    token_type: str = "Bearer"  # noqa: S105
    refresh_token: str | None = None
    expires_in: int | None = None
    id_token: str | None = None
    scope: str = ""
    raw: dict[str, Any] = field(default_factory=dict)
    issued_at: float = field(default_factory=time.time)

    @property
    def expires_at(self) -> float | None:
        """Get the expiry timestamp, or None if no expiry."""
        if self.expires_in is None:
            return None
        return self.issued_at + self.expires_in


# Type aliases for clarity
SessionId = str
StateToken = str
