"""todoapi state management package.

Provides pluggable storage for session records and pending login
attempts. The default is in-memory storage for single-process
deployments; the Redis backends serve replicated deployments.

Usage
-----
Configure via environment variables:
    # TODOAPI_SESSION__BACKEND=redis
    # TODOAPI_STATE__BACKEND=shared
"""

from __future__ import annotations

from ._factory import create_session_store, create_state_token_backend
from .base import SessionStore, StateTokenBackend
from .memory import MemorySessionStore, MemoryStateTokenBackend
from .types import (
    LoginAttempt,
    LoginState,
    OAuthTokenSet,
    SessionBackend,
    SessionRecord,
    StateTokenBackendKind,
    User,
    ValidationOutcome,
)


__all__ = [
    "LoginAttempt",
    "LoginState",
    "MemorySessionStore",
    "MemoryStateTokenBackend",
    "OAuthTokenSet",
    "SessionBackend",
    "SessionRecord",
    "SessionStore",
    "StateTokenBackend",
    "StateTokenBackendKind",
    "User",
    "ValidationOutcome",
    "create_session_store",
    "create_state_token_backend",
]
