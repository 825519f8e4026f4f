"""Login flow for todoapi.

Provides the identity provider client, one-time state tokens, cookie
sessions, the login state machine and the authentication gate.
"""

from __future__ import annotations

from .flow import CallbackResult, LoginFlow
from .gate import AuthGate, require_user
from .providers import IdentityProviderClient, ProviderConfig
from .session import SessionManager
from .state_store import StateSweeper, StateTokenStore


__all__ = [
    "AuthGate",
    "CallbackResult",
    "IdentityProviderClient",
    "LoginFlow",
    "ProviderConfig",
    "SessionManager",
    "StateSweeper",
    "StateTokenStore",
    "require_user",
]
