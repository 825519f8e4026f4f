"""todoapi - To-do list backend with OpenID Connect login.

The core is the authorization-code login state machine in
:mod:`todoapi.auth`; sessions and pending login attempts are kept in
the pluggable stores of :mod:`todoapi.state`.
"""

from __future__ import annotations


__version__ = "1.0.0"

# pylint: disable=wrong-import-position
from .app import AppContext, create_app
from .config import TodoApiSettings, clear_settings, get_settings
from .exceptions import (
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


__all__ = [
    "AppContext",
    "AuthenticationError",
    "ConfigurationError",
    "ExchangeError",
    "InvalidStateError",
    "MissingParametersError",
    "SessionPersistenceError",
    "TodoApiException",
    "TodoApiSettings",
    "UnauthenticatedError",
    "UserInfoError",
    "__version__",
    "clear_settings",
    "create_app",
    "get_settings",
]
