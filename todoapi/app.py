"""FastAPI application factory.

:func:`create_app` builds an :class:`AppContext` that owns every
long-lived object (provider client, stores, sweeper, to-do list) and
exposes it as ``app.state.context``.
"""

from __future__ import annotations

import logging
import time

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .auth.flow import LoginFlow
from .auth.gate import AuthGate, unauthenticated_handler
from .auth.providers import IdentityProviderClient
from .auth.routes import create_auth_router
from .auth.session import SessionManager
from .auth.state_store import StateSweeper, StateTokenStore
from .config import TodoApiSettings, ensure_secure_config, get_settings
from .exceptions import SessionPersistenceError, UnauthenticatedError
from .log import configure_logging
from .routes.health import create_health_router
from .routes.todos import TodoList, create_todos_router
from .state import create_session_store, create_state_token_backend


if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from .state.base import SessionStore, StateTokenBackend


logger = logging.getLogger("todoapi.app")


class AppContext:
    """Owns the long-lived collaborators of one application instance.

    Parameters
    ----------
    settings : TodoApiSettings
        Application settings.
    session_store : SessionStore, optional
        Overrides the configured session store.
    state_backend : StateTokenBackend, optional
        Overrides the configured state token backend.
    provider : IdentityProviderClient, optional
        Overrides the lazily built provider client.
    clock : callable
        Time source for state token expiry.
    """

    def __init__(
        self,
        settings: TodoApiSettings,
        *,
        session_store: SessionStore | None = None,
        state_backend: StateTokenBackend | None = None,
        provider: IdentityProviderClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.session_store = session_store or create_session_store(settings.session)
        self.sessions = SessionManager(self.session_store, settings.session)
        self.state_tokens = StateTokenStore(
            state_backend or create_state_token_backend(settings.state),
            self.session_store,
            ttl=settings.state.ttl,
            clock=clock,
        )
        self.sweeper = StateSweeper(self.state_tokens, interval=settings.state.sweep_interval)
        self.todos = TodoList()
        self._provider = provider
        self._flow: LoginFlow | None = None
        self._gate: AuthGate | None = None

    @property
    def provider(self) -> IdentityProviderClient:
        """The identity provider client, built on first use."""
        if self._provider is None:
            self._provider = IdentityProviderClient(self.settings.oidc)
        return self._provider

    @property
    def flow(self) -> LoginFlow:
        """The login state machine."""
        if self._flow is None:
            self._flow = LoginFlow(self.provider, self.state_tokens, self.sessions, self.settings.auth)
        return self._flow

    @property
    def gate(self) -> AuthGate:
        """The authentication gate."""
        if self._gate is None:
            self._gate = AuthGate(self.sessions, self.provider, self.settings.auth.gate_policy)
        return self._gate

    async def startup(self) -> None:
        """Start background jobs."""
        self.sweeper.start()

    async def shutdown(self) -> None:
        """Stop background jobs and release connections."""
        await self.sweeper.stop()
        if self._provider is not None:
            await self._provider.close()
        for store in (self.session_store, self.state_tokens.backend):
            close = getattr(store, "close", None)
            if close is not None:
                await close()


async def _persistence_error_handler(_request: Request, exc: Any) -> JSONResponse:
    logger.error("Session persistence failed: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Session could not be saved"},
    )


def create_app(settings: TodoApiSettings | None = None, **overrides: Any) -> FastAPI:
    """Create the todoapi FastAPI application.

    Parameters
    ----------
    settings : TodoApiSettings, optional
        Settings to use. Defaults to :func:`get_settings`.
    **overrides : Any
        Passed to :class:`AppContext` (stores, provider, clock).

    Returns
    -------
    FastAPI
        The configured application.
    """
    settings = settings or get_settings()
    ensure_secure_config(settings)
    configure_logging(settings.log)

    context = AppContext(settings, **overrides)

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:  # pylint: disable=unused-argument
        await context.startup()
        try:
            yield
        finally:
            await context.shutdown()

    app = FastAPI(title="todoapi", version=__version__, lifespan=_lifespan)
    app.state.context = context

    origins = [settings.auth.frontend_url, *settings.server.cors_origins]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(dict.fromkeys(origins)),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(UnauthenticatedError, unauthenticated_handler)
    app.add_exception_handler(SessionPersistenceError, _persistence_error_handler)

    health = create_health_router()
    app.include_router(health, prefix="/health")
    app.include_router(health, prefix="/api/health")
    app.include_router(create_auth_router(context, prefix="/auth"))
    app.include_router(create_auth_router(context, prefix="/api/auth"))
    app.include_router(create_todos_router(context), prefix="/api/todos")

    @app.get("/")
    async def index() -> dict[str, Any]:
        return {
            "message": "todoapi - To-do List Backend",
            "version": __version__,
            "endpoints": {
                "health": "/health",
                "auth": "/api/auth",
                "todos": "/api/todos",
            },
        }

    logger.info(
        "App created (sessions=%s, state tokens=%s, gate=%s)",
        settings.session.backend,
        settings.state.backend,
        settings.auth.gate_policy,
    )
    return app
