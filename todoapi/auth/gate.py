"""Authentication gate for protected resources.

Protected routes declare ``user: User = Depends(require_user)``. The gate
reads the session record only; with the ``"userinfo"`` policy it also
re-validates the stored access token with the provider on every request.
"""

from __future__ import annotations

import logging

from typing import TYPE_CHECKING, Literal

from fastapi import Request
from fastapi.responses import JSONResponse

from ..exceptions import UnauthenticatedError, UserInfoError
from ..log import token_prefix
from ..state.types import User


if TYPE_CHECKING:
    from ..state.types import SessionRecord
    from .providers import IdentityProviderClient
    from .session import SessionManager


logger = logging.getLogger("todoapi.auth")

NOT_AUTHENTICATED = "Not authenticated"
USER_NOT_FOUND = "User not found in session"


class AuthGate:
    """Decides whether a session may reach a protected resource.

    Parameters
    ----------
    sessions : SessionManager
        Used to destroy sessions that fail re-validation.
    provider : IdentityProviderClient
        Used by the ``"userinfo"`` policy.
    policy : {"session", "userinfo"}
        ``"session"`` trusts the record; ``"userinfo"`` asks the provider.
    """

    def __init__(
        self,
        sessions: SessionManager,
        provider: IdentityProviderClient,
        policy: Literal["session", "userinfo"] = "session",
    ) -> None:
        self.sessions = sessions
        self.provider = provider
        self.policy = policy

    async def authorize(self, record: SessionRecord | None) -> User:
        """Return the session's user or raise.

        Raises
        ------
        UnauthenticatedError
            If the session is missing, anonymous, has no user, or (with
            the ``"userinfo"`` policy) its access token is rejected.
        """
        if record is None or not record.is_authenticated:
            raise UnauthenticatedError(NOT_AUTHENTICATED)
        if record.user is None:
            raise UnauthenticatedError(USER_NOT_FOUND)

        if self.policy == "userinfo":
            try:
                await self.provider.fetch_user_info(record.access_token or "")
            except UserInfoError as exc:
                logger.warning(
                    "Access token for session %s no longer valid: %s",
                    token_prefix(record.session_id),
                    exc.message,
                )
                await self.sessions.destroy(record)
                raise UnauthenticatedError(NOT_AUTHENTICATED) from exc

        return record.user


async def require_user(request: Request) -> User:
    """FastAPI dependency yielding the authenticated user."""
    context = request.app.state.context
    record = await context.sessions.load(request)
    return await context.gate.authorize(record)


async def unauthenticated_handler(_request: Request, exc: UnauthenticatedError) -> JSONResponse:
    """Render gate rejections as ``401`` JSON."""
    return JSONResponse(status_code=401, content={"success": False, "message": exc.message})
