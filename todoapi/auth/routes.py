"""FastAPI routes for the login flow.

Routes: ``GET /login``, ``GET /callback``, ``GET /me``, ``POST /logout``.
The router is mounted under both ``/auth`` and ``/api/auth``.
"""

from __future__ import annotations

import logging

from typing import TYPE_CHECKING

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from ..exceptions import ConfigurationError, SessionPersistenceError, UnauthenticatedError


if TYPE_CHECKING:
    from ..app import AppContext


logger = logging.getLogger("todoapi.auth")


def create_auth_router(context: AppContext, prefix: str = "/auth") -> APIRouter:
    """Create the login flow router.

    Parameters
    ----------
    context : AppContext
        Owns the flow, the session manager and the gate.
    prefix : str
        Mount prefix.

    Returns
    -------
    APIRouter
        Router with the login routes.
    """
    router = APIRouter(prefix=prefix, tags=["authentication"])

    @router.get("/login")
    async def auth_login(request: Request) -> Response:
        """Start a login and redirect to the identity provider."""
        record = await context.sessions.load(request)
        try:
            url = await context.flow.initiate(record)
        except (ConfigurationError, SessionPersistenceError) as exc:
            logger.error("Error initiating login: %s", exc)
            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "message": "Failed to initiate login",
                    "error": exc.message,
                },
            )

        response = RedirectResponse(url=url, status_code=302)
        context.sessions.attach_cookie(response, record)
        return response

    @router.get("/callback")
    async def auth_callback(request: Request) -> Response:
        """Complete a login and redirect to the frontend."""
        record = await context.sessions.load(request)
        result = await context.flow.callback(record, request.query_params)

        response = RedirectResponse(url=result.redirect_url, status_code=302)
        if not record.is_new:
            context.sessions.attach_cookie(response, record)
        return response

    @router.get("/me")
    async def auth_me(request: Request) -> Response:
        """Return the session's user. Tokens are never included."""
        record = await context.sessions.load(request)
        try:
            user = await context.gate.authorize(record)
        except UnauthenticatedError as exc:
            return JSONResponse(status_code=401, content={"success": False, "message": exc.message})
        return JSONResponse(content={"success": True, "data": user.to_dict()})

    @router.post("/logout")
    async def auth_logout(request: Request) -> Response:
        """End the session. Always succeeds."""
        record = await context.sessions.load(request)
        try:
            await context.flow.logout(record)
        except SessionPersistenceError as exc:
            logger.error("Error destroying session: %s", exc)

        response = JSONResponse(content={"success": True, "message": "Logged out successfully"})
        context.sessions.clear_cookie(response)
        return response

    return router
