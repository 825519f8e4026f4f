"""Cookie-carried browser sessions.

The cookie holds only ``"<session_id>.<signature>"``; everything else
lives in the configured :class:`~todoapi.state.base.SessionStore`.
A cookie with a bad or missing signature is ignored and a fresh,
unsaved session is started instead.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets

from typing import TYPE_CHECKING

from ..log import token_prefix
from ..state.types import SessionRecord


if TYPE_CHECKING:
    from fastapi import Request, Response

    from ..config import SessionSettings
    from ..state.base import SessionStore


logger = logging.getLogger("todoapi.auth")


def generate_session_id() -> str:
    """Generate a new opaque session id."""
    return secrets.token_urlsafe(32)


def sign_session_id(session_id: str, secret: str) -> str:
    """Sign a session id for the cookie.

    Parameters
    ----------
    session_id : str
        The session id.
    secret : str
        Secret key for signing.

    Returns
    -------
    str
        ``"<session_id>.<hex hmac-sha256>"``.
    """
    signature = hmac.new(secret.encode(), session_id.encode(), hashlib.sha256).hexdigest()
    return f"{session_id}.{signature}"


def unsign_session_id(value: str, secret: str) -> str | None:
    """Verify a signed cookie value and extract the session id.

    Returns None for malformed or tampered values.
    """
    session_id, sep, signature = value.rpartition(".")
    if not sep or not session_id or not signature:
        return None
    expected = hmac.new(secret.encode(), session_id.encode(), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(signature, expected):
        return None
    return session_id


class SessionManager:
    """Loads, persists and destroys session records for requests.

    Parameters
    ----------
    store : SessionStore
        Where records are kept.
    settings : SessionSettings
        Cookie and lifetime configuration.
    """

    def __init__(self, store: SessionStore, settings: SessionSettings) -> None:
        self.store = store
        self.settings = settings

    async def load(self, request: Request) -> SessionRecord:
        """Get the session for a request, starting a new one if needed.

        Parameters
        ----------
        request : Request
            The incoming request.

        Returns
        -------
        SessionRecord
            The stored record, or a new unsaved record with ``is_new`` set.
            A validly signed id missing from the store is kept, so a
            login started on another replica still finds its state token.
        """
        cookie = request.cookies.get(self.settings.cookie_name)
        if cookie:
            session_id = unsign_session_id(cookie, self.settings.secret)
            if session_id is None:
                logger.warning("Ignoring session cookie with an invalid signature")
            else:
                record = await self.store.load(session_id)
                if record is not None:
                    return record
                logger.debug("Session %s not stored here, keeping its id", token_prefix(session_id))
                return SessionRecord(session_id=session_id, is_new=True)

        return SessionRecord(session_id=generate_session_id(), is_new=True)

    async def save(self, record: SessionRecord) -> None:
        """Persist a record for the configured session lifetime.

        Raises
        ------
        SessionPersistenceError
            If the store could not write the record.
        """
        await self.store.save(record, self.settings.max_age)
        record.is_new = False
        logger.debug("Saved session %s", token_prefix(record.session_id))

    async def destroy(self, record: SessionRecord) -> bool:
        """Delete a record from the store. Safe for unsaved records."""
        if record.is_new:
            return False
        return await self.store.destroy(record.session_id)

    def attach_cookie(self, response: Response, record: SessionRecord) -> None:
        """Set the signed session cookie on a response."""
        response.set_cookie(
            key=self.settings.cookie_name,
            value=sign_session_id(record.session_id, self.settings.secret),
            max_age=self.settings.max_age,
            path="/",
            secure=self.settings.secure,
            httponly=self.settings.http_only,
            samesite=self.settings.same_site,
        )

    def clear_cookie(self, response: Response) -> None:
        """Expire the session cookie on a response."""
        response.delete_cookie(
            key=self.settings.cookie_name,
            path="/",
            secure=self.settings.secure,
            httponly=self.settings.http_only,
            samesite=self.settings.same_site,
        )
