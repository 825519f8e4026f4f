"""Abstract base classes for pluggable state storage.

These interfaces define the contract for session and login-state
backends, so a single instance can run on process memory while a
replicated deployment moves both to Redis.
"""

# pylint: disable=unnecessary-ellipsis

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from .types import LoginAttempt, SessionRecord


class SessionStore(ABC):
    """Abstract server-side session storage.

    Records are keyed by the opaque session id carried in the
    session cookie. Implementations enforce the record TTL.
    """

    @abstractmethod
    async def load(self, session_id: str) -> SessionRecord | None:
        """Load a session record.

        Parameters
        ----------
        session_id : str
            The session ID.

        Returns
        -------
        SessionRecord or None
            The record if found and not expired, None otherwise.
        """
        ...

    @abstractmethod
    async def save(self, record: SessionRecord, ttl: int) -> None:
        """Persist a session record, replacing any stored version.

        Parameters
        ----------
        record : SessionRecord
            The record to store.
        ttl : int
            Time-to-live in seconds from now.

        Raises
        ------
        SessionPersistenceError
            If the write could not be confirmed.
        """
        ...

    @abstractmethod
    async def destroy(self, session_id: str) -> bool:
        """Delete a session record.

        Parameters
        ----------
        session_id : str
            The session ID.

        Returns
        -------
        bool
            True if deleted, False if it didn't exist.
        """
        ...

    @abstractmethod
    async def take_pending_state(self, session_id: str) -> bool:
        """Atomically clear the stored pending state token.

        Parameters
        ----------
        session_id : str
            The session ID.

        Returns
        -------
        bool
            True only for the caller that removed a pending token.
        """
        ...


class StateTokenBackend(ABC):
    """Abstract storage for pending login attempts.

    One attempt per key (the initiating session id); a later ``put``
    under the same key replaces the earlier attempt.
    """

    @abstractmethod
    async def put(self, key: str, attempt: LoginAttempt, ttl: int) -> None:
        """Store an attempt.

        Parameters
        ----------
        key : str
            The initiating session id.
        attempt : LoginAttempt
            The attempt to store.
        ttl : int
            Seconds the attempt stays valid.
        """
        ...

    @abstractmethod
    async def get(self, key: str) -> LoginAttempt | None:
        """Get the attempt stored under ``key``, if any."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete the attempt stored under ``key``.

        Returns
        -------
        bool
            True only for the caller that removed the entry.
        """
        ...

    @abstractmethod
    async def sweep(self, ttl: int, now: float) -> int:
        """Delete attempts older than ``ttl``.

        Returns
        -------
        int
            Number of attempts removed.
        """
        ...

    @abstractmethod
    async def count(self) -> int:
        """Get the number of stored attempts."""
        ...
