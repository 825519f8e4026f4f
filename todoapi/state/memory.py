"""In-memory state store implementations.

Default backend for single-process deployments and development.
Nothing here is visible to other replicas.
"""

from __future__ import annotations

import asyncio
import copy
import time

from typing import TYPE_CHECKING

from .base import SessionStore, StateTokenBackend


if TYPE_CHECKING:
    from .types import LoginAttempt, SessionRecord


class MemorySessionStore(SessionStore):
    """In-memory session store.

    Records are stored as copies so a handler mutating its record
    does not change the stored one until it saves.
    """

    def __init__(self) -> None:
        """Initialize the memory session store."""
        self._sessions: dict[str, SessionRecord] = {}
        self._lock = asyncio.Lock()

    async def load(self, session_id: str) -> SessionRecord | None:
        """Load a session record."""
        async with self._lock:
            record = self._sessions.get(session_id)
            if record is None:
                return None

            if record.expires_at and record.expires_at < time.time():
                del self._sessions[session_id]
                return None

            return copy.deepcopy(record)

    async def save(self, record: SessionRecord, ttl: int) -> None:
        """Persist a session record."""
        async with self._lock:
            stored = copy.deepcopy(record)
            stored.expires_at = time.time() + ttl
            stored.is_new = False
            self._sessions[record.session_id] = stored
            record.expires_at = stored.expires_at

    async def destroy(self, session_id: str) -> bool:
        """Delete a session record."""
        async with self._lock:
            return self._sessions.pop(session_id, None) is not None

    async def take_pending_state(self, session_id: str) -> bool:
        """Atomically clear the stored pending state token."""
        async with self._lock:
            record = self._sessions.get(session_id)
            if record is None or not record.pending_state_token:
                return False
            record.clear_pending()
            return True

    async def count(self) -> int:
        """Get the number of stored sessions."""
        async with self._lock:
            return len(self._sessions)


class MemoryStateTokenBackend(StateTokenBackend):
    """Process-local map of pending login attempts.

    Only valid when the same process serves both the login and the
    callback request.
    """

    def __init__(self) -> None:
        """Initialize the memory state token backend."""
        self._attempts: dict[str, LoginAttempt] = {}
        self._lock = asyncio.Lock()

    async def put(self, key: str, attempt: LoginAttempt, ttl: int) -> None:  # noqa: ARG002
        """Store an attempt."""
        async with self._lock:
            self._attempts[key] = attempt

    async def get(self, key: str) -> LoginAttempt | None:
        """Get the attempt stored under ``key``."""
        async with self._lock:
            return self._attempts.get(key)

    async def delete(self, key: str) -> bool:
        """Delete the attempt stored under ``key``."""
        async with self._lock:
            return self._attempts.pop(key, None) is not None

    async def sweep(self, ttl: int, now: float) -> int:
        """Delete attempts older than ``ttl``."""
        async with self._lock:
            expired = [k for k, v in self._attempts.items() if v.is_expired(ttl, now)]
            for k in expired:
                del self._attempts[k]
            return len(expired)

    async def count(self) -> int:
        """Get the number of stored attempts."""
        async with self._lock:
            return len(self._attempts)
