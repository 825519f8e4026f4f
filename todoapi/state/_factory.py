"""Factory functions for state stores.

Backends are chosen from configuration only. The caller (the
application context) owns the returned instances.
"""

from __future__ import annotations

import logging

from typing import TYPE_CHECKING

from .memory import MemorySessionStore, MemoryStateTokenBackend
from .types import SessionBackend, StateTokenBackendKind


if TYPE_CHECKING:
    from ..config import SessionSettings, StateSettings
    from .base import SessionStore, StateTokenBackend


logger = logging.getLogger("todoapi.state")


def create_session_store(settings: SessionSettings) -> SessionStore:
    """Create the configured session store.

    Parameters
    ----------
    settings : SessionSettings
        Session configuration section.

    Returns
    -------
    SessionStore
        A memory or Redis session store.
    """
    backend = SessionBackend(settings.backend)

    if backend == SessionBackend.REDIS:
        from .redis import RedisSessionStore

        logger.info("Session store: redis (prefix=%s)", settings.redis_prefix)
        return RedisSessionStore(redis_url=settings.redis_url, prefix=settings.redis_prefix)

    logger.info("Session store: memory")
    return MemorySessionStore()


def create_state_token_backend(settings: StateSettings) -> StateTokenBackend:
    """Create the configured login state token backend.

    Parameters
    ----------
    settings : StateSettings
        State token configuration section.

    Returns
    -------
    StateTokenBackend
        The local map or the shared Redis backend.
    """
    backend = StateTokenBackendKind(settings.backend)

    if backend == StateTokenBackendKind.SHARED:
        from .redis import RedisStateTokenBackend

        logger.info("State token backend: shared (prefix=%s)", settings.redis_prefix)
        return RedisStateTokenBackend(redis_url=settings.redis_url, prefix=settings.redis_prefix)

    logger.info("State token backend: local (not shared between replicas)")
    return MemoryStateTokenBackend()
