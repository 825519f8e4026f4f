"""One-time CSRF state tokens for the login flow.

A pending attempt is held in two places: the session record and a
backend map keyed by the session id (process-local or shared, chosen by
configuration). The two are independent views that can disagree, e.g.
when the callback lands on a replica that never saw the session write.
The session record wins whenever it holds a pending token; the backend
is only consulted when it does not.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import asyncio
import contextlib
import hmac
import logging
import secrets
import time

from collections import Counter
from typing import TYPE_CHECKING

from ..log import token_prefix
from ..state.types import LoginAttempt, ValidationOutcome


if TYPE_CHECKING:
    from collections.abc import Callable

    from ..state.base import SessionStore, StateTokenBackend
    from ..state.types import SessionRecord


logger = logging.getLogger("todoapi.auth")

#: Lifetime of a pending login attempt, in seconds.
DEFAULT_STATE_TTL = 600


def generate_state_token() -> str:
    """Generate a 32-byte random state token, hex encoded."""
    return secrets.token_hex(32)


class StateTokenStore:
    """Issues, validates and consumes login state tokens.

    Parameters
    ----------
    backend : StateTokenBackend
        The local or shared attempt map.
    sessions : SessionStore
        The session store holding the authoritative pending fields.
    ttl : int
        Attempt lifetime in seconds.
    clock : callable
        Returns the current unix time. Injected for tests.
    """

    def __init__(
        self,
        backend: StateTokenBackend,
        sessions: SessionStore,
        ttl: int = DEFAULT_STATE_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend = backend
        self.sessions = sessions
        self.ttl = ttl
        self._clock = clock
        self.outcome_counts: Counter[ValidationOutcome] = Counter()

    async def issue(self, attempt_key: str) -> LoginAttempt:
        """Create a new attempt under ``attempt_key``.

        Any earlier attempt under the same key is replaced. The caller
        must also write the attempt into the session record.

        Parameters
        ----------
        attempt_key : str
            The id of the session initiating the login.

        Returns
        -------
        LoginAttempt
            The freshly issued attempt.
        """
        attempt = LoginAttempt(state_token=generate_state_token(), created_at=self._clock())
        await self.backend.put(attempt_key, attempt, self.ttl)
        logger.info(
            "Issued state token %s for session %s",
            token_prefix(attempt.state_token),
            token_prefix(attempt_key),
        )
        return attempt

    def _check(
        self,
        attempt: LoginAttempt,
        candidate: str,
        valid: ValidationOutcome,
    ) -> ValidationOutcome:
        if not hmac.compare_digest(attempt.state_token.encode(), candidate.encode()):
            return ValidationOutcome.MISMATCH
        if attempt.is_expired(self.ttl, self._clock()):
            return ValidationOutcome.EXPIRED
        return valid

    async def validate(
        self,
        attempt_key: str,
        candidate: str | None,
        record: SessionRecord | None,
    ) -> ValidationOutcome:
        """Check a callback's state token.

        Parameters
        ----------
        attempt_key : str
            The id of the session presenting the callback.
        candidate : str or None
            The ``state`` echoed back by the provider.
        record : SessionRecord or None
            The session record loaded for this request.

        Returns
        -------
        ValidationOutcome
            Which backing validated the token, or why it was rejected.
        """
        if not candidate:
            outcome = ValidationOutcome.MISSING
        else:
            pending = record.pending_attempt if record is not None else None
            if pending is not None:
                outcome = self._check(pending, candidate, ValidationOutcome.VALID_FROM_SESSION)
            else:
                stored = await self.backend.get(attempt_key)
                if stored is None:
                    outcome = ValidationOutcome.MISSING
                else:
                    outcome = self._check(stored, candidate, ValidationOutcome.VALID_FROM_MEMORY)

        self.outcome_counts[outcome] += 1
        log = logger.info if outcome.is_valid else logger.warning
        log(
            "State validation for session %s: %s (state=%s)",
            token_prefix(attempt_key),
            outcome.value,
            token_prefix(candidate or ""),
        )
        return outcome

    async def consume(self, attempt_key: str, record: SessionRecord) -> bool:
        """Remove the attempt from every backing.

        Safe to call more than once. Only the first caller to remove
        the attempt gets ``True``; a concurrent duplicate callback that
        validated against the same token gets ``False`` and must be
        rejected. The backing the record validated against decides the
        winner: the stored session when the record holds a pending
        token, the backend map otherwise.

        Parameters
        ----------
        attempt_key : str
            The id of the session that initiated the attempt.
        record : SessionRecord
            The in-hand session record; its pending fields are cleared.

        Returns
        -------
        bool
            Whether this call removed the attempt.
        """
        held_by_session = record.pending_attempt is not None
        from_backend = await self.backend.delete(attempt_key)
        from_session = await self.sessions.take_pending_state(record.session_id)
        record.clear_pending()
        won = from_session if held_by_session else from_backend
        logger.debug(
            "Consumed state for session %s (backend=%s, session=%s)",
            token_prefix(attempt_key),
            from_backend,
            from_session,
        )
        return won

    async def sweep(self) -> int:
        """Drop backend attempts past their TTL.

        Returns
        -------
        int
            Number of attempts removed.
        """
        removed = await self.backend.sweep(self.ttl, self._clock())
        if removed:
            logger.info("Swept %d expired login attempt(s)", removed)
        return removed


class StateSweeper:
    """Periodic expiry sweep for a :class:`StateTokenStore`.

    Parameters
    ----------
    store : StateTokenStore
        The store to sweep.
    interval : float
        Seconds between sweeps.
    """

    def __init__(self, store: StateTokenStore, interval: float = float(DEFAULT_STATE_TTL)) -> None:
        self.store = store
        self.interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        """Whether the sweep task is active."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the sweep task on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug("State sweeper started (interval=%.0fs)", self.interval)

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("State sweeper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.store.sweep()
            except Exception:
                logger.exception("State sweep failed")
