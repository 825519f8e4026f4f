"""Authorization-code login state machine.

A browser session moves ``ANONYMOUS -> PENDING_CALLBACK -> AUTHENTICATED``:

1. :meth:`LoginFlow.initiate` issues a one-time state token, records it
   in the session and returns the provider's authorization URL.
2. :meth:`LoginFlow.callback` validates and consumes that token, exchanges
   the code, fetches user-info and marks the session authenticated.
3. :meth:`LoginFlow.logout` destroys the session.

Every callback ends in a redirect to the frontend; failures carry a short
reason in the ``error`` query parameter.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from ..exceptions import (
    ConfigurationError,
    ExchangeError,
    InvalidStateError,
    MissingParametersError,
    UserInfoError,
)
from ..log import token_prefix
from ..state.types import LoginState, User, ValidationOutcome


if TYPE_CHECKING:
    from collections.abc import Mapping

    from ..config import AuthSettings
    from ..state.types import SessionRecord
    from .providers import IdentityProviderClient
    from .session import SessionManager
    from .state_store import StateTokenStore


logger = logging.getLogger("todoapi.auth")

MISSING_CODE_OR_STATE = "missing_code_or_state"
INVALID_STATE = "invalid_state"


@dataclass
class CallbackResult:
    """Outcome of a callback request.

    Attributes
    ----------
    redirect_url : str
        Where the browser is sent next.
    outcome : ValidationOutcome or None
        State validation outcome, if validation ran.
    error : str or None
        The reason placed in the redirect, or None on success.
    user : User or None
        The authenticated user on success.
    """

    redirect_url: str
    outcome: ValidationOutcome | None = None
    error: str | None = None
    user: User | None = None

    @property
    def ok(self) -> bool:
        """Whether the login completed."""
        return self.error is None


def _single_param(params: Mapping[str, Any], name: str) -> str | None:
    """Return the parameter only when it was given exactly once, non-empty."""
    if hasattr(params, "getlist"):
        values = list(params.getlist(name))
    else:
        value = params.get(name)
        if value is None:
            values = []
        elif isinstance(value, (list, tuple)):
            values = list(value)
        else:
            values = [value]
    if len(values) != 1 or not isinstance(values[0], str) or not values[0]:
        return None
    return values[0]


class LoginFlow:
    """Drives one session through the login state machine.

    Parameters
    ----------
    provider : IdentityProviderClient
        The identity provider client.
    state_tokens : StateTokenStore
        Issues and validates the CSRF state tokens.
    sessions : SessionManager
        Persists session records.
    settings : AuthSettings
        Provides the frontend URL for redirects.
    """

    def __init__(
        self,
        provider: IdentityProviderClient,
        state_tokens: StateTokenStore,
        sessions: SessionManager,
        settings: AuthSettings,
    ) -> None:
        self.provider = provider
        self.state_tokens = state_tokens
        self.sessions = sessions
        self.settings = settings

    @staticmethod
    def state_of(record: SessionRecord | None) -> LoginState:
        """Derive the login state of a session record."""
        if record is None:
            return LoginState.ANONYMOUS
        if record.is_authenticated:
            return LoginState.AUTHENTICATED
        if record.pending_attempt is not None:
            return LoginState.PENDING_CALLBACK
        return LoginState.ANONYMOUS

    def frontend_redirect(self, error: str | None = None) -> str:
        """Build the frontend URL, with an optional ``error`` parameter."""
        url = self.settings.frontend_url
        if error is None:
            return url
        sep = "&" if "?" in url else "?"
        return f"{url}{sep}error={quote(error, safe='')}"

    async def initiate(self, record: SessionRecord) -> str:
        """Start a login attempt for a session.

        Parameters
        ----------
        record : SessionRecord
            The requesting session; its pending fields are overwritten.

        Returns
        -------
        str
            The provider authorization URL.

        Raises
        ------
        ConfigurationError
            If the provider cannot be resolved.
        SessionPersistenceError
            If the session could not be saved.
        """
        await self.provider.resolve()

        attempt = await self.state_tokens.issue(record.session_id)
        record.set_pending(attempt)
        await self.sessions.save(record)

        url = self.provider.build_authorization_url(attempt.state_token)
        logger.info(
            "Login initiated for session %s (state=%s)",
            token_prefix(record.session_id),
            token_prefix(attempt.state_token),
        )
        return url

    async def _validate_and_consume(
        self,
        record: SessionRecord,
        state: str,
    ) -> tuple[ValidationOutcome, str]:
        """Validate and consume the callback state.

        Returns the outcome and the state token this server issued for
        the attempt, read before consuming clears it.
        """
        outcome = await self.state_tokens.validate(record.session_id, state, record)
        if not outcome.is_valid:
            raise InvalidStateError(INVALID_STATE, outcome=outcome)

        issued = record.pending_attempt or await self.state_tokens.backend.get(record.session_id)
        if issued is None:
            raise InvalidStateError(INVALID_STATE, outcome=outcome)

        if outcome == ValidationOutcome.VALID_FROM_MEMORY:
            logger.warning(
                "State for session %s matched only the backend map; "
                "the session write was not visible to this replica",
                token_prefix(record.session_id),
            )

        if not await self.state_tokens.consume(record.session_id, record):
            logger.warning(
                "State for session %s was already consumed by another callback",
                token_prefix(record.session_id),
            )
            raise InvalidStateError(INVALID_STATE, outcome=outcome)

        if not record.is_new:
            await self.sessions.save(record)
        return outcome, issued.state_token

    async def callback(self, record: SessionRecord, params: Mapping[str, Any]) -> CallbackResult:
        """Handle the provider's redirect back to this server.

        Parameters
        ----------
        record : SessionRecord
            The session presenting the callback.
        params : Mapping
            The callback query parameters (``code``, ``state``, ``error``).

        Returns
        -------
        CallbackResult
            Where to send the browser and what happened.

        Raises
        ------
        SessionPersistenceError
            If a session save failed.
        """
        provider_error = params.get("error")
        if provider_error:
            logger.warning("Identity provider returned error: %s", provider_error)
            return CallbackResult(self.frontend_redirect(str(provider_error)), error=str(provider_error))

        outcome: ValidationOutcome | None = None
        try:
            code = _single_param(params, "code")
            state = _single_param(params, "state")
            if code is None or state is None:
                logger.warning(
                    "Callback missing code or state (code=%s, state=%s)",
                    code is not None,
                    state is not None,
                )
                raise MissingParametersError(MISSING_CODE_OR_STATE)

            outcome, issued_state = await self._validate_and_consume(record, state)

            tokens = await self.provider.exchange_code(
                code,
                self.provider.settings.redirect_uri,
                issued_state,
                received_state=state,
            )
            claims = await self.provider.fetch_user_info(tokens.access_token)
        except (MissingParametersError, InvalidStateError) as exc:
            return CallbackResult(self.frontend_redirect(exc.message), outcome=outcome, error=exc.message)
        except (ConfigurationError, ExchangeError, UserInfoError) as exc:
            logger.error("Login failed for session %s: %s", token_prefix(record.session_id), exc)
            return CallbackResult(self.frontend_redirect(exc.message), outcome=outcome, error=exc.message)

        user = User.from_claims(claims)
        record.access_token = tokens.access_token
        record.id_token = tokens.id_token
        record.user = user
        record.is_authenticated = True
        await self.sessions.save(record)

        logger.info(
            "Login completed for session %s (user=%s)",
            token_prefix(record.session_id),
            user.sub,
        )
        return CallbackResult(self.frontend_redirect(), outcome=outcome, user=user)

    async def logout(self, record: SessionRecord) -> None:
        """Destroy a session. Succeeds for sessions that never logged in."""
        destroyed = await self.sessions.destroy(record)
        user = record.user.sub if record.user else "unknown"
        logger.info("Logout for user %s (session destroyed=%s)", user, destroyed)
