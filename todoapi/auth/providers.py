"""Identity provider client.

Resolves the provider's endpoints, builds authorization URLs, exchanges
authorization codes for tokens and fetches user-info. Endpoints come
either from static configuration or from the issuer's discovery
document; the choice is made by ``OIDCSettings.mode`` and discovery
failures never fall back to the static endpoints.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import asyncio
import logging
import time

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import httpx

from authlib.jose import JsonWebKey, JsonWebToken

from ..exceptions import ConfigurationError, ExchangeError, UserInfoError
from ..log import redact_sensitive_data
from ..state.types import OAuthTokenSet


if TYPE_CHECKING:
    from ..config import OIDCSettings


logger = logging.getLogger("todoapi.auth")

#: Scopes requested on every authorization URL.
REQUIRED_SCOPES: tuple[str, ...] = ("openid", "profile", "email")


@dataclass(frozen=True)
class ProviderConfig:
    """Resolved provider endpoints.

    Attributes
    ----------
    issuer : str
        The issuer identifier.
    authorization_endpoint : str
        Where the browser is sent to log in.
    token_endpoint : str
        Where authorization codes are exchanged.
    userinfo_endpoint : str
        Where user claims are fetched with an access token.
    jwks_uri : str
        Key-set URL for ID token signatures (optional).
    """

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str = ""
    jwks_uri: str = ""


def merge_scopes(scopes: str | list[str] | None) -> str:
    """Combine requested scopes with the required OpenID scopes.

    Order is stable: required scopes first, then extras in the order given.
    """
    if isinstance(scopes, str):
        scopes = scopes.split()
    merged = list(REQUIRED_SCOPES)
    for scope in scopes or []:
        if scope and scope not in merged:
            merged.append(scope)
    return " ".join(merged)


class IdentityProviderClient:
    """Client for one OpenID Connect identity provider.

    The resolved :class:`ProviderConfig` is cached for the lifetime of
    the client, which the application context keeps for the lifetime
    of the process.

    Parameters
    ----------
    settings : OIDCSettings
        Provider configuration.
    http_client : httpx.AsyncClient, optional
        Pre-configured HTTP client (for testing with a mock transport).
    """

    def __init__(
        self,
        settings: OIDCSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the identity provider client."""
        self.settings = settings
        self._http_client = http_client
        self._config: ProviderConfig | None = None
        self._jwks_data: dict[str, Any] | None = None
        self._resolve_lock = asyncio.Lock()

    @property
    def config(self) -> ProviderConfig | None:
        """The resolved configuration, or None before :meth:`resolve`."""
        return self._config

    @property
    def name(self) -> str:
        """Short provider label for logs and error context."""
        return self.settings.issuer_url or "static"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.settings.http_timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client. Call from app shutdown lifecycle."""
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    def _check_credentials(self) -> None:
        if not self.settings.client_id.strip():
            msg = "OIDC client id is required but not set"
            raise ConfigurationError(msg, setting="TODOAPI_OIDC__CLIENT_ID")
        if not self.settings.client_secret.strip():
            msg = "OIDC client secret is required but not set"
            raise ConfigurationError(msg, setting="TODOAPI_OIDC__CLIENT_SECRET")

    async def resolve(self) -> ProviderConfig:
        """Return the provider configuration, building it on first use.

        Returns
        -------
        ProviderConfig
            The cached or freshly resolved configuration.

        Raises
        ------
        ConfigurationError
            If credentials are blank, a static endpoint is missing,
            or discovery fails.
        """
        if self._config is not None:
            return self._config

        async with self._resolve_lock:
            if self._config is not None:
                return self._config

            self._check_credentials()
            if self.settings.mode == "discovery":
                config = await self._discover()
            else:
                config = self._static_config()

            self._config = config
            logger.info(
                "OIDC client ready (mode=%s, issuer=%s, client_id=%s...)",
                self.settings.mode,
                config.issuer or "-",
                self.settings.client_id[:8],
            )
            return config

    def _static_config(self) -> ProviderConfig:
        """Build the configuration from configured endpoint URLs."""
        s = self.settings
        if not s.authorization_endpoint:
            msg = "Static OIDC mode requires an authorization endpoint"
            raise ConfigurationError(msg, setting="TODOAPI_OIDC__AUTHORIZATION_ENDPOINT")
        if not s.token_endpoint:
            msg = "Static OIDC mode requires a token endpoint"
            raise ConfigurationError(msg, setting="TODOAPI_OIDC__TOKEN_ENDPOINT")
        return ProviderConfig(
            issuer=s.issuer_url.rstrip("/"),
            authorization_endpoint=s.authorization_endpoint,
            token_endpoint=s.token_endpoint,
            userinfo_endpoint=s.userinfo_endpoint,
            jwks_uri=s.jwks_uri,
        )

    async def _discover(self) -> ProviderConfig:
        """Fetch endpoints from the issuer's well-known configuration."""
        expected = self.settings.issuer_url.rstrip("/")
        if not expected:
            msg = "Discovery mode requires an issuer URL"
            raise ConfigurationError(msg, setting="TODOAPI_OIDC__ISSUER_URL")

        url = f"{expected}/.well-known/openid-configuration"
        try:
            client = await self._get_client()
            resp = await client.get(url)
            resp.raise_for_status()
            document = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"OIDC discovery failed: {exc}"
            raise ConfigurationError(msg, setting="TODOAPI_OIDC__ISSUER_URL") from exc

        discovered_issuer = str(document.get("issuer", "")).rstrip("/")
        if discovered_issuer != expected:
            msg = f"OIDC issuer mismatch: expected '{expected}', got '{discovered_issuer}'"
            raise ConfigurationError(msg, setting="TODOAPI_OIDC__ISSUER_URL")

        authorization_endpoint = document.get("authorization_endpoint", "")
        token_endpoint = document.get("token_endpoint", "")
        if not authorization_endpoint or not token_endpoint:
            msg = "Discovery document lacks authorization or token endpoint"
            raise ConfigurationError(msg, setting="TODOAPI_OIDC__ISSUER_URL")

        return ProviderConfig(
            issuer=expected,
            authorization_endpoint=authorization_endpoint,
            token_endpoint=token_endpoint,
            userinfo_endpoint=document.get("userinfo_endpoint", ""),
            jwks_uri=document.get("jwks_uri", ""),
        )

    def build_authorization_url(
        self,
        state_token: str,
        scopes: str | list[str] | None = None,
    ) -> str:
        """Build the full authorization URL.

        Parameters
        ----------
        state_token : str
            CSRF token, embedded verbatim as ``state``.
        scopes : str or list[str], optional
            Extra scopes; defaults to the configured scopes.

        Returns
        -------
        str
            The full authorization URL.

        Raises
        ------
        ConfigurationError
            If called before :meth:`resolve`.
        """
        if self._config is None:
            msg = "Provider configuration not resolved"
            raise ConfigurationError(msg)

        params: dict[str, str] = {
            "response_type": "code",
            "client_id": self.settings.client_id,
            "redirect_uri": self.settings.redirect_uri,
            "scope": merge_scopes(scopes if scopes is not None else self.settings.scopes),
            "state": state_token,
        }
        return f"{self._config.authorization_endpoint}?{urlencode(params)}"

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        expected_state: str,
        *,
        received_state: str | None = None,
    ) -> OAuthTokenSet:
        """Exchange an authorization code for tokens.

        Parameters
        ----------
        code : str
            The authorization code from the callback.
        redirect_uri : str
            The redirect URI used for the authorization request.
        expected_state : str
            The state token this server issued.
        received_state : str, optional
            The state echoed back on the callback.

        Returns
        -------
        OAuthTokenSet
            The token set from the provider.

        Raises
        ------
        ExchangeError
            On a state mismatch, transport failure, or provider error.
        """
        if received_state is not None and received_state != expected_state:
            msg = "State mismatch during code exchange"
            raise ExchangeError(msg, provider=self.name)

        config = await self.resolve()
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
        }

        try:
            client = await self._get_client()
            resp = await client.post(
                config.token_endpoint,
                data=data,
                headers={"Accept": "application/json"},
            )
            resp.raise_for_status()
            raw = resp.json()
        except httpx.HTTPStatusError as exc:
            msg = f"Token exchange failed: {exc.response.status_code}"
            raise ExchangeError(msg, provider=self.name) from exc
        except httpx.HTTPError as exc:
            msg = f"Token exchange request failed: {exc}"
            raise ExchangeError(msg, provider=self.name) from exc
        except ValueError as exc:
            msg = "Token endpoint returned invalid JSON"
            raise ExchangeError(msg, provider=self.name) from exc

        if not isinstance(raw, dict):
            msg = "Token endpoint returned an unexpected payload"
            raise ExchangeError(msg, provider=self.name)
        logger.debug("Token response: %s", redact_sensitive_data(raw))
        if "error" in raw:
            msg = f"Token error: {raw.get('error_description') or raw['error']}"
            raise ExchangeError(msg, provider=self.name)
        if not raw.get("access_token"):
            msg = "Token response has no access_token"
            raise ExchangeError(msg, provider=self.name)

        id_token = raw.get("id_token")
        if id_token and self.settings.verify_id_token:
            await self._validate_id_token(id_token, config)

        return OAuthTokenSet(
            access_token=raw["access_token"],
            token_type=raw.get("token_type", "Bearer"),
            refresh_token=raw.get("refresh_token"),
            expires_in=raw.get("expires_in"),
            id_token=id_token,
            scope=raw.get("scope", ""),
            raw=raw,
            issued_at=time.time(),
        )

    async def _fetch_jwks(self, config: ProviderConfig) -> dict[str, Any]:
        """Fetch and cache the provider key set."""
        if self._jwks_data is not None:
            return self._jwks_data
        if not config.jwks_uri:
            msg = "ID token validation requires a key-set URL"
            raise ExchangeError(msg, provider=self.name)
        client = await self._get_client()
        resp = await client.get(config.jwks_uri)
        resp.raise_for_status()
        self._jwks_data = resp.json()
        return self._jwks_data

    async def _validate_id_token(self, id_token: str, config: ProviderConfig) -> dict[str, Any]:
        """Check the ID token signature, issuer, audience and expiry."""
        try:
            jwks_data = await self._fetch_jwks(config)
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"Key set fetch failed: {exc}"
            raise ExchangeError(msg, provider=self.name) from exc

        jwt = JsonWebToken(["RS256", "RS384", "RS512", "ES256", "ES384", "ES512"])
        claims_options: dict[str, Any] = {
            "aud": {"essential": True, "value": self.settings.client_id},
            "exp": {"essential": True},
        }
        if config.issuer:
            claims_options["iss"] = {"essential": True, "value": config.issuer}

        try:
            key_set = JsonWebKey.import_key_set(jwks_data)
            claims = jwt.decode(id_token, key_set, claims_options=claims_options)
            claims.validate()
        except Exception as exc:
            msg = f"ID token validation failed: {exc}"
            raise ExchangeError(msg, provider=self.name) from exc

        return dict(claims)

    async def fetch_user_info(self, access_token: str) -> dict[str, Any]:
        """Fetch user claims from the provider.

        Parameters
        ----------
        access_token : str
            A valid access token.

        Returns
        -------
        dict[str, Any]
            User claims (``sub``, ``email``, ``name``, ...).

        Raises
        ------
        UserInfoError
            If the token is rejected or the endpoint is unreachable.
        """
        config = await self.resolve()
        if not config.userinfo_endpoint:
            msg = "User-info endpoint not configured"
            raise UserInfoError(msg, provider=self.name)

        try:
            client = await self._get_client()
            resp = await client.get(
                config.userinfo_endpoint,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            resp.raise_for_status()
            claims = resp.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in (401, 403):
                msg = "Access token rejected by user-info endpoint"
            else:
                msg = f"User-info request failed: {status}"
            raise UserInfoError(msg, provider=self.name) from exc
        except httpx.HTTPError as exc:
            msg = f"User-info request failed: {exc}"
            raise UserInfoError(msg, provider=self.name) from exc
        except ValueError as exc:
            msg = "User-info endpoint returned invalid JSON"
            raise UserInfoError(msg, provider=self.name) from exc

        if not isinstance(claims, dict):
            msg = "User-info endpoint returned an unexpected payload"
            raise UserInfoError(msg, provider=self.name)
        return claims
