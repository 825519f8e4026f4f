"""Configuration system for todoapi using pydantic-settings.

Supports layered configuration:
1. Built-in defaults (lowest priority)
2. pyproject.toml [tool.todoapi] section (project-level)
3. ./todoapi.toml (project-level, explicit)
4. ~/.config/todoapi/config.toml (user-level, overrides project)
5. Environment variables (highest priority)

Each section reads its own prefixed variables.
Example: TODOAPI_OIDC__CLIENT_ID, TODOAPI_STATE__BACKEND
"""

from __future__ import annotations

import logging
import os
import sys

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


logger = logging.getLogger("todoapi.config")

#: Placeholder session secret used when none is configured.
DEV_SESSION_SECRET = "todoapi-dev-secret-change-in-production"  # noqa: S105


def _find_config_files() -> list[Path]:
    """Find all configuration files in order of precedence (lowest first)."""
    files = []

    pyproject = Path("pyproject.toml")
    if pyproject.exists():
        files.append(pyproject)

    todoapi_toml = Path("todoapi.toml")
    if todoapi_toml.exists():
        files.append(todoapi_toml)

    user_config = Path("~/.config/todoapi/config.toml").expanduser()
    if user_config.exists():
        files.append(user_config)

    env_config = os.environ.get("TODOAPI_CONFIG_FILE")
    if env_config:
        env_path = Path(env_config)
        if env_path.exists():
            files.append(env_path)

    return files


def _load_toml_config() -> dict[str, Any]:
    """Load and merge all TOML configuration files."""
    merged: dict[str, Any] = {}

    for config_file in _find_config_files():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("Ignoring unreadable config file %s: %s", config_file, exc)
            continue

        if config_file.name == "pyproject.toml":
            data = data.get("tool", {}).get("todoapi", {})

        merged = _deep_merge(merged, data)

    return merged


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# Field names that contain sensitive data and must be redacted in output.
_SENSITIVE_FIELDS: set[str] = {
    "client_secret",
    "secret",
    "redis_url",
}

_REDACTED = "********"


class OIDCSettings(BaseSettings):
    """Identity provider settings.

    ``mode`` selects how endpoints are resolved. ``static`` uses the
    endpoint URLs below as-is; ``discovery`` fetches the issuer's
    ``/.well-known/openid-configuration`` and checks its issuer echo.

    Environment prefix: TODOAPI_OIDC__
    Example: TODOAPI_OIDC__CLIENT_ID=todo-web
    """

    model_config = SettingsConfigDict(
        env_prefix="TODOAPI_OIDC__",
        extra="ignore",
    )

    mode: Literal["static", "discovery"] = Field(
        default="static",
        description="Endpoint resolution: 'static' (configured URLs) or 'discovery'",
    )
    issuer_url: str = Field(
        default="",
        description="OIDC issuer URL (discovery origin and expected 'iss')",
    )
    client_id: str = Field(default="", description="OAuth2 client ID")
    client_secret: str = Field(default="", description="OAuth2 client secret")
    redirect_uri: str = Field(
        default="http://localhost:3000/api/auth/callback",
        description="Callback URL registered with the provider",
    )

    authorization_endpoint: str = Field(default="", description="Authorization endpoint URL")
    token_endpoint: str = Field(default="", description="Token endpoint URL")
    userinfo_endpoint: str = Field(default="", description="User-info endpoint URL")
    jwks_uri: str = Field(default="", description="Key-set URL for ID token validation")

    scopes: str = Field(
        default="openid profile email",
        description="Space-separated scopes; openid, profile and email are always requested",
    )
    verify_id_token: bool = Field(
        default=False,
        description="Validate the ID token signature and claims against the key set",
    )
    http_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Timeout in seconds for provider HTTP calls",
    )


class SessionSettings(BaseSettings):
    """Session cookie and session store settings.

    Cross-site redirect flows from the provider need ``same_site="none"``
    together with ``secure=True``.

    Environment prefix: TODOAPI_SESSION__
    Example: TODOAPI_SESSION__BACKEND=redis
    """

    model_config = SettingsConfigDict(
        env_prefix="TODOAPI_SESSION__",
        extra="ignore",
    )

    secret: str = Field(
        default=DEV_SESSION_SECRET,
        description="HMAC key used to sign the session id cookie",
    )
    cookie_name: str = Field(default="todoapi.sid", description="Session cookie name")
    secure: bool = Field(default=True, description="Set the Secure cookie attribute")
    same_site: Literal["lax", "strict", "none"] = Field(
        default="none",
        description="SameSite cookie attribute",
    )
    http_only: bool = Field(default=True, description="Set the HttpOnly cookie attribute")
    max_age: int = Field(
        default=86400,  # 24 hours
        ge=60,
        description="Session lifetime in seconds (cookie max-age and store TTL)",
    )
    backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Session store backend: 'memory' (single process) or 'redis'",
    )
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis URL")
    redis_prefix: str = Field(default="todoapi", description="Redis key prefix")


class StateSettings(BaseSettings):
    """Login state token settings.

    ``local`` keeps pending state tokens in this process only and suits a
    single instance. ``shared`` keeps them in Redis so every replica sees
    them.

    Environment prefix: TODOAPI_STATE__
    Example: TODOAPI_STATE__BACKEND=shared
    """

    model_config = SettingsConfigDict(
        env_prefix="TODOAPI_STATE__",
        extra="ignore",
    )

    backend: Literal["local", "shared"] = Field(
        default="local",
        description="State token backend: 'local' (process map) or 'shared' (Redis)",
    )
    ttl: int = Field(
        default=600,  # 10 minutes
        ge=1,
        description="Seconds a login attempt stays valid",
    )
    sweep_interval: float = Field(
        default=600.0,
        gt=0,
        description="Seconds between expiry sweeps of the state backend",
    )
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis URL")
    redis_prefix: str = Field(default="todoapi", description="Redis key prefix")


class AuthSettings(BaseSettings):
    """Authentication gate and browser redirect settings.

    Environment prefix: TODOAPI_AUTH__
    Example: TODOAPI_AUTH__GATE_POLICY=userinfo
    """

    model_config = SettingsConfigDict(
        env_prefix="TODOAPI_AUTH__",
        extra="ignore",
    )

    gate_policy: Literal["session", "userinfo"] = Field(
        default="session",
        description=(
            "'session' trusts the server-side session record; "
            "'userinfo' re-validates the access token with the provider on every request"
        ),
    )
    frontend_url: str = Field(
        default="http://localhost:5173",
        description="Client application URL that callbacks redirect to",
    )


class ServerSettings(BaseSettings):
    """HTTP server settings.

    Environment prefix: TODOAPI_SERVER__
    Example: TODOAPI_SERVER__PORT=8080
    """

    model_config = SettingsConfigDict(
        env_prefix="TODOAPI_SERVER__",
        extra="ignore",
    )

    host: str = Field(default="0.0.0.0", description="Bind address")  # noqa: S104
    port: int = Field(default=3000, ge=1, le=65535, description="Bind port")
    reload: bool = Field(default=False, description="Enable uvicorn auto-reload")
    cors_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Extra CORS origins (the frontend URL is always allowed)",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_comma_separated(cls, v: Any) -> list[str]:
        """Parse comma-separated strings from env vars."""
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v or []


class LogSettings(BaseSettings):
    """Logging settings.

    Environment prefix: TODOAPI_LOG__
    Example: TODOAPI_LOG__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="TODOAPI_LOG__",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: str = "%(asctime)s %(name)s - %(levelname)s - %(message)s"


_SECTIONS: list[tuple[str, str, str]] = [
    ("OIDC", "oidc", "Identity Provider"),
    ("SESSION", "session", "Session"),
    ("STATE", "state", "Login State Tokens"),
    ("AUTH", "auth", "Authentication Gate"),
    ("SERVER", "server", "Server"),
    ("LOG", "log", "Logging"),
]


class TodoApiSettings(BaseSettings):
    """Main settings aggregating all configuration sections.

    Environment prefix: TODOAPI__

    Configuration sources (in order of precedence):
    1. Built-in defaults
    2. pyproject.toml [tool.todoapi] section
    3. ./todoapi.toml (project-level)
    4. ~/.config/todoapi/config.toml (user-level, overrides project)
    5. Environment variables (highest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="TODOAPI__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    oidc: OIDCSettings = Field(default_factory=OIDCSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    state: StateSettings = Field(default_factory=StateSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    def __init__(self, **data: Any) -> None:
        toml_config = _load_toml_config()
        merged = _deep_merge(toml_config, data)
        super().__init__(**merged)

    def to_env(self) -> str:
        """Export settings as shell environment variables."""
        lines = [
            "# todoapi Environment Variables",
            "# Generated by: todoapi config --env",
            "",
        ]

        all_data = self.model_dump(
            exclude={attr: _SENSITIVE_FIELDS for _, attr, _ in _SECTIONS},
        )

        for env_prefix, attr_name, _ in _SECTIONS:
            section_data = all_data.get(attr_name, {})
            for field_name, field_value in section_data.items():
                env_name = f"TODOAPI_{env_prefix}__{field_name.upper()}"
                if isinstance(field_value, list):
                    value_str = ",".join(str(v) for v in field_value)
                elif isinstance(field_value, bool):
                    value_str = "true" if field_value else "false"
                else:
                    value_str = str(field_value)
                lines.append(f'export {env_name}="{value_str}"')
            section_cls = type(getattr(self, attr_name))
            for redacted_name in sorted(_SENSITIVE_FIELDS & section_cls.model_fields.keys()):
                env_name = f"TODOAPI_{env_prefix}__{redacted_name.upper()}"
                lines.append(f'export {env_name}="{_REDACTED}"')

        return "\n".join(lines)

    def show(self) -> str:
        """Format settings as a readable table."""
        lines = ["todoapi Configuration", "=" * 60, ""]

        all_data = self.model_dump(
            exclude={attr: _SENSITIVE_FIELDS for _, attr, _ in _SECTIONS},
        )

        for _, attr_name, display_name in _SECTIONS:
            section_data = all_data.get(attr_name, {})
            lines.append(f"\n{display_name}")
            lines.append("-" * 40)
            for field_name, field_value in section_data.items():
                value_str = str(field_value)
                if len(value_str) > 50:
                    value_str = value_str[:47] + "..."
                lines.append(f"  {field_name:24} = {value_str}")
            section_cls = type(getattr(self, attr_name))
            lines.extend(
                f"  {rn:24} = {_REDACTED}"
                for rn in sorted(_SENSITIVE_FIELDS & section_cls.model_fields.keys())
            )

        return "\n".join(lines)


def ensure_secure_config(settings: TodoApiSettings) -> None:
    """Refuse cookie settings that browsers reject and warn on dev secrets.

    Parameters
    ----------
    settings : TodoApiSettings
        The settings to check.

    Raises
    ------
    SystemExit
        If ``same_site="none"`` is configured without ``secure=True``.
    """
    session = settings.session
    if session.same_site == "none" and not session.secure:
        raise SystemExit(
            "Refusing to start: TODOAPI_SESSION__SAME_SITE=none requires TODOAPI_SESSION__SECURE=true."
        )
    if session.secret == DEV_SESSION_SECRET:
        logger.warning("Using the development session secret; set TODOAPI_SESSION__SECRET")


@lru_cache(maxsize=1)
def get_settings() -> TodoApiSettings:
    """Get the global settings instance (cached).

    Call clear_settings() to reload configuration.
    """
    return TodoApiSettings()


def clear_settings() -> None:
    """Clear the cached settings to force reload."""
    get_settings.cache_clear()
