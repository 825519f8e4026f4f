"""Tests for the configuration system."""

from __future__ import annotations

import pytest

from todoapi.config import (
    DEV_SESSION_SECRET,
    OIDCSettings,
    ServerSettings,
    SessionSettings,
    StateSettings,
    TodoApiSettings,
    ensure_secure_config,
    get_settings,
)


class TestDefaults:
    """Tests for built-in defaults."""

    def test_session_cookie_defaults(self) -> None:
        settings = SessionSettings()
        assert settings.cookie_name == "todoapi.sid"
        assert settings.secure is True
        assert settings.same_site == "none"
        assert settings.http_only is True
        assert settings.max_age == 86400
        assert settings.backend == "memory"

    def test_state_defaults(self) -> None:
        settings = StateSettings()
        assert settings.backend == "local"
        assert settings.ttl == 600
        assert settings.sweep_interval == 600.0

    def test_oidc_defaults(self) -> None:
        settings = OIDCSettings()
        assert settings.mode == "static"
        assert settings.verify_id_token is False


class TestEnvironment:
    """Tests for environment variable overrides."""

    def test_section_prefix(self, monkeypatch) -> None:
        monkeypatch.setenv("TODOAPI_OIDC__CLIENT_ID", "env-client")
        monkeypatch.setenv("TODOAPI_STATE__BACKEND", "shared")
        assert OIDCSettings().client_id == "env-client"
        assert StateSettings().backend == "shared"

    def test_invalid_backend_rejected(self, monkeypatch) -> None:
        monkeypatch.setenv("TODOAPI_STATE__BACKEND", "guess")
        with pytest.raises(ValueError):
            StateSettings()

    def test_cors_origins_comma_separated(self, monkeypatch) -> None:
        monkeypatch.setenv("TODOAPI_SERVER__CORS_ORIGINS", "http://a.test, http://b.test")
        assert ServerSettings().cors_origins == ["http://a.test", "http://b.test"]

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()


class TestTomlLayering:
    """Tests for TOML configuration files."""

    def test_config_file_env_var(self, tmp_path, monkeypatch) -> None:
        config = tmp_path / "custom.toml"
        config.write_text('[auth]\nfrontend_url = "https://app.test"\n', encoding="utf-8")
        monkeypatch.setenv("TODOAPI_CONFIG_FILE", str(config))

        assert TodoApiSettings().auth.frontend_url == "https://app.test"

    def test_project_toml(self, tmp_path, monkeypatch) -> None:
        (tmp_path / "todoapi.toml").write_text("[state]\nttl = 120\n", encoding="utf-8")
        monkeypatch.chdir(tmp_path)

        assert TodoApiSettings().state.ttl == 120

    def test_unreadable_toml_is_skipped(self, tmp_path, monkeypatch) -> None:
        (tmp_path / "todoapi.toml").write_text("not = [valid", encoding="utf-8")
        monkeypatch.chdir(tmp_path)

        assert TodoApiSettings().state.ttl == 600


class TestRedaction:
    """Tests for secret redaction in exports."""

    def test_show_redacts_secrets(self) -> None:
        settings = TodoApiSettings(
            oidc=OIDCSettings(client_secret="super-secret-value"),
            session=SessionSettings(secret="cookie-secret-value"),
        )
        output = settings.show()
        assert "super-secret-value" not in output
        assert "cookie-secret-value" not in output
        assert "********" in output

    def test_to_env(self) -> None:
        settings = TodoApiSettings(oidc=OIDCSettings(client_id="cid", client_secret="shh"))
        output = settings.to_env()
        assert 'export TODOAPI_OIDC__CLIENT_ID="cid"' in output
        assert 'export TODOAPI_OIDC__CLIENT_SECRET="********"' in output
        assert "shh" not in output


class TestEnsureSecureConfig:
    """Tests for the startup cookie guard."""

    def test_same_site_none_requires_secure(self) -> None:
        settings = TodoApiSettings(session=SessionSettings(same_site="none", secure=False))
        with pytest.raises(SystemExit):
            ensure_secure_config(settings)

    def test_dev_secret_warns(self, caplog) -> None:
        settings = TodoApiSettings(session=SessionSettings(secret=DEV_SESSION_SECRET))
        with caplog.at_level("WARNING", logger="todoapi.config"):
            ensure_secure_config(settings)
        assert "development session secret" in caplog.text

    def test_secure_config_passes(self) -> None:
        settings = TodoApiSettings(session=SessionSettings(secret="prod", same_site="lax"))
        ensure_secure_config(settings)
