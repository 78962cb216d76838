"""Tests for configuration loading and the command-line interface."""

import pytest

from garden_auth.cli import main
from garden_auth.config import Settings, get_settings


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        """Test session and cookie defaults."""
        settings = get_settings()

        assert settings.session_ttl_seconds == 86400
        assert settings.max_sessions_per_user == 5
        assert settings.session_cookie_name == "session"
        assert settings.oauth_state_max_age_seconds == 600
        assert settings.legacy_admin_email_heuristic is False
        assert settings.admin_emails == []

    def test_postgres_url_uses_asyncpg(self, monkeypatch):
        """Test the driver rewrite for plain PostgreSQL URLs."""
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/garden")

        assert get_settings().database_url == "postgresql+asyncpg://u:p@db:5432/garden"

    def test_admin_emails_parsing(self, monkeypatch):
        """Test the comma-separated admin list."""
        monkeypatch.setenv("ADMIN_EMAILS", " Alice@Example.com,,bob@example.com ")

        assert get_settings().admin_emails == ["alice@example.com", "bob@example.com"]

    def test_redirect_uri(self, monkeypatch):
        """Test that callback URLs derive from APP_URL."""
        monkeypatch.setenv("APP_URL", "https://garden.example.org/")

        assert get_settings().redirect_uri("apple") == (
            "https://garden.example.org/auth/callback/apple"
        )

    @pytest.mark.parametrize(
        "environment,cookie_secure,expected",
        [
            ("development", None, False),
            ("production", None, True),
            ("development", "true", True),
            ("production", "false", False),
        ],
    )
    def test_secure_cookies(self, monkeypatch, environment, cookie_secure, expected):
        """Test when cookies get the Secure attribute."""
        monkeypatch.setenv("ENVIRONMENT", environment)
        if cookie_secure is not None:
            monkeypatch.setenv("COOKIE_SECURE", cookie_secure)

        assert get_settings().use_secure_cookies is expected


class TestValidateOAuthConfig:
    """Tests for the startup configuration report."""

    def test_valid_development_config(self):
        """Test the test environment passes with a warning about HTTPS."""
        report = get_settings().validate_oauth_config()

        assert report.is_valid
        assert any("HTTPS" in w for w in report.warnings)

    def test_missing_google_credentials(self):
        """Test that Google credentials are required."""
        settings = Settings(google_client_id=None, google_client_secret=None)

        assert not settings.validate_oauth_config().is_valid

    def test_half_configured_apple(self):
        """Test that Apple credentials must come as a pair."""
        settings = Settings(apple_client_id="id", apple_client_secret=None)

        report = settings.validate_oauth_config()
        assert any("APPLE" in e for e in report.errors)

    def test_production_requires_https(self):
        """Test the production URL check."""
        settings = Settings(environment="production", app_url="http://garden.example.org")

        report = settings.validate_oauth_config()
        assert "APP_URL must use HTTPS in production" in report.errors

    def test_legacy_heuristic_warns(self):
        """Test that enabling the legacy admin rule is flagged."""
        settings = Settings(legacy_admin_email_heuristic=True)

        assert any("LEGACY" in w for w in settings.validate_oauth_config().warnings)


class TestCli:
    """Tests for the garden-auth command."""

    def test_check_config(self, capsys):
        """Test the configuration check command."""
        assert main(["check-config"]) == 0
        assert "Configuration OK." in capsys.readouterr().out

    def test_check_config_failure(self, monkeypatch, capsys):
        """Test that configuration errors give a non-zero exit code."""
        monkeypatch.setenv("GOOGLE_CLIENT_ID", "")

        assert main(["check-config"]) == 1
        assert "error:" in capsys.readouterr().out

    def test_create_tables_and_sweep(self, database_url, capsys):
        """Test the maintenance commands against a fresh database."""
        assert main(["create-tables"]) == 0
        assert main(["sweep-sessions"]) == 0

        out = capsys.readouterr().out
        assert "Tables created." in out
        assert "Removed 0 expired session(s)." in out

    def test_sweep_without_tables(self, database_url, capsys):
        """Test that storage failures are reported."""
        assert main(["sweep-sessions"]) == 1
        assert "Sweep failed" in capsys.readouterr().err

    def test_no_command(self, capsys):
        """Test that running without a command prints help."""
        assert main([]) == 0
        assert "create-tables" in capsys.readouterr().out
