"""
Tests for application configuration.

These tests verify that:
1. Default values are set correctly
2. Environment variables override defaults
"""


class TestSettings:
    """Test the Settings configuration class."""

    def test_default_values(self, monkeypatch):
        """Settings should have sensible defaults when no env vars are set."""
        for name in (
            "DATABASE_URL", "JWT_ALGORITHM", "DEBUG", "LOG_LEVEL",
            "SENDGRID_API_KEY", "ALERT_BATCH_INTERVAL_SECONDS",
            "ALERT_BATCH_MAX_ATTEMPTS", "AUTHZ_DISABLED",
        ):
            monkeypatch.delenv(name, raising=False)

        from alerting.core.config import Settings

        settings = Settings(_env_file=None)

        assert settings.jwt_algorithm == "HS256"
        assert settings.debug is False
        assert settings.log_level == "INFO"
        assert settings.sendgrid_api_key == ""
        assert settings.alert_batch_interval_seconds == 3600.0
        assert settings.alert_batch_max_attempts == 3
        assert settings.authz_disabled is False

    def test_database_url_format(self, monkeypatch):
        """Database URL should use the psycopg async driver."""
        monkeypatch.delenv("DATABASE_URL", raising=False)
        from alerting.core.config import Settings

        settings = Settings(_env_file=None)

        assert settings.database_url.startswith("postgresql+psycopg://")

    def test_env_override(self, monkeypatch):
        """Environment variables should override default values."""
        monkeypatch.setenv("ALERT_BATCH_INTERVAL_SECONDS", "900")
        monkeypatch.setenv("SENDGRID_API_KEY", "SG.key")
        monkeypatch.setenv("debug", "true")

        from alerting.core.config import Settings

        settings = Settings(_env_file=None)

        assert settings.alert_batch_interval_seconds == 900.0
        assert settings.sendgrid_api_key == "SG.key"
        assert settings.debug is True
