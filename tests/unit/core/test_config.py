"""Tests for settings loading."""

from signoff.core.config import Settings, get_settings


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.transaction_max_attempts == 3
        assert settings.admin_permission == "approvals:manage"
        assert settings.notification_backend == "log"
        assert settings.webhook_url is None

    def test_env_prefix(self, monkeypatch):
        """Test that SIGNOFF_* variables override defaults."""
        monkeypatch.setenv("SIGNOFF_DATABASE_URL", "postgresql://signoff@db/signoff")
        monkeypatch.setenv("SIGNOFF_TRANSACTION_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("SIGNOFF_NOTIFICATION_BACKEND", "webhook")

        settings = Settings(_env_file=None)

        assert settings.database_url == "postgresql://signoff@db/signoff"
        assert settings.transaction_max_attempts == 5
        assert settings.notification_backend == "webhook"

    def test_celery_urls_fall_back_to_redis(self):
        settings = Settings(_env_file=None, redis_url="redis://cache:6379/1")

        assert settings.celery_broker == "redis://cache:6379/1"
        assert settings.celery_backend == "redis://cache:6379/1"

    def test_explicit_celery_urls(self):
        settings = Settings(
            _env_file=None,
            celery_broker_url="amqp://broker//",
            celery_result_backend="redis://results:6379/2",
        )

        assert settings.celery_broker == "amqp://broker//"
        assert settings.celery_backend == "redis://results:6379/2"

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
