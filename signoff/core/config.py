from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # App
    app_name: str = "Signoff"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./signoff.db"
    database_echo: bool = False

    # Logging
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    # Transactions
    transaction_max_attempts: int = 3
    transaction_retry_wait: float = 0.05  # seconds

    # Dashboard
    recent_activity_limit: int = 20
    completed_window_days: int = 7

    # Permissions
    admin_permission: str = "approvals:manage"

    # Notifications
    notification_backend: str = "log"  # log | webhook | celery
    webhook_url: Optional[str] = None
    webhook_timeout: int = 30
    webhook_payload_template: Optional[str] = None
    review_base_url: str = "http://localhost:3000/approvals"

    # Redis / Celery
    redis_url: str = "redis://localhost:6379/0"
    celery_broker_url: Optional[str] = None
    celery_result_backend: Optional[str] = None
    notification_max_retries: int = 5
    notification_retry_delay: int = 60  # seconds

    @property
    def celery_broker(self) -> str:
        return self.celery_broker_url or self.redis_url

    @property
    def celery_backend(self) -> str:
        return self.celery_result_backend or self.redis_url

    model_config = SettingsConfigDict(
        env_prefix="SIGNOFF_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
