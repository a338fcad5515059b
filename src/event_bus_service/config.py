from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300

    REDIS_URL: str = "redis://localhost:6379/0"

    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"

    CORS_ORIGINS: list[str] = ["*"]

    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    OUTBOX_POLL_INTERVAL: float = 1.0
    OUTBOX_BATCH_SIZE: int = 50
    # 0 disables dead-lettering: failing rows are retried forever.
    OUTBOX_MAX_ATTEMPTS: int = 10
    OUTBOX_STARTUP_DELAY: float = 0.0
    OUTBOX_ERROR_RETRY_DELAY: float = 5.0

    BROKER_STREAM_PREFIX: str = "bus:"
    BROKER_PARTITIONS: int = 8
    BROKER_PUBLISH_TIMEOUT: float = 5.0
    BROKER_STREAM_MAXLEN: int = 100_000
    BROKER_CONSUMER_GROUP: str = "event-bus-webhooks"
    BROKER_CONSUMER_NAME: str = "webhooks-1"
    # Failed entries stay pending and are replayed after this delay.
    BROKER_PENDING_RETRY_DELAY: float = 5.0
    BROKER_TOPICS: list[str] = [
        "user-events",
        "subscription-events",
        "website-events",
        "billing-events",
        "system-events",
    ]
    # Advertised catalogue (event type -> topic); publishing is not restricted to it.
    EVENT_TYPES: dict[str, str] = {
        "UserRegistered": "user-events",
        "UserUpdated": "user-events",
        "UserDeactivated": "user-events",
        "SubscriptionStarted": "subscription-events",
        "WebsiteGenerated": "website-events",
    }

    WEBHOOK_MAX_CONCURRENCY: int = 16
    WEBHOOK_BACKOFF_BASE: float = 1.0
    WEBHOOK_BACKOFF_MAX: float = 60.0
    # 0 keeps exhausted subscriptions active.
    WEBHOOK_DEACTIVATE_AFTER_FAILURES: int = 0
    WEBHOOK_USER_AGENT: str = "EventBus-Webhook/1.0"

    SHUTDOWN_GRACE_SECONDS: float = 10.0

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
