"""Configuration for courier."""

from pydantic import field_validator
from pydantic_settings import BaseSettings

from courier.constants import (
    NOTIFICATION_CONCURRENCY,
    NOTIFICATION_QUEUE,
    PREFERENCE_CACHE_TTL_SEC,
)


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./courier.db"
    api_prefix: str = "/api/v1"
    debug: bool = False

    # Delivery queue
    redis_url: str = "redis://localhost:6379/0"
    queue_name: str = NOTIFICATION_QUEUE
    # "arq" hands jobs to Redis workers, "inline" runs them in-process
    queue_mode: str = "arq"
    worker_concurrency: int = NOTIFICATION_CONCURRENCY

    # Preferences
    preference_cache_ttl_s: float = PREFERENCE_CACHE_TTL_SEC

    # Fail send() instead of enqueueing when the template cannot be resolved
    strict_template_check: bool = False

    # Telegram Bot API
    telegram_bot_token: str = ""
    telegram_api_base: str = "https://api.telegram.org"
    telegram_timeout_s: float = 10.0

    model_config = {"env_prefix": "COURIER_"}

    @field_validator("queue_mode", mode="before")
    @classmethod
    def _normalize_queue_mode(cls, value: object) -> object:
        if value in (None, ""):
            return "arq"
        if isinstance(value, str):
            mode = value.strip().lower()
            if mode not in {"arq", "inline"}:
                raise ValueError("queue_mode must be 'arq' or 'inline'")
            return mode
        raise TypeError("queue_mode must be a string")


settings = Settings()
