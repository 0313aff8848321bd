from enum import Enum
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class RetryPolicy(str, Enum):
    FAILED_ONLY = "failed_only"
    FULL_REPLAY = "full_replay"


class Settings(BaseSettings):
    admin_token: str = "Oob3eiChoh8quaeJ"
    base_url: str = "http://localhost:8000"
    database_url: str = "postgresql+psycopg://postgres:postgres@db:5432/hookrelay"
    create_tables: bool = False
    debug: bool = False
    github_webhook_secret: str = "test_webhook_secret"
    delivery_store: Literal["memory", "database"] = "memory"
    handler_timeout: float = 10.0
    retry_policy: RetryPolicy = RetryPolicy.FAILED_ONLY
    dedupe_by_payload_hash: bool = False
    duplicate_status_code: Literal[200, 409] = 200
    activity_log_enabled: bool = True
    sentry_dsn: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )


settings = Settings()
