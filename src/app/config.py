from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8-sig",
        case_sensitive=False,
        extra="ignore",
    )

    APP_ENV: str = "local"
    LOG_LEVEL: str = "INFO"
    FRONTEND_CORS_ORIGINS: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
    )

    AWS_REGION: str = "us-east-1"
    DYNAMODB_TABLE: str = "smart-cooking-data"
    DYNAMODB_ENDPOINT_URL: Optional[str] = None

    DB_RETRY_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    DB_RETRY_BASE_DELAY_SECONDS: float = Field(default=0.1, ge=0)
    DB_RETRY_MAX_DELAY_SECONDS: float = Field(default=5.0, ge=0)

    RATING_AUTO_APPROVAL_MIN_AVERAGE: float = 4.0
    RATING_AUTO_APPROVAL_MIN_COUNT: int = 3
    RATING_MARKER_GRACE_SECONDS: float = Field(default=60.0, ge=0)
    RATINGS_DEFAULT_PAGE_SIZE: int = 20
    RATINGS_MAX_PAGE_SIZE: int = 100
    NOTIFICATION_TTL_DAYS: int = 30


settings = Settings()
