"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_env: str = "development"
    app_debug: bool = False
    log_level: str = "info"
    api_url: str = "http://localhost:8000"

    # Database
    database_url: str = ""  # Required - no insecure default
    database_pool_size: int = 10

    # Redis / Celery
    redis_url: str = "redis://localhost:6379/0"
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/2"
    review_task_time_limit: int = 900
    review_worker_concurrency: int = 2

    # GitHub App
    github_app_id: str = ""
    github_app_private_key: str = ""
    github_webhook_secret: str = ""

    # Gemini
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"

    # Pipeline
    stage_timeout_seconds: float = 120.0
    ai_batch_size: int = 5
    ai_max_enhancements: int = 10
    ai_max_file_chars: int = 2000
    sandbox_root: str = "/tmp/compliance-copilot"
    sandbox_scan_timeout_seconds: float = 60.0
    sandbox_semgrep_enabled: bool = True

    # Commands
    mention_aliases: List[str] = [
        "@compliance-bot",
        "@compliance-copilot",
        "@compliancebot",
    ]

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    @field_validator("database_url", mode="after")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Ensure database URL is set."""
        if not v:
            raise ValueError("database_url must be set via DATABASE_URL environment variable")
        return v

    @field_validator("github_webhook_secret", mode="after")
    @classmethod
    def validate_webhook_secret(cls, v: str, info) -> str:
        """Ensure the webhook secret is set and not a placeholder."""
        insecure_values = {"", "change-me-in-production", "secret", "password"}
        if v.lower() in insecure_values:
            raise ValueError(
                f"{info.field_name} must be set to the secret configured on the GitHub App"
            )
        return v

    @field_validator("ai_batch_size", "ai_max_enhancements", mode="after")
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name} must be at least 1")
        return v

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
