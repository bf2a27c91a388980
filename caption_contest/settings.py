"""Application settings via Pydantic Settings."""

from functools import lru_cache
import json

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "Caption Contest API"
    app_version: str = "0.1.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # CORS
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        validation_alias=AliasChoices("CORS_ORIGINS", "ALLOWED_ORIGINS"),
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v: object) -> list[str]:
        """
        Accept either:
        - JSON array string: '["https://a.com","http://localhost:3000"]'
        - Comma-separated string: "https://a.com,http://localhost:3000"
        - Already-parsed list[str]
        """
        if v is None:
            return []
        if isinstance(v, list):
            return [str(x).strip() for x in v if str(x).strip()]
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    parsed = json.loads(s)
                except json.JSONDecodeError:
                    parsed = s.split(",")
                if isinstance(parsed, list):
                    return [str(x).strip() for x in parsed if str(x).strip()]
                return [str(parsed).strip()]
            return [part.strip() for part in s.split(",") if part.strip()]
        return [str(v).strip()] if str(v).strip() else []

    # Request context (set by the hosting platform's proxy)
    user_header: str = Field(
        default="X-Username",
        validation_alias=AliasChoices("USER_HEADER"),
        description="Header carrying the caller's username",
    )
    contest_header: str = Field(
        default="X-Contest-Id",
        validation_alias=AliasChoices("CONTEST_HEADER", "POST_HEADER"),
        description="Header carrying the contest (post) the request is scoped to",
    )

    # Contest rules
    contest_duration_seconds: int = Field(
        default=86400,
        validation_alias=AliasChoices("CONTEST_DURATION_SECONDS"),
        ge=1,
    )
    settlement_top_k: int = Field(
        default=3,
        validation_alias=AliasChoices("SETTLEMENT_TOP_K"),
        ge=1,
        le=50,
    )
    max_captions_per_user: int = Field(
        default=1,
        validation_alias=AliasChoices("MAX_CAPTIONS_PER_USER"),
        ge=1,
    )

    # Renderer/publisher
    publisher_url: str = Field(
        default="",
        validation_alias=AliasChoices("PUBLISHER_URL", "RENDERER_URL"),
        description="Renderer/publisher endpoint. Empty = log-only publisher.",
    )
    publisher_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("PUBLISHER_API_KEY", "API_KEY"),
    )
    publisher_timeout_seconds: float = Field(
        default=30.0,
        validation_alias=AliasChoices("PUBLISHER_TIMEOUT_SECONDS"),
        gt=0,
    )

    # Admin
    admin_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("ADMIN_API_KEY"),
        description="If set, admin endpoints require a matching x-api-key header",
    )

    # Scheduler / settlement
    scheduler_poll_interval_seconds: float = Field(
        default=5.0,
        validation_alias=AliasChoices("SCHEDULER_POLL_INTERVAL_SECONDS"),
        gt=0,
    )
    scheduler_lease_seconds: int = Field(
        default=300,
        validation_alias=AliasChoices("SCHEDULER_LEASE_SECONDS"),
        ge=1,
    )
    settlement_lock_ttl_seconds: int = Field(
        default=300,
        validation_alias=AliasChoices("SETTLEMENT_LOCK_TTL_SECONDS"),
        ge=1,
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
