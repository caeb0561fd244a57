from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./ecoquest.db"
    database_echo: bool = False
    database_statement_timeout_ms: int = 5000
    redis_url: str = "redis://localhost:6379/0"

    # Application URLs
    frontend_url: str = "http://localhost:3000"
    api_base_url: str = "http://localhost:8000"

    # Admin operations (verification, fulfillment, cancellation)
    admin_api_key: str = ""

    # Real-time fan-out
    realtime_enabled: bool = False
    realtime_channel_prefix: str = "ecoquest"
    realtime_admin_events: list[str] = Field(
        default_factory=lambda: [
            "challenge.completed",
            "redemption.created",
        ]
    )

    @field_validator("realtime_admin_events", mode="before")
    @classmethod
    def _parse_event_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []

    # Points economy bounds
    challenge_points_min: int = 1
    challenge_points_max: int = 1000
    reward_points_cost_min: int = 50
    reward_points_cost_max: int = 10000

    # Listing defaults
    pagination_default_limit: int = 20
    pagination_max_limit: int = 100
    leaderboard_max_limit: int = 50

    # Email / notification settings
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    smtp_sender_email: str | None = None


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
