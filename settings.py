"""Application settings.

Values come from CES_-prefixed environment variables, with a local .env file
read as a fallback.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration.

    Args:
        log_level: Root logging level name.
        oracle_url: Base URL of the patient response service. Empty means the
            scripted responder is used.
        oracle_timeout: Request timeout in seconds.
        oracle_max_retries: Retries for transient oracle failures.
        context_turns: Conversation turns sent to the oracle.
        follow_up_delay_minutes: Virtual delay of conversation follow-up events.
        default_acceleration_rate: Acceleration rate when nothing else sets one.
        time_efficiency_cap: Upper bound of the time-efficiency score.
    """

    model_config = SettingsConfigDict(
        env_prefix="CES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    oracle_url: Optional[str] = None
    oracle_timeout: float = Field(default=30.0, gt=0.0)
    oracle_max_retries: int = Field(default=2, ge=0)
    context_turns: int = Field(default=10, ge=0)
    follow_up_delay_minutes: float = Field(default=1.0, ge=0.0)
    default_acceleration_rate: float = Field(default=1.0, gt=0.0)
    time_efficiency_cap: float = Field(default=1.0, gt=0.0)

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("oracle_url")
    @classmethod
    def empty_url_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get the cached settings instance."""
    return Settings()
