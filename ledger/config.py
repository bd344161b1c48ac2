"""
Application settings.

Loaded from ``ECHO_``-prefixed environment variables (or a ``.env`` file)
using pydantic-settings.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Echo ledger settings."""

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Ledger log pagination
    read_log_default_limit: int = Field(default=20, gt=0)
    read_log_max_limit: int = Field(default=100, gt=0)

    # Positive referral credits per user per UTC month, in echo (0 = no cap)
    referral_monthly_cap: Decimal = Field(default=Decimal("15000"), ge=0)

    # Optional JSON file overriding the built-in reward schedule
    reward_schedule_path: Optional[str] = None

    # HTTP
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    model_config = SettingsConfigDict(
        env_prefix="ECHO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
