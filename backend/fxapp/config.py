"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Broker
    broker: Literal["paper", "oanda"] = "paper"
    paper_balance: float = 10_000.0

    # OANDA v20 API (practice endpoints by default)
    oanda_api_url: str = "https://api-fxpractice.oanda.com"
    oanda_stream_url: str = "https://stream-fxpractice.oanda.com"
    oanda_token: str = ""
    oanda_account_id: str = ""

    # Trading
    trading_config_path: str = "trading.yaml"

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
