"""Trading configuration loaded from trading.yaml.

Supports:
- Multiple accounts, each with its own broker account, risk limits and symbol list
- Per-symbol indicators, signal rules and stop policy
- No YAML file = one "default" account trading EUR_USD with default indicators
"""

import logging
import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from fxcore.errors import ConfigurationError
from fxcore.models.config import RiskLimits, SessionConfig, SymbolConfig

logger = logging.getLogger(__name__)

DEFAULT_SYMBOL = "EUR_USD"


class AccountConfig(BaseModel):
    """One trading account in trading.yaml."""

    model_config = ConfigDict(extra="forbid")

    name: str
    enabled: bool = True
    # OANDA account this entry trades; empty = OANDA_ACCOUNT_ID from settings
    broker_account_id: str = ""
    # Name of the env var holding the API token; empty = OANDA_TOKEN
    token_env: str = ""
    risk: RiskLimits = Field(default_factory=RiskLimits)
    retention: int = Field(default=500, gt=0)
    symbols: list[SymbolConfig] = Field(
        default_factory=lambda: [SymbolConfig(symbol=DEFAULT_SYMBOL)]
    )

    def to_session_config(self) -> SessionConfig:
        return SessionConfig(
            account=self.name,
            symbols=tuple(self.symbols),
            risk=self.risk,
            retention=self.retention,
        )

    @property
    def token(self) -> str:
        if not self.token_env:
            return ""
        return os.environ.get(self.token_env, "")


class TradingConfig(BaseModel):
    """Top-level trading.yaml configuration."""

    model_config = ConfigDict(extra="forbid")

    accounts: list[AccountConfig] = Field(
        default_factory=lambda: [AccountConfig(name="default")]
    )

    @model_validator(mode="after")
    def _validate(self):
        names = [a.name for a in self.accounts]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate account names: {duplicates}")

        broker_ids = [a.broker_account_id for a in self.accounts if a.broker_account_id]
        shared = sorted({i for i in broker_ids if broker_ids.count(i) > 1})
        if shared:
            raise ValueError(f"broker accounts used by more than one entry: {shared}")
        return self

    def get_enabled_accounts(self) -> list[AccountConfig]:
        return [a for a in self.accounts if a.enabled]

    def session_configs(self) -> list[SessionConfig]:
        """One SessionConfig per enabled account."""
        return [a.to_session_config() for a in self.get_enabled_accounts()]


def load_trading_config(path: Path | str | None = None) -> TradingConfig:
    """Load trading config from a YAML file.

    Falls back to defaults (one account, EUR_USD) if the file doesn't exist.

    Raises:
        ConfigurationError: if the file is not valid YAML or does not match
            the schema (unknown fields, bad periods, dangling rule references)
    """
    config_path = Path(path) if path else Path("trading.yaml")

    # Load .env next to the config so OANDA credentials are available
    load_dotenv(config_path.parent / ".env", override=False)

    if not config_path.exists():
        logger.info("No trading config at %s, using defaults (%s)", config_path, DEFAULT_SYMBOL)
        return TradingConfig()

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"{config_path}: invalid YAML: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{config_path}: top level must be a mapping")

    try:
        config = TradingConfig(**raw)
    except ValidationError as e:
        raise ConfigurationError(f"{config_path}: {e}") from e

    enabled = config.get_enabled_accounts()
    logger.info(
        "Loaded trading config: %d accounts (%d enabled), %d symbols",
        len(config.accounts),
        len(enabled),
        sum(len(a.symbols) for a in enabled),
    )
    return config
