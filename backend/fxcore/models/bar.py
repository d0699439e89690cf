"""Price bar (OHLC candlestick) data model."""

import math
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class PriceBar(BaseModel):
    """One OHLC price sample for a symbol. Immutable once created.

    Timestamps are always UTC-aware; naive values are taken to be UTC.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @field_validator("timestamp")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def _check_prices(self):
        for name in ("open", "high", "low", "close", "volume"):
            if not math.isfinite(getattr(self, name)):
                raise ValueError(f"{name} must be a finite number")
        if self.high < self.low:
            raise ValueError(f"high ({self.high}) is below low ({self.low})")
        return self

    @classmethod
    def from_price(cls, timestamp: datetime, price: float, volume: float = 0.0) -> "PriceBar":
        """Build a single-tick bar where open == high == low == close."""
        return cls(
            timestamp=timestamp,
            open=price,
            high=price,
            low=price,
            close=price,
            volume=volume,
        )
