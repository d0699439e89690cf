"""Technical indicators (pure math, no I/O)."""

from fxcore.indicators.batch import (
    atr,
    bollinger,
    ema,
    highest,
    lowest,
    macd,
    rsi,
    sma,
    stochastic,
    true_range,
)
from fxcore.indicators.engine import (
    IndicatorEngine,
    IndicatorSnapshot,
    compute_batch,
    is_undefined,
)
from fxcore.indicators.incremental import build_calculator

__all__ = [
    "atr",
    "bollinger",
    "ema",
    "highest",
    "lowest",
    "macd",
    "rsi",
    "sma",
    "stochastic",
    "true_range",
    "IndicatorEngine",
    "IndicatorSnapshot",
    "compute_batch",
    "is_undefined",
    "build_calculator",
]
