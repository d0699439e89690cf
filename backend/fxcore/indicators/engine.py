"""Per-symbol indicator engine.

Maintains one series per configured indicator output, aligned
index-for-index with the symbol's retained price bars.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Sequence

from fxcore.indicators import batch
from fxcore.indicators.incremental import build_calculator
from fxcore.models.bar import PriceBar
from fxcore.models.config import SymbolConfig
from fxcore.store import DEFAULT_RETENTION

logger = logging.getLogger(__name__)

CLOSE_KEY = "close"


def is_undefined(value) -> bool:
    """Check if an indicator value is still in warm-up (None or NaN)."""
    if value is None:
        return True
    return math.isnan(value)


@dataclass(frozen=True, slots=True)
class IndicatorSnapshot:
    """All indicator values (plus the close) at one bar index."""

    index: int
    values: dict[str, float]

    @property
    def close(self) -> float:
        return self.values[CLOSE_KEY]

    def get(self, key: str) -> float:
        return self.values[key]

    def is_defined(self, *keys: str) -> bool:
        return not any(is_undefined(self.values[key]) for key in keys)


def compute_batch(config: SymbolConfig, bars: Sequence[PriceBar]) -> dict[str, list[float]]:
    """
    Compute every configured series from scratch with the batch functions.

    Args:
        config: Symbol configuration listing the indicators
        bars: Price bars, oldest first

    Returns:
        Dict mapping series key to a list aligned with ``bars``
    """
    closes = [bar.close for bar in bars]
    highs = [bar.high for bar in bars]
    lows = [bar.low for bar in bars]

    result: dict[str, list[float]] = {CLOSE_KEY: closes}
    for indicator in config.indicators:
        if indicator.kind == "sma":
            outputs = (batch.sma(closes, indicator.period),)
        elif indicator.kind == "ema":
            outputs = (batch.ema(closes, indicator.period),)
        elif indicator.kind == "rsi":
            outputs = (batch.rsi(closes, indicator.period),)
        elif indicator.kind == "macd":
            outputs = batch.macd(
                closes,
                indicator.fast_period,
                indicator.slow_period,
                indicator.signal_period,
            )
        elif indicator.kind == "bollinger":
            outputs = batch.bollinger(closes, indicator.period, indicator.std_dev_multiplier)
        elif indicator.kind == "stochastic":
            outputs = batch.stochastic(
                highs, lows, closes, indicator.k_period, indicator.d_period
            )
        elif indicator.kind == "atr":
            outputs = (batch.atr(highs, lows, closes, indicator.period),)
        else:
            raise ValueError(f"unsupported indicator kind: {indicator.kind}")

        for key, values in zip(indicator.series_keys, outputs):
            result[key] = values
    return result


class IndicatorEngine:
    """Incrementally maintained indicator series for one symbol.

    Each ``update`` costs one calculator step per indicator; nothing is
    recomputed from history. Series are capped at ``retention`` entries,
    matching the price store, while calculators carry their state forward
    across evictions.
    """

    def __init__(
        self,
        config: SymbolConfig,
        retention: int = DEFAULT_RETENTION,
        start_index: int = 0,
    ):
        self.config = config
        self.retention = retention
        self._calculators = [
            (indicator, build_calculator(indicator)) for indicator in config.indicators
        ]
        self._series: dict[str, deque[float]] = {CLOSE_KEY: deque(maxlen=retention)}
        for indicator in config.indicators:
            for key in indicator.series_keys:
                self._series[key] = deque(maxlen=retention)
        # Absolute index of the next bar
        self._count = start_index

    @classmethod
    def rebuild(
        cls,
        config: SymbolConfig,
        bars: Sequence[PriceBar],
        retention: int = DEFAULT_RETENTION,
        start_index: int = 0,
    ) -> "IndicatorEngine":
        """Build a fresh engine and replay ``bars`` through it.

        Used when the indicator configuration changes: the old engine is
        discarded and every series is recomputed from the first bar given.
        ``start_index`` is the absolute index of ``bars[0]``, so snapshot
        indices keep matching the price store after evictions.
        """
        engine = cls(config, retention, start_index)
        for bar in bars:
            engine.update(bar)
        logger.info(
            "Rebuilt indicators for %s over %d bars (%d series)",
            config.symbol,
            len(bars),
            len(engine.keys()),
        )
        return engine

    @property
    def symbol(self) -> str:
        return self.config.symbol

    @property
    def count(self) -> int:
        """Absolute index of the next bar (bars processed plus start_index)."""
        return self._count

    def keys(self) -> list[str]:
        return [key for key in self._series if key != CLOSE_KEY]

    def update(self, bar: PriceBar) -> IndicatorSnapshot:
        """Advance every indicator by one bar and return the new values."""
        values: dict[str, float] = {CLOSE_KEY: bar.close}
        for indicator, calculator in self._calculators:
            outputs = calculator.update(bar)
            for key, value in zip(indicator.series_keys, outputs):
                values[key] = value

        for key, value in values.items():
            self._series[key].append(value)
        self._count += 1
        return IndicatorSnapshot(index=self._count - 1, values=values)

    def series(self, key: str) -> tuple[float, ...]:
        """Retained values of one series, oldest first."""
        return tuple(self._series[key])

    def snapshot(self, offset: int = 0) -> IndicatorSnapshot | None:
        """Values ``offset`` bars back from the latest (0 = latest)."""
        retained = len(self._series[CLOSE_KEY])
        if offset < 0 or offset >= retained:
            return None
        position = retained - 1 - offset
        return IndicatorSnapshot(
            index=self._count - 1 - offset,
            values={key: series[position] for key, series in self._series.items()},
        )

    def __len__(self) -> int:
        return len(self._series[CLOSE_KEY])
