"""Incremental (bar-by-bar) indicator calculators.

Each calculator consumes one PriceBar per ``update`` call and returns a
tuple with one value per output series, NaN while warming up. The
arithmetic mirrors ``fxcore.indicators.batch`` operation for operation
so that feeding bars one at a time reproduces the batch result for
every index (recursive indicators exactly, windowed means within
floating point tolerance).

Cost per bar: O(1) for EMA, MACD and true range; O(period) for windowed
means and standard deviation; amortised O(1) for rolling highest/lowest
(monotonic deques).
"""

import math
from collections import deque
from typing import Callable

from fxcore.indicators.batch import STOCHASTIC_FLAT_RANGE_K
from fxcore.models.bar import PriceBar
from fxcore.models.config import (
    AtrConfig,
    BollingerConfig,
    EmaConfig,
    MacdConfig,
    RsiConfig,
    SmaConfig,
    StochasticConfig,
)

NAN = float("nan")


# =============================================================================
# Building blocks
# =============================================================================

class RollingMean:
    """Mean of the last ``period`` pushed values."""

    __slots__ = ("period", "_window")

    def __init__(self, period: int):
        self.period = period
        self._window: deque[float] = deque(maxlen=period)

    def push(self, value: float) -> float:
        self._window.append(value)
        if len(self._window) < self.period:
            return NAN
        return math.fsum(self._window) / self.period


class RecursiveEma:
    """EMA seeded with the first pushed value."""

    __slots__ = ("_multiplier", "_value")

    def __init__(self, period: int):
        self._multiplier = 2.0 / (period + 1)
        self._value: float | None = None

    def push(self, value: float) -> float:
        if self._value is None:
            self._value = value
        else:
            self._value = value * self._multiplier + self._value * (1 - self._multiplier)
        return self._value


class RollingExtreme:
    """Rolling max (or min) over ``period`` values using a monotonic deque."""

    __slots__ = ("period", "_dominates", "_candidates", "_count")

    def __init__(self, period: int, dominates: Callable[[float, float], bool]):
        self.period = period
        self._dominates = dominates
        self._candidates: deque[tuple[int, float]] = deque()
        self._count = 0

    @classmethod
    def maximum(cls, period: int) -> "RollingExtreme":
        return cls(period, lambda new, old: new >= old)

    @classmethod
    def minimum(cls, period: int) -> "RollingExtreme":
        return cls(period, lambda new, old: new <= old)

    def push(self, value: float) -> float:
        index = self._count
        self._count += 1

        while self._candidates and self._dominates(value, self._candidates[-1][1]):
            self._candidates.pop()
        self._candidates.append((index, value))
        while self._candidates[0][0] <= index - self.period:
            self._candidates.popleft()

        if self._count < self.period:
            return NAN
        return self._candidates[0][1]


# =============================================================================
# Calculators (one per indicator kind)
# =============================================================================

class SmaCalculator:
    def __init__(self, config: SmaConfig):
        self._mean = RollingMean(config.period)

    def update(self, bar: PriceBar) -> tuple[float, ...]:
        return (self._mean.push(bar.close),)


class EmaCalculator:
    def __init__(self, config: EmaConfig):
        self._ema = RecursiveEma(config.period)

    def update(self, bar: PriceBar) -> tuple[float, ...]:
        return (self._ema.push(bar.close),)


class RsiCalculator:
    """Simple-average RSI; 100 when the average loss is zero."""

    def __init__(self, config: RsiConfig):
        self.period = config.period
        self._gains: deque[float] = deque(maxlen=config.period)
        self._losses: deque[float] = deque(maxlen=config.period)
        self._prev_close: float | None = None

    def update(self, bar: PriceBar) -> tuple[float, ...]:
        if self._prev_close is not None:
            delta = bar.close - self._prev_close
            self._gains.append(delta if delta > 0 else 0.0)
            self._losses.append(-delta if delta < 0 else 0.0)
        self._prev_close = bar.close

        if len(self._gains) < self.period:
            return (NAN,)

        avg_gain = math.fsum(self._gains) / self.period
        avg_loss = math.fsum(self._losses) / self.period
        if avg_loss == 0:
            return (100.0,)
        rs = avg_gain / avg_loss
        return (100.0 - 100.0 / (1.0 + rs),)


class MacdCalculator:
    def __init__(self, config: MacdConfig):
        self._fast = RecursiveEma(config.fast_period)
        self._slow = RecursiveEma(config.slow_period)
        self._signal = RecursiveEma(config.signal_period)

    def update(self, bar: PriceBar) -> tuple[float, ...]:
        macd_line = self._fast.push(bar.close) - self._slow.push(bar.close)
        signal_line = self._signal.push(macd_line)
        return (macd_line, signal_line, macd_line - signal_line)


class BollingerCalculator:
    def __init__(self, config: BollingerConfig):
        self.period = config.period
        self.multiplier = config.std_dev_multiplier
        self._window: deque[float] = deque(maxlen=config.period)

    def update(self, bar: PriceBar) -> tuple[float, ...]:
        self._window.append(bar.close)
        if len(self._window) < self.period:
            return (NAN, NAN, NAN)

        mean = math.fsum(self._window) / self.period
        variance = math.fsum((x - mean) ** 2 for x in self._window) / self.period
        band = self.multiplier * math.sqrt(variance)
        return (mean + band, mean, mean - band)


class StochasticCalculator:
    def __init__(self, config: StochasticConfig):
        self._highest = RollingExtreme.maximum(config.k_period)
        self._lowest = RollingExtreme.minimum(config.k_period)
        self._d = RollingMean(config.d_period)

    def update(self, bar: PriceBar) -> tuple[float, ...]:
        hh = self._highest.push(bar.high)
        ll = self._lowest.push(bar.low)
        if math.isnan(hh):
            return (NAN, NAN)

        price_range = hh - ll
        if price_range == 0:
            k = STOCHASTIC_FLAT_RANGE_K
        else:
            k = 100.0 * (bar.close - ll) / price_range
        return (k, self._d.push(k))


class AtrCalculator:
    def __init__(self, config: AtrConfig):
        self._mean = RollingMean(config.period)
        self._prev_close: float | None = None

    def update(self, bar: PriceBar) -> tuple[float, ...]:
        if self._prev_close is None:
            tr = bar.high - bar.low
        else:
            tr = max(
                bar.high - bar.low,
                abs(bar.high - self._prev_close),
                abs(bar.low - self._prev_close),
            )
        self._prev_close = bar.close
        return (self._mean.push(tr),)


_CALCULATORS = {
    "sma": SmaCalculator,
    "ema": EmaCalculator,
    "rsi": RsiCalculator,
    "macd": MacdCalculator,
    "bollinger": BollingerCalculator,
    "stochastic": StochasticCalculator,
    "atr": AtrCalculator,
}


def build_calculator(config):
    """Create the incremental calculator for an indicator config."""
    return _CALCULATORS[config.kind](config)
