"""Batch (full-history) technical indicators using NumPy.

Every function takes whole price sequences and returns a list of floats
of the same length. Entries that are not yet computable (warm-up) are
NaN, never zero. These functions are the reference the incremental
calculators in ``fxcore.indicators.incremental`` must agree with.
"""

from typing import Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

# %K reported when the high-low range of the lookback window is zero
STOCHASTIC_FLAT_RANGE_K = 50.0


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=np.float64)


def _rolling_mean(arr: np.ndarray, period: int) -> np.ndarray:
    """Mean of each trailing window; NaN before the window is full."""
    result = np.full(len(arr), np.nan)
    if len(arr) >= period:
        result[period - 1:] = sliding_window_view(arr, period).mean(axis=1)
    return result


# =============================================================================
# Moving averages
# =============================================================================

def sma(values: Sequence[float], period: int) -> list[float]:
    """
    Calculate Simple Moving Average.

    Args:
        values: Sequence of price values
        period: SMA period

    Returns:
        List of SMA values (NaN for indices < period - 1)
    """
    return _rolling_mean(_as_array(values), period).tolist()


def _ema_array(arr: np.ndarray, period: int) -> np.ndarray:
    result = np.empty_like(arr)
    if len(arr) == 0:
        return result
    multiplier = 2.0 / (period + 1)
    result[0] = arr[0]
    for i in range(1, len(arr)):
        result[i] = arr[i] * multiplier + result[i - 1] * (1 - multiplier)
    return result


def ema(values: Sequence[float], period: int) -> list[float]:
    """
    Calculate Exponential Moving Average seeded with the first value.

    The first output equals the first input (no SMA seed), so the series
    is defined from index 0:
        EMA[0] = C[0]
        EMA[i] = C[i] * k + EMA[i-1] * (1 - k),  k = 2 / (period + 1)

    Args:
        values: Sequence of price values
        period: EMA period

    Returns:
        List of EMA values
    """
    return _ema_array(_as_array(values), period).tolist()


# =============================================================================
# Oscillators
# =============================================================================

def rsi(values: Sequence[float], period: int) -> list[float]:
    """
    Calculate Relative Strength Index with simple (non-Wilder) averaging.

    At index i the average gain and average loss are taken over the
    ``period`` bar-to-bar deltas ending at i. RSI is 100 when the average
    loss is exactly zero.

    Args:
        values: Sequence of close prices
        period: RSI period

    Returns:
        List of RSI values (NaN for indices < period)
    """
    arr = _as_array(values)
    result = np.full(len(arr), np.nan)
    if len(arr) <= period:
        return result.tolist()

    deltas = np.diff(arr)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)
    avg_gain = sliding_window_view(gains, period).mean(axis=1)
    avg_loss = sliding_window_view(losses, period).mean(axis=1)

    with np.errstate(divide="ignore", invalid="ignore"):
        rs = avg_gain / avg_loss
        values_rsi = 100.0 - 100.0 / (1.0 + rs)
    result[period:] = np.where(avg_loss == 0, 100.0, values_rsi)
    return result.tolist()


def macd(
    values: Sequence[float],
    fast_period: int,
    slow_period: int,
    signal_period: int,
) -> tuple[list[float], list[float], list[float]]:
    """
    Calculate MACD line, signal line and histogram.

    macd = EMA(fast) - EMA(slow); signal = EMA(signal_period) of macd;
    histogram = macd - signal. All three are defined from index 0.

    Returns:
        Tuple of (macd_line, signal_line, histogram) lists
    """
    arr = _as_array(values)
    macd_line = _ema_array(arr, fast_period) - _ema_array(arr, slow_period)
    signal_line = _ema_array(macd_line, signal_period)
    histogram = macd_line - signal_line
    return macd_line.tolist(), signal_line.tolist(), histogram.tolist()


def stochastic(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    k_period: int,
    d_period: int,
) -> tuple[list[float], list[float]]:
    """
    Calculate the Stochastic Oscillator.

    %K = 100 * (C - lowest low) / (highest high - lowest low) over k_period
    bars, or 50 when the range is zero. %D = SMA(d_period) of %K.

    Returns:
        Tuple of (%K, %D) lists; %K is NaN for indices < k_period - 1 and
        %D for indices < k_period + d_period - 2
    """
    close_arr = _as_array(closes)
    hh = _as_array(highest(highs, k_period))
    ll = _as_array(lowest(lows, k_period))
    price_range = hh - ll

    with np.errstate(divide="ignore", invalid="ignore"):
        k = 100.0 * (close_arr - ll) / price_range
    k = np.where(price_range == 0, STOCHASTIC_FLAT_RANGE_K, k)

    d = _rolling_mean(k, d_period)
    return k.tolist(), d.tolist()


# =============================================================================
# Volatility
# =============================================================================

def bollinger(
    values: Sequence[float],
    period: int,
    std_dev_multiplier: float,
) -> tuple[list[float], list[float], list[float]]:
    """
    Calculate Bollinger Bands.

    middle = SMA(period); upper/lower = middle +/- multiplier * population
    standard deviation of the last ``period`` closes.

    Returns:
        Tuple of (upper, middle, lower) lists (NaN for indices < period - 1)
    """
    arr = _as_array(values)
    n = len(arr)
    upper = np.full(n, np.nan)
    middle = np.full(n, np.nan)
    lower = np.full(n, np.nan)
    if n >= period:
        windows = sliding_window_view(arr, period)
        mean = windows.mean(axis=1)
        std = windows.std(axis=1)
        middle[period - 1:] = mean
        upper[period - 1:] = mean + std_dev_multiplier * std
        lower[period - 1:] = mean - std_dev_multiplier * std
    return upper.tolist(), middle.tolist(), lower.tolist()


def true_range(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
) -> list[float]:
    """
    Calculate True Range.

    TR[0] = H[0] - L[0]
    TR[i] = max(H - L, |H - C[i-1]|, |L - C[i-1]|)
    """
    high = _as_array(highs)
    low = _as_array(lows)
    close = _as_array(closes)
    if len(high) == 0:
        return []

    tr = high - low
    if len(high) > 1:
        prev_close = close[:-1]
        tr[1:] = np.maximum.reduce([
            high[1:] - low[1:],
            np.abs(high[1:] - prev_close),
            np.abs(low[1:] - prev_close),
        ])
    return tr.tolist()


def atr(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = 14,
) -> list[float]:
    """
    Calculate Average True Range as the SMA of the true range.

    Returns:
        List of ATR values (NaN for indices < period - 1)
    """
    return _rolling_mean(_as_array(true_range(highs, lows, closes)), period).tolist()


# =============================================================================
# Rolling extremes
# =============================================================================

def highest(values: Sequence[float], period: int) -> list[float]:
    """Highest value over the trailing ``period`` values."""
    arr = _as_array(values)
    result = np.full(len(arr), np.nan)
    if len(arr) >= period:
        result[period - 1:] = sliding_window_view(arr, period).max(axis=1)
    return result.tolist()


def lowest(values: Sequence[float], period: int) -> list[float]:
    """Lowest value over the trailing ``period`` values."""
    arr = _as_array(values)
    result = np.full(len(arr), np.nan)
    if len(arr) >= period:
        result[period - 1:] = sliding_window_view(arr, period).min(axis=1)
    return result.tolist()
