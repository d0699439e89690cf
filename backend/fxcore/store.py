"""Append-only per-symbol price bar store.

Each symbol keeps at most ``retention`` bars; the oldest bar is evicted
when a new one arrives on a full buffer. Indicator state is NOT derived
from this buffer: every indicator calculator keeps its own rolling window
or recursive state and carries it forward across evictions, so EMA-style
recursions keep their full history and never re-seed. Only an explicit
rebuild of an engine replays the retained bars.
"""

from __future__ import annotations

import logging
from collections import deque

from fxcore.errors import BarOrderError, ConfigurationError
from fxcore.models.bar import PriceBar

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = 500


class PriceSeriesStore:
    """Ordered, capacity-bounded buffers of PriceBar keyed by symbol."""

    def __init__(self, retention: int = DEFAULT_RETENTION):
        if retention <= 0:
            raise ConfigurationError(f"retention must be positive, got {retention}")
        self.retention = retention
        self._bars: dict[str, deque[PriceBar]] = {}
        self._appended: dict[str, int] = {}

    def append(self, symbol: str, bar: PriceBar) -> int:
        """Append a bar and return its absolute index for the symbol.

        Raises:
            BarOrderError: if the bar's timestamp is not strictly after the
                last stored bar. The store is left untouched.
        """
        bars = self._bars.get(symbol)
        if bars and bar.timestamp <= bars[-1].timestamp:
            raise BarOrderError(symbol, bars[-1].timestamp, bar.timestamp)

        if bars is None:
            bars = deque(maxlen=self.retention)
            self._bars[symbol] = bars
        bars.append(bar)

        index = self._appended.get(symbol, 0)
        self._appended[symbol] = index + 1
        return index

    def series(self, symbol: str) -> tuple[PriceBar, ...]:
        """Read-only view of the retained bars, oldest first."""
        return tuple(self._bars.get(symbol, ()))

    def last(self, symbol: str) -> PriceBar | None:
        bars = self._bars.get(symbol)
        return bars[-1] if bars else None

    def total_appended(self, symbol: str) -> int:
        """Number of bars ever appended for the symbol, evicted ones included."""
        return self._appended.get(symbol, 0)

    def first_retained_index(self, symbol: str) -> int:
        """Absolute index of the oldest retained bar."""
        return self.total_appended(symbol) - len(self._bars.get(symbol, ()))

    def symbols(self) -> list[str]:
        return sorted(self._bars)

    def clear(self, symbol: str) -> None:
        """Forget every bar of a symbol (used when it is unsubscribed)."""
        self._bars.pop(symbol, None)
        self._appended.pop(symbol, None)
        logger.debug("Cleared price series for %s", symbol)

    def __len__(self) -> int:
        return sum(len(bars) for bars in self._bars.values())
