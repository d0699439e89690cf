"""Bar factories shared by the tests."""

from datetime import datetime, timedelta, timezone

import numpy as np

from fxcore.models.bar import PriceBar

START = datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)


def bars_from_closes(closes, start=START, step=timedelta(minutes=1)) -> list[PriceBar]:
    """Single-tick bars, one per close, one minute apart."""
    return [PriceBar.from_price(start + i * step, float(c)) for i, c in enumerate(closes)]


def random_walk_bars(n: int, seed: int = 7, start_price: float = 1.1000) -> list[PriceBar]:
    """OHLC bars from a seeded random walk (EUR_USD-like prices)."""
    rng = np.random.default_rng(seed)
    closes = start_price + np.cumsum(rng.normal(0, 0.0008, n))
    bars = []
    prev = start_price
    for i, close in enumerate(closes):
        high = max(prev, close) + abs(rng.normal(0, 0.0004))
        low = min(prev, close) - abs(rng.normal(0, 0.0004))
        bars.append(
            PriceBar(
                timestamp=START + timedelta(minutes=i),
                open=float(prev),
                high=float(high),
                low=float(low),
                close=float(close),
                volume=float(rng.integers(1, 500)),
            )
        )
        prev = close
    return bars


