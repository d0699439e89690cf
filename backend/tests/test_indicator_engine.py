"""Tests for the per-symbol IndicatorEngine."""

import math

import pytest

from fxcore.indicators import IndicatorEngine, IndicatorSnapshot, compute_batch
from fxcore.models.config import (
    BollingerConfig,
    EmaConfig,
    RsiConfig,
    SmaConfig,
    StochasticConfig,
    SymbolConfig,
)
from tests.helpers import bars_from_closes


@pytest.fixture
def config():
    return SymbolConfig(
        symbol="EUR_USD",
        indicators=(
            SmaConfig(),
            EmaConfig(),
            RsiConfig(),
            BollingerConfig(),
            StochasticConfig(),
        ),
    )


class TestIndicatorEngine:
    def test_update_returns_snapshot(self, config):
        engine = IndicatorEngine(config)
        snapshot = engine.update(bars_from_closes([1.1])[0])

        assert snapshot.index == 0
        assert snapshot.close == 1.1
        assert snapshot.get("ema12") == 1.1
        assert not snapshot.is_defined("sma20")
        assert engine.count == 1

    def test_series_keys(self, config):
        engine = IndicatorEngine(config)
        assert engine.keys() == [
            "sma20",
            "ema12",
            "rsi14",
            "bb20.upper",
            "bb20.middle",
            "bb20.lower",
            "stoch14_3.k",
            "stoch14_3.d",
        ]

    def test_incremental_matches_batch(self, config, walk_bars):
        engine = IndicatorEngine(config)
        for bar in walk_bars:
            engine.update(bar)

        expected = compute_batch(config, walk_bars)
        for key in engine.keys():
            assert list(engine.series(key)) == pytest.approx(
                expected[key], rel=1e-9, abs=1e-9, nan_ok=True
            ), key

    def test_retention_keeps_state_across_evictions(self, config, walk_bars):
        engine = IndicatorEngine(config, retention=50)
        for bar in walk_bars:
            engine.update(bar)

        expected = compute_batch(config, walk_bars)
        assert len(engine) == 50
        assert engine.count == len(walk_bars)
        # EMA keeps its full history: equal to the batch value over all bars
        assert list(engine.series("ema12")) == pytest.approx(expected["ema12"][-50:], rel=1e-9)
        assert list(engine.series("sma20")) == pytest.approx(expected["sma20"][-50:], rel=1e-9)

    def test_snapshot_offsets(self, config):
        engine = IndicatorEngine(config)
        for bar in bars_from_closes([1.0, 2.0, 3.0]):
            engine.update(bar)

        assert engine.snapshot().close == 3.0
        previous = engine.snapshot(1)
        assert previous.index == 1
        assert previous.close == 2.0
        assert engine.snapshot(3) is None

    def test_rebuild_replays_bars(self, config, walk_bars):
        engine = IndicatorEngine.rebuild(config, walk_bars[:100])
        expected = compute_batch(config, walk_bars[:100])

        assert engine.count == 100
        assert engine.snapshot().get("rsi14") == pytest.approx(expected["rsi14"][-1], rel=1e-9)

    def test_rebuild_from_absolute_index(self, config, walk_bars):
        engine = IndicatorEngine.rebuild(config, walk_bars[250:], start_index=250)

        assert engine.count == len(walk_bars)
        assert engine.snapshot().index == len(walk_bars) - 1
        assert engine.snapshot(1).index == len(walk_bars) - 2

    def test_rebuild_with_new_config(self, walk_bars):
        old = SymbolConfig(symbol="EUR_USD", indicators=(SmaConfig(period=5),))
        new = SymbolConfig(symbol="EUR_USD", indicators=(SmaConfig(period=10),))
        engine = IndicatorEngine(old)
        for bar in walk_bars[:30]:
            engine.update(bar)

        rebuilt = IndicatorEngine.rebuild(new, walk_bars[:30])
        assert rebuilt.keys() == ["sma10"]
        assert math.isnan(rebuilt.series("sma10")[8])
        assert not math.isnan(rebuilt.series("sma10")[9])


class TestIndicatorSnapshot:
    def test_is_defined(self):
        snapshot = IndicatorSnapshot(index=3, values={"close": 1.1, "a": 1.0, "b": math.nan})
        assert snapshot.is_defined("a")
        assert not snapshot.is_defined("a", "b")
