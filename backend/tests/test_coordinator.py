"""Tests for ExecutionCoordinator."""

from datetime import timedelta

import pytest

from fxcore.coordinator import CoordinatorState, ExecutionCoordinator
from fxcore.errors import BarOrderError, SymbolNotSubscribed
from fxcore.models import (
    AtrConfig,
    EmaConfig,
    MaCrossRule,
    OrderIntentEmitted,
    RejectionReason,
    RiskLimits,
    SessionConfig,
    SignalDiscarded,
    SmaConfig,
    StopPolicy,
    SymbolConfig,
)
from fxcore.models.bar import PriceBar
from fxcore.models.signal import Direction, SignalKind
from tests.helpers import START, bars_from_closes

# EMA(2) crosses above both SMA(3)s on the last bar:
#   index 3: ema 7.48 <= sma 8.00
#   index 4: ema 10.49 > sma 9.00
CROSSING_CLOSES = [10, 9, 8, 7, 12]


def two_cross_symbol(symbol="EUR_USD", **kwargs) -> SymbolConfig:
    return SymbolConfig(
        symbol=symbol,
        indicators=(
            EmaConfig(name="fast", period=2),
            SmaConfig(name="slow_a", period=3),
            SmaConfig(name="slow_b", period=3),
        ),
        rules=(
            MaCrossRule(fast="fast", slow="slow_a"),
            MaCrossRule(fast="fast", slow="slow_b"),
        ),
        **kwargs,
    )


def feed(coordinator, symbol, bars, balance=10_000.0):
    events = []
    for bar in bars:
        events.extend(coordinator.process_bar(symbol, bar, balance))
    return events


class TestTwoSignalsOneSlot:
    @pytest.fixture
    def coordinator(self):
        config = SessionConfig(
            symbols=(two_cross_symbol(),),
            risk=RiskLimits(max_open_positions=1),
        )
        return ExecutionCoordinator(config)

    def test_second_buy_rejected_by_position_limit(self, coordinator):
        events = feed(coordinator, "EUR_USD", bars_from_closes(CROSSING_CLOSES))

        assert len(events) == 2
        accepted, rejected = events
        assert isinstance(accepted, OrderIntentEmitted)
        assert accepted.intent.signal.source_indicator == "fast/slow_a"
        assert isinstance(rejected, SignalDiscarded)
        assert rejected.reason == RejectionReason.POSITION_LIMIT_EXCEEDED
        assert rejected.signal.kind == SignalKind.BUY

    def test_intent_sizing_and_stops(self, coordinator):
        events = feed(coordinator, "EUR_USD", bars_from_closes(CROSSING_CLOSES))
        intent = events[0].intent

        assert intent.direction == Direction.LONG
        assert intent.entry_price == 12.0
        assert intent.stop_loss_price == pytest.approx(11.995)
        assert intent.take_profit_price == pytest.approx(12.01)
        # 1% of 10,000 over 50 pips
        assert intent.volume == pytest.approx(20_000)
        assert intent.risk_amount == pytest.approx(100.0)

    def test_emission_reserves_without_opening(self, coordinator):
        feed(coordinator, "EUR_USD", bars_from_closes(CROSSING_CLOSES))
        state = coordinator.gate.state

        assert state.open_position_count == 0
        assert state.pending_orders == 1

        coordinator.on_fill("t1", 0.0, still_open=True)
        assert state.open_position_count == 1
        assert state.pending_orders == 0

    def test_failed_order_frees_the_slot(self, coordinator):
        feed(coordinator, "EUR_USD", bars_from_closes(CROSSING_CLOSES))
        coordinator.on_order_failed()
        assert coordinator.gate.check() is None


class TestProcessBar:
    @pytest.fixture
    def coordinator(self):
        return ExecutionCoordinator(SessionConfig(symbols=(two_cross_symbol(),)))

    def test_state_returns_to_idle(self, coordinator):
        feed(coordinator, "EUR_USD", bars_from_closes(CROSSING_CLOSES))
        assert coordinator.state == CoordinatorState.IDLE

    def test_out_of_order_bar_has_no_side_effects(self, coordinator):
        bars = bars_from_closes([1.1, 1.2])
        feed(coordinator, "EUR_USD", bars)
        engine = coordinator.engine("EUR_USD")

        with pytest.raises(BarOrderError):
            coordinator.process_bar("EUR_USD", PriceBar.from_price(START, 1.3), 10_000.0)

        assert engine.count == 2
        assert coordinator.store.total_appended("EUR_USD") == 2
        assert coordinator.state == CoordinatorState.IDLE

    def test_naive_bar_compared_as_utc(self, coordinator):
        feed(coordinator, "EUR_USD", bars_from_closes([1.1]))
        naive_same_time = PriceBar.from_price(START.replace(tzinfo=None), 1.2)

        with pytest.raises(BarOrderError):
            coordinator.process_bar("EUR_USD", naive_same_time, 10_000.0)
        assert coordinator.state == CoordinatorState.IDLE

        naive_later = PriceBar.from_price((START + timedelta(minutes=5)).replace(tzinfo=None), 1.2)
        coordinator.process_bar("EUR_USD", naive_later, 10_000.0)
        assert coordinator.store.total_appended("EUR_USD") == 2

    def test_unexpected_error_returns_to_idle(self, coordinator, monkeypatch):
        def broken_append(symbol, bar):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(coordinator.store, "append", broken_append)
        with pytest.raises(RuntimeError):
            coordinator.process_bar("EUR_USD", bars_from_closes([1.1])[0], 10_000.0)
        assert coordinator.state == CoordinatorState.IDLE

    def test_resubscribe_keeps_absolute_indices(self):
        coordinator = ExecutionCoordinator(
            SessionConfig(symbols=(two_cross_symbol(),), retention=3)
        )
        feed(coordinator, "EUR_USD", bars_from_closes([1.1, 1.2, 1.3, 1.4, 1.5]))

        coordinator.subscribe(two_cross_symbol())
        engine = coordinator.engine("EUR_USD")

        assert len(engine) == 3
        assert engine.count == coordinator.store.total_appended("EUR_USD") == 5
        assert engine.snapshot().index == 4
        assert engine.snapshot().close == 1.5

        assert coordinator.state == CoordinatorState.IDLE

    def test_unknown_symbol(self, coordinator):
        with pytest.raises(SymbolNotSubscribed):
            coordinator.process_bar("GBP_USD", bars_from_closes([1.3])[0], 10_000.0)

    def test_unsubscribe_stops_ingestion(self, coordinator):
        feed(coordinator, "EUR_USD", bars_from_closes([1.1]))
        coordinator.unsubscribe("EUR_USD")

        with pytest.raises(SymbolNotSubscribed, match="EUR_USD"):
            coordinator.process_bar(
                "EUR_USD", PriceBar.from_price(START + timedelta(hours=1), 1.2), 10_000.0
            )
        assert coordinator.symbols == []

    def test_subscribe_new_symbol(self, coordinator):
        coordinator.subscribe(two_cross_symbol("USD_JPY"))
        events = feed(coordinator, "USD_JPY", bars_from_closes([150, 149, 148, 147, 152]))

        assert [type(e) for e in events] == [OrderIntentEmitted, OrderIntentEmitted]
        intent = events[0].intent
        # 50 pips on a JPY pair is 0.50
        assert intent.stop_loss_price == pytest.approx(151.5)
        assert intent.volume == pytest.approx(200)

    def test_zero_balance_discards(self, coordinator):
        events = feed(coordinator, "EUR_USD", bars_from_closes(CROSSING_CLOSES), balance=0.0)
        assert [e.reason for e in events] == [RejectionReason.ZERO_VOLUME] * 2
        assert coordinator.gate.state.pending_orders == 0

    def test_daily_loss_blocks_new_intents(self, coordinator):
        coordinator.on_fill("old", -250.0, still_open=False)
        events = feed(coordinator, "EUR_USD", bars_from_closes(CROSSING_CLOSES))
        assert [e.reason for e in events] == [RejectionReason.DAILY_LOSS_LIMIT_BREACHED] * 2

        coordinator.reset_daily()
        assert coordinator.gate.check() is None


class TestAtrStops:
    def test_atr_warmup_gives_invalid_stop(self):
        symbol = SymbolConfig(
            symbol="EUR_USD",
            indicators=(
                EmaConfig(name="fast", period=2),
                SmaConfig(name="slow", period=3),
                AtrConfig(period=14),
            ),
            rules=(MaCrossRule(fast="fast", slow="slow"),),
            stop_policy=StopPolicy(mode="atr", atr_indicator="atr14"),
        )
        coordinator = ExecutionCoordinator(SessionConfig(symbols=(symbol,)))
        events = feed(coordinator, "EUR_USD", bars_from_closes(CROSSING_CLOSES))

        assert len(events) == 1
        assert events[0].reason == RejectionReason.INVALID_STOP_LOSS


class TestIndependentAccounts:
    def test_accounts_share_nothing(self):
        limits = RiskLimits(max_open_positions=1)
        first = ExecutionCoordinator(
            SessionConfig(account="a", symbols=(two_cross_symbol(),), risk=limits)
        )
        second = ExecutionCoordinator(
            SessionConfig(account="b", symbols=(two_cross_symbol(),), risk=limits)
        )
        feed(first, "EUR_USD", bars_from_closes(CROSSING_CLOSES))
        events = feed(second, "EUR_USD", bars_from_closes(CROSSING_CLOSES))

        assert isinstance(events[0], OrderIntentEmitted)
        assert first.gate.state.pending_orders == 1
        assert second.gate.state.pending_orders == 1
