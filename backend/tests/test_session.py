"""Tests for PaperBroker and TradingSession."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from fxapp.clients.base import BrokerClient
from fxapp.clients.paper import PaperBroker
from fxapp.services.session import TradingSession
from fxcore.errors import BrokerError
from fxcore.models import (
    EmaConfig,
    FillEvent,
    MaCrossRule,
    OrderFailed,
    OrderIntentEmitted,
    RejectionReason,
    RiskLimits,
    SessionConfig,
    SignalDiscarded,
    SmaConfig,
    SymbolConfig,
)
from tests.helpers import bars_from_closes

CROSSING_CLOSES = [1.1000, 1.0990, 1.0980, 1.0970, 1.1020]


def cross_symbol(symbol="EUR_USD") -> SymbolConfig:
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
    )


def drain(queue: asyncio.Queue) -> list:
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


class TestPaperBroker:
    @pytest.fixture
    def broker(self):
        return PaperBroker(balance=10_000.0)

    def test_satisfies_protocol(self, broker):
        assert isinstance(broker, BrokerClient)

    @pytest.mark.asyncio
    async def test_stream_prices_until_end(self, broker):
        bars = bars_from_closes([1.1, 1.2])
        broker.feed("EUR_USD", *bars)
        broker.end_feed("EUR_USD")

        received = [bar async for bar in broker.stream_prices("EUR_USD")]
        assert received == bars

    @pytest.mark.asyncio
    async def test_submit_fill_and_close(self, broker):
        session = TradingSession(
            SessionConfig(symbols=(cross_symbol(),)), broker
        )
        broker.feed("EUR_USD", *bars_from_closes(CROSSING_CLOSES))
        broker.end_feed("EUR_USD")
        await session.start()
        await session.join()

        intent = broker.submitted[0]
        order_id = (await broker.get_open_positions())[0].order_id
        pnl = await broker.close_position(order_id, intent.stop_loss_price)

        assert pnl == pytest.approx(-intent.risk_amount)
        assert await broker.get_account_balance() == pytest.approx(10_000.0 + pnl)
        await session.stop()

    @pytest.mark.asyncio
    async def test_fail_next(self, broker):
        broker.fail_next("insufficient margin")
        with pytest.raises(BrokerError, match="insufficient margin"):
            await broker.submit_order(AsyncMock())


class TestTradingSession:
    @pytest.fixture
    def broker(self):
        return PaperBroker(balance=10_000.0)

    @pytest.fixture
    def session(self, broker):
        config = SessionConfig(symbols=(cross_symbol(),), risk=RiskLimits(max_open_positions=1))
        return TradingSession(config, broker)

    @pytest.mark.asyncio
    async def test_one_intent_one_rejection(self, session, broker):
        broker.feed("EUR_USD", *bars_from_closes(CROSSING_CLOSES))
        broker.end_feed("EUR_USD")

        await session.start()
        await session.join()
        events = drain(session.events)
        await session.stop()

        assert [type(e) for e in events] == [OrderIntentEmitted, SignalDiscarded]
        assert events[1].reason == RejectionReason.POSITION_LIMIT_EXCEEDED
        assert len(broker.submitted) == 1
        state = session.coordinator.gate.state
        assert state.open_position_count == 1
        assert state.pending_orders == 0

    @pytest.mark.asyncio
    async def test_failed_submission_emits_order_failed(self, session, broker):
        broker.fail_next("market closed")
        broker.feed("EUR_USD", *bars_from_closes(CROSSING_CLOSES))
        broker.end_feed("EUR_USD")

        await session.start()
        await session.join()
        events = drain(session.events)
        await session.stop()

        failed = [e for e in events if isinstance(e, OrderFailed)]
        assert len(failed) == 1
        assert failed[0].error == "market closed"
        state = session.coordinator.gate.state
        assert state.pending_orders == 0
        assert state.open_position_count == 0

    @pytest.mark.asyncio
    async def test_unexpected_submit_error_releases_reservation(self, session, broker):
        broker.submit_order = AsyncMock(side_effect=RuntimeError("connection reset"))
        broker.feed("EUR_USD", *bars_from_closes(CROSSING_CLOSES))
        broker.end_feed("EUR_USD")

        await session.start()
        await session.join()
        events = drain(session.events)
        await session.stop()

        (failed,) = [e for e in events if isinstance(e, OrderFailed)]
        assert failed.error == "RuntimeError: connection reset"
        state = session.coordinator.gate.state
        assert state.pending_orders == 0
        assert session.coordinator.gate.check() is None

    @pytest.mark.asyncio
    async def test_offsetting_fill_releases_reservation(self, session, broker):
        broker.submit_order = AsyncMock(return_value=None)
        broker.feed("EUR_USD", *bars_from_closes(CROSSING_CLOSES))
        broker.end_feed("EUR_USD")

        await session.start()
        await session.join()
        events = drain(session.events)
        await session.stop()

        assert not any(isinstance(e, OrderFailed) for e in events)
        state = session.coordinator.gate.state
        assert state.pending_orders == 0
        assert state.open_position_count == 0

    @pytest.mark.asyncio
    async def test_close_frees_slot_and_books_loss(self, session, broker):
        broker.feed("EUR_USD", *bars_from_closes(CROSSING_CLOSES))
        broker.end_feed("EUR_USD")
        await session.start()
        await session.join()
        assert session.coordinator.gate.state.open_position_count == 1

        (position,) = await broker.get_open_positions()
        await broker.close_position(position.order_id, position.entry_price - 0.0050)
        await session.join()
        await session.stop()

        state = session.coordinator.gate.state
        assert state.open_position_count == 0
        assert state.daily_realized_pnl == pytest.approx(-100.0)
        stats = session.coordinator.performance.stats
        assert stats.losing_trades == 1
        assert stats.max_drawdown == pytest.approx(-100.0)

    @pytest.mark.asyncio
    async def test_reset_daily(self, session, broker):
        session.coordinator.on_fill("old", -500.0, still_open=False)
        broker.end_feed("EUR_USD")
        await session.start()
        await session.reset_daily()
        await session.join()
        await session.stop()

        assert session.coordinator.gate.state.daily_realized_pnl == 0.0

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_feed(self, session, broker):
        broker.feed("EUR_USD", *bars_from_closes(CROSSING_CLOSES))
        await session.start()
        await session.unsubscribe("EUR_USD")
        await session.join()
        events = drain(session.events)
        await session.stop()

        assert session.coordinator.symbols == []
        assert events == []
        assert broker.submitted == []

    @pytest.mark.asyncio
    async def test_unsubscribe_unknown_symbol_is_logged(self, session, broker, caplog):
        broker.end_feed("EUR_USD")
        await session.start()
        await session.unsubscribe("GBP_USD")
        await session.join()
        await session.stop()

        assert "GBP_USD is not subscribed" in caplog.text
        assert session.coordinator.symbols == ["EUR_USD"]

    @pytest.mark.asyncio
    async def test_subscribe_starts_feed(self, session, broker):
        broker.end_feed("EUR_USD")
        await session.start()
        await session.subscribe(cross_symbol("GBP_USD"))
        await session.join()

        broker.feed("GBP_USD", *bars_from_closes(CROSSING_CLOSES))
        broker.end_feed("GBP_USD")
        await session.join()
        events = drain(session.events)
        await session.stop()

        assert isinstance(events[0], OrderIntentEmitted)
        assert events[0].intent.symbol == "GBP_USD"

    @pytest.mark.asyncio
    async def test_balance_error_sizes_to_zero(self, session, broker):
        broker.get_account_balance = AsyncMock(side_effect=BrokerError("timeout"))
        broker.feed("EUR_USD", *bars_from_closes(CROSSING_CLOSES))
        broker.end_feed("EUR_USD")

        await session.start()
        await session.join()
        events = drain(session.events)
        await session.stop()

        assert [e.reason for e in events] == [RejectionReason.ZERO_VOLUME] * 2

    @pytest.mark.asyncio
    async def test_fill_events_are_commands(self, session, broker):
        broker.end_feed("EUR_USD")
        await session.start()
        await session._commands.put(FillEvent(order_id="x", realized_pnl=-20.0, still_open=False))
        await session.join()
        await session.stop()

        assert session.coordinator.gate.state.daily_realized_pnl == -20.0
