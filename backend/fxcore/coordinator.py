"""Execution coordinator: bar in, order intents out.

One coordinator owns the price store, the indicator engines, the signal
detectors and the risk gate of a single account. It performs no I/O:
submitting intents and feeding back fills is the caller's job.

Lifecycle per bar::

    IDLE -> INGESTING -> EVALUATING -> (ACCEPTED | REJECTED) -> IDLE

A bar that fails ingestion (out of order, unknown symbol) raises and
leaves every component untouched.
"""

from __future__ import annotations

import logging
from enum import Enum

from fxcore.errors import InvalidStopLoss, SymbolNotSubscribed
from fxcore.indicators.engine import IndicatorEngine, IndicatorSnapshot
from fxcore.models.bar import PriceBar
from fxcore.models.config import SessionConfig, SymbolConfig
from fxcore.models.events import CoordinatorEvent, OrderIntentEmitted, SignalDiscarded
from fxcore.models.signal import RejectionReason, Signal, SizedOrderIntent
from fxcore.risk.gate import RiskGate
from fxcore.risk.performance import PerformanceTracker
from fxcore.risk.sizing import PositionSizer, stop_prices
from fxcore.signals import SignalDetector
from fxcore.store import PriceSeriesStore

logger = logging.getLogger(__name__)


class CoordinatorState(str, Enum):
    IDLE = "Idle"
    INGESTING = "Ingesting"
    EVALUATING = "Evaluating"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"


class ExecutionCoordinator:
    """Turns price bars for one account into sized, risk-checked intents.

    Not thread-safe. All calls for one account must be serialized (the
    fxapp TradingSession funnels them through a single task).
    """

    def __init__(self, config: SessionConfig):
        self.config = config
        self.account = config.account
        self.store = PriceSeriesStore(config.retention)
        self.performance = PerformanceTracker(config.account)
        self.gate = RiskGate(config.risk, self.performance)
        self.sizer = PositionSizer(config.risk.max_risk_per_trade_percent)

        self._symbols: dict[str, SymbolConfig] = {}
        self._engines: dict[str, IndicatorEngine] = {}
        self._detectors: dict[str, SignalDetector] = {}
        self._state = CoordinatorState.IDLE

        for symbol_config in config.symbols:
            self.subscribe(symbol_config)

    # =========================================================================
    # Subscription management
    # =========================================================================

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def symbols(self) -> list[str]:
        return list(self._symbols)

    def subscribe(self, symbol_config: SymbolConfig) -> None:
        """Start (or restart) ingestion for a symbol.

        Re-subscribing an active symbol replaces its configuration and
        rebuilds its indicators from the retained bars.
        """
        symbol = symbol_config.symbol
        self._symbols[symbol] = symbol_config
        self._engines[symbol] = IndicatorEngine.rebuild(
            symbol_config,
            self.store.series(symbol),
            self.config.retention,
            start_index=self.store.first_retained_index(symbol),
        )
        self._detectors[symbol] = SignalDetector(symbol_config)
        logger.info(
            "[%s] Subscribed %s (%d indicators, %d rules)",
            self.account,
            symbol,
            len(symbol_config.indicators),
            len(symbol_config.rules),
        )

    def unsubscribe(self, symbol: str) -> None:
        """Stop ingestion for a symbol; later bars raise SymbolNotSubscribed.

        Intents already emitted for the symbol are unaffected.
        """
        if symbol not in self._symbols:
            raise SymbolNotSubscribed(symbol)
        del self._symbols[symbol]
        del self._engines[symbol]
        del self._detectors[symbol]
        self.store.clear(symbol)
        logger.info("[%s] Unsubscribed %s", self.account, symbol)

    def engine(self, symbol: str) -> IndicatorEngine:
        try:
            return self._engines[symbol]
        except KeyError:
            raise SymbolNotSubscribed(symbol) from None

    # =========================================================================
    # Bar processing
    # =========================================================================

    def process_bar(
        self,
        symbol: str,
        bar: PriceBar,
        account_balance: float,
    ) -> list[CoordinatorEvent]:
        """
        Ingest one bar and evaluate every signal it triggers.

        Args:
            symbol: Subscribed currency pair
            bar: New price bar, strictly later than the last one
            account_balance: Balance used for the risk budget

        Returns:
            One event per signal, in signal order

        Raises:
            SymbolNotSubscribed: if the symbol is not subscribed
            BarOrderError: if the bar is a duplicate or out of order
        """
        if symbol not in self._symbols:
            raise SymbolNotSubscribed(symbol)

        self._transition(CoordinatorState.INGESTING)
        try:
            self.store.append(symbol, bar)
            engine = self._engines[symbol]
            current = engine.update(bar)
            previous = engine.snapshot(1)

            events: list[CoordinatorEvent] = []
            if previous is not None:
                self._transition(CoordinatorState.EVALUATING)
                for signal in self._detectors[symbol].detect(previous, current):
                    event = self._evaluate(signal, current, account_balance)
                    if isinstance(event, OrderIntentEmitted):
                        self._transition(CoordinatorState.ACCEPTED)
                    else:
                        self._transition(CoordinatorState.REJECTED)
                    events.append(event)
            return events
        finally:
            self._transition(CoordinatorState.IDLE)

    def _evaluate(
        self,
        signal: Signal,
        snapshot: IndicatorSnapshot,
        account_balance: float,
    ) -> CoordinatorEvent:
        symbol_config = self._symbols[signal.symbol]
        policy = symbol_config.stop_policy
        entry = snapshot.close

        atr_value = None
        if policy.atr_indicator is not None:
            atr_value = snapshot.get(symbol_config.indicator(policy.atr_indicator).key())

        try:
            stop_loss, take_profit = stop_prices(
                signal.direction, entry, policy, signal.symbol, atr_value
            )
            volume = self.sizer.size(
                signal.symbol,
                self.sizer.risk_budget(account_balance),
                abs(entry - stop_loss),
                account_balance,
            )
        except InvalidStopLoss as e:
            return self._discard(signal, RejectionReason.INVALID_STOP_LOSS, str(e))

        if volume <= 0:
            return self._discard(
                signal,
                RejectionReason.ZERO_VOLUME,
                f"balance {account_balance:.2f} leaves no risk budget",
            )

        reason = self.gate.check()
        if reason is not None:
            state = self.gate.state
            return self._discard(
                signal,
                reason,
                f"positions={state.open_position_count} pending={state.pending_orders} "
                f"daily_pnl={state.daily_realized_pnl:.2f}",
            )

        intent = SizedOrderIntent(
            symbol=signal.symbol,
            direction=signal.direction,
            volume=volume,
            stop_loss_price=stop_loss,
            take_profit_price=take_profit,
            entry_price=entry,
            signal=signal,
        )
        self.gate.reserve()
        logger.info(
            "[%s] Intent %s %s %.0f @ %.5f (SL %.5f, TP %.5f) from %s",
            self.account,
            signal.kind.value,
            signal.symbol,
            volume,
            entry,
            stop_loss,
            take_profit,
            signal.source_indicator,
        )
        return OrderIntentEmitted(intent=intent)

    def _discard(self, signal: Signal, reason: RejectionReason, detail: str) -> SignalDiscarded:
        logger.info(
            "[%s] Discarded %s %s from %s: %s (%s)",
            self.account,
            signal.kind.value,
            signal.symbol,
            signal.source_indicator,
            reason.value,
            detail,
        )
        return SignalDiscarded(signal=signal, reason=reason, detail=detail)

    def _transition(self, state: CoordinatorState) -> None:
        if state != self._state:
            logger.debug("[%s] %s -> %s", self.account, self._state.value, state.value)
            self._state = state

    # =========================================================================
    # Broker feedback
    # =========================================================================

    def on_fill(self, order_id: str, realized_pnl: float, still_open: bool) -> None:
        self.gate.on_fill(order_id, realized_pnl, still_open)

    def on_order_failed(self) -> None:
        self.gate.on_order_failed()

    def on_order_offset(self) -> None:
        self.gate.on_order_offset()

    def reset_daily(self) -> None:
        self.gate.reset_daily()
