"""Account-level risk gate.

Two checks must pass before a signal may become an order intent:

1. open positions + in-flight orders < max_open_positions
2. daily realized PnL > -daily_loss_limit

Confirmed counters (open positions, realized PnL) change only on fill and
close notifications from the broker. Emitting an intent only records an
in-flight reservation so that two signals on the same bar cannot both
slip under the position limit; a failed submission simply releases it.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel

from fxcore.models.config import RiskLimits
from fxcore.models.signal import RejectionReason
from fxcore.risk.performance import PerformanceTracker

logger = logging.getLogger(__name__)


class RiskState(BaseModel):
    """Per-account risk counters. Owned and mutated by one RiskGate."""

    max_open_positions: int
    daily_loss_limit: float
    max_risk_per_trade_percent: float
    open_position_count: int = 0
    pending_orders: int = 0
    daily_realized_pnl: float = 0.0

    @property
    def committed_positions(self) -> int:
        """Open positions plus orders awaiting confirmation."""
        return self.open_position_count + self.pending_orders


class RiskGate:
    """Validates candidate trades against one account's RiskState.

    Not thread-safe: callers serialize access (see fxapp TradingSession,
    which routes every mutation through a single command queue).
    """

    def __init__(self, limits: RiskLimits, performance: PerformanceTracker | None = None):
        self.limits = limits
        self.performance = performance or PerformanceTracker()
        self.state = RiskState(
            max_open_positions=limits.max_open_positions,
            daily_loss_limit=limits.daily_loss_limit,
            max_risk_per_trade_percent=limits.max_risk_per_trade_percent,
        )
        # Open order id -> PnL realized on it so far
        self._open_orders: dict[str, float] = {}

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check(self) -> RejectionReason | None:
        """Return the first failing check, or None if a new trade may proceed."""
        state = self.state
        if state.committed_positions >= state.max_open_positions:
            return RejectionReason.POSITION_LIMIT_EXCEEDED
        if state.daily_realized_pnl <= -state.daily_loss_limit:
            return RejectionReason.DAILY_LOSS_LIMIT_BREACHED
        return None

    def reserve(self) -> None:
        """Record an emitted intent that awaits broker confirmation."""
        self.state.pending_orders += 1

    # ------------------------------------------------------------------
    # Broker notifications
    # ------------------------------------------------------------------

    def on_order_failed(self) -> None:
        """Release the reservation of an intent the broker did not take."""
        self._release("Order failure")

    def on_order_offset(self) -> None:
        """Release the reservation of an order that filled without opening a position.

        Happens on netting accounts, where an order against an existing
        position reduces or closes it instead of opening a new trade.
        """
        self._release("Offsetting fill")

    def _release(self, what: str) -> None:
        if self.state.pending_orders > 0:
            self.state.pending_orders -= 1
        else:
            logger.warning("%s reported with no pending reservation", what)

    def on_fill(self, order_id: str, realized_pnl: float, still_open: bool) -> None:
        """
        Apply a confirmed fill or close notification.

        A position is only opened against a pending reservation, so fills
        for trades this gate never reserved (another session, a manual
        trade) cannot push the count past ``max_open_positions``. Their
        realized PnL still counts towards the daily loss limit.

        Args:
            order_id: Broker identifier of the order/trade
            realized_pnl: PnL realized by this notification
            still_open: False once the position is fully closed
        """
        state = self.state
        state.daily_realized_pnl += realized_pnl

        if order_id in self._open_orders:
            self._open_orders[order_id] += realized_pnl
            if not still_open:
                trade_pnl = self._open_orders.pop(order_id)
                state.open_position_count = max(state.open_position_count - 1, 0)
                self.performance.record_close(trade_pnl)
        elif still_open:
            # First confirmation: the reservation becomes an open position
            if self._take_reservation(order_id):
                self._open_orders[order_id] = realized_pnl
                state.open_position_count += 1
        elif self._take_reservation(order_id):
            # Opened and closed in one notification
            self.performance.record_close(realized_pnl)

        logger.info(
            "Fill %s pnl=%.2f open=%s -> positions=%d pending=%d daily_pnl=%.2f",
            order_id,
            realized_pnl,
            still_open,
            state.open_position_count,
            state.pending_orders,
            state.daily_realized_pnl,
        )

    def _take_reservation(self, order_id: str) -> bool:
        if self.state.pending_orders > 0:
            self.state.pending_orders -= 1
            return True
        logger.warning("Ignoring fill for %s without a pending reservation", order_id)
        return False

    def reset_daily(self) -> None:
        """Reset realized PnL at the daily boundary (external trigger)."""
        logger.info(
            "Daily reset: realized PnL %.2f -> 0.00", self.state.daily_realized_pnl
        )
        self.state.daily_realized_pnl = 0.0
