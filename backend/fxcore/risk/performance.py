"""Per-account trading performance.

Fed with the realized PnL of every closed position. Drawdown is measured
on the cumulative realized PnL curve: the largest drop from a running peak
(the curve starts at 0).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class PerformanceStats:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_pnl: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    peak_pnl: float = 0.0
    max_drawdown: float = 0.0  # <= 0

    @property
    def win_rate(self) -> float:
        """Winning trades as a percentage of all closed trades."""
        return (self.winning_trades / self.total_trades * 100) if self.total_trades > 0 else 0.0

    @property
    def average_win(self) -> float:
        return self.gross_profit / self.winning_trades if self.winning_trades > 0 else 0.0

    @property
    def average_loss(self) -> float:
        return self.gross_loss / self.losing_trades if self.losing_trades > 0 else 0.0


class PerformanceTracker:
    """Accumulates closed-trade statistics for one account."""

    def __init__(self, account: str = "default"):
        self.account = account
        self.stats = PerformanceStats()

    def record_close(self, realized_pnl: float) -> None:
        """Book one fully closed position. Breakeven trades count as neither win nor loss."""
        stats = self.stats
        stats.total_trades += 1
        stats.total_pnl += realized_pnl
        if realized_pnl > 0:
            stats.winning_trades += 1
            stats.gross_profit += realized_pnl
        elif realized_pnl < 0:
            stats.losing_trades += 1
            stats.gross_loss += realized_pnl

        stats.peak_pnl = max(stats.peak_pnl, stats.total_pnl)
        stats.max_drawdown = min(stats.max_drawdown, stats.total_pnl - stats.peak_pnl)

        logger.info(
            "[%s] Trade closed pnl=%.2f: %d trades, win rate %.1f%%, total %.2f, max DD %.2f",
            self.account,
            realized_pnl,
            stats.total_trades,
            stats.win_rate,
            stats.total_pnl,
            stats.max_drawdown,
        )
