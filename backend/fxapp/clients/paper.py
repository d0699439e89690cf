"""In-memory paper broker for dry runs and tests.

Bars are pushed in with ``feed``; orders fill immediately at the intent's
entry price and produce a FillEvent on the ``fills`` stream. Closing a
position realizes PnL against a given exit price.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from fxcore.errors import BrokerError
from fxcore.models.bar import PriceBar
from fxcore.models.events import FillEvent
from fxcore.models.signal import SizedOrderIntent
from fxapp.clients.base import OpenPosition

logger = logging.getLogger(__name__)

_END = object()


class PaperBroker:
    """Simulated broker with immediate fills and no persistence."""

    def __init__(self, balance: float = 10_000.0):
        self.balance = balance
        self._prices: dict[str, asyncio.Queue] = {}
        self._fills: asyncio.Queue = asyncio.Queue()
        self._positions: dict[str, OpenPosition] = {}
        self._last_order_id = 0
        self._fail_next: list[str] = []
        self.submitted: list[SizedOrderIntent] = []
        self._closed = False

    # -------------------------------------------------------------------------
    # Test/dry-run controls
    # -------------------------------------------------------------------------

    def _price_queue(self, symbol: str) -> asyncio.Queue:
        if symbol not in self._prices:
            self._prices[symbol] = asyncio.Queue()
        return self._prices[symbol]

    def feed(self, symbol: str, *bars: PriceBar) -> None:
        """Queue bars for ``stream_prices(symbol)``."""
        queue = self._price_queue(symbol)
        for bar in bars:
            queue.put_nowait(bar)

    def end_feed(self, symbol: str) -> None:
        """Terminate the price stream of a symbol after queued bars."""
        self._price_queue(symbol).put_nowait(_END)

    def fail_next(self, reason: str = "simulated rejection") -> None:
        """Make the next ``submit_order`` raise BrokerError."""
        self._fail_next.append(reason)

    async def close_position(self, order_id: str, exit_price: float) -> float:
        """Close an open position and emit its realized PnL."""
        position = self._positions.pop(order_id, None)
        if position is None:
            raise BrokerError(f"no open position {order_id}")
        pnl = (exit_price - position.entry_price) * position.volume * position.direction.value
        self.balance += pnl
        await self._fills.put(FillEvent(order_id=order_id, realized_pnl=pnl, still_open=False))
        logger.info("Paper close %s @ %.5f pnl=%.2f", order_id, exit_price, pnl)
        return pnl

    # -------------------------------------------------------------------------
    # BrokerClient
    # -------------------------------------------------------------------------

    async def stream_prices(self, symbol: str) -> AsyncIterator[PriceBar]:
        queue = self._price_queue(symbol)
        while True:
            item = await queue.get()
            if item is _END:
                return
            yield item

    async def submit_order(self, intent: SizedOrderIntent) -> str:
        if self._closed:
            raise BrokerError("paper broker is closed")
        self.submitted.append(intent)
        if self._fail_next:
            raise BrokerError(self._fail_next.pop(0))

        self._last_order_id += 1
        order_id = f"paper-{self._last_order_id}"
        self._positions[order_id] = OpenPosition(
            order_id=order_id,
            symbol=intent.symbol,
            direction=intent.direction,
            volume=intent.volume,
            entry_price=intent.entry_price,
        )
        await self._fills.put(FillEvent(order_id=order_id, realized_pnl=0.0, still_open=True))
        logger.info(
            "Paper fill %s: %s %s %.0f @ %.5f",
            order_id,
            intent.direction.name,
            intent.symbol,
            intent.volume,
            intent.entry_price,
        )
        return order_id

    async def fills(self) -> AsyncIterator[FillEvent]:
        while True:
            yield await self._fills.get()

    async def get_account_balance(self) -> float:
        return self.balance

    async def get_open_positions(self) -> list[OpenPosition]:
        return list(self._positions.values())

    async def close(self) -> None:
        self._closed = True
