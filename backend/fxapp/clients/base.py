"""Broker collaborator contract."""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, Protocol, runtime_checkable

from fxcore.models.bar import PriceBar
from fxcore.models.events import FillEvent
from fxcore.models.signal import Direction, SizedOrderIntent


@dataclass(frozen=True, slots=True)
class OpenPosition:
    """A position currently open at the broker."""

    order_id: str
    symbol: str
    direction: Direction
    volume: float
    entry_price: float
    unrealized_pnl: float = 0.0


@runtime_checkable
class BrokerClient(Protocol):
    """What a TradingSession needs from a broker.

    Errors surface as ``BrokerError``; implementations never retry.
    """

    def stream_prices(self, symbol: str) -> AsyncIterator[PriceBar]:
        """Yield price bars for one symbol, strictly increasing in time."""
        ...

    async def submit_order(self, intent: SizedOrderIntent) -> str | None:
        """Place a market order and return the broker's order/trade id.

        None means the order filled without opening a position (it only
        offset existing ones on a netting account).
        """
        ...

    def fills(self) -> AsyncIterator[FillEvent]:
        """Yield fill and close notifications for the account."""
        ...

    async def get_account_balance(self) -> float:
        ...

    async def get_open_positions(self) -> list[OpenPosition]:
        ...

    async def close(self) -> None:
        ...
