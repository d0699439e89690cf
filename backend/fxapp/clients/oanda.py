"""OANDA v20 REST client: account, orders and streaming prices/transactions."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, AsyncIterator, TypeVar

import httpx
import orjson
from pydantic import BaseModel, ValidationError

from fxcore.errors import BrokerError, BrokerResponseError
from fxcore.models.bar import PriceBar
from fxcore.models.events import FillEvent
from fxcore.models.signal import Direction, SizedOrderIntent
from fxcore.risk.sizing import JPY_PIP_SIZE, pip_size
from fxapp.clients.base import OpenPosition

logger = logging.getLogger(__name__)

_M = TypeVar("_M", bound=BaseModel)

# RFC3339 with up to nanosecond precision, e.g. 2024-03-01T10:15:00.123456789Z
_TIME_RE = re.compile(r"^(?P<base>[^.Z+]+)(?:\.(?P<frac>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})?$")


def parse_time(value: str) -> datetime:
    """Parse an OANDA timestamp, truncating nanoseconds to microseconds."""
    match = _TIME_RE.match(value)
    if match is None:
        raise ValueError(f"invalid timestamp: {value!r}")
    text = match["base"]
    if match["frac"]:
        text += "." + match["frac"][:6].ljust(6, "0")
    tz = match["tz"] or "Z"
    text += "+00:00" if tz == "Z" else tz
    return datetime.fromisoformat(text)


def format_price(symbol: str, price: float) -> str:
    """Format a price with the instrument's display precision."""
    decimals = 3 if pip_size(symbol) == JPY_PIP_SIZE else 5
    return f"{price:.{decimals}f}"


# =============================================================================
# Response models (only the fields we read)
# =============================================================================

class _AccountSummary(BaseModel):
    balance: float


class _AccountSummaryResponse(BaseModel):
    account: _AccountSummary


class _TradeOpened(BaseModel):
    tradeID: str


class _TradeClosed(BaseModel):
    tradeID: str
    realizedPL: float = 0.0


class _OrderFill(BaseModel):
    id: str
    tradeOpened: _TradeOpened | None = None
    tradeReduced: _TradeClosed | None = None
    tradesClosed: list[_TradeClosed] = []


class _OrderCancel(BaseModel):
    reason: str = "UNKNOWN"


class _OrderResponse(BaseModel):
    orderFillTransaction: _OrderFill | None = None
    orderCancelTransaction: _OrderCancel | None = None


class _Trade(BaseModel):
    id: str
    instrument: str
    price: float
    currentUnits: float
    unrealizedPL: float = 0.0


class _OpenTradesResponse(BaseModel):
    trades: list[_Trade]


class _PriceBucket(BaseModel):
    price: float


class _Price(BaseModel):
    instrument: str
    time: str
    bids: list[_PriceBucket]
    asks: list[_PriceBucket]


class _Transaction(BaseModel):
    type: str
    id: str = ""
    tradeOpened: _TradeOpened | None = None
    tradeReduced: _TradeClosed | None = None
    tradesClosed: list[_TradeClosed] = []


def _parse(model: type[_M], data: Any, context: str) -> _M:
    """Validate a response body, naming the offending field on failure."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or None
        raise BrokerResponseError(f"{context}: {field}: {error['msg']}", field=field) from e


# =============================================================================
# Client
# =============================================================================

class OandaClient:
    """OANDA v20 client. No retries: failures surface as BrokerError."""

    def __init__(
        self,
        token: str,
        account_id: str,
        api_url: str = "https://api-fxpractice.oanda.com",
        stream_url: str = "https://stream-fxpractice.oanda.com",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.account_id = account_id
        self.api_url = api_url
        self.stream_url = stream_url
        self._token = token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "Accept-Datetime-Format": "RFC3339",
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(30.0, read=None),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _account_path(self, suffix: str) -> str:
        return f"/v3/accounts/{self.account_id}/{suffix}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        body: dict[str, Any] | None = None,
    ) -> Any:
        client = await self._get_client()
        content = orjson.dumps(body) if body is not None else None
        try:
            response = await client.request(method, self.api_url + endpoint, content=content)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise BrokerError(
                f"{method} {endpoint} failed: {e.response.status_code} {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise BrokerError(f"{method} {endpoint} failed: {e}") from e

        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise BrokerResponseError(f"{method} {endpoint}: invalid JSON body") from e

    async def _stream_lines(self, endpoint: str, params: dict[str, str]) -> AsyncIterator[dict]:
        client = await self._get_client()
        try:
            async with client.stream(
                "GET", self.stream_url + endpoint, params=params
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        yield orjson.loads(line)
                    except orjson.JSONDecodeError as e:
                        raise BrokerResponseError(f"{endpoint}: invalid JSON line") from e
        except httpx.HTTPStatusError as e:
            raise BrokerError(f"stream {endpoint} failed: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise BrokerError(f"stream {endpoint} failed: {e}") from e

    # -------------------------------------------------------------------------
    # Account
    # -------------------------------------------------------------------------

    async def get_account_balance(self) -> float:
        data = await self._request("GET", self._account_path("summary"))
        return _parse(_AccountSummaryResponse, data, "account summary").account.balance

    async def get_open_positions(self) -> list[OpenPosition]:
        data = await self._request("GET", self._account_path("openTrades"))
        trades = _parse(_OpenTradesResponse, data, "open trades").trades
        return [
            OpenPosition(
                order_id=trade.id,
                symbol=trade.instrument,
                direction=Direction.LONG if trade.currentUnits > 0 else Direction.SHORT,
                volume=abs(trade.currentUnits),
                entry_price=trade.price,
                unrealized_pnl=trade.unrealizedPL,
            )
            for trade in trades
        ]

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    async def submit_order(self, intent: SizedOrderIntent) -> str | None:
        """
        Place a fill-or-kill market order with stop loss and take profit.

        Returns:
            The opened trade id (used to match later close notifications), or
            None when the fill only reduced or closed existing trades

        Raises:
            BrokerError: if the request fails or the order is cancelled
            BrokerResponseError: if the response lacks the fill transaction
        """
        units = int(round(intent.volume)) * intent.direction.value
        body = {
            "order": {
                "type": "MARKET",
                "instrument": intent.symbol,
                "units": str(units),
                "timeInForce": "FOK",
                "positionFill": "DEFAULT",
                "stopLossOnFill": {"price": format_price(intent.symbol, intent.stop_loss_price)},
                "takeProfitOnFill": {
                    "price": format_price(intent.symbol, intent.take_profit_price)
                },
            }
        }
        logger.info(
            "Placing %s market order: %s units=%d", intent.direction.name, intent.symbol, units
        )
        data = await self._request("POST", self._account_path("orders"), body)
        response = _parse(_OrderResponse, data, "order")

        if response.orderCancelTransaction is not None:
            raise BrokerError(
                f"order for {intent.symbol} cancelled: {response.orderCancelTransaction.reason}"
            )
        fill = response.orderFillTransaction
        if fill is None:
            raise BrokerResponseError(
                "order: orderFillTransaction missing", field="orderFillTransaction"
            )
        if fill.tradeOpened is None:
            if fill.tradeReduced is None and not fill.tradesClosed:
                raise BrokerResponseError(
                    "order: orderFillTransaction.tradeOpened missing",
                    field="orderFillTransaction.tradeOpened",
                )
            # Netting account: the fill only offset existing trades
            logger.info(
                "Order for %s filled (transaction %s) without opening a trade",
                intent.symbol,
                fill.id,
            )
            return None
        logger.info("Order filled: trade %s (transaction %s)", fill.tradeOpened.tradeID, fill.id)
        return fill.tradeOpened.tradeID

    # -------------------------------------------------------------------------
    # Streams
    # -------------------------------------------------------------------------

    async def stream_prices(self, symbol: str) -> AsyncIterator[PriceBar]:
        """Yield one single-tick bar (mid price) per PRICE message."""
        endpoint = self._account_path("pricing/stream")
        async for data in self._stream_lines(endpoint, {"instruments": symbol}):
            if data.get("type") != "PRICE":
                continue
            price = _parse(_Price, data, "price")
            if not price.bids or not price.asks:
                continue
            mid = (price.bids[0].price + price.asks[0].price) / 2
            try:
                timestamp = parse_time(price.time)
            except ValueError as e:
                raise BrokerResponseError(f"price: time: {e}", field="time") from e
            yield PriceBar.from_price(timestamp, mid)

    async def fills(self) -> AsyncIterator[FillEvent]:
        """Map ORDER_FILL transactions to open/reduce/close notifications."""
        endpoint = self._account_path("transactions/stream")
        async for data in self._stream_lines(endpoint, {}):
            if data.get("type") != "ORDER_FILL":
                continue
            transaction = _parse(_Transaction, data, "transaction")
            for closed in transaction.tradesClosed:
                yield FillEvent(
                    order_id=closed.tradeID, realized_pnl=closed.realizedPL, still_open=False
                )
            if transaction.tradeReduced is not None:
                yield FillEvent(
                    order_id=transaction.tradeReduced.tradeID,
                    realized_pnl=transaction.tradeReduced.realizedPL,
                    still_open=True,
                )
            if transaction.tradeOpened is not None:
                yield FillEvent(
                    order_id=transaction.tradeOpened.tradeID, realized_pnl=0.0, still_open=True
                )
