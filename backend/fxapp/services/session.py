"""Trading session: wires one account's coordinator to a broker.

Concurrency model:
- one feed task per symbol reads ``broker.stream_prices`` in order
- one fill listener reads ``broker.fills``
- both only enqueue commands; a single worker task applies every command
  to the coordinator, so risk state has exactly one writer
- accepted intents are submitted by short-lived tasks (fire-and-forget);
  a failed submission comes back as an ``order_failed`` command, a fill
  that only offset existing trades releases its reservation
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from fxcore.coordinator import ExecutionCoordinator
from fxcore.errors import BarOrderError, BrokerError, FxCoreError, SymbolNotSubscribed
from fxcore.models.bar import PriceBar
from fxcore.models.config import SessionConfig, SymbolConfig
from fxcore.models.events import FillEvent, OrderFailed, OrderIntentEmitted, SessionEvent
from fxcore.models.signal import SizedOrderIntent
from fxapp.clients.base import BrokerClient

logger = logging.getLogger(__name__)


# =============================================================================
# Commands (consumed by the single worker)
# =============================================================================

@dataclass(frozen=True, slots=True)
class _BarReceived:
    symbol: str
    bar: PriceBar


@dataclass(frozen=True, slots=True)
class _Subscribe:
    config: SymbolConfig


@dataclass(frozen=True, slots=True)
class _Unsubscribe:
    symbol: str


@dataclass(frozen=True, slots=True)
class _SubmitFailed:
    intent: SizedOrderIntent
    error: str


@dataclass(frozen=True, slots=True)
class _OrderOffset:
    intent: SizedOrderIntent


@dataclass(frozen=True, slots=True)
class _ResetDaily:
    pass


class TradingSession:
    """Runs one account: price feeds in, order submissions and events out."""

    def __init__(self, config: SessionConfig, broker: BrokerClient):
        self.config = config
        self.account = config.account
        self.broker = broker
        self.coordinator = ExecutionCoordinator(config)
        self.events: asyncio.Queue[SessionEvent] = asyncio.Queue()

        self._commands: asyncio.Queue = asyncio.Queue()
        self._feeds: dict[str, asyncio.Task] = {}
        self._submissions: set[asyncio.Task] = set()
        self._worker: asyncio.Task | None = None
        self._fill_listener: asyncio.Task | None = None

        self._balance: float | None = None
        self._balance_stale = True

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        """Start the worker, the fill listener and one feed per symbol."""
        if self.is_running:
            return
        self._worker = asyncio.create_task(self._run_commands(), name=f"{self.account}-worker")
        self._fill_listener = asyncio.create_task(
            self._listen_fills(), name=f"{self.account}-fills"
        )
        for symbol in self.coordinator.symbols:
            self._start_feed(symbol)
        logger.info(
            "Session '%s' started: %s", self.account, ", ".join(self.coordinator.symbols)
        )

    async def stop(self) -> None:
        """Cancel every task of the session. The broker is left open."""
        tasks = [*self._feeds.values(), *self._submissions]
        if self._fill_listener is not None:
            tasks.append(self._fill_listener)
        if self._worker is not None:
            tasks.append(self._worker)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._feeds.clear()
        self._submissions.clear()
        self._worker = None
        self._fill_listener = None
        logger.info("Session '%s' stopped", self.account)

    async def join(self) -> None:
        """Wait until the current feeds have ended and all queued work is applied.

        Feeds started while joining (new subscriptions) are not waited for.
        """
        if self._feeds:
            await asyncio.gather(*self._feeds.values(), return_exceptions=True)
        while True:
            await self._commands.join()
            pending = [task for task in self._submissions if not task.done()]
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                continue
            # Let the fill listener forward anything the broker just emitted
            await asyncio.sleep(0)
            if not self._commands.empty():
                continue
            await self._commands.join()
            if all(task.done() for task in self._submissions):
                return

    # -------------------------------------------------------------------------
    # Public commands
    # -------------------------------------------------------------------------

    async def subscribe(self, config: SymbolConfig) -> None:
        await self._commands.put(_Subscribe(config))

    async def unsubscribe(self, symbol: str) -> None:
        await self._commands.put(_Unsubscribe(symbol))

    async def reset_daily(self) -> None:
        """Daily boundary trigger: realized PnL goes back to zero."""
        await self._commands.put(_ResetDaily())

    # -------------------------------------------------------------------------
    # Producers
    # -------------------------------------------------------------------------

    def _start_feed(self, symbol: str) -> None:
        existing = self._feeds.get(symbol)
        if existing is not None and not existing.done():
            return
        self._feeds[symbol] = asyncio.create_task(
            self._feed(symbol), name=f"{self.account}-{symbol}-feed"
        )

    async def _feed(self, symbol: str) -> None:
        try:
            async for bar in self.broker.stream_prices(symbol):
                await self._commands.put(_BarReceived(symbol, bar))
        except BrokerError as e:
            logger.error("[%s] Price stream for %s failed: %s", self.account, symbol, e)
        else:
            logger.info("[%s] Price stream for %s ended", self.account, symbol)

    async def _listen_fills(self) -> None:
        try:
            async for fill in self.broker.fills():
                await self._commands.put(fill)
        except BrokerError as e:
            logger.error("[%s] Fill stream failed: %s", self.account, e)

    async def _submit(self, intent: SizedOrderIntent) -> None:
        try:
            order_id = await self.broker.submit_order(intent)
        except BrokerError as e:
            logger.error(
                "[%s] Order for %s failed: %s", self.account, intent.symbol, e
            )
            error = str(e)
        except Exception as e:
            logger.exception("[%s] Order for %s raised unexpectedly", self.account, intent.symbol)
            error = f"{type(e).__name__}: {e}"
        else:
            if order_id is None:
                logger.info("[%s] Order for %s offset existing trades", self.account, intent.symbol)
                await self._commands.put(_OrderOffset(intent))
            else:
                logger.info(
                    "[%s] Order for %s accepted as %s", self.account, intent.symbol, order_id
                )
            return
        # The reservation must be released whatever went wrong
        await self._commands.put(_SubmitFailed(intent, error))

    # -------------------------------------------------------------------------
    # Single writer
    # -------------------------------------------------------------------------

    async def _run_commands(self) -> None:
        while True:
            command = await self._commands.get()
            try:
                await self._apply(command)
            except Exception:
                logger.exception("[%s] Failed to apply %r", self.account, command)
            finally:
                self._commands.task_done()

    async def _apply(self, command) -> None:
        coordinator = self.coordinator

        if isinstance(command, _BarReceived):
            balance = await self._account_balance()
            try:
                events = coordinator.process_bar(command.symbol, command.bar, balance)
            except SymbolNotSubscribed:
                logger.debug("[%s] Dropped bar for unsubscribed %s", self.account, command.symbol)
                return
            except BarOrderError as e:
                logger.warning("[%s] Skipped bar: %s", self.account, e)
                return
            for event in events:
                await self.events.put(event)
                if isinstance(event, OrderIntentEmitted):
                    task = asyncio.create_task(self._submit(event.intent))
                    self._submissions.add(task)
                    task.add_done_callback(self._submissions.discard)

        elif isinstance(command, FillEvent):
            coordinator.on_fill(command.order_id, command.realized_pnl, command.still_open)
            self._balance_stale = True

        elif isinstance(command, _SubmitFailed):
            coordinator.on_order_failed()
            await self.events.put(OrderFailed(intent=command.intent, error=command.error))

        elif isinstance(command, _OrderOffset):
            coordinator.on_order_offset()

        elif isinstance(command, _Subscribe):
            coordinator.subscribe(command.config)
            if self.is_running:
                self._start_feed(command.config.symbol)

        elif isinstance(command, _Unsubscribe):
            try:
                coordinator.unsubscribe(command.symbol)
            except SymbolNotSubscribed:
                logger.warning("[%s] %s is not subscribed", self.account, command.symbol)
                return
            feed = self._feeds.pop(command.symbol, None)
            if feed is not None:
                feed.cancel()

        elif isinstance(command, _ResetDaily):
            coordinator.reset_daily()

        else:
            raise FxCoreError(f"unknown session command: {command!r}")

    async def _account_balance(self) -> float:
        """Balance for sizing; refreshed after fills, last known value on error."""
        if self._balance_stale or self._balance is None:
            try:
                self._balance = await self.broker.get_account_balance()
                self._balance_stale = False
            except BrokerError as e:
                logger.error("[%s] Balance refresh failed: %s", self.account, e)
        return self._balance if self._balance is not None else 0.0
