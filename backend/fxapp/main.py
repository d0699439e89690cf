"""Main application entry point."""

import asyncio
import logging
import signal

# Configure logging FIRST, before any other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)

# Reduce noise from third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)

from fxcore.errors import ConfigurationError
from fxcore.models.events import OrderFailed, OrderIntentEmitted, SignalDiscarded
from fxapp.clients.base import BrokerClient
from fxapp.clients.oanda import OandaClient
from fxapp.clients.paper import PaperBroker
from fxapp.config import Settings, get_settings
from fxapp.services.session import TradingSession
from fxapp.trading_config import AccountConfig, TradingConfig, load_trading_config

logger = logging.getLogger(__name__)


def build_broker(settings: Settings, account: AccountConfig) -> BrokerClient:
    """Create the broker client for one account.

    OANDA credentials come from the account entry and fall back to the
    OANDA_TOKEN / OANDA_ACCOUNT_ID settings.
    """
    if settings.broker == "oanda":
        token = account.token or settings.oanda_token
        account_id = account.broker_account_id or settings.oanda_account_id
        if not token or not account_id:
            raise ConfigurationError(
                f"account '{account.name}': broker=oanda requires a token and an account id"
            )
        return OandaClient(
            token=token,
            account_id=account_id,
            api_url=settings.oanda_api_url,
            stream_url=settings.oanda_stream_url,
        )
    logger.warning(
        "[%s] Using paper broker (balance %.2f): no real orders",
        account.name,
        settings.paper_balance,
    )
    return PaperBroker(balance=settings.paper_balance)


def build_sessions(settings: Settings, trading_config: TradingConfig) -> list[TradingSession]:
    """One session, with its own broker client, per enabled account.

    Raises:
        ConfigurationError: if two accounts resolve to the same OANDA account
    """
    sessions: list[TradingSession] = []
    owners: dict[str, str] = {}
    for account in trading_config.get_enabled_accounts():
        broker = build_broker(settings, account)
        if isinstance(broker, OandaClient):
            owner = owners.setdefault(broker.account_id, account.name)
            if owner != account.name:
                raise ConfigurationError(
                    f"accounts '{owner}' and '{account.name}' both trade "
                    f"OANDA account {broker.account_id}"
                )
        sessions.append(TradingSession(account.to_session_config(), broker))
    return sessions


def log_performance(session: TradingSession) -> None:
    """Log the closed-trade summary of a session."""
    stats = session.coordinator.performance.stats
    logger.info(
        "[%s] %d trades, win rate %.1f%%, P&L %.2f, avg win %.2f, avg loss %.2f, max DD %.2f",
        session.account,
        stats.total_trades,
        stats.win_rate,
        stats.total_pnl,
        stats.average_win,
        stats.average_loss,
        stats.max_drawdown,
    )


async def log_events(session: TradingSession) -> None:
    """Log every event a session emits."""
    while True:
        event = await session.events.get()
        if isinstance(event, OrderIntentEmitted):
            intent = event.intent
            logger.info(
                "[%s] ORDER %s %s %.0f @ %.5f SL=%.5f TP=%.5f (%s)",
                session.account,
                intent.direction.name,
                intent.symbol,
                intent.volume,
                intent.entry_price,
                intent.stop_loss_price,
                intent.take_profit_price,
                intent.signal.message,
            )
        elif isinstance(event, SignalDiscarded):
            logger.info(
                "[%s] DISCARDED %s %s: %s",
                session.account,
                event.signal.kind.value,
                event.signal.symbol,
                event.reason.value,
            )
        elif isinstance(event, OrderFailed):
            logger.error(
                "[%s] ORDER FAILED %s: %s", session.account, event.intent.symbol, event.error
            )


async def run(settings: Settings) -> None:
    """Run one session per enabled account until SIGINT/SIGTERM."""
    logging.getLogger().setLevel(settings.log_level.upper())

    trading_config = load_trading_config(settings.trading_config_path)
    sessions = build_sessions(settings, trading_config)
    if not sessions:
        logger.warning("No enabled accounts in %s, nothing to do", settings.trading_config_path)
        return

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass  # Windows

    loggers: list[asyncio.Task] = []
    try:
        for session in sessions:
            await session.start()
            loggers.append(asyncio.create_task(log_events(session)))
        logger.info("Running %d session(s), press Ctrl+C to stop", len(sessions))
        await stop_event.wait()
    finally:
        logger.info("Shutting down...")
        for task in loggers:
            task.cancel()
        await asyncio.gather(*loggers, return_exceptions=True)
        for session in sessions:
            await session.stop()
            await session.broker.close()
            log_performance(session)


def main():
    """Run the application."""
    asyncio.run(run(get_settings()))


if __name__ == "__main__":
    main()
