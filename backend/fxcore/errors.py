"""Exception types raised by the core.

Risk rejections are not exceptions: they are reported as
``RejectionReason`` values on ``SignalDiscarded`` events.
"""

from __future__ import annotations

from datetime import datetime


class FxCoreError(Exception):
    """Base class for all errors raised by fxcore and fxapp."""


class ConfigurationError(FxCoreError, ValueError):
    """Invalid configuration detected before any tick is processed."""


class BarOrderError(FxCoreError, ValueError):
    """A bar arrived with a timestamp <= the last stored bar for its symbol."""

    def __init__(self, symbol: str, last_timestamp: datetime, timestamp: datetime):
        self.symbol = symbol
        self.last_timestamp = last_timestamp
        self.timestamp = timestamp
        kind = "duplicate" if timestamp == last_timestamp else "out-of-order"
        super().__init__(
            f"{kind} bar for {symbol}: {timestamp.isoformat()} "
            f"<= last {last_timestamp.isoformat()}"
        )


class SymbolNotSubscribed(FxCoreError, KeyError):
    """A bar was delivered for a symbol that is not configured or was unsubscribed."""

    def __str__(self) -> str:
        return f"symbol not subscribed: {self.args[0]}"


class InvalidStopLoss(FxCoreError, ValueError):
    """Stop-loss distance is zero, negative or not a finite number."""

    def __init__(self, symbol: str, distance: float):
        self.symbol = symbol
        self.distance = distance
        super().__init__(f"invalid stop-loss distance for {symbol}: {distance}")


class BrokerError(FxCoreError):
    """The broker collaborator failed to carry out a request."""


class BrokerResponseError(BrokerError):
    """A broker response was missing a field or carried a malformed value."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)
