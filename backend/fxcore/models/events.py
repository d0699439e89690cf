"""Events exchanged between the coordinator, the session and the broker."""

from dataclasses import dataclass
from typing import Union

from fxcore.models.signal import RejectionReason, Signal, SizedOrderIntent


@dataclass(frozen=True, slots=True)
class OrderIntentEmitted:
    """A signal passed sizing and risk checks and should be submitted."""

    intent: SizedOrderIntent


@dataclass(frozen=True, slots=True)
class SignalDiscarded:
    """A signal was rejected; carried for observability, never retried."""

    signal: Signal
    reason: RejectionReason
    detail: str = ""


@dataclass(frozen=True, slots=True)
class OrderFailed:
    """The broker refused or failed to take an emitted intent."""

    intent: SizedOrderIntent
    error: str


@dataclass(frozen=True, slots=True)
class FillEvent:
    """Confirmed fill or close notification from the broker.

    Attributes:
        order_id: Broker identifier of the order/trade.
        realized_pnl: Profit or loss realized by this notification.
        still_open: False once the position is fully closed.
    """

    order_id: str
    realized_pnl: float
    still_open: bool


CoordinatorEvent = Union[OrderIntentEmitted, SignalDiscarded]
SessionEvent = Union[OrderIntentEmitted, SignalDiscarded, OrderFailed]
