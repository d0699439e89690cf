"""Signal and order intent data models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class SignalKind(str, Enum):
    """Trade side suggested by a signal."""

    BUY = "BUY"
    SELL = "SELL"


class SignalStrength(str, Enum):
    """How much weight the source rule carries."""

    WEAK = "Weak"
    MEDIUM = "Medium"
    STRONG = "Strong"


class Direction(int, Enum):
    """Trade direction."""

    LONG = 1
    SHORT = -1

    @classmethod
    def from_kind(cls, kind: SignalKind) -> "Direction":
        return cls.LONG if kind == SignalKind.BUY else cls.SHORT


class RejectionReason(str, Enum):
    """Why a signal did not become an order intent."""

    POSITION_LIMIT_EXCEEDED = "PositionLimitExceeded"
    DAILY_LOSS_LIMIT_BREACHED = "DailyLossLimitBreached"
    INVALID_STOP_LOSS = "InvalidStopLoss"
    ZERO_VOLUME = "ZeroVolume"


class Signal(BaseModel):
    """Trading signal produced by the signal detector.

    Created once per rule firing and consumed once by the execution
    coordinator; never mutated.
    """

    model_config = ConfigDict(frozen=True)

    kind: SignalKind
    source_indicator: str
    strength: SignalStrength
    symbol: str
    generated_at_index: int
    message: str

    @property
    def direction(self) -> Direction:
        return Direction.from_kind(self.kind)


class SizedOrderIntent(BaseModel):
    """Final artifact handed to the broker for one accepted signal.

    ``volume`` is expressed in base-currency units (100,000 = one standard
    lot), so that ``volume * stop distance`` is the amount at risk in the
    quote currency.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    direction: Direction
    volume: float
    stop_loss_price: float
    take_profit_price: float
    entry_price: float
    signal: Signal

    @property
    def risk_amount(self) -> float:
        """Amount lost if the stop loss is hit (quote currency)."""
        return abs(self.entry_price - self.stop_loss_price) * self.volume

    @property
    def reward_amount(self) -> float:
        """Amount gained if the take profit is hit (quote currency)."""
        return abs(self.take_profit_price - self.entry_price) * self.volume
