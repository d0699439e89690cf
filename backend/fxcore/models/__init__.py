"""Data models shared by the core and the application layer."""

from fxcore.models.bar import PriceBar
from fxcore.models.config import (
    AtrConfig,
    BollingerBreakoutRule,
    BollingerConfig,
    EmaConfig,
    IndicatorConfig,
    MaCrossRule,
    MacdConfig,
    MacdCrossRule,
    RiskLimits,
    RsiConfig,
    RsiThresholdRule,
    SessionConfig,
    SignalRule,
    SmaConfig,
    StochasticConfig,
    StochasticCrossRule,
    StopPolicy,
    SymbolConfig,
)
from fxcore.models.events import (
    CoordinatorEvent,
    FillEvent,
    OrderFailed,
    OrderIntentEmitted,
    SessionEvent,
    SignalDiscarded,
)
from fxcore.models.signal import (
    Direction,
    RejectionReason,
    Signal,
    SignalKind,
    SignalStrength,
    SizedOrderIntent,
)

__all__ = [
    "PriceBar",
    "AtrConfig",
    "BollingerBreakoutRule",
    "BollingerConfig",
    "EmaConfig",
    "IndicatorConfig",
    "MaCrossRule",
    "MacdConfig",
    "MacdCrossRule",
    "RiskLimits",
    "RsiConfig",
    "RsiThresholdRule",
    "SessionConfig",
    "SignalRule",
    "SmaConfig",
    "StochasticConfig",
    "StochasticCrossRule",
    "StopPolicy",
    "SymbolConfig",
    "CoordinatorEvent",
    "FillEvent",
    "OrderFailed",
    "OrderIntentEmitted",
    "SessionEvent",
    "SignalDiscarded",
    "Direction",
    "RejectionReason",
    "Signal",
    "SignalKind",
    "SignalStrength",
    "SizedOrderIntent",
]
