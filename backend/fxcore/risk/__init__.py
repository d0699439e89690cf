"""Risk gate, position sizing and performance tracking."""

from fxcore.risk.gate import RiskGate, RiskState
from fxcore.risk.performance import PerformanceStats, PerformanceTracker
from fxcore.risk.sizing import PositionSizer, pip_size, stop_prices

__all__ = [
    "RiskGate",
    "RiskState",
    "PerformanceStats",
    "PerformanceTracker",
    "PositionSizer",
    "pip_size",
    "stop_prices",
]
