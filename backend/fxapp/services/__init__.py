"""Business services."""

from fxapp.services.session import TradingSession

__all__ = ["TradingSession"]
