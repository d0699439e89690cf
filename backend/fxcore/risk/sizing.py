"""Position sizing and stop placement.

Volumes are in base-currency units (100,000 units = 1 standard lot), so
``volume * stop distance`` is the amount at risk in the quote currency.
"""

import math

from fxcore.errors import InvalidStopLoss
from fxcore.models.config import StopPolicy
from fxcore.models.signal import Direction

JPY_PIP_SIZE = 0.01
DEFAULT_PIP_SIZE = 0.0001


def pip_size(symbol: str) -> float:
    """Price increment of one pip for a currency pair.

    0.01 for JPY-quoted pairs, 0.0001 otherwise. Accepts ``USD_JPY``,
    ``USDJPY``, ``usd/jpy`` and similar spellings.
    """
    normalized = symbol.upper().replace("_", "").replace("/", "").replace("-", "")
    if normalized.endswith("JPY"):
        return JPY_PIP_SIZE
    return DEFAULT_PIP_SIZE


class PositionSizer:
    """Convert a risk budget and stop distance into an order volume.

    volume = risk_amount / (stop_pips * pip_value), capped so that the
    amount at risk never exceeds ``max_risk_per_trade_percent`` of the
    account balance.
    """

    def __init__(self, max_risk_per_trade_percent: float):
        self.max_risk_per_trade_percent = max_risk_per_trade_percent

    def size(
        self,
        symbol: str,
        risk_amount: float,
        stop_loss_distance: float,
        account_balance: float,
    ) -> float:
        """
        Compute the order volume for one trade.

        Args:
            symbol: Currency pair, used to resolve the pip value
            risk_amount: Amount willing to lose if the stop is hit
            stop_loss_distance: Entry-to-stop distance in price units
            account_balance: Current account balance

        Returns:
            Volume in units (0.0 if the balance or risk budget is not positive)

        Raises:
            InvalidStopLoss: if ``stop_loss_distance`` is not a positive number
        """
        if not math.isfinite(stop_loss_distance) or stop_loss_distance <= 0:
            raise InvalidStopLoss(symbol, stop_loss_distance)
        if risk_amount <= 0 or account_balance <= 0:
            return 0.0

        pip_value = pip_size(symbol)
        stop_pips = stop_loss_distance / pip_value

        volume = risk_amount / (stop_pips * pip_value)
        max_volume = (
            account_balance * self.max_risk_per_trade_percent / 100 / pip_value / stop_pips
        )
        return min(volume, max_volume)

    def risk_budget(self, account_balance: float) -> float:
        """Largest amount a single trade may put at risk."""
        return max(account_balance, 0.0) * self.max_risk_per_trade_percent / 100

    @staticmethod
    def risk_of(symbol: str, volume: float, stop_loss_distance: float) -> float:
        """Amount lost if a position of ``volume`` hits its stop."""
        pip_value = pip_size(symbol)
        return volume * (stop_loss_distance / pip_value) * pip_value


def stop_prices(
    direction: Direction,
    entry_price: float,
    policy: StopPolicy,
    symbol: str,
    atr_value: float | None = None,
) -> tuple[float, float]:
    """
    Calculate stop-loss and take-profit prices.

    Args:
        direction: LONG or SHORT
        entry_price: Expected entry (latest close)
        policy: Fixed-pip or ATR-multiple stop placement
        symbol: Currency pair (resolves pip size in pips mode)
        atr_value: Latest ATR value (ATR mode only)

    Returns:
        Tuple of (stop_loss_price, take_profit_price)

    Raises:
        InvalidStopLoss: if the resulting stop distance is not positive,
            e.g. the ATR is still warming up
    """
    if policy.mode == "atr":
        atr_now = atr_value if atr_value is not None else float("nan")
        sl_distance = atr_now * policy.sl_atr_mult
        tp_distance = atr_now * policy.tp_atr_mult
    else:
        pip = pip_size(symbol)
        sl_distance = policy.stop_loss_pips * pip
        tp_distance = policy.take_profit_pips * pip

    if not math.isfinite(sl_distance) or sl_distance <= 0:
        raise InvalidStopLoss(symbol, sl_distance)

    if direction == Direction.LONG:
        return entry_price - sl_distance, entry_price + tp_distance
    return entry_price + sl_distance, entry_price - tp_distance
