"""Signal detection from the two most recent indicator snapshots.

Rules are evaluated independently, in configuration order, so several
signals can fire on one bar and their order is deterministic. A crossing
requires the previous value on one side (threshold inclusive) and the
current value strictly on the other; nothing fires while any operand is
still undefined.

This module is pure business logic with no I/O dependencies.
"""

import logging

from fxcore.indicators.engine import IndicatorSnapshot
from fxcore.models.config import SymbolConfig
from fxcore.models.signal import Signal, SignalKind, SignalStrength

logger = logging.getLogger(__name__)


def crossed_above(prev_a: float, prev_b: float, curr_a: float, curr_b: float) -> bool:
    """``a`` moved from at-or-below ``b`` to strictly above it."""
    return prev_a <= prev_b and curr_a > curr_b


def crossed_below(prev_a: float, prev_b: float, curr_a: float, curr_b: float) -> bool:
    """``a`` moved from at-or-above ``b`` to strictly below it."""
    return prev_a >= prev_b and curr_a < curr_b


class SignalDetector:
    """Turns indicator crossings into typed Signals for one symbol.

    Holds only the (immutable) symbol configuration, so the same inputs
    always produce the same ordered list of signals.

    Rules:
    - rsi_threshold: RSI drops below oversold -> BUY (Strong);
      rises above overbought -> SELL (Strong)
    - macd_cross: MACD crosses above signal -> BUY (Medium); below -> SELL
    - ma_cross: fast MA crosses above slow -> BUY (Medium); below -> SELL
    - bollinger_breakout: close breaks above upper band -> BUY (Weak);
      below lower band -> SELL (Weak)
    - stochastic_cross: %K crosses above %D while oversold -> BUY (Weak);
      below %D while overbought -> SELL (Weak)
    """

    def __init__(self, config: SymbolConfig):
        self.symbol = config.symbol
        self.rules = config.rules
        self._indicators = {indicator.name: indicator for indicator in config.indicators}
        self._handlers = {
            "rsi_threshold": self._rsi_threshold,
            "macd_cross": self._macd_cross,
            "ma_cross": self._ma_cross,
            "bollinger_breakout": self._bollinger_breakout,
            "stochastic_cross": self._stochastic_cross,
        }

    def detect(
        self,
        previous: IndicatorSnapshot,
        current: IndicatorSnapshot,
    ) -> list[Signal]:
        """
        Evaluate every rule against two consecutive snapshots.

        Args:
            previous: Snapshot of the bar before ``current``
            current: Snapshot of the newest bar

        Returns:
            Signals in rule order (empty if nothing crossed)
        """
        signals: list[Signal] = []
        for rule in self.rules:
            signal = self._handlers[rule.kind](rule, previous, current)
            if signal is not None:
                logger.debug(
                    "%s %s signal from %s: %s",
                    self.symbol,
                    signal.kind.value,
                    signal.source_indicator,
                    signal.message,
                )
                signals.append(signal)
        return signals

    def _signal(
        self,
        kind: SignalKind,
        strength: SignalStrength,
        source: str,
        current: IndicatorSnapshot,
        message: str,
    ) -> Signal:
        return Signal(
            kind=kind,
            source_indicator=source,
            strength=strength,
            symbol=self.symbol,
            generated_at_index=current.index,
            message=message,
        )

    # ------------------------------------------------------------------
    # Rule handlers
    # ------------------------------------------------------------------

    def _rsi_threshold(self, rule, previous, current) -> Signal | None:
        config = self._indicators[rule.indicator]
        key = config.key()
        if not (previous.is_defined(key) and current.is_defined(key)):
            return None

        prev_rsi, curr_rsi = previous.get(key), current.get(key)
        if crossed_below(prev_rsi, config.oversold, curr_rsi, config.oversold):
            return self._signal(
                SignalKind.BUY,
                SignalStrength.STRONG,
                config.name,
                current,
                f"RSI oversold ({curr_rsi:.2f}) - Potential buy signal",
            )
        if crossed_above(prev_rsi, config.overbought, curr_rsi, config.overbought):
            return self._signal(
                SignalKind.SELL,
                SignalStrength.STRONG,
                config.name,
                current,
                f"RSI overbought ({curr_rsi:.2f}) - Potential sell signal",
            )
        return None

    def _macd_cross(self, rule, previous, current) -> Signal | None:
        config = self._indicators[rule.indicator]
        line, signal_line = config.key("macd"), config.key("signal")
        if not (
            previous.is_defined(line, signal_line)
            and current.is_defined(line, signal_line)
        ):
            return None

        args = (
            previous.get(line),
            previous.get(signal_line),
            current.get(line),
            current.get(signal_line),
        )
        if crossed_above(*args):
            return self._signal(
                SignalKind.BUY,
                SignalStrength.MEDIUM,
                config.name,
                current,
                "MACD crossed above signal line - Bullish signal",
            )
        if crossed_below(*args):
            return self._signal(
                SignalKind.SELL,
                SignalStrength.MEDIUM,
                config.name,
                current,
                "MACD crossed below signal line - Bearish signal",
            )
        return None

    def _ma_cross(self, rule, previous, current) -> Signal | None:
        fast = self._indicators[rule.fast].key()
        slow = self._indicators[rule.slow].key()
        if not (previous.is_defined(fast, slow) and current.is_defined(fast, slow)):
            return None

        source = f"{rule.fast}/{rule.slow}"
        args = (previous.get(fast), previous.get(slow), current.get(fast), current.get(slow))
        if crossed_above(*args):
            return self._signal(
                SignalKind.BUY,
                SignalStrength.MEDIUM,
                source,
                current,
                f"{rule.fast} crossed above {rule.slow} - Bullish crossover",
            )
        if crossed_below(*args):
            return self._signal(
                SignalKind.SELL,
                SignalStrength.MEDIUM,
                source,
                current,
                f"{rule.fast} crossed below {rule.slow} - Bearish crossover",
            )
        return None

    def _bollinger_breakout(self, rule, previous, current) -> Signal | None:
        config = self._indicators[rule.indicator]
        upper, lower = config.key("upper"), config.key("lower")
        if not (previous.is_defined(upper, lower) and current.is_defined(upper, lower)):
            return None

        if crossed_above(previous.close, previous.get(upper), current.close, current.get(upper)):
            return self._signal(
                SignalKind.BUY,
                SignalStrength.WEAK,
                config.name,
                current,
                "Price broke above upper Bollinger Band - Bullish breakout",
            )
        if crossed_below(previous.close, previous.get(lower), current.close, current.get(lower)):
            return self._signal(
                SignalKind.SELL,
                SignalStrength.WEAK,
                config.name,
                current,
                "Price broke below lower Bollinger Band - Bearish breakout",
            )
        return None

    def _stochastic_cross(self, rule, previous, current) -> Signal | None:
        config = self._indicators[rule.indicator]
        k, d = config.key("k"), config.key("d")
        if not (previous.is_defined(k, d) and current.is_defined(k, d)):
            return None

        args = (previous.get(k), previous.get(d), current.get(k), current.get(d))
        curr_k = current.get(k)
        if crossed_above(*args) and curr_k < config.oversold:
            return self._signal(
                SignalKind.BUY,
                SignalStrength.WEAK,
                config.name,
                current,
                f"Stochastic %K ({curr_k:.2f}) crossed above %D in oversold zone",
            )
        if crossed_below(*args) and curr_k > config.overbought:
            return self._signal(
                SignalKind.SELL,
                SignalStrength.WEAK,
                config.name,
                current,
                f"Stochastic %K ({curr_k:.2f}) crossed below %D in overbought zone",
            )
        return None
