"""Typed configuration models.

Every model is frozen and rejects unknown fields, so a typo in a YAML
file or keyword argument fails at construction instead of silently
falling back to a default. Changing an indicator's parameters means
building a new config (and a new engine); configs are never patched.
"""

from __future__ import annotations

from typing import Annotated, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# Series keys the indicator engine fills in itself
RESERVED_SERIES_KEYS = frozenset({"close"})


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# =============================================================================
# Indicator configs
# =============================================================================

class _IndicatorConfigBase(_FrozenModel):
    """Fields shared by all indicator configs.

    ``name`` is the key the indicator is referenced by in signal rules and
    stop policies. It defaults to the kind plus its periods, e.g. ``sma20``.
    """

    # Component names for multi-output indicators; empty = single series
    outputs: ClassVar[tuple[str, ...]] = ()

    name: str = Field(default="", pattern=r"^[^.]*$")
    version: int = Field(default=1, ge=1)

    @field_validator("name")
    @classmethod
    def _check_reserved(cls, value: str) -> str:
        if value in RESERVED_SERIES_KEYS:
            raise ValueError(f"indicator name '{value}' is reserved")
        return value

    def model_post_init(self, __context) -> None:
        if not self.name:
            object.__setattr__(self, "name", self.default_name())

    def default_name(self) -> str:
        raise NotImplementedError

    @property
    def series_keys(self) -> tuple[str, ...]:
        """Keys of the series this indicator produces."""
        if not self.outputs:
            return (self.name,)
        return tuple(f"{self.name}.{output}" for output in self.outputs)

    def key(self, output: str = "") -> str:
        """Series key for one component (or the only series)."""
        if not output:
            return self.name
        if output not in self.outputs:
            raise KeyError(f"{self.name} has no output '{output}'")
        return f"{self.name}.{output}"


class SmaConfig(_IndicatorConfigBase):
    kind: Literal["sma"] = "sma"
    period: int = Field(default=20, gt=0)

    def default_name(self) -> str:
        return f"sma{self.period}"


class EmaConfig(_IndicatorConfigBase):
    kind: Literal["ema"] = "ema"
    period: int = Field(default=12, gt=0)

    def default_name(self) -> str:
        return f"ema{self.period}"


class RsiConfig(_IndicatorConfigBase):
    kind: Literal["rsi"] = "rsi"
    period: int = Field(default=14, gt=0)
    overbought: float = 70.0
    oversold: float = 30.0

    @model_validator(mode="after")
    def _check_thresholds(self):
        if not 0 <= self.oversold < self.overbought <= 100:
            raise ValueError(
                f"RSI thresholds must satisfy 0 <= oversold < overbought <= 100, "
                f"got oversold={self.oversold}, overbought={self.overbought}"
            )
        return self

    def default_name(self) -> str:
        return f"rsi{self.period}"


class MacdConfig(_IndicatorConfigBase):
    outputs: ClassVar[tuple[str, ...]] = ("macd", "signal", "histogram")

    kind: Literal["macd"] = "macd"
    fast_period: int = Field(default=12, gt=0)
    slow_period: int = Field(default=26, gt=0)
    signal_period: int = Field(default=9, gt=0)

    @model_validator(mode="after")
    def _check_periods(self):
        if self.fast_period >= self.slow_period:
            raise ValueError(
                f"MACD fast_period ({self.fast_period}) must be below "
                f"slow_period ({self.slow_period})"
            )
        return self

    def default_name(self) -> str:
        return f"macd{self.fast_period}_{self.slow_period}_{self.signal_period}"


class BollingerConfig(_IndicatorConfigBase):
    outputs: ClassVar[tuple[str, ...]] = ("upper", "middle", "lower")

    kind: Literal["bollinger"] = "bollinger"
    period: int = Field(default=20, gt=0)
    std_dev_multiplier: float = Field(default=2.0, gt=0)

    def default_name(self) -> str:
        return f"bb{self.period}"


class StochasticConfig(_IndicatorConfigBase):
    outputs: ClassVar[tuple[str, ...]] = ("k", "d")

    kind: Literal["stochastic"] = "stochastic"
    k_period: int = Field(default=14, gt=0)
    d_period: int = Field(default=3, gt=0)
    overbought: float = 80.0
    oversold: float = 20.0

    @model_validator(mode="after")
    def _check_thresholds(self):
        if not 0 <= self.oversold < self.overbought <= 100:
            raise ValueError(
                f"Stochastic thresholds must satisfy 0 <= oversold < overbought <= 100, "
                f"got oversold={self.oversold}, overbought={self.overbought}"
            )
        return self

    def default_name(self) -> str:
        return f"stoch{self.k_period}_{self.d_period}"


class AtrConfig(_IndicatorConfigBase):
    kind: Literal["atr"] = "atr"
    period: int = Field(default=14, gt=0)

    def default_name(self) -> str:
        return f"atr{self.period}"


IndicatorConfig = Annotated[
    Union[
        SmaConfig,
        EmaConfig,
        RsiConfig,
        MacdConfig,
        BollingerConfig,
        StochasticConfig,
        AtrConfig,
    ],
    Field(discriminator="kind"),
]


# =============================================================================
# Signal rules
# =============================================================================

def _require(
    indicators: dict[str, _IndicatorConfigBase],
    name: str,
    kinds: tuple[str, ...],
    rule: str,
) -> None:
    indicator = indicators.get(name)
    if indicator is None:
        raise ValueError(f"{rule} rule references unknown indicator '{name}'")
    if indicator.kind not in kinds:
        raise ValueError(
            f"{rule} rule needs a {' or '.join(kinds)} indicator, "
            f"'{name}' is {indicator.kind}"
        )


class RsiThresholdRule(_FrozenModel):
    """RSI leaving the neutral zone through oversold/overbought."""

    kind: Literal["rsi_threshold"] = "rsi_threshold"
    indicator: str

    def check(self, indicators: dict[str, _IndicatorConfigBase]) -> None:
        _require(indicators, self.indicator, ("rsi",), self.kind)


class MacdCrossRule(_FrozenModel):
    """MACD line crossing its signal line."""

    kind: Literal["macd_cross"] = "macd_cross"
    indicator: str

    def check(self, indicators: dict[str, _IndicatorConfigBase]) -> None:
        _require(indicators, self.indicator, ("macd",), self.kind)


class MaCrossRule(_FrozenModel):
    """Fast moving average crossing a slow one."""

    kind: Literal["ma_cross"] = "ma_cross"
    fast: str
    slow: str

    def check(self, indicators: dict[str, _IndicatorConfigBase]) -> None:
        _require(indicators, self.fast, ("sma", "ema"), self.kind)
        _require(indicators, self.slow, ("sma", "ema"), self.kind)
        if self.fast == self.slow:
            raise ValueError("ma_cross rule needs two different indicators")


class BollingerBreakoutRule(_FrozenModel):
    """Close breaking out through the upper or lower band."""

    kind: Literal["bollinger_breakout"] = "bollinger_breakout"
    indicator: str

    def check(self, indicators: dict[str, _IndicatorConfigBase]) -> None:
        _require(indicators, self.indicator, ("bollinger",), self.kind)


class StochasticCrossRule(_FrozenModel):
    """%K crossing %D inside the oversold/overbought zone."""

    kind: Literal["stochastic_cross"] = "stochastic_cross"
    indicator: str

    def check(self, indicators: dict[str, _IndicatorConfigBase]) -> None:
        _require(indicators, self.indicator, ("stochastic",), self.kind)


SignalRule = Annotated[
    Union[
        RsiThresholdRule,
        MacdCrossRule,
        MaCrossRule,
        BollingerBreakoutRule,
        StochasticCrossRule,
    ],
    Field(discriminator="kind"),
]


def default_rules(indicators) -> tuple:
    """Derive one rule per rule-capable indicator, in indicator order.

    The moving-average crossover is added once both the first EMA (fast)
    and the first SMA (slow) have been seen.
    """
    rules: list = []
    first_ema: str | None = None
    first_sma: str | None = None
    for indicator in indicators:
        if indicator.kind == "rsi":
            rules.append(RsiThresholdRule(indicator=indicator.name))
        elif indicator.kind == "macd":
            rules.append(MacdCrossRule(indicator=indicator.name))
        elif indicator.kind == "bollinger":
            rules.append(BollingerBreakoutRule(indicator=indicator.name))
        elif indicator.kind == "stochastic":
            rules.append(StochasticCrossRule(indicator=indicator.name))
        elif indicator.kind in ("ema", "sma"):
            had_pair = first_ema is not None and first_sma is not None
            if indicator.kind == "ema" and first_ema is None:
                first_ema = indicator.name
            if indicator.kind == "sma" and first_sma is None:
                first_sma = indicator.name
            if not had_pair and first_ema is not None and first_sma is not None:
                rules.append(MaCrossRule(fast=first_ema, slow=first_sma))
    return tuple(rules)


# =============================================================================
# Stops, symbols, risk, session
# =============================================================================

class StopPolicy(_FrozenModel):
    """How stop-loss and take-profit prices are placed around the entry.

    ``pips`` mode uses fixed distances; ``atr`` mode multiplies the latest
    value of an ATR indicator.
    """

    mode: Literal["pips", "atr"] = "pips"
    stop_loss_pips: float = Field(default=50.0, gt=0)
    take_profit_pips: float = Field(default=100.0, gt=0)
    atr_indicator: str | None = None
    sl_atr_mult: float = Field(default=2.0, gt=0)
    tp_atr_mult: float = Field(default=4.0, gt=0)


def _default_indicators() -> tuple:
    return (
        SmaConfig(),
        EmaConfig(),
        RsiConfig(),
        MacdConfig(),
        AtrConfig(),
    )


class SymbolConfig(_FrozenModel):
    """Indicators, signal rules and stop placement for one symbol.

    When ``rules`` is omitted they are derived from ``indicators``
    (see ``default_rules``).
    """

    symbol: str = Field(min_length=1)
    indicators: tuple[IndicatorConfig, ...] = Field(default_factory=_default_indicators)
    rules: tuple[SignalRule, ...] | None = None
    stop_policy: StopPolicy = Field(default_factory=StopPolicy)

    @model_validator(mode="after")
    def _validate_references(self):
        by_name: dict[str, _IndicatorConfigBase] = {}
        for indicator in self.indicators:
            if indicator.name in by_name:
                raise ValueError(f"duplicate indicator name '{indicator.name}'")
            by_name[indicator.name] = indicator

        if self.rules is None:
            object.__setattr__(self, "rules", default_rules(self.indicators))
        for rule in self.rules:
            rule.check(by_name)

        if self.stop_policy.mode == "atr":
            name = self.stop_policy.atr_indicator
            if name is None:
                raise ValueError("stop_policy mode 'atr' requires atr_indicator")
            _require(by_name, name, ("atr",), "stop_policy")
        return self

    def indicator(self, name: str):
        """Look up an indicator config by name."""
        for indicator in self.indicators:
            if indicator.name == name:
                return indicator
        raise KeyError(f"{self.symbol} has no indicator '{name}'")


class RiskLimits(_FrozenModel):
    """Account-level risk limits enforced by the risk gate."""

    max_open_positions: int = Field(default=3, gt=0)
    daily_loss_limit: float = Field(default=200.0, gt=0)
    max_risk_per_trade_percent: float = Field(default=1.0, gt=0, le=100)


class SessionConfig(_FrozenModel):
    """Everything one account's coordinator needs. Static for a session."""

    account: str = "default"
    symbols: tuple[SymbolConfig, ...] = ()
    risk: RiskLimits = Field(default_factory=RiskLimits)
    retention: int = Field(default=500, gt=0)

    @model_validator(mode="after")
    def _unique_symbols(self):
        seen: set[str] = set()
        for symbol_config in self.symbols:
            if symbol_config.symbol in seen:
                raise ValueError(f"duplicate symbol '{symbol_config.symbol}'")
            seen.add(symbol_config.symbol)
        return self

    def symbol(self, symbol: str) -> SymbolConfig:
        for symbol_config in self.symbols:
            if symbol_config.symbol == symbol:
                return symbol_config
        raise KeyError(symbol)
