"""Central configuration loader for the trading decision engine.

Settings come from environment variables (optionally a ``.env`` file) and
are resolved into an immutable :class:`EngineConfig` snapshot.  The engine
never reads a global mutable config: the orchestrator resolves one snapshot
per tick (environment defaults + configuration-store overrides, see
:mod:`config_store`) and passes it into every component.
"""
from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Tuple

from dotenv import load_dotenv

from errors import ConfigurationError

# Load environment variables once when this module is imported.
load_dotenv()


def _clean_path(value: str | None) -> str:
    """Return ``value`` without inline comments or surrounding whitespace."""

    if not value:
        return ""
    return value.split("#", 1)[0].strip()


# ---------------------------------------------------------------------------
# Environment helpers
# ---------------------------------------------------------------------------
def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"{name} is not a boolean: {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return float(default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} is not a number: {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return int(default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} is not an integer: {raw!r}")


def _env_str(name: str, default: str) -> str:
    raw = _clean_path(os.getenv(name))
    return raw or default


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return tuple(default)
    return tuple(item.strip().upper() for item in raw.split(",") if item.strip())


def _env_hours(name: str, default: Tuple[int, ...]) -> Tuple[int, ...]:
    raw = os.getenv(name)
    if raw is None:
        return tuple(default)
    hours = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            hours.append(int(item))
        except ValueError:
            raise ConfigurationError(f"{name} contains a non-integer hour: {item!r}")
    return tuple(hours)


# ---------------------------------------------------------------------------
# Storage locations
# ---------------------------------------------------------------------------
DATA_DIR = _clean_path(os.getenv("ENGINE_DATA_DIR")) or "data"
POSITIONS_FILE = _clean_path(os.getenv("POSITIONS_FILE")) or os.path.join(DATA_DIR, "positions.json")
ENGINE_STATE_FILE = _clean_path(os.getenv("ENGINE_STATE_FILE")) or os.path.join(DATA_DIR, "engine_state.json")
TRADE_HISTORY_FILE = _clean_path(os.getenv("TRADE_HISTORY_FILE")) or os.path.join(DATA_DIR, "trade_history.csv")
CYCLE_LOG_FILE = _clean_path(os.getenv("CYCLE_LOG_FILE")) or os.path.join(DATA_DIR, "cycles.jsonl")
CONFIG_STORE_FILE = _clean_path(os.getenv("CONFIG_STORE_FILE")) or os.path.join(DATA_DIR, "config_store.json")
METRICS_FILE = _clean_path(os.getenv("METRICS_PATH")) or os.path.join(DATA_DIR, "metrics.csv")


# ---------------------------------------------------------------------------
# Settings snapshot
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class TradingSettings:
    """Symbols, base sizing and static SL/TP knobs."""

    symbols: Tuple[str, ...] = ("SOLUSDT", "ETHUSDT", "AVAXUSDT")
    trade_amount: float = 150.0
    leverage: float = 10.0
    max_open_trades: int = 15
    max_open_trades_per_symbol: int = 5
    stop_loss_percent: float = 2.5
    take_profit_percent: float = 3.5
    cooldown_minutes: float = 5.0
    initial_balance: float = 10000.0
    poll_interval_seconds: float = 60.0
    candle_count: int = 200
    close_on_reversal: bool = True


@dataclass(frozen=True)
class TrailingSettings:
    enabled: bool = True
    activation_percent: float = 1.0
    lock_in_ratio: float = 0.5


@dataclass(frozen=True)
class SizingSettings:
    """Win-rate driven multiplier applied to the base trade amount."""

    min_trades: int = 10
    confident_win_rate: float = 55.0
    cautious_win_rate: float = 45.0
    step_per_point: float = 0.02
    max_multiplier: float = 2.0
    min_multiplier: float = 0.25
    high_volatility_ratio: float = 1.5


@dataclass(frozen=True)
class MartingaleSettings:
    mode: str = "anti-martingale"  # 'martingale' | 'anti-martingale' | 'off'
    step: float = 0.5
    max_multiplier: float = 3.0


@dataclass(frozen=True)
class VolatilitySettings:
    enabled: bool = True
    atr_period: int = 14
    avg_atr_period: int = 100
    min_sl_percent: float = 0.5
    max_sl_percent: float = 3.0
    min_tp_percent: float = 1.0
    max_tp_percent: float = 5.0


@dataclass(frozen=True)
class LeverageSettings:
    enabled: bool = False
    min_leverage: float = 3.0
    max_leverage: float = 20.0
    high_vol_threshold: float = 1.5
    low_vol_threshold: float = 0.8


@dataclass(frozen=True)
class DrawdownSettings:
    enabled: bool = True
    max_drawdown_percent: float = 10.0
    pause_minutes: float = 30.0
    resume_policy: str = "time"  # 'time' | 'new_peak'
    reset_on_new_peak: bool = True


@dataclass(frozen=True)
class TimeFilterSettings:
    enabled: bool = False
    blocked_hours: Tuple[int, ...] = (21, 22, 23, 0)
    avoid_weekends: bool = False


@dataclass(frozen=True)
class HourOptimizationSettings:
    enabled: bool = False
    min_trades_per_hour: int = 3
    block_threshold: float = 40.0
    optimize_every: int = 10


@dataclass(frozen=True)
class CorrelationSettings:
    enabled: bool = True
    strict_mode: bool = False
    reference_symbol: str = "BTCUSDT"
    reference_timeframe: str = "15m"
    sma_period: int = 20
    rsi_period: int = 14
    loose_confidence_penalty: float = 0.5
    cache_seconds: float = 300.0


@dataclass(frozen=True)
class SentimentSettings:
    enabled: bool = False


@dataclass(frozen=True)
class StrategySettings:
    """Indicator periods and multi-timeframe confluence rules."""

    timeframes: Tuple[str, ...] = ("1m", "5m", "15m")
    ema_fast_period: int = 20
    ema_slow_period: int = 50
    sma_period: int = 20
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    rsi_period: int = 14
    rsi_oversold: float = 40.0
    rsi_overbought: float = 60.0
    bollinger_period: int = 20
    bollinger_std_dev: float = 2.0
    min_indicator_agreement: int = 2
    min_confluence: int = 2
    min_confidence: float = 0.0


@dataclass(frozen=True)
class EngineConfig:
    trading: TradingSettings = field(default_factory=TradingSettings)
    trailing: TrailingSettings = field(default_factory=TrailingSettings)
    sizing: SizingSettings = field(default_factory=SizingSettings)
    martingale: MartingaleSettings = field(default_factory=MartingaleSettings)
    volatility: VolatilitySettings = field(default_factory=VolatilitySettings)
    leverage: LeverageSettings = field(default_factory=LeverageSettings)
    drawdown: DrawdownSettings = field(default_factory=DrawdownSettings)
    time_filter: TimeFilterSettings = field(default_factory=TimeFilterSettings)
    hour_optimization: HourOptimizationSettings = field(default_factory=HourOptimizationSettings)
    correlation: CorrelationSettings = field(default_factory=CorrelationSettings)
    sentiment: SentimentSettings = field(default_factory=SentimentSettings)
    strategy: StrategySettings = field(default_factory=StrategySettings)

    def validate(self) -> "EngineConfig":
        """Raise :class:`ConfigurationError` on the first invalid value."""

        t = self.trading
        if not t.symbols:
            raise ConfigurationError("trading.symbols must list at least one symbol")
        _require_positive("trading.trade_amount", t.trade_amount)
        _require_positive("trading.leverage", t.leverage)
        _require_positive("trading.stop_loss_percent", t.stop_loss_percent)
        _require_positive("trading.take_profit_percent", t.take_profit_percent)
        _require_positive("trading.poll_interval_seconds", t.poll_interval_seconds)
        _require_positive("trading.initial_balance", t.initial_balance)
        _require_min("trading.max_open_trades", t.max_open_trades, 1)
        _require_min("trading.max_open_trades_per_symbol", t.max_open_trades_per_symbol, 1)
        _require_min("trading.cooldown_minutes", t.cooldown_minutes, 0)
        if t.stop_loss_percent >= 100:
            raise ConfigurationError("trading.stop_loss_percent must be below 100")

        if not 0 < self.trailing.lock_in_ratio <= 1:
            raise ConfigurationError("trailing.lock_in_ratio must be in (0, 1]")
        _require_positive("trailing.activation_percent", self.trailing.activation_percent)

        s = self.sizing
        if s.cautious_win_rate > s.confident_win_rate:
            raise ConfigurationError("sizing.cautious_win_rate must not exceed sizing.confident_win_rate")
        if not 0 < s.min_multiplier <= 1 <= s.max_multiplier:
            raise ConfigurationError("sizing multipliers must satisfy 0 < min <= 1 <= max")
        _require_min("sizing.step_per_point", s.step_per_point, 0)
        _require_positive("sizing.high_volatility_ratio", s.high_volatility_ratio)

        m = self.martingale
        if m.mode not in {"martingale", "anti-martingale", "off"}:
            raise ConfigurationError(f"martingale.mode {m.mode!r} is not supported")
        _require_min("martingale.max_multiplier", m.max_multiplier, 1)
        _require_min("martingale.step", m.step, 0)

        v = self.volatility
        _require_min("volatility.atr_period", v.atr_period, 1)
        _require_min("volatility.avg_atr_period", v.avg_atr_period, 1)
        if v.min_sl_percent > v.max_sl_percent or v.min_tp_percent > v.max_tp_percent:
            raise ConfigurationError("volatility min/max SL/TP bounds are inverted")

        lv = self.leverage
        if lv.min_leverage > lv.max_leverage:
            raise ConfigurationError("leverage.min_leverage exceeds leverage.max_leverage")
        if lv.low_vol_threshold >= lv.high_vol_threshold:
            raise ConfigurationError("leverage.low_vol_threshold must be below high_vol_threshold")

        d = self.drawdown
        if not 0 < d.max_drawdown_percent < 100:
            raise ConfigurationError("drawdown.max_drawdown_percent must be in (0, 100)")
        _require_positive("drawdown.pause_minutes", d.pause_minutes)
        if d.resume_policy not in {"time", "new_peak"}:
            raise ConfigurationError(f"drawdown.resume_policy {d.resume_policy!r} is not supported")

        for hour in self.time_filter.blocked_hours:
            if not 0 <= int(hour) <= 23:
                raise ConfigurationError(f"time_filter.blocked_hours contains invalid hour {hour}")

        h = self.hour_optimization
        _require_min("hour_optimization.min_trades_per_hour", h.min_trades_per_hour, 1)
        _require_min("hour_optimization.optimize_every", h.optimize_every, 1)
        if not 0 <= h.block_threshold <= 100:
            raise ConfigurationError("hour_optimization.block_threshold must be a percentage")

        c = self.correlation
        _require_min("correlation.sma_period", c.sma_period, 1)
        _require_min("correlation.rsi_period", c.rsi_period, 1)
        if not 0 <= c.loose_confidence_penalty <= 1:
            raise ConfigurationError("correlation.loose_confidence_penalty must be in [0, 1]")

        st = self.strategy
        if not st.timeframes:
            raise ConfigurationError("strategy.timeframes must not be empty")
        for name in (
            "ema_fast_period",
            "ema_slow_period",
            "sma_period",
            "macd_fast",
            "macd_slow",
            "macd_signal",
            "rsi_period",
            "bollinger_period",
        ):
            _require_min(f"strategy.{name}", getattr(st, name), 1)
        if st.ema_fast_period >= st.ema_slow_period:
            raise ConfigurationError("strategy.ema_fast_period must be shorter than ema_slow_period")
        if st.macd_fast >= st.macd_slow:
            raise ConfigurationError("strategy.macd_fast must be shorter than macd_slow")
        if not 0 <= st.rsi_oversold < st.rsi_overbought <= 100:
            raise ConfigurationError("strategy RSI thresholds must satisfy 0 <= oversold < overbought <= 100")
        if not 1 <= st.min_confluence <= len(st.timeframes):
            raise ConfigurationError("strategy.min_confluence must be between 1 and the number of timeframes")
        if not 1 <= st.min_indicator_agreement <= 3:
            raise ConfigurationError("strategy.min_indicator_agreement must be between 1 and 3")
        if t.candle_count < st.ema_slow_period:
            raise ConfigurationError("trading.candle_count is shorter than strategy.ema_slow_period")
        return self

    def with_overrides(self, overrides: Mapping[str, Any]) -> "EngineConfig":
        """Return a new snapshot with dotted-key ``overrides`` applied.

        ``{"trading.stop_loss_percent": 2.0}`` replaces a single field; values
        are coerced to the type of the field's current value.
        """

        grouped: dict[str, dict[str, Any]] = {}
        for key, value in overrides.items():
            section, _, name = str(key).partition(".")
            if not name or not hasattr(self, section):
                raise ConfigurationError(f"Unknown configuration key {key!r}")
            current_section = getattr(self, section)
            if not hasattr(current_section, name):
                raise ConfigurationError(f"Unknown configuration key {key!r}")
            grouped.setdefault(section, {})[name] = _coerce(key, getattr(current_section, name), value)
        changes = {
            section: dataclasses.replace(getattr(self, section), **fields)
            for section, fields in grouped.items()
        }
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


def _require_positive(name: str, value: float) -> None:
    if value is None or float(value) <= 0:
        raise ConfigurationError(f"{name} must be positive (got {value!r})")


def _require_min(name: str, value: float, minimum: float) -> None:
    if value is None or float(value) < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum} (got {value!r})")


def _coerce(key: str, current: Any, value: Any) -> Any:
    try:
        if isinstance(current, bool):
            if isinstance(value, str):
                return value.strip().lower() in {"1", "true", "yes", "on"}
            return bool(value)
        if isinstance(current, int):
            return int(float(value))
        if isinstance(current, float):
            return float(value)
        if isinstance(current, tuple):
            if isinstance(value, str):
                value = json.loads(value) if value.strip().startswith("[") else value.split(",")
            items = list(value)
            if current and isinstance(current[0], int):
                return tuple(int(item) for item in items)
            return tuple(str(item).strip() for item in items)
        return str(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid value {value!r} for {key}") from exc


def load_engine_config() -> EngineConfig:
    """Build and validate an :class:`EngineConfig` from environment variables."""

    defaults = EngineConfig()
    config = EngineConfig(
        trading=TradingSettings(
            symbols=_env_list("TRADING_SYMBOLS", defaults.trading.symbols),
            trade_amount=_env_float("TRADE_AMOUNT", defaults.trading.trade_amount),
            leverage=_env_float("LEVERAGE", defaults.trading.leverage),
            max_open_trades=_env_int("MAX_OPEN_TRADES", defaults.trading.max_open_trades),
            max_open_trades_per_symbol=_env_int(
                "MAX_OPEN_TRADES_PER_SYMBOL", defaults.trading.max_open_trades_per_symbol
            ),
            stop_loss_percent=_env_float("STOP_LOSS_PERCENT", defaults.trading.stop_loss_percent),
            take_profit_percent=_env_float("TAKE_PROFIT_PERCENT", defaults.trading.take_profit_percent),
            cooldown_minutes=_env_float("SL_COOLDOWN_MINUTES", defaults.trading.cooldown_minutes),
            initial_balance=_env_float("INITIAL_BALANCE", defaults.trading.initial_balance),
            poll_interval_seconds=_env_float("POLL_INTERVAL_SECONDS", defaults.trading.poll_interval_seconds),
            candle_count=_env_int("CANDLE_COUNT", defaults.trading.candle_count),
            close_on_reversal=_env_bool("CLOSE_ON_REVERSAL", defaults.trading.close_on_reversal),
        ),
        trailing=TrailingSettings(
            enabled=_env_bool("TRAILING_STOP_ENABLED", defaults.trailing.enabled),
            activation_percent=_env_float("TRAILING_ACTIVATION_PERCENT", defaults.trailing.activation_percent),
            lock_in_ratio=_env_float("TRAILING_LOCK_IN_RATIO", defaults.trailing.lock_in_ratio),
        ),
        sizing=SizingSettings(
            min_trades=_env_int("SIZING_MIN_TRADES", defaults.sizing.min_trades),
            confident_win_rate=_env_float("SIZING_CONFIDENT_WIN_RATE", defaults.sizing.confident_win_rate),
            cautious_win_rate=_env_float("SIZING_CAUTIOUS_WIN_RATE", defaults.sizing.cautious_win_rate),
            step_per_point=_env_float("SIZING_STEP_PER_POINT", defaults.sizing.step_per_point),
            max_multiplier=_env_float("SIZING_MAX_MULTIPLIER", defaults.sizing.max_multiplier),
            min_multiplier=_env_float("SIZING_MIN_MULTIPLIER", defaults.sizing.min_multiplier),
            high_volatility_ratio=_env_float("SIZING_HIGH_VOLATILITY_RATIO", defaults.sizing.high_volatility_ratio),
        ),
        martingale=MartingaleSettings(
            mode=_env_str("MARTINGALE_MODE", defaults.martingale.mode).lower(),
            step=_env_float("MARTINGALE_STEP", defaults.martingale.step),
            max_multiplier=_env_float("MARTINGALE_MAX_MULTIPLIER", defaults.martingale.max_multiplier),
        ),
        volatility=VolatilitySettings(
            enabled=_env_bool("VOLATILITY_ADJUSTMENT_ENABLED", defaults.volatility.enabled),
            atr_period=_env_int("VOLATILITY_ATR_PERIOD", defaults.volatility.atr_period),
            avg_atr_period=_env_int("VOLATILITY_AVG_ATR_PERIOD", defaults.volatility.avg_atr_period),
            min_sl_percent=_env_float("VOLATILITY_MIN_SL_PERCENT", defaults.volatility.min_sl_percent),
            max_sl_percent=_env_float("VOLATILITY_MAX_SL_PERCENT", defaults.volatility.max_sl_percent),
            min_tp_percent=_env_float("VOLATILITY_MIN_TP_PERCENT", defaults.volatility.min_tp_percent),
            max_tp_percent=_env_float("VOLATILITY_MAX_TP_PERCENT", defaults.volatility.max_tp_percent),
        ),
        leverage=LeverageSettings(
            enabled=_env_bool("LEVERAGE_ADJUSTMENT_ENABLED", defaults.leverage.enabled),
            min_leverage=_env_float("MIN_LEVERAGE", defaults.leverage.min_leverage),
            max_leverage=_env_float("MAX_LEVERAGE", defaults.leverage.max_leverage),
            high_vol_threshold=_env_float("LEVERAGE_HIGH_VOL_THRESHOLD", defaults.leverage.high_vol_threshold),
            low_vol_threshold=_env_float("LEVERAGE_LOW_VOL_THRESHOLD", defaults.leverage.low_vol_threshold),
        ),
        drawdown=DrawdownSettings(
            enabled=_env_bool("DRAWDOWN_PROTECTION_ENABLED", defaults.drawdown.enabled),
            max_drawdown_percent=_env_float("MAX_DRAWDOWN_PERCENT", defaults.drawdown.max_drawdown_percent),
            pause_minutes=_env_float("DRAWDOWN_PAUSE_MINUTES", defaults.drawdown.pause_minutes),
            resume_policy=_env_str("DRAWDOWN_RESUME_POLICY", defaults.drawdown.resume_policy).lower(),
            reset_on_new_peak=_env_bool("DRAWDOWN_RESET_ON_NEW_PEAK", defaults.drawdown.reset_on_new_peak),
        ),
        time_filter=TimeFilterSettings(
            enabled=_env_bool("TIME_FILTER_ENABLED", defaults.time_filter.enabled),
            blocked_hours=_env_hours("BLOCKED_HOURS", defaults.time_filter.blocked_hours),
            avoid_weekends=_env_bool("AVOID_WEEKENDS", defaults.time_filter.avoid_weekends),
        ),
        hour_optimization=HourOptimizationSettings(
            enabled=_env_bool("HOUR_OPTIMIZATION_ENABLED", defaults.hour_optimization.enabled),
            min_trades_per_hour=_env_int("HOUR_MIN_TRADES", defaults.hour_optimization.min_trades_per_hour),
            block_threshold=_env_float("HOUR_BLOCK_THRESHOLD", defaults.hour_optimization.block_threshold),
            optimize_every=_env_int("HOUR_OPTIMIZE_EVERY", defaults.hour_optimization.optimize_every),
        ),
        correlation=CorrelationSettings(
            enabled=_env_bool("CORRELATION_FILTER_ENABLED", defaults.correlation.enabled),
            strict_mode=_env_bool("CORRELATION_STRICT_MODE", defaults.correlation.strict_mode),
            reference_symbol=_env_str("CORRELATION_REFERENCE_SYMBOL", defaults.correlation.reference_symbol).upper(),
            reference_timeframe=_env_str("CORRELATION_REFERENCE_TIMEFRAME", defaults.correlation.reference_timeframe),
            sma_period=_env_int("CORRELATION_SMA_PERIOD", defaults.correlation.sma_period),
            rsi_period=_env_int("CORRELATION_RSI_PERIOD", defaults.correlation.rsi_period),
            loose_confidence_penalty=_env_float(
                "CORRELATION_LOOSE_PENALTY", defaults.correlation.loose_confidence_penalty
            ),
            cache_seconds=_env_float("CORRELATION_CACHE_SECONDS", defaults.correlation.cache_seconds),
        ),
        sentiment=SentimentSettings(
            enabled=_env_bool("SENTIMENT_ENABLED", defaults.sentiment.enabled),
        ),
        strategy=StrategySettings(
            timeframes=tuple(
                tf.lower() for tf in _env_list("STRATEGY_TIMEFRAMES", defaults.strategy.timeframes)
            ),
            ema_fast_period=_env_int("EMA_FAST_PERIOD", defaults.strategy.ema_fast_period),
            ema_slow_period=_env_int("EMA_SLOW_PERIOD", defaults.strategy.ema_slow_period),
            sma_period=_env_int("SMA_PERIOD", defaults.strategy.sma_period),
            macd_fast=_env_int("MACD_FAST", defaults.strategy.macd_fast),
            macd_slow=_env_int("MACD_SLOW", defaults.strategy.macd_slow),
            macd_signal=_env_int("MACD_SIGNAL", defaults.strategy.macd_signal),
            rsi_period=_env_int("RSI_PERIOD", defaults.strategy.rsi_period),
            rsi_oversold=_env_float("RSI_OVERSOLD", defaults.strategy.rsi_oversold),
            rsi_overbought=_env_float("RSI_OVERBOUGHT", defaults.strategy.rsi_overbought),
            bollinger_period=_env_int("BOLLINGER_PERIOD", defaults.strategy.bollinger_period),
            bollinger_std_dev=_env_float("BOLLINGER_STD_DEV", defaults.strategy.bollinger_std_dev),
            min_indicator_agreement=_env_int("MIN_INDICATOR_AGREEMENT", defaults.strategy.min_indicator_agreement),
            min_confluence=_env_int("MIN_CONFLUENCE", defaults.strategy.min_confluence),
            min_confidence=_env_float("MIN_SIGNAL_CONFIDENCE", defaults.strategy.min_confidence),
        ),
    )
    return config.validate()


__all__ = [
    "get",
    "DATA_DIR",
    "POSITIONS_FILE",
    "ENGINE_STATE_FILE",
    "TRADE_HISTORY_FILE",
    "CYCLE_LOG_FILE",
    "CONFIG_STORE_FILE",
    "METRICS_FILE",
    "TradingSettings",
    "TrailingSettings",
    "SizingSettings",
    "MartingaleSettings",
    "VolatilitySettings",
    "LeverageSettings",
    "DrawdownSettings",
    "TimeFilterSettings",
    "HourOptimizationSettings",
    "CorrelationSettings",
    "SentimentSettings",
    "StrategySettings",
    "EngineConfig",
    "load_engine_config",
]
