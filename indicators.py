"""
Technical indicators for the trading decision engine.

Every function accepts a pandas Series (or any sequence of floats) and returns
Series aligned with the input index.  Warm-up positions where an indicator is
not yet defined hold ``NaN``; they are never filled with zero.

Functions
---------

* ``sma(closes, period)`` – rolling arithmetic mean.
* ``ema(closes, period)`` – exponential moving average seeded with the SMA of
  the first ``period`` values.
* ``rsi(closes, period)`` – relative strength index using simple (not Wilder)
  averages of the last ``period`` price changes.
* ``macd(closes, fast, slow, signal)`` – MACD line, signal line and histogram.
* ``bollinger_bands(closes, period, std_dev_multiplier)`` – population
  standard deviation bands around the SMA.
* ``atr(frame, period)`` – SMA of the true range.
* ``calculate_indicator_set(frame, params)`` – the full per-timeframe
  indicator frame consumed by :mod:`signal_generator`.

Invalid periods (non-positive or longer than the available history) raise
:class:`errors.ConfigurationError`; windows are never silently clamped.
"""

from __future__ import annotations

from typing import Iterable, Union

import numpy as np
import pandas as pd

from errors import ConfigurationError

SeriesLike = Union[pd.Series, Iterable[float]]

INDICATOR_COLUMNS = [
    "sma",
    "ema_fast",
    "ema_slow",
    "rsi",
    "macd",
    "macd_signal",
    "macd_hist",
    "bb_upper",
    "bb_middle",
    "bb_lower",
    "atr",
]


def _as_series(values: SeriesLike, name: str = "close") -> pd.Series:
    if isinstance(values, pd.Series):
        return values.astype(float)
    if isinstance(values, pd.DataFrame):
        if name in values.columns:
            return values[name].astype(float)
        raise ConfigurationError(f"DataFrame input must contain a '{name}' column")
    return pd.Series(list(values), dtype=float, name=name)


def _check_period(period: int, length: int, label: str) -> int:
    try:
        period = int(period)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{label} period must be an integer (got {period!r})") from exc
    if period <= 0:
        raise ConfigurationError(f"{label} period must be positive (got {period})")
    if period > length:
        raise ConfigurationError(f"{label} period {period} exceeds available history of {length} values")
    return period


def sma(closes: SeriesLike, period: int) -> pd.Series:
    """Simple moving average; positions ``< period - 1`` are ``NaN``."""

    series = _as_series(closes)
    period = _check_period(period, len(series), "SMA")
    return series.rolling(window=period, min_periods=period).mean().rename("sma")


def ema(closes: SeriesLike, period: int) -> pd.Series:
    """Exponential moving average seeded with the SMA of the first ``period`` values."""

    series = _as_series(closes)
    period = _check_period(period, len(series), "EMA")
    seeded = series.iloc[period - 1 :].copy()
    seeded.iloc[0] = series.iloc[:period].mean()
    # adjust=False gives the recursive form: prev + (close - prev) * 2 / (period + 1)
    smoothed = seeded.ewm(alpha=2.0 / (period + 1), adjust=False).mean()
    return smoothed.reindex(series.index).rename("ema")


def rsi(closes: SeriesLike, period: int = 14) -> pd.Series:
    """Relative strength index from simple averages of the last ``period`` changes.

    A window with no losses reports 100.  Positions ``< period`` are ``NaN``,
    so ``period`` closes give an all-``NaN`` warm-up.
    """

    series = _as_series(closes)
    period = _check_period(period, len(series), "RSI")
    delta = series.diff()
    avg_gain = delta.clip(lower=0).rolling(window=period, min_periods=period).mean()
    avg_loss = (-delta.clip(upper=0)).rolling(window=period, min_periods=period).mean()
    rs = avg_gain / avg_loss.replace(0.0, np.nan)
    out = 100.0 - 100.0 / (1.0 + rs)
    out = out.where(~((avg_loss == 0) & avg_gain.notna()), 100.0)
    return out.rename("rsi")


def macd(
    closes: SeriesLike,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> pd.DataFrame:
    """Return ``macd``, ``signal`` and ``histogram`` columns.

    The signal line is the EMA of the defined MACD values only, aligned back to
    the right of the original index.  It stays ``NaN`` while fewer than
    ``signal`` MACD values exist.
    """

    series = _as_series(closes)
    if int(signal) <= 0:
        raise ConfigurationError(f"MACD signal period must be positive (got {signal})")
    line = ema(series, fast) - ema(series, slow)
    defined = line.dropna()
    if len(defined) >= int(signal):
        signal_line = ema(defined, signal).reindex(series.index)
    else:
        signal_line = pd.Series(np.nan, index=series.index)
    return pd.DataFrame(
        {"macd": line, "signal": signal_line, "histogram": line - signal_line},
        index=series.index,
    )


def bollinger_bands(
    closes: SeriesLike,
    period: int = 20,
    std_dev_multiplier: float = 2.0,
) -> pd.DataFrame:
    """Upper, middle and lower bands using the population standard deviation."""

    series = _as_series(closes)
    period = _check_period(period, len(series), "Bollinger")
    middle = series.rolling(window=period, min_periods=period).mean()
    std = series.rolling(window=period, min_periods=period).std(ddof=0)
    width = float(std_dev_multiplier) * std
    return pd.DataFrame(
        {"upper": middle + width, "middle": middle, "lower": middle - width},
        index=series.index,
    )


def true_range(frame: pd.DataFrame) -> pd.Series:
    """True range per candle; the first candle has no previous close and is ``NaN``."""

    high = frame["high"].astype(float)
    low = frame["low"].astype(float)
    prev_close = frame["close"].astype(float).shift()
    tr = pd.concat(
        [high - low, (high - prev_close).abs(), (low - prev_close).abs()],
        axis=1,
    ).max(axis=1, skipna=False)
    return tr.rename("true_range")


def atr(frame: pd.DataFrame, period: int = 14) -> pd.Series:
    """Average true range as the SMA of :func:`true_range`.

    The first defined value sits at position ``period``; with exactly
    ``period`` candles the result is all ``NaN``.
    """

    period = _check_period(period, len(frame), "ATR")
    tr = true_range(frame)
    return tr.rolling(window=period, min_periods=period).mean().rename("atr")


def _nan_series(index: pd.Index) -> pd.Series:
    return pd.Series(np.nan, index=index, dtype=float)


def calculate_indicator_set(frame: pd.DataFrame, params) -> pd.DataFrame:
    """Compute every indicator the signal generator needs for one timeframe.

    ``params`` is a :class:`config.StrategySettings`.  When the history is
    shorter than an indicator's window the column is left ``NaN`` (warm-up);
    non-positive periods still raise :class:`ConfigurationError`.
    """

    for name in (
        "sma_period",
        "ema_fast_period",
        "ema_slow_period",
        "rsi_period",
        "macd_fast",
        "macd_slow",
        "macd_signal",
        "bollinger_period",
    ):
        value = getattr(params, name)
        if int(value) <= 0:
            raise ConfigurationError(f"{name} must be positive (got {value})")

    index = frame.index
    closes = frame["close"].astype(float)
    n = len(closes)
    out = pd.DataFrame(index=index, columns=INDICATOR_COLUMNS, dtype=float)

    out["sma"] = sma(closes, params.sma_period) if params.sma_period <= n else _nan_series(index)
    out["ema_fast"] = ema(closes, params.ema_fast_period) if params.ema_fast_period <= n else _nan_series(index)
    out["ema_slow"] = ema(closes, params.ema_slow_period) if params.ema_slow_period <= n else _nan_series(index)
    out["rsi"] = rsi(closes, params.rsi_period) if params.rsi_period <= n else _nan_series(index)
    if max(params.macd_fast, params.macd_slow) <= n:
        lines = macd(closes, params.macd_fast, params.macd_slow, params.macd_signal)
        out["macd"] = lines["macd"]
        out["macd_signal"] = lines["signal"]
        out["macd_hist"] = lines["histogram"]
    if params.bollinger_period <= n:
        bands = bollinger_bands(closes, params.bollinger_period, params.bollinger_std_dev)
        out["bb_upper"] = bands["upper"]
        out["bb_middle"] = bands["middle"]
        out["bb_lower"] = bands["lower"]
    if {"high", "low"}.issubset(frame.columns) and params.rsi_period <= n:
        out["atr"] = atr(frame, params.rsi_period)
    return out


__all__ = [
    "INDICATOR_COLUMNS",
    "sma",
    "ema",
    "rsi",
    "macd",
    "bollinger_bands",
    "true_range",
    "atr",
    "calculate_indicator_set",
]
