"""
Multi-timeframe helpers for the trading decision engine.

Signals are confirmed across several candle intervals (``1m``, ``5m``,
``15m`` by default).  This module converts candle lists into OHLCV frames,
resamples lower intervals into higher ones when a provider only serves a
base interval, and collects the close series per timeframe.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, Sequence

import pandas as pd

from errors import ConfigurationError
from trade_schema import Candle

OHLCV_COLUMNS = ["open", "high", "low", "close", "volume"]

_TIMEFRAME_RE = re.compile(r"^(\d+)([mhdw])$")
_PANDAS_UNITS = {"m": "min", "h": "h", "d": "D", "w": "W"}
_SECONDS = {"m": 60, "h": 3600, "d": 86400, "w": 604800}


def timeframe_to_offset(timeframe: str) -> str:
    """Translate an exchange interval (``5m``, ``1h``) into a pandas offset alias."""

    match = _TIMEFRAME_RE.match(str(timeframe).strip().lower())
    if not match:
        raise ConfigurationError(f"Unsupported timeframe {timeframe!r}")
    amount, unit = match.groups()
    return f"{int(amount)}{_PANDAS_UNITS[unit]}"


def timeframe_seconds(timeframe: str) -> int:
    match = _TIMEFRAME_RE.match(str(timeframe).strip().lower())
    if not match:
        raise ConfigurationError(f"Unsupported timeframe {timeframe!r}")
    amount, unit = match.groups()
    return int(amount) * _SECONDS[unit]


def candles_to_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    """Return an OHLCV DataFrame indexed by the candle open time (UTC)."""

    if not candles:
        return pd.DataFrame(columns=OHLCV_COLUMNS, dtype=float)
    frame = pd.DataFrame(
        {
            "open": [c.open for c in candles],
            "high": [c.high for c in candles],
            "low": [c.low for c in candles],
            "close": [c.close for c in candles],
            "volume": [c.volume for c in candles],
        },
        index=pd.to_datetime([c.timestamp for c in candles], unit="ms", utc=True),
        dtype=float,
    )
    frame.index.name = "timestamp"
    return frame


def resample_ohlcv(df: pd.DataFrame, timeframe: str) -> pd.DataFrame:
    """
    Resample a lower-interval OHLCV DataFrame to ``timeframe``.

    ``df`` must have a datetime index labelled by candle open time, as
    produced by :func:`candles_to_frame`.  Bars are labelled by their open
    time as well and incomplete trailing bins are kept; callers that need
    only closed bars drop the last row.
    """
    ohlc = {
        "open": "first",
        "high": "max",
        "low": "min",
        "close": "last",
        "volume": "sum",
    }
    offset = timeframe_to_offset(timeframe) if _TIMEFRAME_RE.match(str(timeframe).lower()) else timeframe
    return df.resample(offset, label="left", closed="left").agg(ohlc).dropna()


def frames_from_base(base: pd.DataFrame, base_timeframe: str, timeframes: Iterable[str]) -> Dict[str, pd.DataFrame]:
    """Build one frame per timeframe from a single base-interval frame."""

    base_seconds = timeframe_seconds(base_timeframe)
    frames: Dict[str, pd.DataFrame] = {}
    for tf in timeframes:
        seconds = timeframe_seconds(tf)
        if seconds < base_seconds or seconds % base_seconds:
            raise ConfigurationError(f"Cannot build {tf} candles from {base_timeframe} candles")
        frames[tf] = base if seconds == base_seconds else resample_ohlcv(base, tf)
    return frames


__all__ = [
    "OHLCV_COLUMNS",
    "timeframe_to_offset",
    "timeframe_seconds",
    "candles_to_frame",
    "resample_ohlcv",
    "frames_from_base",
]
