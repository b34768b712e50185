import pandas as pd
import pytest

from errors import ConfigurationError
from multi_timeframe import (
    candles_to_frame,
    frames_from_base,
    resample_ohlcv,
    timeframe_seconds,
    timeframe_to_offset,
)
from trade_schema import Candle

# 2024-01-03 00:00 UTC in milliseconds
START_MS = 1_704_240_000_000


def _minute_candles(n):
    return [
        Candle(
            open=100.0 + i,
            high=101.0 + i,
            low=99.0 + i,
            close=100.5 + i,
            volume=1.0,
            timestamp=START_MS + i * 60_000,
        )
        for i in range(n)
    ]


def test_timeframe_translation():
    assert timeframe_to_offset("5m") == "5min"
    assert timeframe_to_offset("1h") == "1h"
    assert timeframe_seconds("15m") == 900
    with pytest.raises(ConfigurationError):
        timeframe_to_offset("5 minutes")


def test_candles_to_frame_uses_utc_open_time_index():
    frame = candles_to_frame(_minute_candles(3))
    assert list(frame.columns) == ["open", "high", "low", "close", "volume"]
    assert frame.index[0] == pd.Timestamp("2024-01-03 00:00", tz="UTC")
    assert frame["close"].iloc[-1] == 102.5
    assert candles_to_frame([]).empty


def test_resample_aggregates_ohlcv():
    frame = candles_to_frame(_minute_candles(10))
    five = resample_ohlcv(frame, "5m")
    assert len(five) == 2
    first = five.iloc[0]
    assert first["open"] == 100.0
    assert first["high"] == 105.0
    assert first["low"] == 99.0
    assert first["close"] == 104.5
    assert first["volume"] == 5.0
    assert five.index[1] == pd.Timestamp("2024-01-03 00:05", tz="UTC")


def test_frames_from_base():
    frame = candles_to_frame(_minute_candles(30))
    frames = frames_from_base(frame, "1m", ["1m", "5m", "15m"])
    assert frames["1m"] is frame
    assert len(frames["5m"]) == 6
    assert len(frames["15m"]) == 2
    assert frames["15m"]["close"].iloc[0] == frame["close"].iloc[14]
    with pytest.raises(ConfigurationError):
        frames_from_base(frame, "5m", ["1m"])
    with pytest.raises(ConfigurationError):
        frames_from_base(frame, "2m", ["5m"])
