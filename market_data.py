"""Candle providers.

The engine only depends on the :class:`CandleProvider` protocol; the
concrete :class:`BinanceCandleProvider` pulls klines through the
``python-binance`` REST client.  Network or parse failures surface as
:class:`errors.DataUnavailable` so the caller can skip the tick.
"""

from __future__ import annotations

import logging
import os
import random
import threading
import time
from typing import Callable, Iterable, List, Optional, Protocol, Sequence, Tuple, TypeVar

import pandas as pd

from errors import DataUnavailable
from trade_schema import Candle

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

_KLINE_COLUMNS: Sequence[str] = (
    "open_time",
    "open",
    "high",
    "low",
    "close",
    "volume",
    "close_time",
    "quote_asset_volume",
    "number_of_trades",
    "taker_buy_base",
    "taker_buy_quote",
    "ignore",
)

_RATE_LIMIT_KEYWORDS = (
    "Too many requests",
    "too many requests",
    "Too Many Requests",
    "-1003",  # Binance rate limit error code
    "IP banned",
    "429",
)

# Binance caps a single klines request at 1000 rows.
MAX_KLINES_PER_REQUEST = 1000


class CandleProvider(Protocol):
    def get_candles(self, symbol: str, timeframe: str, count: int) -> List[Candle]:
        ...


def normalise_symbol(symbol: str) -> str:
    """``SOL/USDT`` -> ``SOLUSDT``."""

    return str(symbol).replace("/", "").replace("-", "").upper()


def klines_to_candles(raw: Iterable[Sequence[object]]) -> List[Candle]:
    """Shape raw kline payloads into ordered :class:`Candle` objects."""

    df = pd.DataFrame(list(raw))
    if df.empty:
        return []
    if df.shape[1] < 6:
        raise ValueError(f"kline rows need at least 6 fields, got {df.shape[1]}")
    df = df.iloc[:, : len(_KLINE_COLUMNS)]
    df.columns = list(_KLINE_COLUMNS[: df.shape[1]])
    numeric_cols = ["open", "high", "low", "close", "volume"]
    df[numeric_cols] = df[numeric_cols].apply(pd.to_numeric, errors="coerce")
    df["open_time"] = pd.to_numeric(df["open_time"], errors="coerce")
    df = df.dropna(subset=["open_time", "open", "high", "low", "close"])
    df = df.sort_values("open_time").drop_duplicates(subset="open_time", keep="last")
    return [
        Candle(
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume) if pd.notna(row.volume) else 0.0,
            timestamp=int(row.open_time),
        )
        for row in df.itertuples(index=False)
    ]


def _is_rate_limit_error(exc: Exception) -> bool:
    """Return True if ``exc`` looks like a Binance rate limit error."""

    message = getattr(exc, "message", None) or str(exc)
    return any(keyword in message for keyword in _RATE_LIMIT_KEYWORDS)


def _call_with_retries(
    action: Callable[[], _T],
    description: str,
    max_attempts: int = 3,
    base_delay: float = 0.5,
) -> Tuple[bool, Optional[_T], Optional[Exception]]:
    """Execute ``action`` with retries and exponential backoff.

    Returns ``(success, result, exception)``; ``result`` is populated only on
    success and the last exception is returned otherwise.
    """

    delay = max(base_delay, 0.1)
    last_exception: Optional[Exception] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return True, action(), None
        except Exception as exc:  # network dependent
            last_exception = exc
            rate_limited = _is_rate_limit_error(exc)
            logger.warning(
                "Attempt %d/%d to %s failed%s: %s",
                attempt,
                max_attempts,
                description,
                " due to rate limit" if rate_limited else "",
                exc,
            )
            if attempt >= max_attempts:
                break
            multiplier = 2.0 if rate_limited else 1.5
            jitter = random.uniform(0.0, base_delay)
            time.sleep(min(delay * multiplier + jitter, 15.0))
            delay = min(delay * multiplier, 15.0)
    return False, None, last_exception


class BinanceCandleProvider:
    """Fetch candles from the Binance REST API via ``python-binance``.

    A failed fetch raises :class:`errors.DataUnavailable` after one attempt by
    default so a tick never blocks on backoff; the next tick fetches again.
    """

    def __init__(self, client=None, max_attempts: int = 1, base_delay: float = 0.5) -> None:
        self._client = client
        self._client_lock = threading.Lock()
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    def _get_client(self):
        with self._client_lock:
            if self._client is None:
                from binance.client import Client

                api_key = os.getenv("BINANCE_API_KEY")
                api_secret = os.getenv("BINANCE_API_SECRET")
                self._client = Client(api_key, api_secret) if api_key and api_secret else Client()
            return self._client

    def get_candles(self, symbol: str, timeframe: str, count: int) -> List[Candle]:
        market = normalise_symbol(symbol)
        limit = max(1, min(int(count), MAX_KLINES_PER_REQUEST))
        try:
            client = self._get_client()
        except Exception as exc:  # client construction pings the exchange
            raise DataUnavailable(symbol, timeframe, f"Binance client unavailable: {exc}") from exc

        ok, raw, error = _call_with_retries(
            lambda: client.get_klines(symbol=market, interval=timeframe, limit=limit),
            f"fetch {timeframe} klines for {market}",
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
        )
        if not ok:
            raise DataUnavailable(symbol, timeframe, str(error)) from error
        try:
            candles = klines_to_candles(raw or [])
        except (TypeError, ValueError) as exc:
            raise DataUnavailable(symbol, timeframe, f"malformed klines: {exc}") from exc
        if not candles:
            raise DataUnavailable(symbol, timeframe, "empty kline response")
        return candles


__all__ = [
    "CandleProvider",
    "BinanceCandleProvider",
    "klines_to_candles",
    "normalise_symbol",
]
