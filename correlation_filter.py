"""Cross-asset correlation gate.

Alt-coin entries are checked against the momentum of a reference market
(BTC by default).  In strict mode only entries confirmed by the reference
momentum pass; in loose mode entries against the reference trend go through
with reduced confidence.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import pandas as pd

from errors import DataUnavailable
from indicators import rsi, sma
from trade_schema import BUY, SELL

logger = logging.getLogger(__name__)

BULLISH = "bullish"
BEARISH = "bearish"
NEUTRAL = "neutral"

# Extra candles fetched beyond the longest indicator window.
_FETCH_BUFFER = 30


@dataclass(frozen=True)
class CorrelationVerdict:
    allowed: bool
    confidence_factor: float
    reason: str


def reference_momentum(closes: Sequence[float] | pd.Series, sma_period: int = 20, rsi_period: int = 14) -> str:
    """Classify the reference market as bullish, bearish or neutral.

    Bullish needs the last close above its SMA with RSI above 55; bearish the
    mirror image with RSI below 45.  Short histories are neutral.
    """

    series = pd.Series(list(closes), dtype=float) if not isinstance(closes, pd.Series) else closes.astype(float)
    if len(series) < max(sma_period, rsi_period + 1):
        return NEUTRAL
    last_close = float(series.iloc[-1])
    last_sma = sma(series, sma_period).iloc[-1]
    last_rsi = rsi(series, rsi_period).iloc[-1]
    if pd.isna(last_sma) or pd.isna(last_rsi):
        return NEUTRAL
    if last_close > last_sma and last_rsi > 55:
        return BULLISH
    if last_close < last_sma and last_rsi < 45:
        return BEARISH
    return NEUTRAL


def apply_correlation_filter(
    momentum: str,
    direction: str,
    strict: bool,
    loose_penalty: float = 0.5,
    reference: str = "BTC",
) -> CorrelationVerdict:
    """Decide whether ``direction`` may trade given the reference ``momentum``."""

    if direction not in (BUY, SELL):
        return CorrelationVerdict(True, 1.0, "no entry to check")
    confirming = BULLISH if direction == BUY else BEARISH
    opposing = BEARISH if direction == BUY else BULLISH
    if strict:
        if momentum == confirming:
            return CorrelationVerdict(True, 1.0, f"{reference} confirms {direction} ({momentum})")
        return CorrelationVerdict(False, 0.0, f"strict correlation ({reference} is {momentum} vs {direction})")
    if momentum == opposing:
        return CorrelationVerdict(
            True,
            float(loose_penalty),
            f"{reference} is {momentum} against {direction}, confidence x{loose_penalty:g}",
        )
    return CorrelationVerdict(True, 1.0, f"{reference} is {momentum}")


class ReferenceMomentumCache:
    """Cache the reference momentum for ``cache_seconds``.

    ``provider`` implements ``get_candles(symbol, timeframe, count)``.  Fetch
    failures are logged and reported as neutral without poisoning the cache.
    """

    def __init__(self, provider, settings, clock: Callable[[], float] = time.time) -> None:
        self.provider = provider
        self.settings = settings
        self._clock = clock
        self._lock = threading.Lock()
        self._momentum: Optional[str] = None
        self._fetched_at = 0.0

    def configure(self, settings) -> None:
        with self._lock:
            if settings != self.settings:
                self._momentum = None
            self.settings = settings

    def get(self) -> str:
        now = self._clock()
        with self._lock:
            if self._momentum is not None and now - self._fetched_at < self.settings.cache_seconds:
                return self._momentum
        s = self.settings
        count = max(s.sma_period, s.rsi_period + 1) + _FETCH_BUFFER
        try:
            candles = self.provider.get_candles(s.reference_symbol, s.reference_timeframe, count)
        except DataUnavailable as exc:
            logger.warning("Reference momentum unavailable, assuming neutral: %s", exc)
            return NEUTRAL
        momentum = reference_momentum([c.close for c in candles], s.sma_period, s.rsi_period)
        with self._lock:
            self._momentum = momentum
            self._fetched_at = now
        return momentum


__all__ = [
    "BULLISH",
    "BEARISH",
    "NEUTRAL",
    "CorrelationVerdict",
    "reference_momentum",
    "apply_correlation_filter",
    "ReferenceMomentumCache",
]
