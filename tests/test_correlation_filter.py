import pytest

from config import CorrelationSettings
from correlation_filter import (
    BEARISH,
    BULLISH,
    NEUTRAL,
    ReferenceMomentumCache,
    apply_correlation_filter,
    reference_momentum,
)
from errors import DataUnavailable
from trade_schema import BUY, HOLD, SELL, Candle


def _candles(closes):
    return [Candle(c, c, c, c, 1.0, 1_700_000_000_000 + i * 60_000) for i, c in enumerate(closes)]


class _Provider:
    def __init__(self, closes=None, fail=False):
        self.closes = closes or [100.0 + i for i in range(60)]
        self.fail = fail
        self.calls = []

    def get_candles(self, symbol, timeframe, count):
        self.calls.append((symbol, timeframe, count))
        if self.fail:
            raise DataUnavailable(symbol, timeframe, "offline")
        return _candles(self.closes[-count:])


def test_reference_momentum_classifies_trends():
    assert reference_momentum([100.0 + i for i in range(40)]) == BULLISH
    assert reference_momentum([100.0 - i for i in range(40)]) == BEARISH
    assert reference_momentum([100.0] * 40) == NEUTRAL
    assert reference_momentum([100.0, 101.0]) == NEUTRAL


def test_strict_mode_requires_confirmation():
    assert apply_correlation_filter(BULLISH, BUY, strict=True).allowed
    assert apply_correlation_filter(BEARISH, SELL, strict=True).allowed
    verdict = apply_correlation_filter(BEARISH, BUY, strict=True)
    assert not verdict.allowed
    assert verdict.reason == "strict correlation (BTC is bearish vs buy)"
    assert not apply_correlation_filter(NEUTRAL, SELL, strict=True).allowed


def test_loose_mode_penalises_opposing_momentum():
    verdict = apply_correlation_filter(BULLISH, SELL, strict=False, loose_penalty=0.4)
    assert verdict.allowed
    assert verdict.confidence_factor == pytest.approx(0.4)
    assert apply_correlation_filter(NEUTRAL, SELL, strict=False).confidence_factor == 1.0


def test_hold_is_never_filtered():
    assert apply_correlation_filter(BEARISH, HOLD, strict=True).allowed


def test_cache_reuses_momentum_within_window():
    now = [1000.0]
    provider = _Provider()
    cache = ReferenceMomentumCache(provider, CorrelationSettings(cache_seconds=300), clock=lambda: now[0])
    assert cache.get() == BULLISH
    now[0] += 100
    assert cache.get() == BULLISH
    assert len(provider.calls) == 1
    symbol, timeframe, count = provider.calls[0]
    assert (symbol, timeframe) == ("BTCUSDT", "15m")
    assert count >= 20
    now[0] += 301
    cache.get()
    assert len(provider.calls) == 2


def test_cache_reports_neutral_when_reference_is_unavailable():
    provider = _Provider(fail=True)
    cache = ReferenceMomentumCache(provider, CorrelationSettings(), clock=lambda: 0.0)
    assert cache.get() == NEUTRAL
    assert cache.get() == NEUTRAL
    # failures are not cached
    assert len(provider.calls) == 2


def test_configure_invalidates_cache_on_change():
    provider = _Provider()
    cache = ReferenceMomentumCache(provider, CorrelationSettings(), clock=lambda: 0.0)
    cache.get()
    cache.configure(CorrelationSettings(reference_symbol="ETHUSDT"))
    cache.get()
    assert provider.calls[-1][0] == "ETHUSDT"
