import pytest

import market_data
from errors import DataUnavailable
from market_data import BinanceCandleProvider, klines_to_candles, normalise_symbol


def _kline(open_time, close):
    return [open_time, "1.0", str(close + 1), str(close - 1), str(close), "10", open_time + 59_999, "0", 5, "0", "0", "0"]


class _Client:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def get_klines(self, **kwargs):
        self.calls.append(kwargs)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch):
    monkeypatch.setattr(market_data.time, "sleep", lambda _seconds: None)


def test_normalise_symbol():
    assert normalise_symbol("sol/usdt") == "SOLUSDT"
    assert normalise_symbol("ETH-USDT") == "ETHUSDT"


def test_klines_are_sorted_deduplicated_and_typed():
    raw = [_kline(120_000, 12.0), _kline(60_000, 11.0), _kline(120_000, 12.5), ["bad", "x", "y", "z", "w", "v"]]
    candles = klines_to_candles(raw)
    assert [c.timestamp for c in candles] == [60_000, 120_000]
    assert candles[-1].close == 12.5
    assert candles[0].high == 12.0
    assert isinstance(candles[0].volume, float)


def test_klines_need_ohlc_fields():
    with pytest.raises(ValueError):
        klines_to_candles([[1, 2, 3]])
    assert klines_to_candles([]) == []


def test_provider_fetches_through_client():
    client = _Client([[_kline(60_000, 11.0), _kline(120_000, 12.0)]])
    provider = BinanceCandleProvider(client=client)
    candles = provider.get_candles("SOL/USDT", "5m", 5000)
    assert [c.close for c in candles] == [11.0, 12.0]
    assert client.calls == [{"symbol": "SOLUSDT", "interval": "5m", "limit": 1000}]


def test_provider_retries_transient_errors():
    client = _Client([RuntimeError("429 Too many requests"), [_kline(60_000, 11.0)]])
    provider = BinanceCandleProvider(client=client, max_attempts=3, base_delay=0.01)
    assert len(provider.get_candles("ETHUSDT", "1m", 10)) == 1
    assert len(client.calls) == 2


def test_provider_raises_data_unavailable_after_retries():
    client = _Client([RuntimeError("boom"), RuntimeError("boom again")])
    provider = BinanceCandleProvider(client=client, max_attempts=2, base_delay=0.01)
    with pytest.raises(DataUnavailable) as excinfo:
        provider.get_candles("ETHUSDT", "1m", 10)
    assert excinfo.value.symbol == "ETHUSDT"
    assert excinfo.value.timeframe == "1m"
    assert "boom again" in str(excinfo.value)


def test_empty_response_is_unavailable():
    provider = BinanceCandleProvider(client=_Client([[]]))
    with pytest.raises(DataUnavailable):
        provider.get_candles("ETHUSDT", "1m", 10)


def test_failed_fetch_is_not_retried_by_default():
    client = _Client([ConnectionError("connection reset"), [_kline(60_000, 11.0)]])
    provider = BinanceCandleProvider(client=client)
    with pytest.raises(DataUnavailable):
        provider.get_candles("ETHUSDT", "1m", 10)
    assert len(client.calls) == 1
    assert len(provider.get_candles("ETHUSDT", "1m", 10)) == 1
