import json

import pytest

from config import EngineConfig
from errors import DataUnavailable
import observability
from trade_schema import LONG, Candle, DrawdownState, Position
from trade_storage import TradeStore
from trading_cycle import TradingCycle

NOW = 1_704_276_000.0  # Wednesday 2024-01-03 10:00 UTC
START_MS = 1_704_200_000_000


@pytest.fixture(autouse=True)
def _metrics_in_tmp(tmp_path, monkeypatch):
    monkeypatch.setattr(observability, "_recorder", observability.MetricsRecorder(str(tmp_path / "metrics.csv")))


def _rising_candles(count, growth=1.002):
    candles = []
    price = 100.0
    for i in range(count):
        price *= growth
        candles.append(
            Candle(
                open=price / growth,
                high=price * 1.001,
                low=price * 0.999,
                close=price,
                volume=10.0,
                timestamp=START_MS + i * 60_000,
            )
        )
    return candles


class FakeProvider:
    def __init__(self, fail_symbols=()):
        self.fail_symbols = set(fail_symbols)
        self.calls = []

    def get_candles(self, symbol, timeframe, count):
        self.calls.append((symbol, timeframe, count))
        if symbol in self.fail_symbols:
            raise DataUnavailable(symbol, timeframe, "exchange offline")
        return _rising_candles(count)


def _cycle(tmp_path, overrides=None, provider=None):
    config = EngineConfig().with_overrides(overrides or {}).validate()
    store = TradeStore.in_directory(str(tmp_path), initial_balance=config.trading.initial_balance)
    return TradingCycle(provider or FakeProvider(), store, config, clock=lambda: NOW), store


def test_rising_market_opens_long(tmp_path):
    cycle, store = _cycle(tmp_path)
    result = cycle.tick("SOLUSDT", now=NOW)

    assert result.action == "opened"
    assert result.signal.direction == "buy"
    assert result.signal.reason.startswith("buy confluence 3/3")
    positions = store.load_positions()
    assert [p.id for p in positions] == [result.position_id]
    assert positions[0].side == LONG
    assert positions[0].amount * positions[0].entry_price == pytest.approx(150.0, rel=1e-6)
    assert store.get_balance() < 10000.0

    journal = store.read_cycles()
    assert journal[-1]["symbol"] == "SOLUSDT"
    assert journal[-1]["action"] == "opened"


def test_reference_symbol_is_fetched_for_correlation(tmp_path):
    provider = FakeProvider()
    cycle, _ = _cycle(tmp_path, provider=provider)
    cycle.tick("SOLUSDT", now=NOW)
    assert ("BTCUSDT", "15m") in {(s, tf) for s, tf, _ in provider.calls}


def test_unavailable_data_skips_tick(tmp_path):
    cycle, store = _cycle(tmp_path, provider=FakeProvider(fail_symbols={"SOLUSDT"}))
    result = cycle.tick("SOLUSDT", now=NOW)
    assert result.action == "skipped"
    assert "exchange offline" in result.detail
    assert store.load_positions() == []


class _NoSlowCandles(FakeProvider):
    def get_candles(self, symbol, timeframe, count):
        if timeframe == "15m":
            raise DataUnavailable(symbol, timeframe, "interval not served")
        return super().get_candles(symbol, timeframe, count)


def test_missing_higher_timeframe_is_resampled(tmp_path):
    cycle, _ = _cycle(tmp_path, overrides={"correlation.enabled": False}, provider=_NoSlowCandles())
    snapshot = cycle.fetch_snapshot("SOLUSDT")
    base = snapshot.frames["1m"]
    slow = snapshot.frames["15m"]
    assert len(slow) == pytest.approx(len(base) / 15, abs=1)
    assert slow["high"].max() == base["high"].max()
    assert slow["volume"].sum() == pytest.approx(base["volume"].sum())

    result = cycle.tick("SOLUSDT", now=NOW)
    assert result.action != "skipped"
    assert "15m" in result.signal.timeframe_votes


def test_exits_are_settled_before_entries(tmp_path):
    cycle, store = _cycle(tmp_path)
    last_close = _rising_candles(200)[-1].close
    stale = Position(
        id="stale1",
        symbol="SOLUSDT",
        side=LONG,
        entry_price=last_close * 1.05,
        amount=1.0,
        leverage=10.0,
        margin=last_close * 0.105,
        stop_loss=last_close * 1.02,
        take_profit=last_close * 1.10,
        opened_at=NOW - 3600,
    )
    store.save_positions([stale])
    cycle, store = _cycle(tmp_path)

    result = cycle.tick("SOLUSDT", now=NOW)
    assert [t.exit_reason for t in result.closed] == ["stop-loss"]
    # the stop-loss starts a cooldown, so the buy signal is rejected
    assert result.action == "rejected"
    assert result.detail.startswith("cooldown")
    assert store.load_positions() == []
    assert store.load_trades()[0].id == "stale1"


def test_drawdown_pause_blocks_entries(tmp_path):
    cycle, store = _cycle(tmp_path)
    store.update_state(drawdown=DrawdownState(equity_peak=20000.0, paused_until=None))
    cycle, store = _cycle(tmp_path)

    result = cycle.tick("SOLUSDT", now=NOW)
    assert result.drawdown_event is not None
    assert result.action == "paused"
    assert store.load_positions() == []
    assert store.get_drawdown_state().paused_until == pytest.approx(NOW + 30 * 60)


def test_blocked_hours_force_hold(tmp_path):
    cycle, store = _cycle(
        tmp_path, {"time_filter.enabled": True, "time_filter.blocked_hours": list(range(24))}
    )
    result = cycle.tick("SOLUSDT", now=NOW)
    assert result.action == "hold"
    assert result.signal.reason == "hold: hour 10 UTC blocked"
    assert store.load_positions() == []


def test_new_config_snapshot_is_adopted(tmp_path):
    cycle, store = _cycle(tmp_path)
    tighter = EngineConfig().with_overrides({"trading.max_open_trades_per_symbol": 1}).validate()
    assert cycle.tick("SOLUSDT", tighter, now=NOW).action == "opened"
    second = cycle.tick("SOLUSDT", tighter, now=NOW + 60)
    assert second.action == "rejected"
    assert second.detail.startswith("position-limit")


def test_status_exposes_engine_state(tmp_path):
    cycle, _ = _cycle(tmp_path)
    cycle.tick("SOLUSDT", now=NOW)
    status = cycle.status(NOW)
    assert status["cycle_count"] == 1
    assert status["last_signals"]["SOLUSDT"]["direction"] == "buy"
    assert len(status["open_positions"]) == 1
    assert status["drawdown"]["paused"] is False
    assert status["martingale"] == {"streak": 0, "multiplier": 1.0}
    json.dumps(status)
