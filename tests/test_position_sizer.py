import pytest

from config import SizingSettings
from position_sizer import calculate_multiplier, get_position_size
from trade_schema import TradeStats


def _stats(total, win_rate):
    wins = round(total * win_rate / 100)
    return TradeStats(total_trades=total, wins=wins, losses=total - wins, win_rate=win_rate)


def test_insufficient_history_uses_base_amount():
    decision = get_position_size(150, _stats(4, 100.0), SizingSettings())
    assert decision.amount == 150.0
    assert decision.multiplier == 1.0
    assert decision.confidence == "low"
    assert "insufficient data" in decision.reason


def test_high_win_rate_increases_size():
    decision = get_position_size(150, _stats(20, 65.0), SizingSettings())
    assert decision.multiplier == pytest.approx(1.2)
    assert decision.amount == pytest.approx(180.0)
    assert decision.confidence == "medium"
    assert decision.reason.startswith("increased size")


def test_low_win_rate_reduces_size():
    decision = get_position_size(150, _stats(40, 35.0), SizingSettings())
    assert decision.multiplier == pytest.approx(0.8)
    assert decision.amount == pytest.approx(120.0)
    assert decision.confidence == "high"


def test_multiplier_is_bounded():
    settings = SizingSettings(step_per_point=0.1)
    assert calculate_multiplier(_stats(50, 100.0), settings)[0] == settings.max_multiplier
    assert calculate_multiplier(_stats(50, 0.0), settings)[0] == settings.min_multiplier


def test_neutral_band_keeps_base():
    multiplier, reason = calculate_multiplier(_stats(20, 50.0), SizingSettings())
    assert multiplier == 1.0
    assert reason.startswith("normal size")


def test_high_volatility_divides_amount_with_floor():
    settings = SizingSettings()
    decision = get_position_size(150, _stats(0, 0.0), settings, volatility_ratio=2.0)
    assert decision.amount == pytest.approx(75.0)
    assert "high volatility" in decision.reason
    floored = get_position_size(150, _stats(0, 0.0), settings, volatility_ratio=100.0)
    assert floored.amount == pytest.approx(150 * settings.min_multiplier)


def test_normal_volatility_is_ignored():
    decision = get_position_size(150, _stats(0, 0.0), SizingSettings(), volatility_ratio=1.2)
    assert decision.amount == 150.0
