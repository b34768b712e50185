import dataclasses

import pytest

from config import EngineConfig, StrategySettings, TradingSettings, load_engine_config
from errors import ConfigurationError


def test_defaults_are_valid():
    config = EngineConfig().validate()
    assert config.trading.symbols == ("SOLUSDT", "ETHUSDT", "AVAXUSDT")
    assert config.trading.stop_loss_percent == 2.5
    assert config.martingale.mode == "anti-martingale"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("TRADING_SYMBOLS", "solusdt, btcusdt")
    monkeypatch.setenv("STOP_LOSS_PERCENT", "1.5")
    monkeypatch.setenv("TRAILING_STOP_ENABLED", "false")
    monkeypatch.setenv("BLOCKED_HOURS", "1,2")
    monkeypatch.setenv("MARTINGALE_MODE", "Martingale")
    monkeypatch.setenv("STRATEGY_TIMEFRAMES", "5m,1H")
    config = load_engine_config()
    assert config.trading.symbols == ("SOLUSDT", "BTCUSDT")
    assert config.trading.stop_loss_percent == 1.5
    assert config.trailing.enabled is False
    assert config.time_filter.blocked_hours == (1, 2)
    assert config.martingale.mode == "martingale"
    assert config.strategy.timeframes == ("5m", "1h")


@pytest.mark.parametrize(
    "env, value",
    [
        ("STOP_LOSS_PERCENT", "2..5"),
        ("MAX_DRAWDOWN_PERCENT", "ten"),
        ("MAX_OPEN_TRADES", "3.5"),
        ("TRAILING_STOP_ENABLED", "maybe"),
    ],
)
def test_malformed_environment_value_names_the_variable(monkeypatch, env, value):
    monkeypatch.setenv(env, value)
    with pytest.raises(ConfigurationError, match=env):
        load_engine_config()


def test_blank_environment_value_keeps_default(monkeypatch):
    monkeypatch.setenv("TRADE_AMOUNT", "  ")
    assert load_engine_config().trading.trade_amount == 150.0


@pytest.mark.parametrize(
    "env, value",
    [
        ("LEVERAGE", "0"),
        ("STOP_LOSS_PERCENT", "-1"),
        ("BLOCKED_HOURS", "25"),
        ("RSI_PERIOD", "0"),
        ("MARTINGALE_MODE", "yolo"),
        ("DRAWDOWN_RESUME_POLICY", "never"),
    ],
)
def test_invalid_environment_fails_fast(monkeypatch, env, value):
    monkeypatch.setenv(env, value)
    with pytest.raises(ConfigurationError):
        load_engine_config()


def test_non_integer_hour_is_rejected(monkeypatch):
    monkeypatch.setenv("BLOCKED_HOURS", "1,two")
    with pytest.raises(ConfigurationError):
        load_engine_config()


def test_candle_count_must_cover_slow_ema():
    config = dataclasses.replace(EngineConfig(), trading=TradingSettings(candle_count=30))
    with pytest.raises(ConfigurationError):
        config.validate()


def test_ema_periods_must_be_ordered():
    config = dataclasses.replace(EngineConfig(), strategy=StrategySettings(ema_fast_period=60))
    with pytest.raises(ConfigurationError):
        config.validate()


def test_with_overrides_coerces_to_field_types():
    base = EngineConfig()
    config = base.with_overrides(
        {
            "trading.max_open_trades": "7",
            "trading.stop_loss_percent": "1.75",
            "trailing.enabled": "off",
            "time_filter.blocked_hours": "[1, 2, 3]",
            "trading.symbols": ["BTCUSDT"],
        }
    )
    assert config.trading.max_open_trades == 7
    assert config.trading.stop_loss_percent == 1.75
    assert config.trailing.enabled is False
    assert config.time_filter.blocked_hours == (1, 2, 3)
    assert config.trading.symbols == ("BTCUSDT",)
    # the original snapshot is untouched
    assert base.trading.max_open_trades == 15


def test_with_overrides_rejects_unknown_keys_and_bad_values():
    with pytest.raises(ConfigurationError):
        EngineConfig().with_overrides({"trading.nope": 1})
    with pytest.raises(ConfigurationError):
        EngineConfig().with_overrides({"bogus": 1})
    with pytest.raises(ConfigurationError):
        EngineConfig().with_overrides({"trading.leverage": "high"})


def test_snapshot_is_immutable():
    config = EngineConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.trading.leverage = 5.0
