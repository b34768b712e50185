import asyncio
import json
import time

import pytest

import agent as agent_module
import config_store as config_store_module
import observability
from agent import AgentState, TradingAgent, main, offline_status
from config import EngineConfig
from config_store import JsonConfigStore
from errors import PersistenceError
from trade_storage import TradeStore
from trading_cycle import TradingCycle
from test_trading_cycle import NOW, FakeProvider


@pytest.fixture(autouse=True)
def _metrics_in_tmp(tmp_path, monkeypatch):
    monkeypatch.setattr(observability, "_recorder", observability.MetricsRecorder(str(tmp_path / "metrics.csv")))


def _agent(tmp_path, overrides=None, provider=None, store_overrides=None):
    base = EngineConfig().with_overrides(overrides or {}).validate()
    store = TradeStore.in_directory(str(tmp_path), initial_balance=base.trading.initial_balance)
    config_store = JsonConfigStore(str(tmp_path / "config.json"))
    for key, value in (store_overrides or {}).items():
        config_store.set(key, value, actor="test")
    cycle = TradingCycle(provider or FakeProvider(), store, base, clock=lambda: NOW)
    return TradingAgent(base, cycle, config_store=config_store, clock=lambda: NOW), store, config_store


def test_tick_once_runs_a_cycle(tmp_path):
    agent, store, _ = _agent(tmp_path)
    result = asyncio.run(agent.tick_once("SOLUSDT"))
    assert result.action == "opened"
    assert agent.last_results["SOLUSDT"] is result
    assert len(store.load_positions()) == 1


def test_tick_once_skips_unavailable_symbol(tmp_path):
    agent, store, _ = _agent(tmp_path, provider=FakeProvider(fail_symbols={"ETHUSDT"}))
    result = asyncio.run(agent.tick_once("ETHUSDT"))
    assert result.action == "skipped"
    assert store.read_cycles() == []


def test_persistence_error_aborts_tick(tmp_path, monkeypatch):
    agent, store, _ = _agent(tmp_path)

    def fail(*_args, **_kwargs):
        raise PersistenceError("disk full")

    monkeypatch.setattr(agent.cycle, "evaluate", fail)
    assert asyncio.run(agent.tick_once("SOLUSDT")) is None
    assert "SOLUSDT" not in agent.last_results


def test_store_overrides_apply_at_tick_boundary(tmp_path):
    agent, _, config_store = _agent(tmp_path)
    assert agent.config.trading.stop_loss_percent == 2.5
    config_store.set("trading.stop_loss_percent", 1.5)
    asyncio.run(agent.tick_once("SOLUSDT"))
    assert agent.config.trading.stop_loss_percent == 1.5
    assert agent.cycle.config.trading.stop_loss_percent == 1.5


def test_invalid_stored_override_keeps_previous_snapshot(tmp_path):
    agent, _, config_store = _agent(tmp_path, store_overrides={"trading.leverage": 5})
    assert agent.config.trading.leverage == 5.0
    data = json.loads((tmp_path / "config.json").read_text())
    data["values"]["trading.leverage"] = {"kind": "number", "value": -1}
    (tmp_path / "config.json").write_text(json.dumps(data))
    assert agent.resolve_config().trading.leverage == 5.0


def test_pause_and_resume_transitions(tmp_path):
    agent, _, _ = _agent(tmp_path)
    agent.pause()
    assert agent.state == AgentState.STOPPED
    agent._set_state(AgentState.RUNNING)
    agent.pause()
    assert agent.state == AgentState.PAUSING
    agent.resume()
    assert agent.state == AgentState.RUNNING


def test_start_and_stop_background_loop(tmp_path):
    agent, _, _ = _agent(tmp_path, overrides={"trading.poll_interval_seconds": 0.05})
    agent.start()
    try:
        deadline = time.monotonic() + 10
        while agent.cycle.cycle_count < 3 and time.monotonic() < deadline:
            time.sleep(0.05)
        assert agent.state == AgentState.RUNNING
        assert agent.cycle.cycle_count >= 3
    finally:
        agent.stop(timeout=10)
    assert agent.state == AgentState.STOPPED
    status = agent.status()
    assert status["state"] == "stopped"
    assert set(status["last_signals"]) <= {"SOLUSDT", "ETHUSDT", "AVAXUSDT"}


def test_paused_agent_takes_no_ticks(tmp_path):
    agent, _, _ = _agent(tmp_path, overrides={"trading.poll_interval_seconds": 0.05})
    agent._set_state(AgentState.PAUSING)

    async def run_briefly():
        task = asyncio.create_task(agent._symbol_loop("SOLUSDT", asyncio.Lock()))
        await asyncio.sleep(0.2)
        agent._stop_event.set()
        await task

    asyncio.run(run_briefly())
    assert agent.state == AgentState.PAUSED
    assert agent.cycle.cycle_count == 0


def test_offline_status_reads_persisted_state(tmp_path):
    agent, store, _ = _agent(tmp_path)
    asyncio.run(agent.tick_once("SOLUSDT"))
    status = offline_status(store)
    assert len(status["open_positions"]) == 1
    assert status["balance"] < 10000.0
    assert status["recent_cycles"][-1]["action"] == "opened"


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    monkeypatch.setattr(config_store_module, "CONFIG_STORE_FILE", str(tmp_path / "config.json"))
    monkeypatch.setattr(agent_module, "setup_logger", lambda name: None)
    return tmp_path


def test_cli_config_set_and_get(cli_env, capsys):
    assert main(["config-set", "trading.stop_loss_percent", "2.0", "--actor", "tester"]) == 0
    capsys.readouterr()
    assert main(["config-get", "trading.stop_loss_percent"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["value"] == 2.0
    assert payload["override"] == {"kind": "number", "value": 2.0}
    audit = JsonConfigStore(str(cli_env / "config.json")).audit_log()
    assert audit[-1]["actor"] == "tester"


def test_cli_rejects_invalid_values(cli_env):
    assert main(["config-set", "trading.leverage", "-5"]) == 2
    assert main(["config-get", "trading.nope"]) == 2


def test_cli_config_set_checks_environment_config(cli_env, monkeypatch):
    monkeypatch.setenv("STRATEGY_TIMEFRAMES", "1m,5m")
    assert main(["config-set", "strategy.min_confluence", "3"]) == 2
    assert JsonConfigStore(str(cli_env / "config.json")).values() == {}
