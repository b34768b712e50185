"""
Orchestrator and command line entry point for the trading decision engine.

:class:`TradingAgent` runs one asyncio event loop in a daemon thread with one
task per symbol.  Each task ticks every ``poll_interval_seconds``:

1. resolve an immutable config snapshot (environment + config store),
2. fetch candles, reference momentum and sentiment off the loop
   (``asyncio.to_thread``),
3. evaluate exits and entries inside a single ``asyncio.Lock`` so the
   balance, positions, streak and drawdown state have one writer.

``stop()`` is cooperative: the flag is checked at every tick boundary and
in-flight I/O is allowed to finish.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import threading
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from config import EngineConfig, load_engine_config
from config_store import JsonConfigStore
from errors import ConfigurationError, DataUnavailable, PersistenceError
from fear_greed import FearGreedIndexFetcher
from log_utils import read_logs, setup_logger
from market_data import BinanceCandleProvider
from observability import latest_metrics, log_event
from trade_schema import iso_utc
from trade_storage import TradeStore
from trading_cycle import CycleResult, TradingCycle

logger = logging.getLogger(__name__)


class AgentState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSING = "pausing"
    PAUSED = "paused"


class TradingAgent:
    """Run :class:`TradingCycle` ticks for every configured symbol."""

    def __init__(
        self,
        base_config: EngineConfig,
        cycle: TradingCycle,
        config_store: Optional[JsonConfigStore] = None,
        clock=time.time,
    ) -> None:
        self.base_config = base_config.validate()
        self.cycle = cycle
        self.config_store = config_store
        self._clock = clock
        self._state = AgentState.STOPPED
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._config = self.resolve_config()
        self.last_results: Dict[str, CycleResult] = {}

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def resolve_config(self) -> EngineConfig:
        """Return the snapshot for the next tick.

        A store override that fails validation keeps the previous snapshot in
        force and is reported in the log.
        """

        if self.config_store is None:
            return self.base_config
        try:
            return self.config_store.snapshot(self.base_config)
        except (ConfigurationError, PersistenceError) as exc:
            previous = getattr(self, "_config", self.base_config)
            logger.error("Ignoring invalid stored configuration: %s", exc)
            return previous

    @property
    def config(self) -> EngineConfig:
        return self._config

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------
    @property
    def state(self) -> AgentState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: AgentState) -> None:
        with self._state_lock:
            previous = self._state
            self._state = state
        if previous != state:
            log_event(logger, "agent_state", previous=previous.value, state=state.value)

    def start(self) -> None:
        """Start the event loop in a daemon thread if not already running."""

        with self._state_lock:
            if self._thread and self._thread.is_alive():
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run_loop, name="trading-agent", daemon=True)
        self._set_state(AgentState.RUNNING)
        self._thread.start()

    def stop(self, timeout: float = 30.0) -> None:
        self._stop_event.set()
        with self._state_lock:
            thread = self._thread
            self._thread = None
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._set_state(AgentState.STOPPED)

    def pause(self) -> None:
        """Stop taking ticks after the in-flight ones finish."""

        if self.state == AgentState.RUNNING:
            self._set_state(AgentState.PAUSING)

    def resume(self) -> None:
        if self.state in (AgentState.PAUSING, AgentState.PAUSED):
            self._set_state(AgentState.RUNNING)

    def status(self) -> Dict[str, Any]:
        now = self._clock()
        payload = {"state": self.state.value, "symbols": list(self._config.trading.symbols), "ts": iso_utc(now)}
        payload.update(self.cycle.status(now))
        return payload

    # ------------------------------------------------------------------
    # Event loop
    # ------------------------------------------------------------------
    def _run_loop(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self.run())
        except Exception:
            logger.exception("Trading loop crashed")
        finally:
            loop.run_until_complete(loop.shutdown_default_executor())
            loop.close()

    async def run(self) -> None:
        """Run symbol tasks until :meth:`stop` is called."""

        if self.state == AgentState.STOPPED:
            self._set_state(AgentState.RUNNING)
        lock = asyncio.Lock()
        tasks = [asyncio.create_task(self._symbol_loop(symbol, lock)) for symbol in self._config.trading.symbols]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()

    async def _symbol_loop(self, symbol: str, lock: asyncio.Lock) -> None:
        while not self._stop_event.is_set():
            if self.state == AgentState.PAUSING:
                self._set_state(AgentState.PAUSED)
            if self.state == AgentState.RUNNING:
                await self.tick_once(symbol, lock)
            await self._sleep(self._config.trading.poll_interval_seconds)

    async def _sleep(self, seconds: float) -> None:
        deadline = time.monotonic() + float(seconds)
        while not self._stop_event.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            await asyncio.sleep(min(remaining, 0.5))

    async def tick_once(self, symbol: str, lock: Optional[asyncio.Lock] = None) -> Optional[CycleResult]:
        """Run one tick for ``symbol``; errors are logged and never escape."""

        lock = lock or asyncio.Lock()
        self._config = config = self.resolve_config()
        now = self._clock()
        try:
            snapshot = await asyncio.to_thread(self.cycle.fetch_snapshot, symbol, config)
        except DataUnavailable as exc:
            result = self.cycle.skip(symbol, exc, now)
            self.last_results[symbol] = result
            return result
        except Exception:
            logger.exception("Unexpected error fetching data for %s", symbol)
            return None

        try:
            async with lock:
                result = await asyncio.to_thread(self.cycle.evaluate, snapshot, config, self._clock())
        except PersistenceError as exc:
            logger.error("Tick for %s aborted, state unchanged: %s", symbol, exc)
            return None
        except Exception:
            logger.exception("Unexpected error evaluating %s", symbol)
            return None

        self.last_results[symbol] = result
        if result.action == "opened" or result.closed:
            logger.info(
                "%s: %s (%s), closed %d position(s)",
                symbol,
                result.action,
                result.signal.reason if result.signal else result.detail,
                len(result.closed),
            )
        else:
            logger.debug("%s: %s", symbol, result.signal.reason if result.signal else result.detail)
        return result


# ----------------------------------------------------------------------
# Wiring and CLI
# ----------------------------------------------------------------------
def build_agent(
    base_config: Optional[EngineConfig] = None,
    provider=None,
    store: Optional[TradeStore] = None,
    config_store: Optional[JsonConfigStore] = None,
    sentiment=None,
) -> TradingAgent:
    """Assemble an agent from environment defaults and the default adapters."""

    base = base_config or load_engine_config()
    config_store = config_store or JsonConfigStore()
    resolved = config_store.snapshot(base)
    store = store or TradeStore(initial_balance=resolved.trading.initial_balance)
    provider = provider or BinanceCandleProvider()
    if sentiment is None and resolved.sentiment.enabled:
        sentiment = FearGreedIndexFetcher()
    cycle = TradingCycle(provider, store, resolved, sentiment=sentiment)
    return TradingAgent(base, cycle, config_store=config_store)


def offline_status(store: TradeStore) -> Dict[str, Any]:
    """Summarise persisted state without touching the exchange."""

    state = store.load_state()
    stats = store.stats()
    paused_until = (state.get("drawdown") or {}).get("paused_until")
    return {
        "balance": state["balance"],
        "open_positions": [p.to_dict() for p in store.load_positions()],
        "martingale_streak": state["martingale_streak"],
        "drawdown": {
            "equity_peak": (state.get("drawdown") or {}).get("equity_peak"),
            "paused_until": iso_utc(paused_until) if paused_until else None,
            "awaiting_peak": bool((state.get("drawdown") or {}).get("awaiting_peak", False)),
        },
        "blocked_hours": state["blocked_hours"],
        "stats": {
            "total_trades": stats.total_trades,
            "wins": stats.wins,
            "losses": stats.losses,
            "win_rate": stats.win_rate,
            "total_profit": stats.total_profit,
        },
        "recent_cycles": store.read_cycles(limit=5),
        "metrics": latest_metrics(),
    }


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Trading decision and risk management engine.")
    parser.add_argument("--log-level", default=None, help="Override ENGINE_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    run_parser = sub.add_parser("run", help="Run the trading loop")
    run_parser.add_argument("--once", action="store_true", help="Tick every symbol once and exit")

    sub.add_parser("status", help="Show persisted engine state")

    get_parser = sub.add_parser("config-get", help="Show a configuration value")
    get_parser.add_argument("key", nargs="?", help="Dotted key, e.g. trading.stop_loss_percent")

    set_parser = sub.add_parser("config-set", help="Override a configuration value")
    set_parser.add_argument("key")
    set_parser.add_argument("value")
    set_parser.add_argument("--actor", default="cli")

    logs_parser = sub.add_parser("logs", help="Print the tail of the engine log")
    logs_parser.add_argument("--tail", type=int, default=100)
    logs_parser.add_argument("--symbol", help="Only lines mentioning this symbol")

    args = parser.parse_args(argv)
    setup_logger(args.log_level)

    try:
        base = load_engine_config()
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2
    config_store = JsonConfigStore()

    if args.command == "config-get":
        try:
            resolved = config_store.snapshot(base).to_dict()
        except ConfigurationError as exc:
            logger.error("Invalid stored configuration: %s", exc)
            return 2
        if not args.key:
            _print_json(resolved)
            return 0
        section, _, name = args.key.partition(".")
        if section not in resolved or name not in resolved[section]:
            logger.error("Unknown configuration key %s", args.key)
            return 2
        override = config_store.get(args.key)
        _print_json({"key": args.key, "value": resolved[section][name], "override": override.to_dict() if override else None})
        return 0

    if args.command == "config-set":
        try:
            value = config_store.set(args.key, args.value, actor=args.actor, base=base)
        except ConfigurationError as exc:
            logger.error("Rejected %s=%s: %s", args.key, args.value, exc)
            return 2
        _print_json({"key": args.key, **value.to_dict()})
        return 0

    if args.command == "logs":
        print(read_logs(args.tail, symbol=args.symbol), end="")
        return 0

    if args.command == "status":
        resolved = config_store.snapshot(base)
        _print_json(offline_status(TradeStore(initial_balance=resolved.trading.initial_balance)))
        return 0

    agent = build_agent(base, config_store=config_store)
    if args.once:
        results: List[Dict[str, Any]] = []

        async def _tick_all() -> None:
            lock = asyncio.Lock()
            for symbol in agent.config.trading.symbols:
                result = await agent.tick_once(symbol, lock)
                if result is not None:
                    results.append(result.to_journal(time.time(), agent.cycle.positions.balance))

        asyncio.run(_tick_all())
        _print_json(results)
        return 0

    logger.info("Starting trading engine for %s", ", ".join(agent.config.trading.symbols))
    agent.start()
    try:
        while agent.state != AgentState.STOPPED:
            time.sleep(1.0)
    except KeyboardInterrupt:
        logger.info("Stopping trading engine...")
    finally:
        agent.stop()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
