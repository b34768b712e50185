"""One decision cycle per symbol.

A tick is split in two halves so the orchestrator can keep blocking I/O out
of the single-writer section:

* :meth:`TradingCycle.fetch_snapshot` – candles for every timeframe, the
  reference-market momentum and the sentiment score (network only).
* :meth:`TradingCycle.evaluate` – exits first, then drawdown bookkeeping,
  signal generation, reversal closes and the entry decision.  All shared
  state (balance, positions, streak, drawdown) is mutated here.

:meth:`TradingCycle.tick` runs both halves synchronously.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd

from correlation_filter import ReferenceMomentumCache
from drawdown_guard import DrawdownEvent, DrawdownGuard
from errors import ConfigurationError, DataUnavailable
from hour_optimizer import HourOptimizer
from indicators import calculate_indicator_set
from market_data import normalise_symbol
from martingale_sizer import MartingaleSizer
from multi_timeframe import candles_to_frame, frames_from_base
from observability import log_event, record_metric
from position_manager import OpenRequest, PositionManager
from position_sizer import get_position_size
from signal_generator import SignalGates, generate_signal
from time_filter import effective_blocked_hours
from trade_schema import HOLD, MartingaleState, Signal, Trade, iso_utc, side_for_direction
from volatility_regime import adjust_for_volatility, volatility_ratio

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarketSnapshot:
    symbol: str
    frames: Dict[str, pd.DataFrame]
    reference_momentum: Optional[str] = None
    sentiment_score: Optional[int] = None


@dataclass
class CycleResult:
    symbol: str
    action: str  # 'opened' | 'rejected' | 'hold' | 'paused' | 'skipped'
    price: Optional[float] = None
    signal: Optional[Signal] = None
    closed: List[Trade] = field(default_factory=list)
    position_id: Optional[str] = None
    detail: str = ""
    drawdown_event: Optional[DrawdownEvent] = None

    def to_journal(self, now: float, balance: float) -> Dict[str, Any]:
        return {
            "ts": iso_utc(now),
            "symbol": self.symbol,
            "price": self.price,
            "signal": self.signal.direction if self.signal else None,
            "confidence": self.signal.confidence if self.signal else None,
            "reason": self.signal.reason if self.signal else self.detail,
            "action": self.action,
            "detail": self.detail,
            "closed": [{"id": t.id, "exit_reason": t.exit_reason, "profit": t.profit} for t in self.closed],
            "balance": round(balance, 8),
        }


class TradingCycle:
    def __init__(self, provider, store, config, sentiment=None, clock=time.time) -> None:
        """``provider`` serves candles, ``store`` is a :class:`trade_storage.TradeStore`,
        ``sentiment`` is an optional object with ``fetch() -> Optional[int]``."""

        self.provider = provider
        self.store = store
        self.config = config
        self.sentiment = sentiment
        self._clock = clock
        self.martingale = MartingaleSizer.from_state(
            MartingaleState(streak=store.get_martingale_streak(), current_multiplier=1.0),
            config.martingale,
        )
        self.positions = PositionManager(store, self.martingale, config)
        self.drawdown = DrawdownGuard(config.drawdown, store.get_drawdown_state())
        self.hours = HourOptimizer(store.get_blocked_hours())
        self.momentum = ReferenceMomentumCache(provider, config.correlation, clock=clock)
        self.last_prices: Dict[str, float] = {}
        self.last_signals: Dict[str, Signal] = {}
        self.cycle_count = 0
        self.last_cycle_at: Optional[float] = None

    def configure(self, config) -> None:
        """Adopt a new configuration snapshot at a tick boundary."""

        self.config = config
        self.positions.configure(config)
        self.drawdown.configure(config.drawdown)
        self.momentum.configure(config.correlation)

    # ------------------------------------------------------------------
    # I/O half
    # ------------------------------------------------------------------
    def fetch_snapshot(self, symbol: str, config=None) -> MarketSnapshot:
        config = config or self.config
        frames: Dict[str, pd.DataFrame] = {}
        base_tf = config.strategy.timeframes[0]
        for tf in config.strategy.timeframes:
            try:
                candles = self.provider.get_candles(symbol, tf, config.trading.candle_count)
                if not candles:
                    raise DataUnavailable(symbol, tf, "no candles returned")
            except DataUnavailable:
                # Higher timeframes can be rebuilt from the base interval.
                if tf == base_tf or base_tf not in frames:
                    raise
                frames[tf] = self._resampled(symbol, frames[base_tf], base_tf, tf)
                continue
            frames[tf] = candles_to_frame(candles)
        momentum = None
        if config.correlation.enabled and normalise_symbol(symbol) != normalise_symbol(config.correlation.reference_symbol):
            momentum = self.momentum.get()
        score = None
        if config.sentiment.enabled and self.sentiment is not None:
            score = self.sentiment.fetch()
        return MarketSnapshot(symbol=symbol, frames=frames, reference_momentum=momentum, sentiment_score=score)

    @staticmethod
    def _resampled(symbol: str, base: pd.DataFrame, base_tf: str, tf: str) -> pd.DataFrame:
        try:
            frame = frames_from_base(base, base_tf, [tf])[tf]
        except ConfigurationError as exc:
            raise DataUnavailable(symbol, tf, str(exc)) from exc
        logger.warning("%s %s candles unavailable, resampled from %s", symbol, tf, base_tf)
        return frame

    # ------------------------------------------------------------------
    # State half
    # ------------------------------------------------------------------
    def evaluate(self, snapshot: MarketSnapshot, config=None, now: Optional[float] = None) -> CycleResult:
        now = self._clock() if now is None else float(now)
        if config is not None and config is not self.config:
            self.configure(config)
        config = self.config
        symbol = snapshot.symbol
        base = snapshot.frames[config.strategy.timeframes[0]]
        last = base.iloc[-1]
        price = float(last["close"])
        self.last_prices[symbol] = price

        # Exits are settled and persisted before any entry decision.
        closed = self.positions.check_exits(symbol, price, float(last["high"]), float(last["low"]), now)
        self._learn_hours(closed, config)

        equity = self.positions.equity(self.last_prices)
        event = self.drawdown.observe(equity, now, persist=lambda state: self.store.update_state(drawdown=state))
        record_metric("equity", equity)

        indicator_sets = {
            tf: calculate_indicator_set(frame, config.strategy) for tf, frame in snapshot.frames.items()
        }
        gates = SignalGates(
            now=now,
            blocked_hours=effective_blocked_hours(config, self.hours.blocked_hours),
            avoid_weekends=config.time_filter.avoid_weekends,
            reference_momentum=snapshot.reference_momentum,
            strict_correlation=config.correlation.strict_mode,
            loose_confidence_penalty=config.correlation.loose_confidence_penalty,
            reference_label=config.correlation.reference_symbol.replace("USDT", "") or "reference",
            sentiment_score=snapshot.sentiment_score if config.sentiment.enabled else None,
        )
        signal = generate_signal(indicator_sets, gates, config.strategy, symbol=symbol)
        self.last_signals[symbol] = signal
        result = CycleResult(symbol=symbol, action=HOLD, price=price, signal=signal, closed=list(closed))
        result.drawdown_event = event

        if signal.actionable:
            side = side_for_direction(signal.direction)
            if config.trading.close_on_reversal:
                reversed_trades = self.positions.close_opposing(symbol, side, price, now)
                result.closed.extend(reversed_trades)
                self._learn_hours(reversed_trades, config)
            if self.drawdown.is_paused(now):
                result.action = "paused"
                result.detail = f"drawdown pause ({self.drawdown.remaining_minutes(now):.1f} min left)"
            else:
                self._enter(result, side, base, config, now)

        self.cycle_count += 1
        self.last_cycle_at = now
        self.store.append_cycle(result.to_journal(now, self.positions.balance))
        return result

    def _enter(self, result: CycleResult, side: str, base: pd.DataFrame, config, now: float) -> None:
        vol = config.volatility
        ratio = volatility_ratio(base, vol.atr_period, vol.avg_atr_period) if vol.enabled else None
        adjustment = adjust_for_volatility(ratio, config)
        sizing = get_position_size(config.trading.trade_amount, self.store.stats(), config.sizing, ratio)
        streak_sizing = self.martingale.get_position_size(sizing.amount)
        request = OpenRequest(
            symbol=result.symbol,
            side=side,
            price=result.price,
            notional=streak_sizing.size,
            leverage=adjustment.leverage,
            stop_loss_percent=adjustment.sl_percent,
            take_profit_percent=adjustment.tp_percent,
            sizing_reason=f"{sizing.reason}; streak {streak_sizing.streak} x{streak_sizing.multiplier:g}",
        )
        outcome = self.positions.open(request, now)
        if outcome.opened:
            result.action = "opened"
            result.position_id = outcome.position.id
            result.detail = request.sizing_reason
        else:
            result.action = "rejected"
            result.detail = f"{outcome.rejection.code}: {outcome.rejection}"
            log_event(logger, "entry_rejected", symbol=result.symbol, code=outcome.rejection.code, detail=str(outcome.rejection))

    def _learn_hours(self, trades: List[Trade], config) -> None:
        for _ in trades:
            self.hours.record_closed_trade()
        if trades and self.hours.due(config.hour_optimization):
            previous = list(self.hours.blocked_hours)
            hours = self.hours.optimize(self.store.load_trades(), config.hour_optimization)
            if hours != previous:
                self.store.update_state(blocked_hours=hours)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    def tick(self, symbol: str, config=None, now: Optional[float] = None) -> CycleResult:
        """Fetch and evaluate one symbol; unavailable data skips the tick."""

        config = config or self.config
        now = self._clock() if now is None else float(now)
        try:
            snapshot = self.fetch_snapshot(symbol, config)
        except DataUnavailable as exc:
            return self.skip(symbol, exc, now)
        return self.evaluate(snapshot, config, now)

    def skip(self, symbol: str, exc: DataUnavailable, now: float) -> CycleResult:
        logger.warning("Skipping %s tick at %s: %s", symbol, iso_utc(now), exc)
        log_event(logger, "tick_skipped", symbol=symbol, cycle_ts=iso_utc(now), reason=str(exc))
        return CycleResult(symbol=symbol, action="skipped", detail=str(exc))

    def status(self, now: Optional[float] = None) -> Dict[str, Any]:
        now = self._clock() if now is None else float(now)
        dd = self.drawdown.export_state()
        mstate = self.martingale.export_state()
        return {
            "cycle_count": self.cycle_count,
            "last_cycle_at": iso_utc(self.last_cycle_at) if self.last_cycle_at else None,
            "balance": round(self.positions.balance, 8),
            "equity": round(self.positions.equity(self.last_prices), 8),
            "open_positions": [p.to_dict() for p in self.positions.open_positions()],
            "last_signals": {s: sig.to_dict() for s, sig in self.last_signals.items()},
            "drawdown": {
                "equity_peak": dd.equity_peak,
                "paused_until": iso_utc(dd.paused_until) if dd.paused_until else None,
                "awaiting_peak": dd.awaiting_peak,
                "paused": self.drawdown.is_paused(now),
            },
            "cooldowns": [
                {"symbol": e.symbol, "expires_at": iso_utc(e.expires_at)} for e in self.positions.cooldowns.entries(now)
            ],
            "martingale": {"streak": mstate.streak, "multiplier": mstate.current_multiplier},
            "blocked_hours": list(self.hours.blocked_hours),
        }


__all__ = ["MarketSnapshot", "CycleResult", "TradingCycle"]
