"""Multi-timeframe signal generation.

Each timeframe casts a vote from three indicator sub-votes (RSI level, fast/
slow EMA cross, MACD histogram sign).  The combined direction needs
``min_confluence`` agreeing timeframes.  The indicator decision then passes
through the protective gates in a fixed order:

1. hour / weekend gate
2. reference-market correlation gate
3. sentiment adjustment
4. minimum confidence floor

Every :class:`Signal` carries a ``reason`` naming what decided it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Mapping, Optional, Tuple

import pandas as pd

from correlation_filter import apply_correlation_filter
from observability import log_event
from time_filter import is_tradeable_hour, is_weekend, utc_hour
from trade_schema import BUY, HOLD, SELL, Signal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignalGates:
    """Inputs of the protective gates for one tick.

    ``reference_momentum`` is ``None`` when the correlation gate is disabled;
    ``sentiment_score`` is ``None`` when sentiment is disabled or unavailable.
    """

    now: float
    blocked_hours: FrozenSet[int] = frozenset()
    avoid_weekends: bool = False
    reference_momentum: Optional[str] = None
    strict_correlation: bool = False
    loose_confidence_penalty: float = 0.5
    reference_label: str = "BTC"
    sentiment_score: Optional[float] = None


def _last(frame: pd.DataFrame, column: str) -> Optional[float]:
    if frame is None or frame.empty or column not in frame.columns:
        return None
    value = frame[column].iloc[-1]
    return None if pd.isna(value) else float(value)


def timeframe_vote(indicators: pd.DataFrame, params) -> Tuple[str, int]:
    """Return ``(direction, defined_sub_votes)`` for one timeframe.

    ``params`` is a :class:`config.StrategySettings`.  Undefined (warm-up)
    indicators abstain.
    """

    votes = []
    rsi_value = _last(indicators, "rsi")
    if rsi_value is not None:
        if rsi_value < params.rsi_oversold:
            votes.append(BUY)
        elif rsi_value > params.rsi_overbought:
            votes.append(SELL)
        else:
            votes.append(HOLD)
    fast = _last(indicators, "ema_fast")
    slow = _last(indicators, "ema_slow")
    if fast is not None and slow is not None:
        votes.append(BUY if fast > slow else SELL if fast < slow else HOLD)
    hist = _last(indicators, "macd_hist")
    if hist is not None:
        votes.append(BUY if hist > 0 else SELL if hist < 0 else HOLD)

    buys = votes.count(BUY)
    sells = votes.count(SELL)
    if buys >= params.min_indicator_agreement and buys > sells:
        return BUY, len(votes)
    if sells >= params.min_indicator_agreement and sells > buys:
        return SELL, len(votes)
    return HOLD, len(votes)


def apply_sentiment_adjustment(signal: Signal, score: Optional[float]) -> Signal:
    """Nudge confidence with the Fear & Greed score (0 fear .. 100 greed).

    Contrarian entries (buying into fear, selling into greed) gain
    confidence; entries with the crowd at extremes lose it and are dropped
    when the result is weak.
    """

    if score is None or not signal.actionable:
        return signal
    confidence = signal.confidence
    if signal.direction == BUY:
        if score < 30:
            confidence += 0.15
            note = f"sentiment {score:.0f} fear supports buy"
        elif score > 70:
            confidence -= 0.20
            note = f"sentiment {score:.0f} greed cautions buy"
            if score > 85 and max(0.0, confidence) < 0.5:
                return signal.with_direction(HOLD, f"hold: extreme greed ({score:.0f}) vs weak buy", 0.0)
        else:
            return signal
    else:
        if score > 70:
            confidence += 0.15
            note = f"sentiment {score:.0f} greed supports sell"
        elif score < 30:
            confidence -= 0.20
            note = f"sentiment {score:.0f} fear cautions sell"
            if score < 15 and max(0.0, confidence) < 0.5:
                return signal.with_direction(HOLD, f"hold: extreme fear ({score:.0f}) vs weak sell", 0.0)
        else:
            return signal
    confidence = round(min(1.0, max(0.0, confidence)), 4)
    return signal.with_direction(signal.direction, f"{signal.reason}; {note}", confidence)


def _combine(indicator_sets: Mapping[str, pd.DataFrame], params) -> Signal:
    votes: Dict[str, str] = {}
    defined = 0
    for tf in params.timeframes:
        frame = indicator_sets.get(tf)
        if frame is None:
            votes[tf] = HOLD
            continue
        direction, count = timeframe_vote(frame, params)
        votes[tf] = direction
        defined += count

    total = len(params.timeframes)
    if defined == 0:
        return Signal(HOLD, 0.0, "hold: insufficient data (warm-up)", votes)

    buys = sum(1 for v in votes.values() if v == BUY)
    sells = sum(1 for v in votes.values() if v == SELL)
    detail = ", ".join(f"{tf}={votes[tf]}" for tf in params.timeframes)
    buy_ok = buys >= params.min_confluence
    sell_ok = sells >= params.min_confluence
    if buy_ok and sell_ok:
        return Signal(HOLD, 0.0, f"hold: conflicting timeframes ({detail})", votes)
    if buy_ok:
        return Signal(BUY, round(buys / total, 4), f"buy confluence {buys}/{total} ({detail})", votes)
    if sell_ok:
        return Signal(SELL, round(sells / total, 4), f"sell confluence {sells}/{total} ({detail})", votes)
    return Signal(HOLD, 0.0, f"hold: no confluence ({detail})", votes)


def generate_signal(
    indicator_sets: Mapping[str, pd.DataFrame],
    gates: SignalGates,
    params,
    symbol: str = "",
) -> Signal:
    """Combine timeframe votes and apply the gates in order."""

    signal = _combine(indicator_sets, params)
    if not signal.actionable:
        return signal

    hour = utc_hour(gates.now)
    if not is_tradeable_hour(gates.now, gates.blocked_hours):
        return _gated(signal, f"hold: hour {hour} UTC blocked", symbol)
    if is_weekend(gates.now, gates.avoid_weekends):
        return _gated(signal, "hold: weekend trading disabled", symbol)

    if gates.reference_momentum is not None:
        verdict = apply_correlation_filter(
            gates.reference_momentum,
            signal.direction,
            gates.strict_correlation,
            gates.loose_confidence_penalty,
            gates.reference_label,
        )
        if not verdict.allowed:
            return _gated(signal, f"hold: {verdict.reason}", symbol)
        if verdict.confidence_factor != 1.0:
            signal = signal.with_direction(
                signal.direction,
                f"{signal.reason}; {verdict.reason}",
                round(signal.confidence * verdict.confidence_factor, 4),
            )

    adjusted = apply_sentiment_adjustment(signal, gates.sentiment_score)
    if not adjusted.actionable:
        return _gated(signal, adjusted.reason, symbol)
    signal = adjusted

    if signal.confidence < params.min_confidence:
        return _gated(
            signal,
            f"hold: confidence {signal.confidence:.2f} below {params.min_confidence:.2f} ({signal.reason})",
            symbol,
        )
    return signal


def _gated(signal: Signal, reason: str, symbol: str) -> Signal:
    log_event(logger, "signal_gated", symbol=symbol, direction=signal.direction, reason=reason)
    return signal.with_direction(HOLD, reason, 0.0)


__all__ = ["SignalGates", "timeframe_vote", "generate_signal", "apply_sentiment_adjustment"]
