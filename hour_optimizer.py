"""Hour-of-day performance analysis.

Closed trades are bucketed by the UTC hour of ``closed_at``.  Hours that
repeatedly lose can be blocked automatically by :class:`HourOptimizer`,
which re-learns the set every ``optimize_every`` closed trades.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from observability import log_event
from trade_schema import HourStat, Trade

logger = logging.getLogger(__name__)


def _closed_hour(trade: Any) -> Optional[int]:
    if isinstance(trade, Trade):
        closed_at: Any = trade.closed_at
    elif isinstance(trade, dict):
        closed_at = trade.get("closed_at")
    else:
        closed_at = getattr(trade, "closed_at", None)
    if closed_at is None or (isinstance(closed_at, float) and pd.isna(closed_at)) or closed_at == "":
        return None
    if isinstance(closed_at, (int, float)):
        return datetime.fromtimestamp(float(closed_at), tz=timezone.utc).hour
    ts = pd.to_datetime(closed_at, utc=True, errors="coerce")
    if pd.isna(ts):
        return None
    return int(ts.hour)


def _profit(trade: Any) -> float:
    if isinstance(trade, dict):
        value = trade.get("profit", 0.0)
    else:
        value = getattr(trade, "profit", 0.0)
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def analyze_trades_by_hour(trades: Iterable[Any]) -> Dict[int, HourStat]:
    """Return win statistics for all 24 UTC hours.

    A win is a trade with positive profit.  Win rates are percentages rounded
    to 2 decimals; hours without trades report zero.
    """

    counts = {hour: [0, 0] for hour in range(24)}
    for trade in trades:
        hour = _closed_hour(trade)
        if hour is None:
            continue
        counts[hour][0] += 1
        if _profit(trade) > 0:
            counts[hour][1] += 1
    return {
        hour: HourStat(
            trades=total,
            wins=wins,
            win_rate=round(wins / total * 100.0, 2) if total else 0.0,
        )
        for hour, (total, wins) in counts.items()
    }


def get_bad_hours(trades: Iterable[Any], min_trades: int = 3, threshold: float = 40.0) -> List[int]:
    analysis = analyze_trades_by_hour(trades)
    return [h for h, stat in analysis.items() if stat.trades >= min_trades and stat.win_rate < threshold]


def get_good_hours(trades: Iterable[Any], min_trades: int = 3, threshold: float = 60.0) -> List[int]:
    analysis = analyze_trades_by_hour(trades)
    return [h for h, stat in analysis.items() if stat.trades >= min_trades and stat.win_rate > threshold]


class HourOptimizer:
    """Maintain the learned set of blocked hours."""

    def __init__(self, blocked_hours: Iterable[int] = ()) -> None:
        self.blocked_hours: List[int] = sorted(set(int(h) for h in blocked_hours))
        self._trades_since_optimize = 0

    def record_closed_trade(self) -> None:
        self._trades_since_optimize += 1

    def due(self, settings) -> bool:
        """Whether enough trades closed since the last run (``settings`` is ``HourOptimizationSettings``)."""

        return settings.enabled and self._trades_since_optimize >= settings.optimize_every

    def optimize(self, trades: Iterable[Any], settings) -> List[int]:
        hours = get_bad_hours(
            trades,
            min_trades=settings.min_trades_per_hour,
            threshold=settings.block_threshold,
        )
        self._trades_since_optimize = 0
        if hours != self.blocked_hours:
            log_event(logger, "blocked_hours_learned", previous=self.blocked_hours, hours=hours)
        self.blocked_hours = hours
        return hours


__all__ = ["analyze_trades_by_hour", "get_bad_hours", "get_good_hours", "HourOptimizer"]
