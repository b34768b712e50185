"""Win-rate driven position sizing.

The base trade amount is scaled up when the recorded win rate is above the
confident threshold and scaled down when it is below the cautious one.  In
high volatility the amount is additionally divided by the volatility ratio.
Everything here is pure: the same stats and settings always produce the same
decision.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from trade_schema import TradeStats


@dataclass(frozen=True)
class SizingDecision:
    amount: float
    multiplier: float
    reason: str
    confidence: str  # 'low' | 'medium' | 'high'


def calculate_multiplier(stats: TradeStats, settings) -> Tuple[float, str]:
    """Return ``(multiplier, reason)`` for ``stats`` under ``SizingSettings``."""

    total = int(stats.total_trades)
    win_rate = float(stats.win_rate)
    if total < settings.min_trades:
        return 1.0, f"insufficient data ({total}/{settings.min_trades} trades)"
    if win_rate > settings.confident_win_rate:
        raw = 1.0 + settings.step_per_point * (win_rate - settings.confident_win_rate)
        mult = min(settings.max_multiplier, raw)
        label = "increased"
    elif win_rate < settings.cautious_win_rate:
        raw = 1.0 - settings.step_per_point * (settings.cautious_win_rate - win_rate)
        mult = max(settings.min_multiplier, raw)
        label = "reduced"
    else:
        mult = 1.0
        label = "normal"
    mult = round(mult, 2)
    return mult, f"{label} size ({mult}x): {win_rate:.1f}% win rate over {total} trades"


def get_position_size(
    base_amount: float,
    stats: TradeStats,
    settings,
    volatility_ratio: Optional[float] = None,
) -> SizingDecision:
    """Size an entry from the base amount, trade stats and optional volatility ratio."""

    multiplier, reason = calculate_multiplier(stats, settings)
    amount = float(base_amount) * multiplier
    if volatility_ratio is not None and volatility_ratio > settings.high_volatility_ratio:
        floor = float(base_amount) * settings.min_multiplier
        amount = max(floor, amount / float(volatility_ratio))
        reason += f"; high volatility {volatility_ratio:.2f}x"
    total = int(stats.total_trades)
    if total < settings.min_trades:
        confidence = "low"
    elif total >= 30:
        confidence = "high"
    else:
        confidence = "medium"
    return SizingDecision(
        amount=round(amount, 2),
        multiplier=round(multiplier, 2),
        reason=reason,
        confidence=confidence,
    )


__all__ = ["SizingDecision", "calculate_multiplier", "get_position_size"]
