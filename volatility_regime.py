"""
Volatility regime adjustments for stop-loss, take-profit and leverage.

The current Average True Range (ATR) is compared with its mean over a longer
window.  The resulting *volatility ratio* widens stops and targets in noisy
markets and narrows them in quiet ones, and optionally scales leverage.

Functions
---------

* ``volatility_ratio(frame, atr_period, avg_period)`` – current ATR divided by
  the mean of the last ``avg_period`` defined ATR values.  ``None`` while the
  ATR is still warming up.
* ``adjust_for_volatility(ratio, config)`` – SL/TP percentages and leverage
  for an entry, clamped to the configured bounds.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import pandas as pd

from indicators import atr


@dataclass(frozen=True)
class VolatilityAdjustment:
    sl_percent: float
    tp_percent: float
    leverage: float
    ratio: Optional[float] = None


def volatility_ratio(frame: pd.DataFrame, atr_period: int = 14, avg_period: int = 100) -> Optional[float]:
    """Return current ATR / average ATR, or ``None`` when undefined."""

    if len(frame) < atr_period + 1:
        return None
    series = atr(frame, atr_period)
    current = series.iloc[-1]
    if pd.isna(current):
        return None
    history = series.iloc[-avg_period:].dropna()
    if history.empty:
        return None
    average = float(history.mean())
    if average == 0:
        return 1.0
    return float(current) / average


def adjust_for_volatility(ratio: Optional[float], config) -> VolatilityAdjustment:
    """Scale the configured SL/TP/leverage by ``ratio``.

    ``config`` is a full :class:`config.EngineConfig`.  Without a ratio, or
    with volatility adjustment disabled, the static values are returned.
    """

    trading = config.trading
    vol = config.volatility
    lev = config.leverage
    sl = float(trading.stop_loss_percent)
    tp = float(trading.take_profit_percent)
    leverage = float(trading.leverage)
    if ratio is None or not vol.enabled:
        return VolatilityAdjustment(sl_percent=sl, tp_percent=tp, leverage=leverage, ratio=ratio)

    sl = round(max(vol.min_sl_percent, min(sl * ratio, vol.max_sl_percent)), 2)
    tp = round(max(vol.min_tp_percent, min(tp * ratio, vol.max_tp_percent)), 2)
    if lev.enabled:
        if ratio >= lev.high_vol_threshold:
            leverage = leverage / 2.0
        elif ratio <= lev.low_vol_threshold:
            leverage = leverage * 1.5
        leverage = float(round(max(lev.min_leverage, min(leverage, lev.max_leverage))))
    return VolatilityAdjustment(sl_percent=sl, tp_percent=tp, leverage=leverage, ratio=round(ratio, 4))


__all__ = ["VolatilityAdjustment", "volatility_ratio", "adjust_for_volatility"]
