# drawdown_guard.py
"""Equity drawdown circuit breaker.

The guard tracks the equity peak and pauses new entries for
``pause_minutes`` once equity falls ``max_drawdown_percent`` below it.
How trading resumes is explicit configuration:

* ``resume_policy="time"`` – resume when the timer elapses and re-base the
  peak on the first equity seen afterwards, so the same drawdown does not
  trigger again immediately.
* ``resume_policy="new_peak"`` – after the timer, stay paused until equity
  regains the previous peak.  The waiting flag is part of
  :class:`trade_schema.DrawdownState` so a restart keeps the pause.
* ``reset_on_new_peak`` – a new peak observed during a pause ends it early.

:meth:`DrawdownGuard.observe` computes the next state first, hands it to the
optional ``persist`` callback and only then adopts it, so a failed write
leaves the guard as it was.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from observability import log_event, record_metric
from trade_schema import DrawdownState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrawdownEvent:
    reason: str
    drawdown_percent: float
    pause_minutes: float
    paused_until: float


def _drawdown_percent(peak: Optional[float], equity: float) -> float:
    if not peak:
        return 0.0
    return max(0.0, (peak - float(equity)) / peak * 100.0)


class DrawdownGuard:
    def __init__(self, settings, state: Optional[DrawdownState] = None) -> None:
        """``settings`` is a :class:`config.DrawdownSettings`."""

        self.settings = settings
        self._state = state or DrawdownState(equity_peak=None, paused_until=None)

    @property
    def equity_peak(self) -> Optional[float]:
        return self._state.equity_peak

    @property
    def paused_until(self) -> Optional[float]:
        return self._state.paused_until

    @property
    def awaiting_peak(self) -> bool:
        return self._state.awaiting_peak

    def configure(self, settings) -> None:
        self.settings = settings
        if not settings.enabled:
            self._state = replace(self._state, paused_until=None, awaiting_peak=False)

    def drawdown_percent(self, equity: float) -> float:
        return _drawdown_percent(self.equity_peak, equity)

    @staticmethod
    def _timer_running(state: DrawdownState, now: float) -> bool:
        return state.paused_until is not None and now < state.paused_until

    def _next_state(
        self, equity: float, now: float
    ) -> Tuple[DrawdownState, Optional[DrawdownEvent], List[Tuple[str, Dict[str, Any]]]]:
        state = self._state
        notes: List[Tuple[str, Dict[str, Any]]] = []
        peak = state.equity_peak

        if not self.settings.enabled:
            if peak is None or equity > peak:
                state = replace(state, equity_peak=equity)
            return state, None, notes

        if state.paused_until is not None and not self._timer_running(state, now):
            # Timer elapsed.
            if self.settings.resume_policy == "new_peak":
                state = replace(state, paused_until=None, awaiting_peak=True)
            else:
                state = replace(state, paused_until=None, equity_peak=equity)
                notes.append(("drawdown_resumed", {"equity": equity, "policy": "time"}))
            peak = state.equity_peak

        if peak is None or equity > peak:
            state = replace(state, equity_peak=equity)
            if state.awaiting_peak:
                state = replace(state, awaiting_peak=False)
                notes.append(("drawdown_resumed", {"equity": equity, "policy": "new_peak"}))
            if peak is not None and self.settings.reset_on_new_peak and self._timer_running(state, now):
                state = replace(state, paused_until=None)
                notes.append(("drawdown_resumed", {"equity": equity, "policy": "reset_on_new_peak"}))
            return state, None, notes

        drawdown = _drawdown_percent(peak, equity)
        if drawdown < self.settings.max_drawdown_percent or self._timer_running(state, now) or state.awaiting_peak:
            return state, None, notes

        paused_until = float(now) + self.settings.pause_minutes * 60.0
        state = replace(state, paused_until=paused_until)
        event = DrawdownEvent(
            reason=f"drawdown {drawdown:.2f}% from peak {peak:.2f} exceeds {self.settings.max_drawdown_percent:g}%",
            drawdown_percent=round(drawdown, 4),
            pause_minutes=float(self.settings.pause_minutes),
            paused_until=paused_until,
        )
        notes.append(
            (
                "drawdown_pause",
                {
                    "drawdown_percent": event.drawdown_percent,
                    "equity_peak": peak,
                    "equity": equity,
                    "paused_until": paused_until,
                },
            )
        )
        return state, event, notes

    def observe(
        self,
        equity: float,
        now: float,
        persist: Optional[Callable[[DrawdownState], Any]] = None,
    ) -> Optional[DrawdownEvent]:
        """Feed the latest equity; returns an event when a new pause starts.

        ``persist`` receives the new state before it is adopted; if it raises,
        the guard keeps its previous state.
        """

        state, event, notes = self._next_state(float(equity), float(now))
        if persist is not None:
            persist(state)
        self._state = state

        if self.settings.enabled:
            record_metric("drawdown_percent", self.drawdown_percent(equity))
        if event is not None:
            logger.warning("Trading paused for %.0f minutes: %s", event.pause_minutes, event.reason)
        for name, fields in notes:
            log_event(logger, name, **fields)
        return event

    def is_paused(self, now: float) -> bool:
        if not self.settings.enabled:
            return False
        return self._timer_running(self._state, now) or self._state.awaiting_peak

    def remaining_minutes(self, now: float) -> float:
        if not self._timer_running(self._state, now):
            return 0.0
        return (self._state.paused_until - now) / 60.0

    def export_state(self) -> DrawdownState:
        return self._state


__all__ = ["DrawdownEvent", "DrawdownGuard"]
