"""Streak based position sizing.

``anti-martingale`` (default) grows the size after consecutive wins and
resets on a loss; ``martingale`` grows after consecutive losses and resets
on a win; ``off`` always sizes at 1x.  The multiplier is linear in the
streak and capped: ``min(cap, 1 + streak * step)``.

Only ``anti-martingale`` resets the streak on a loss.  In ``martingale``
mode a loss is the growth step, so a losing run keeps raising the size
until a win or the cap; the mode flips which outcome steps and which
resets rather than the sign of the step.
"""

from __future__ import annotations

from dataclasses import dataclass

from errors import ConfigurationError
from trade_schema import MartingaleState

MODES = ("anti-martingale", "martingale", "off")


@dataclass(frozen=True)
class MartingaleSizing:
    size: float
    multiplier: float
    streak: int


class MartingaleSizer:
    def __init__(self, settings) -> None:
        """``settings`` is a :class:`config.MartingaleSettings`."""

        if settings.mode not in MODES:
            raise ConfigurationError(f"Unsupported martingale mode {settings.mode!r}")
        self.settings = settings
        self.streak = 0

    @property
    def mode(self) -> str:
        return self.settings.mode

    def configure(self, settings) -> None:
        """Swap in a new settings snapshot while keeping the streak."""

        if settings.mode not in MODES:
            raise ConfigurationError(f"Unsupported martingale mode {settings.mode!r}")
        self.settings = settings
        if settings.mode == "off":
            self.streak = 0

    def set_streak(self, streak: int) -> None:
        if int(streak) < 0:
            raise ValueError("streak cannot be negative")
        self.streak = 0 if self.mode == "off" else int(streak)

    def record_result(self, win: bool) -> int:
        if self.mode == "anti-martingale":
            self.streak = self.streak + 1 if win else 0
        elif self.mode == "martingale":
            self.streak = 0 if win else self.streak + 1
        return self.streak

    @property
    def multiplier(self) -> float:
        if self.mode == "off":
            return 1.0
        return min(float(self.settings.max_multiplier), 1.0 + self.streak * float(self.settings.step))

    def get_position_size(self, base: float) -> MartingaleSizing:
        mult = self.multiplier
        return MartingaleSizing(size=round(float(base) * mult, 2), multiplier=mult, streak=self.streak)

    def export_state(self) -> MartingaleState:
        return MartingaleState(streak=self.streak, current_multiplier=self.multiplier)

    @classmethod
    def from_state(cls, state: MartingaleState, settings) -> "MartingaleSizer":
        sizer = cls(settings)
        sizer.set_streak(state.streak)
        return sizer


__all__ = ["MartingaleSizer", "MartingaleSizing", "MODES"]
