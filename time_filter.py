"""Time-of-day and weekend gates evaluated in UTC."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import FrozenSet, Iterable, Optional, Union

TimeLike = Union[datetime, float, int]


def _as_utc(now: Optional[TimeLike]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if isinstance(now, datetime):
        if now.tzinfo is None:
            return now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone.utc)
    return datetime.fromtimestamp(float(now), tz=timezone.utc)


def utc_hour(now: Optional[TimeLike] = None) -> int:
    return _as_utc(now).hour


def effective_blocked_hours(config, learned_hours: Iterable[int] = ()) -> FrozenSet[int]:
    """Configured blocked hours (when the filter is on) plus learned bad hours.

    ``config`` is an :class:`config.EngineConfig`; learned hours only count
    while hour optimisation is enabled.
    """

    hours = set()
    if config.time_filter.enabled:
        hours.update(int(h) for h in config.time_filter.blocked_hours)
    if config.hour_optimization.enabled:
        hours.update(int(h) for h in learned_hours)
    return frozenset(hours)


def is_tradeable_hour(now: Optional[TimeLike], blocked_hours: Iterable[int]) -> bool:
    return utc_hour(now) not in set(int(h) for h in blocked_hours)


def is_weekend(now: Optional[TimeLike] = None, avoid_weekends: bool = True) -> bool:
    """Return ``True`` on Saturday/Sunday UTC when weekend avoidance is enabled."""

    if not avoid_weekends:
        return False
    return _as_utc(now).weekday() >= 5


__all__ = ["utc_hour", "effective_blocked_hours", "is_tradeable_hour", "is_weekend"]
