"""Exception taxonomy shared by the trading decision engine.

Only :class:`ConfigurationError` raised during start-up is fatal.  The other
conditions are recoverable: the affected tick is skipped (``DataUnavailable``),
aborted before in-memory state changes are applied (``PersistenceError``) or
reported as a structured "no action" result (the position rejections).
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for engine errors."""


class ConfigurationError(EngineError, ValueError):
    """Invalid period, threshold or other configuration value."""


class DataUnavailable(EngineError):
    """Market data could not be fetched or parsed for a symbol."""

    def __init__(self, symbol: str, timeframe: str | None = None, detail: str = "") -> None:
        self.symbol = symbol
        self.timeframe = timeframe
        self.detail = detail
        label = f"{symbol} {timeframe}" if timeframe else symbol
        super().__init__(f"Candles unavailable for {label}: {detail}".rstrip(": "))


class PersistenceError(EngineError):
    """Writing to the trade/position or configuration store failed."""


class PositionRejected(EngineError):
    """Base class for expected open-position rejections."""

    code = "rejected"

    def __init__(self, symbol: str, detail: str = "") -> None:
        self.symbol = symbol
        self.detail = detail
        super().__init__(detail or f"{self.code}: {symbol}")


class PositionLimitExceeded(PositionRejected):
    code = "position-limit"


class SymbolCoolingDown(PositionRejected):
    code = "cooldown"

    def __init__(self, symbol: str, remaining_seconds: float, detail: str = "") -> None:
        self.remaining_seconds = float(remaining_seconds)
        super().__init__(
            symbol,
            detail or f"{symbol} cooling down for {remaining_seconds / 60.0:.1f} more minutes",
        )


class InsufficientBalance(PositionRejected):
    code = "insufficient-balance"


__all__ = [
    "EngineError",
    "ConfigurationError",
    "DataUnavailable",
    "PersistenceError",
    "PositionRejected",
    "PositionLimitExceeded",
    "SymbolCoolingDown",
    "InsufficientBalance",
]
