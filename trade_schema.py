"""Canonical data model shared by the engine, the stores and the status API.

The trade history CSV, the active-position JSON file and the status snapshot
all serialise the dataclasses below.  Keeping them (and the CSV column order)
in one module stops the storage layer and the presentation layer drifting
apart when a field is added.

Numeric indicator series use ``NaN`` for undefined warm-up values; scalar
fields that may be undefined are ``Optional`` and hold ``None``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

BUY = "buy"
SELL = "sell"
HOLD = "hold"
DIRECTIONS = (BUY, SELL, HOLD)

LONG = "long"
SHORT = "short"

EXIT_STOP_LOSS = "stop-loss"
EXIT_TAKE_PROFIT = "take-profit"
EXIT_TRAILING_STOP = "trailing-stop"
EXIT_MANUAL = "manual"
EXIT_REASONS = (EXIT_STOP_LOSS, EXIT_TAKE_PROFIT, EXIT_TRAILING_STOP, EXIT_MANUAL)

# Column order of the trade history CSV written by ``trade_storage``.
TRADE_HISTORY_COLUMNS = [
    "trade_id",
    "symbol",
    "side",
    "entry_price",
    "exit_price",
    "amount",
    "leverage",
    "margin",
    "stop_loss",
    "take_profit",
    "profit",
    "profit_percent",
    "exit_reason",
    "opened_at",
    "closed_at",
    "sizing_reason",
]


def side_for_direction(direction: str) -> Optional[str]:
    """Map a signal direction onto the position side it opens."""

    if direction == BUY:
        return LONG
    if direction == SELL:
        return SHORT
    return None


def iso_utc(ts: float) -> str:
    return datetime.fromtimestamp(float(ts), tz=timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Candle:
    open: float
    high: float
    low: float
    close: float
    volume: float
    timestamp: int  # ms epoch


@dataclass(frozen=True)
class Signal:
    direction: str
    confidence: float
    reason: str
    timeframe_votes: Dict[str, str] = field(default_factory=dict)

    @property
    def actionable(self) -> bool:
        return self.direction in (BUY, SELL)

    def with_direction(self, direction: str, reason: str, confidence: Optional[float] = None) -> "Signal":
        return replace(
            self,
            direction=direction,
            reason=reason,
            confidence=self.confidence if confidence is None else confidence,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TrailingState:
    active: bool = False
    extreme_price: Optional[float] = None


@dataclass
class Position:
    id: str
    symbol: str
    side: str
    entry_price: float
    amount: float
    leverage: float
    margin: float
    stop_loss: float
    take_profit: float
    opened_at: float
    sizing_reason: str = ""
    trailing: TrailingState = field(default_factory=TrailingState)

    @property
    def is_long(self) -> bool:
        return self.side == LONG

    def unrealised_profit(self, price: float) -> float:
        direction = 1.0 if self.is_long else -1.0
        return direction * (float(price) - self.entry_price) * self.amount

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Position":
        payload = dict(data)
        trailing = payload.pop("trailing", None) or {}
        return cls(
            id=str(payload["id"]),
            symbol=str(payload["symbol"]),
            side=str(payload["side"]),
            entry_price=float(payload["entry_price"]),
            amount=float(payload["amount"]),
            leverage=float(payload.get("leverage", 1.0)),
            margin=float(payload.get("margin", 0.0)),
            stop_loss=float(payload["stop_loss"]),
            take_profit=float(payload["take_profit"]),
            opened_at=float(payload["opened_at"]),
            sizing_reason=str(payload.get("sizing_reason") or ""),
            trailing=TrailingState(
                active=bool(trailing.get("active", False)),
                extreme_price=trailing.get("extreme_price"),
            ),
        )


@dataclass(frozen=True)
class Trade:
    id: str
    symbol: str
    side: str
    entry_price: float
    exit_price: float
    amount: float
    leverage: float
    margin: float
    stop_loss: float
    take_profit: float
    profit: float
    profit_percent: float
    exit_reason: str
    opened_at: float
    closed_at: float
    sizing_reason: str = ""

    @property
    def is_win(self) -> bool:
        return self.profit > 0

    @classmethod
    def from_position(
        cls,
        position: Position,
        *,
        exit_price: float,
        exit_reason: str,
        closed_at: float,
    ) -> "Trade":
        profit = position.unrealised_profit(exit_price)
        direction = 1.0 if position.is_long else -1.0
        profit_percent = direction * (float(exit_price) - position.entry_price) / position.entry_price * 100.0
        return cls(
            id=position.id,
            symbol=position.symbol,
            side=position.side,
            entry_price=position.entry_price,
            exit_price=float(exit_price),
            amount=position.amount,
            leverage=position.leverage,
            margin=position.margin,
            stop_loss=position.stop_loss,
            take_profit=position.take_profit,
            profit=round(profit, 8),
            profit_percent=round(profit_percent, 4),
            exit_reason=exit_reason,
            opened_at=position.opened_at,
            closed_at=float(closed_at),
            sizing_reason=position.sizing_reason,
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "trade_id": self.id,
            "symbol": self.symbol,
            "side": self.side,
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "amount": self.amount,
            "leverage": self.leverage,
            "margin": self.margin,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "profit": self.profit,
            "profit_percent": self.profit_percent,
            "exit_reason": self.exit_reason,
            "opened_at": iso_utc(self.opened_at),
            "closed_at": iso_utc(self.closed_at),
            "sizing_reason": self.sizing_reason,
        }


@dataclass(frozen=True)
class MartingaleState:
    streak: int
    current_multiplier: float


@dataclass(frozen=True)
class DrawdownState:
    equity_peak: Optional[float]
    paused_until: Optional[float]
    # Pause timer ran out under the ``new_peak`` resume policy.
    awaiting_peak: bool = False


@dataclass(frozen=True)
class HourStat:
    trades: int = 0
    wins: int = 0
    win_rate: float = 0.0


@dataclass(frozen=True)
class CooldownEntry:
    symbol: str
    expires_at: float


@dataclass(frozen=True)
class TradeStats:
    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    total_profit: float = 0.0


__all__ = [
    "BUY",
    "SELL",
    "HOLD",
    "LONG",
    "SHORT",
    "EXIT_STOP_LOSS",
    "EXIT_TAKE_PROFIT",
    "EXIT_TRAILING_STOP",
    "EXIT_MANUAL",
    "TRADE_HISTORY_COLUMNS",
    "Candle",
    "Signal",
    "TrailingState",
    "Position",
    "Trade",
    "MartingaleState",
    "DrawdownState",
    "HourStat",
    "CooldownEntry",
    "TradeStats",
    "side_for_direction",
    "iso_utc",
]
