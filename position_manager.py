"""Open-position lifecycle: entries, stop/target exits, trailing stops and cooldowns.

Positions are mutated only here.  Every change is written to the
:class:`trade_storage.TradeStore` first and applied to the in-memory book
only once the write succeeded, so a :class:`errors.PersistenceError` leaves
both the book and the balance untouched.
"""

from __future__ import annotations

import copy
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from errors import (
    InsufficientBalance,
    PersistenceError,
    PositionLimitExceeded,
    PositionRejected,
    SymbolCoolingDown,
)
from martingale_sizer import MartingaleSizer
from observability import log_event, record_metric
from trade_schema import (
    EXIT_MANUAL,
    EXIT_STOP_LOSS,
    EXIT_TAKE_PROFIT,
    EXIT_TRAILING_STOP,
    LONG,
    SHORT,
    CooldownEntry,
    Position,
    Trade,
)

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SLOTS = 64


class CooldownTable:
    """Fixed-capacity cooldown slots keyed by symbol.

    Each symbol owns at most one slot.  Expired entries are swept lazily when
    they are looked up or when a new entry needs room.
    """

    def __init__(self, capacity: int = DEFAULT_COOLDOWN_SLOTS) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._slots: List[Optional[CooldownEntry]] = [None] * capacity
        self._index: Dict[str, int] = {}

    def _sweep_slot(self, slot: int, now: float) -> None:
        entry = self._slots[slot]
        if entry is not None and now >= entry.expires_at:
            self._slots[slot] = None
            self._index.pop(entry.symbol, None)

    def _sweep(self, now: float) -> None:
        for slot in range(len(self._slots)):
            self._sweep_slot(slot, now)

    def start(self, symbol: str, expires_at: float, now: float) -> CooldownEntry:
        entry = CooldownEntry(symbol=symbol, expires_at=float(expires_at))
        slot = self._index.get(symbol)
        if slot is None:
            self._sweep(now)
            free = [i for i, e in enumerate(self._slots) if e is None]
            if free:
                slot = free[0]
            else:
                # Table full of live cooldowns: evict the one expiring first.
                slot = min(range(len(self._slots)), key=lambda i: self._slots[i].expires_at)
                self._index.pop(self._slots[slot].symbol, None)
        self._slots[slot] = entry
        self._index[symbol] = slot
        return entry

    def is_active(self, symbol: str, now: float) -> bool:
        slot = self._index.get(symbol)
        if slot is None:
            return False
        self._sweep_slot(slot, now)
        return symbol in self._index

    def remaining(self, symbol: str, now: float) -> float:
        """Seconds left on ``symbol``'s cooldown (0 when none)."""

        if not self.is_active(symbol, now):
            return 0.0
        return max(0.0, self._slots[self._index[symbol]].expires_at - now)

    def entries(self, now: float) -> List[CooldownEntry]:
        self._sweep(now)
        return [e for e in self._slots if e is not None]


@dataclass(frozen=True)
class OpenRequest:
    """An entry instruction; ``notional`` is the quote amount before leverage."""

    symbol: str
    side: str
    price: float
    notional: float
    leverage: float
    stop_loss_percent: float
    take_profit_percent: float
    sizing_reason: str = ""


@dataclass(frozen=True)
class OpenResult:
    position: Optional[Position] = None
    rejection: Optional[PositionRejected] = None

    @property
    def opened(self) -> bool:
        return self.position is not None


def stop_and_target(side: str, entry_price: float, sl_percent: float, tp_percent: float) -> tuple:
    if side == LONG:
        return entry_price * (1 - sl_percent / 100.0), entry_price * (1 + tp_percent / 100.0)
    return entry_price * (1 + sl_percent / 100.0), entry_price * (1 - tp_percent / 100.0)


class PositionManager:
    def __init__(self, store, martingale: MartingaleSizer, config, cooldown_slots: int = DEFAULT_COOLDOWN_SLOTS) -> None:
        self.store = store
        self.martingale = martingale
        self.config = config
        self.cooldowns = CooldownTable(cooldown_slots)
        self.positions: Dict[str, Position] = {p.id: p for p in store.load_positions()}
        self.balance: float = store.get_balance()

    def configure(self, config) -> None:
        self.config = config
        self.martingale.configure(config.martingale)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def open_positions(self, symbol: Optional[str] = None) -> List[Position]:
        return [p for p in self.positions.values() if symbol is None or p.symbol == symbol]

    def equity(self, prices: Mapping[str, float]) -> float:
        """Balance plus locked margin plus unrealised profit at ``prices``."""

        total = self.balance
        for pos in self.positions.values():
            total += pos.margin
            price = prices.get(pos.symbol)
            if price is not None:
                total += pos.unrealised_profit(price)
        return total

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------
    def open(self, request: OpenRequest, now: Optional[float] = None) -> OpenResult:
        now = time.time() if now is None else float(now)
        trading = self.config.trading
        symbol = request.symbol

        remaining = self.cooldowns.remaining(symbol, now)
        if remaining > 0:
            return OpenResult(rejection=SymbolCoolingDown(symbol, remaining))
        per_symbol = len(self.open_positions(symbol))
        if per_symbol >= trading.max_open_trades_per_symbol:
            return OpenResult(
                rejection=PositionLimitExceeded(
                    symbol, f"{symbol} already has {per_symbol}/{trading.max_open_trades_per_symbol} positions"
                )
            )
        if len(self.positions) >= trading.max_open_trades:
            return OpenResult(
                rejection=PositionLimitExceeded(
                    symbol, f"{len(self.positions)}/{trading.max_open_trades} positions open"
                )
            )

        price = float(request.price)
        leverage = float(request.leverage)
        amount = float(request.notional) / price
        margin = amount * price / leverage
        if margin > self.balance:
            return OpenResult(
                rejection=InsufficientBalance(
                    symbol, f"{symbol} needs margin {margin:.2f}, balance is {self.balance:.2f}"
                )
            )

        stop_loss, take_profit = stop_and_target(
            request.side, price, request.stop_loss_percent, request.take_profit_percent
        )
        position = Position(
            id=uuid.uuid4().hex[:12],
            symbol=symbol,
            side=request.side,
            entry_price=price,
            amount=amount,
            leverage=leverage,
            margin=margin,
            stop_loss=stop_loss,
            take_profit=take_profit,
            opened_at=now,
            sizing_reason=request.sizing_reason,
        )
        new_balance = self.balance - margin
        self.store.save_positions(list(self.positions.values()) + [position])
        self.store.update_state(balance=new_balance)
        self.positions[position.id] = position
        self.balance = new_balance

        log_event(
            logger,
            "position_opened",
            id=position.id,
            symbol=symbol,
            side=position.side,
            entry_price=price,
            amount=amount,
            leverage=leverage,
            margin=round(margin, 8),
            stop_loss=stop_loss,
            take_profit=take_profit,
            sizing_reason=request.sizing_reason,
        )
        record_metric("balance", new_balance)
        return OpenResult(position=position)

    # ------------------------------------------------------------------
    # Exits
    # ------------------------------------------------------------------
    def _ratchet(self, pos: Position, high: float, low: float) -> bool:
        """Move the stop of ``pos`` (a working copy) in the favourable direction."""

        trailing = self.config.trailing
        if not trailing.enabled:
            return False
        entry = pos.entry_price
        if pos.is_long:
            extreme = max(pos.trailing.extreme_price or entry, high)
            excursion = (extreme - entry) / entry * 100.0
        else:
            extreme = min(pos.trailing.extreme_price or entry, low)
            excursion = (entry - extreme) / entry * 100.0
        pos.trailing.extreme_price = extreme
        if excursion < trailing.activation_percent:
            return False
        if pos.is_long:
            candidate = entry + (extreme - entry) * trailing.lock_in_ratio
            moved = candidate > pos.stop_loss
        else:
            candidate = entry - (entry - extreme) * trailing.lock_in_ratio
            moved = candidate < pos.stop_loss
        if moved:
            pos.stop_loss = candidate
            pos.trailing.active = True
        return moved

    def check_exits(
        self,
        symbol: str,
        current_price: float,
        high_price: Optional[float] = None,
        low_price: Optional[float] = None,
        now: Optional[float] = None,
    ) -> List[Trade]:
        """Evaluate trailing stops, stop-losses and take-profits for ``symbol``."""

        now = time.time() if now is None else float(now)
        high = float(high_price if high_price is not None else current_price)
        low = float(low_price if low_price is not None else current_price)

        working: Dict[str, Position] = {}
        trades: List[Trade] = []
        ratcheted: List[Position] = []
        for original in self.open_positions(symbol):
            pos = copy.deepcopy(original)
            if self._ratchet(pos, high, low):
                ratcheted.append(pos)
            stop_hit = low <= pos.stop_loss if pos.is_long else high >= pos.stop_loss
            target_hit = high >= pos.take_profit if pos.is_long else low <= pos.take_profit
            if stop_hit:
                reason = EXIT_TRAILING_STOP if pos.trailing.active else EXIT_STOP_LOSS
                trades.append(Trade.from_position(pos, exit_price=pos.stop_loss, exit_reason=reason, closed_at=now))
            elif target_hit:
                trades.append(
                    Trade.from_position(pos, exit_price=pos.take_profit, exit_reason=EXIT_TAKE_PROFIT, closed_at=now)
                )
            else:
                working[pos.id] = pos

        if not trades and working == {p.id: p for p in self.open_positions(symbol)}:
            return []

        closed_ids = {t.id for t in trades}
        remaining = [working.get(p.id, p) for p in self.positions.values() if p.id not in closed_ids]
        self._persist(remaining, trades)
        self._commit(remaining, trades, now)
        for pos in ratcheted:
            log_event(
                logger,
                "trailing_ratchet",
                id=pos.id,
                symbol=pos.symbol,
                stop_loss=pos.stop_loss,
                extreme_price=pos.trailing.extreme_price,
            )
        return trades

    def close(
        self,
        position_id: str,
        price: float,
        reason: str = EXIT_MANUAL,
        now: Optional[float] = None,
    ) -> Optional[Trade]:
        """Close one position at ``price``; unknown or already closed ids return ``None``."""

        now = time.time() if now is None else float(now)
        pos = self.positions.get(position_id)
        if pos is None:
            return None
        trade = Trade.from_position(pos, exit_price=price, exit_reason=reason, closed_at=now)
        remaining = [p for p in self.positions.values() if p.id != position_id]
        self._persist(remaining, [trade])
        self._commit(remaining, [trade], now)
        return trade

    def close_opposing(self, symbol: str, side: str, price: float, now: Optional[float] = None) -> List[Trade]:
        """Close positions of ``symbol`` on the side opposite to ``side``."""

        opposite = SHORT if side == LONG else LONG
        trades = []
        for pos in self.open_positions(symbol):
            if pos.side == opposite:
                trade = self.close(pos.id, price, EXIT_MANUAL, now)
                if trade is not None:
                    trades.append(trade)
        return trades

    def _streak_after(self, trades: List[Trade]) -> int:
        preview = MartingaleSizer.from_state(self.martingale.export_state(), self.martingale.settings)
        for trade in trades:
            preview.record_result(trade.profit > 0)
        return preview.streak

    def _persist(self, remaining: List[Position], trades: List[Trade]) -> None:
        """Write positions, then balance and streak, then the trade history.

        A failing step rolls back the steps already written and re-raises
        :class:`errors.PersistenceError`; nothing in memory has changed yet.
        """

        previous = list(self.positions.values())
        self.store.save_positions(remaining)
        if not trades:
            return
        new_balance = self.balance + sum(t.margin + t.profit for t in trades)
        try:
            self.store.update_state(balance=new_balance, martingale_streak=self._streak_after(trades))
            for trade in trades:
                self.store.append_trade(trade)
        except PersistenceError:
            self._rollback(previous)
            raise

    def _rollback(self, previous: List[Position]) -> None:
        try:
            self.store.save_positions(previous)
            self.store.update_state(balance=self.balance, martingale_streak=self.martingale.streak)
        except PersistenceError as exc:
            logger.error("Rollback after failed close did not complete: %s", exc)

    def _commit(self, remaining: List[Position], trades: List[Trade], now: float) -> None:
        self.positions = {p.id: p for p in remaining}
        self.balance += sum(t.margin + t.profit for t in trades)
        for trade in trades:
            self._log_close(trade)
            self._apply_result(trade, now)

    def process_trade_result(self, trade: Trade, now: Optional[float] = None) -> Trade:
        """Feed the streak sizer and start a cooldown after a stop-loss."""

        now = time.time() if now is None else float(now)
        self.store.update_state(martingale_streak=self._streak_after([trade]))
        self._apply_result(trade, now)
        return trade

    def _apply_result(self, trade: Trade, now: float) -> None:
        self.martingale.record_result(trade.profit > 0)
        if trade.exit_reason == EXIT_STOP_LOSS:
            minutes = float(self.config.trading.cooldown_minutes)
            if minutes > 0:
                entry = self.cooldowns.start(trade.symbol, now + minutes * 60.0, now)
                logger.warning("%s in cooldown for %g minutes after stop-loss", trade.symbol, minutes)
                log_event(logger, "cooldown_started", symbol=trade.symbol, expires_at=entry.expires_at)

    def _log_close(self, trade: Trade) -> None:
        log_event(
            logger,
            "position_closed",
            id=trade.id,
            symbol=trade.symbol,
            side=trade.side,
            exit_price=trade.exit_price,
            exit_reason=trade.exit_reason,
            profit=trade.profit,
            profit_percent=trade.profit_percent,
        )
        record_metric("balance", self.balance)


__all__ = [
    "CooldownTable",
    "OpenRequest",
    "OpenResult",
    "PositionManager",
    "stop_and_target",
]
