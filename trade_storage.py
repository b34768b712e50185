"""
File backed trade and position store for the trading decision engine.

* Open positions live in a JSON document (``POSITIONS_FILE``).
* Closed trades are appended to a CSV trade history (``TRADE_HISTORY_FILE``)
  whose column order is :data:`trade_schema.TRADE_HISTORY_COLUMNS`; it is read
  back with pandas.
* Balance, martingale streak, drawdown state and learned blocked hours share
  a small JSON engine-state document (``ENGINE_STATE_FILE``).
* Every tick appends one JSON line to the cycle journal (``CYCLE_LOG_FILE``).

Writes go through a temporary file and ``os.replace`` so a crash never
leaves a half written document.  Any write failure surfaces as
:class:`errors.PersistenceError`; callers apply in-memory changes only after
the store accepted them.
"""

from __future__ import annotations

import csv
import json
import logging
import os
import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from config import CYCLE_LOG_FILE, ENGINE_STATE_FILE, POSITIONS_FILE, TRADE_HISTORY_FILE
from errors import PersistenceError
from trade_schema import (
    TRADE_HISTORY_COLUMNS,
    DrawdownState,
    Position,
    Trade,
    TradeStats,
)

logger = logging.getLogger(__name__)
_HISTORY_LOCK = threading.RLock()


@contextmanager
def _history_file_lock(path: str):
    """Exclusive lock on ``path`` shared by threads and processes."""

    lock_path = f"{path}.lock"
    directory = os.path.dirname(lock_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    fd = os.open(lock_path, os.O_CREAT | os.O_RDWR)
    try:
        with _HISTORY_LOCK:
            _acquire_file_lock(fd)
            try:
                yield
            finally:
                _release_file_lock(fd)
    finally:
        os.close(fd)


def _acquire_file_lock(fd: int) -> None:
    if os.name == "nt":  # pragma: no cover - windows-specific branch
        import msvcrt

        msvcrt.locking(fd, msvcrt.LK_LOCK, 1)
    else:
        import fcntl

        fcntl.flock(fd, fcntl.LOCK_EX)


def _release_file_lock(fd: int) -> None:
    if os.name == "nt":  # pragma: no cover - windows-specific branch
        import msvcrt

        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
    else:
        import fcntl

        fcntl.flock(fd, fcntl.LOCK_UN)


def _write_json_atomic(path: str, payload: Any) -> None:
    tmp_path = f"{path}.tmp"
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError) as exc:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise PersistenceError(f"Failed to write {path}: {exc}") from exc


def _read_json(path: str, default: Any) -> Any:
    if not os.path.exists(path):
        return default
    try:
        with open(path, "r", encoding="utf-8") as fh:
            content = fh.read().strip()
    except OSError as exc:
        logger.warning("Unable to read %s: %s", path, exc)
        return default
    if not content:
        logger.warning("%s is empty; using defaults", path)
        return default
    try:
        return json.loads(content)
    except json.JSONDecodeError as exc:
        logger.error("%s contains invalid JSON: %s", path, exc)
        return default


def _to_epoch(value: Any) -> Optional[float]:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    ts = pd.to_datetime(value, utc=True, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.timestamp()


def _row_to_trade(row: Mapping[str, Any]) -> Optional[Trade]:
    closed_at = _to_epoch(row.get("closed_at"))
    opened_at = _to_epoch(row.get("opened_at"))
    if closed_at is None:
        return None
    try:
        return Trade(
            id=str(row["trade_id"]),
            symbol=str(row["symbol"]),
            side=str(row["side"]),
            entry_price=float(row["entry_price"]),
            exit_price=float(row["exit_price"]),
            amount=float(row["amount"]),
            leverage=float(row["leverage"]),
            margin=float(row["margin"]),
            stop_loss=float(row["stop_loss"]),
            take_profit=float(row["take_profit"]),
            profit=float(row["profit"]),
            profit_percent=float(row["profit_percent"]),
            exit_reason=str(row["exit_reason"]),
            opened_at=opened_at if opened_at is not None else closed_at,
            closed_at=closed_at,
            sizing_reason="" if pd.isna(row.get("sizing_reason")) else str(row.get("sizing_reason") or ""),
        )
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Skipping malformed trade row %s: %s", row.get("trade_id"), exc)
        return None


class TradeStore:
    """Persistence for positions, closed trades and engine state."""

    def __init__(
        self,
        positions_path: Optional[str] = None,
        state_path: Optional[str] = None,
        history_path: Optional[str] = None,
        journal_path: Optional[str] = None,
        initial_balance: float = 10000.0,
    ) -> None:
        self.positions_path = positions_path or POSITIONS_FILE
        self.state_path = state_path or ENGINE_STATE_FILE
        self.history_path = history_path or TRADE_HISTORY_FILE
        self.journal_path = journal_path or CYCLE_LOG_FILE
        self.initial_balance = float(initial_balance)
        self._lock = threading.RLock()

    @classmethod
    def in_directory(cls, directory: str, initial_balance: float = 10000.0) -> "TradeStore":
        return cls(
            positions_path=os.path.join(directory, "positions.json"),
            state_path=os.path.join(directory, "engine_state.json"),
            history_path=os.path.join(directory, "trade_history.csv"),
            journal_path=os.path.join(directory, "cycles.jsonl"),
            initial_balance=initial_balance,
        )

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------
    def load_positions(self) -> List[Position]:
        raw = _read_json(self.positions_path, [])
        positions = []
        for item in raw if isinstance(raw, list) else []:
            try:
                positions.append(Position.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed position %s: %s", item, exc)
        return positions

    def save_positions(self, positions: Iterable[Position]) -> None:
        with self._lock:
            _write_json_atomic(self.positions_path, [p.to_dict() for p in positions])

    # ------------------------------------------------------------------
    # Engine state
    # ------------------------------------------------------------------
    def load_state(self) -> Dict[str, Any]:
        state = _read_json(self.state_path, {})
        if not isinstance(state, dict):
            state = {}
        state.setdefault("balance", self.initial_balance)
        state.setdefault("martingale_streak", 0)
        state.setdefault("drawdown", {"equity_peak": None, "paused_until": None, "awaiting_peak": False})
        state.setdefault("blocked_hours", [])
        return state

    def update_state(self, **fields: Any) -> Dict[str, Any]:
        with self._lock:
            state = self.load_state()
            for key, value in fields.items():
                if isinstance(value, DrawdownState):
                    value = {
                        "equity_peak": value.equity_peak,
                        "paused_until": value.paused_until,
                        "awaiting_peak": value.awaiting_peak,
                    }
                state[key] = value
            state["updated_at"] = time.time()
            _write_json_atomic(self.state_path, state)
            return state

    def get_balance(self) -> float:
        return float(self.load_state()["balance"])

    def get_martingale_streak(self) -> int:
        return int(self.load_state()["martingale_streak"])

    def get_drawdown_state(self) -> DrawdownState:
        raw = self.load_state()["drawdown"] or {}
        return DrawdownState(
            equity_peak=raw.get("equity_peak"),
            paused_until=raw.get("paused_until"),
            awaiting_peak=bool(raw.get("awaiting_peak", False)),
        )

    def get_blocked_hours(self) -> List[int]:
        return [int(h) for h in self.load_state()["blocked_hours"]]

    # ------------------------------------------------------------------
    # Trade history
    # ------------------------------------------------------------------
    def _recorded_trade_ids(self) -> set:
        with open(self.history_path, "r", encoding="utf-8", newline="") as fh:
            return {row.get("trade_id") for row in csv.DictReader(fh)}

    def append_trade(self, trade: Trade) -> bool:
        """Append ``trade`` unless its id is already in the history.

        Returns ``False`` for a duplicate, so a close retried after a failed
        write never records the same trade twice.
        """

        try:
            with _history_file_lock(self.history_path):
                need_header = not os.path.exists(self.history_path) or os.path.getsize(self.history_path) == 0
                if not need_header and trade.id in self._recorded_trade_ids():
                    logger.warning("Trade %s already recorded; skipping duplicate", trade.id)
                    return False
                with open(self.history_path, "a", encoding="utf-8", newline="") as fh:
                    writer = csv.DictWriter(fh, fieldnames=TRADE_HISTORY_COLUMNS)
                    if need_header:
                        writer.writeheader()
                    writer.writerow(trade.to_row())
        except OSError as exc:
            raise PersistenceError(f"Failed to append trade {trade.id} to {self.history_path}: {exc}") from exc
        return True

    def load_trade_history_df(self) -> pd.DataFrame:
        """Return the trade history as a DataFrame (empty with headers when missing)."""

        path = self.history_path
        if not (os.path.exists(path) and os.path.getsize(path) > 0):
            return pd.DataFrame(columns=TRADE_HISTORY_COLUMNS)
        try:
            df = pd.read_csv(path, encoding="utf-8", on_bad_lines="skip")
        except (OSError, ValueError, pd.errors.ParserError) as exc:
            logger.exception("Failed to read trade history %s: %s", path, exc)
            return pd.DataFrame(columns=TRADE_HISTORY_COLUMNS)
        for column in TRADE_HISTORY_COLUMNS:
            if column not in df.columns:
                df[column] = pd.NA
        return df[TRADE_HISTORY_COLUMNS]

    def load_trades(self) -> List[Trade]:
        df = self.load_trade_history_df()
        trades = []
        for row in df.to_dict(orient="records"):
            trade = _row_to_trade(row)
            if trade is not None:
                trades.append(trade)
        return trades

    def stats(self) -> TradeStats:
        df = self.load_trade_history_df()
        if df.empty:
            return TradeStats()
        profit = pd.to_numeric(df["profit"], errors="coerce").dropna()
        total = int(len(profit))
        wins = int((profit > 0).sum())
        return TradeStats(
            total_trades=total,
            wins=wins,
            losses=total - wins,
            win_rate=round(wins / total * 100.0, 2) if total else 0.0,
            total_profit=round(float(profit.sum()), 8),
        )

    # ------------------------------------------------------------------
    # Cycle journal
    # ------------------------------------------------------------------
    def append_cycle(self, entry: Mapping[str, Any]) -> None:
        try:
            directory = os.path.dirname(self.journal_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with self._lock, open(self.journal_path, "a", encoding="utf-8") as fh:
                fh.write(json.dumps(dict(entry), sort_keys=True, default=str) + "\n")
        except OSError as exc:
            raise PersistenceError(f"Failed to append cycle journal {self.journal_path}: {exc}") from exc

    def read_cycles(self, limit: int = 50) -> List[Dict[str, Any]]:
        if not os.path.exists(self.journal_path):
            return []
        with open(self.journal_path, "r", encoding="utf-8") as fh:
            lines = [line for line in fh.readlines() if line.strip()]
        entries = []
        for line in lines[-limit:] if limit > 0 else lines:
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning("Skipping malformed cycle journal line")
        return entries


__all__ = ["TradeStore"]
