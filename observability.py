"""Structured engine events and gauge metrics.

* ``log_event`` writes one JSON object per log line (``event`` name, UTC
  ``ts`` plus caller fields) through the caller's logger.  Position lifecycle,
  drawdown pauses, gated signals and rejected entries all go through it so
  the presentation layer can parse them back out of the log.
* ``record_metric`` appends balance, equity and drawdown gauges to
  ``METRICS_FILE``; ``latest_metrics`` returns the newest value of each gauge
  for the ``status`` command.
"""
from __future__ import annotations

import csv
import json
import logging
import os
import threading
import time
from typing import Any, Dict, Mapping, Optional

import pandas as pd

from config import METRICS_FILE
from trade_schema import iso_utc

_EVENT_LOGGER = logging.getLogger("engine.events")

METRIC_COLUMNS = ("ts", "metric", "value", "labels")


def log_event(logger: Optional[logging.Logger], event: str, **fields: Any) -> None:
    """Emit ``event`` as a JSON log line; unserialisable values are logged via ``repr``."""

    payload: Dict[str, Any] = {"event": event, "ts": iso_utc(time.time())}
    payload.update(fields)
    (logger or _EVENT_LOGGER).info(json.dumps(payload, sort_keys=True, default=repr))


class MetricsRecorder:
    """Append-only CSV of ``(ts, metric, value, labels)`` rows."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path or METRICS_FILE
        self._lock = threading.Lock()

    def record(self, metric: str, value: float, labels: Optional[Mapping[str, Any]] = None) -> None:
        row = {
            "ts": f"{time.time():.3f}",
            "metric": metric,
            "value": f"{float(value):.8f}",
            "labels": json.dumps(dict(labels or {}), sort_keys=True),
        }
        with self._lock:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            need_header = not os.path.exists(self.path) or os.path.getsize(self.path) == 0
            with open(self.path, "a", newline="", encoding="utf-8") as handle:
                writer = csv.DictWriter(handle, fieldnames=METRIC_COLUMNS)
                if need_header:
                    writer.writeheader()
                writer.writerow(row)

    def latest(self) -> Dict[str, float]:
        if not (os.path.exists(self.path) and os.path.getsize(self.path) > 0):
            return {}
        df = pd.read_csv(self.path, on_bad_lines="skip")
        if df.empty or not {"metric", "value"}.issubset(df.columns):
            return {}
        df["value"] = pd.to_numeric(df["value"], errors="coerce")
        last = df.dropna(subset=["value"]).groupby("metric")["value"].last()
        return {str(name): float(value) for name, value in last.items()}


_recorder = MetricsRecorder()


def record_metric(metric: str, value: float, *, labels: Optional[Mapping[str, Any]] = None) -> None:
    """Record a gauge; a failing metrics file never interrupts a tick."""

    try:
        _recorder.record(metric, value, labels)
    except OSError:
        _EVENT_LOGGER.debug("Failed to record metric %s", metric, exc_info=True)


def latest_metrics() -> Dict[str, float]:
    try:
        return _recorder.latest()
    except (OSError, ValueError, pd.errors.ParserError):
        _EVENT_LOGGER.debug("Failed to read metrics", exc_info=True)
        return {}


__all__ = ["MetricsRecorder", "log_event", "record_metric", "latest_metrics"]
