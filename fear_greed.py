"""Fear & Greed index client used for the sentiment adjustment.

The index (0 extreme fear .. 100 extreme greed) changes once a day, so the
fetcher keeps the last value in memory for ``refresh_seconds`` and mirrors it
on disk.  When the API is unreachable the disk copy is used as long as it is
younger than ``stale_after_seconds``; otherwise ``None`` is returned and the
engine trades without a sentiment adjustment.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from datetime import datetime, timezone
from http.client import RemoteDisconnected
from pathlib import Path
from typing import Any, Callable, Optional

import requests
from requests import exceptions as requests_exceptions

logger = logging.getLogger(__name__)


def _cache_path() -> Path:
    configured = os.getenv("FEAR_GREED_CACHE_PATH", os.path.join("data", "fear_greed_cache.json"))
    return Path(configured).expanduser()


class FearGreedIndexFetcher:
    """Fetch the Fear & Greed index with memory and disk caches."""

    API_URL = "https://api.alternative.me/fng/"

    def __init__(
        self,
        cache_path: Optional[Path] = None,
        refresh_seconds: float = 600.0,
        stale_after_seconds: float = 86400.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache_path = Path(cache_path) if cache_path else _cache_path()
        self.refresh_seconds = refresh_seconds
        self.stale_after_seconds = stale_after_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._value: Optional[int] = None
        self._fetched_at = 0.0

    def fetch(self) -> Optional[int]:
        """Return the latest index value, or ``None`` when nothing usable is known."""

        now = self._clock()
        with self._lock:
            if self._value is not None and now - self._fetched_at < self.refresh_seconds:
                return self._value
        try:
            value = self._fetch_remote()
        except RemoteDisconnected as exc:
            logger.warning("Connection dropped fetching Fear & Greed Index, using cached value: %s", exc)
            return self._cached(now)
        except requests_exceptions.RequestException as exc:
            logger.warning("Network error fetching Fear & Greed Index, using cached value: %s", exc)
            return self._cached(now)
        except ValueError as exc:
            logger.warning("Malformed Fear & Greed payload, using cached value: %s", exc)
            return self._cached(now)

        with self._lock:
            self._value = value
            self._fetched_at = now
        self._write_cache(value, now)
        return value

    def _fetch_remote(self) -> int:
        response = requests.get(self.API_URL, timeout=10)
        response.raise_for_status()
        return self._parse_value(response.json())

    @staticmethod
    def _parse_value(data: Any) -> int:
        try:
            value = int(data["data"][0]["value"])
        except (KeyError, ValueError, IndexError, TypeError) as exc:
            raise ValueError("Fear & Greed payload missing 'data[0][\"value\"]'") from exc
        if not 0 <= value <= 100:
            raise ValueError(f"Fear & Greed Index value out of range: {value}")
        return value

    def _cached(self, now: float) -> Optional[int]:
        try:
            payload = json.loads(self.cache_path.read_text())
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            logger.debug("Fear & Greed cache unreadable: %s", exc, exc_info=True)
            return None
        try:
            value = int(payload["value"])
            cached_at = float(payload.get("cached_ts", 0.0))
        except (KeyError, ValueError, TypeError) as exc:
            logger.debug("Fear & Greed cache missing value: %s", exc, exc_info=True)
            return None
        if not 0 <= value <= 100:
            return None
        if now - cached_at > self.stale_after_seconds:
            logger.info("Fear & Greed cache is stale; skipping sentiment")
            return None
        return value

    def _write_cache(self, value: int, now: float) -> None:
        payload = {
            "value": int(value),
            "cached_ts": now,
            "cached_at": datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
        }
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            self.cache_path.write_text(json.dumps(payload, indent=2))
        except OSError as exc:
            logger.debug("Failed to write Fear & Greed cache: %s", exc, exc_info=True)


__all__ = ["FearGreedIndexFetcher"]
