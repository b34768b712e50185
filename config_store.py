"""JSON-file backed configuration store with typed values and an audit trail.

Overrides are stored under dotted keys (``trading.stop_loss_percent``) and
resolved on top of the environment defaults by :meth:`JsonConfigStore.snapshot`.
Values are parsed once into :class:`ConfigValue` when they enter the store so
the engine never re-parses strings at use sites.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from config import CONFIG_STORE_FILE, EngineConfig
from errors import ConfigurationError, PersistenceError

logger = logging.getLogger(__name__)

STRING = "string"
NUMBER = "number"
BOOLEAN = "boolean"
JSON = "json"
VALUE_KINDS = (STRING, NUMBER, BOOLEAN, JSON)

# Audit entries kept on disk; older ones are dropped.
MAX_AUDIT_ENTRIES = 500


@dataclass(frozen=True)
class ConfigValue:
    """A configuration value tagged with its kind."""

    kind: str
    value: Any

    @classmethod
    def parse(cls, raw: Any) -> "ConfigValue":
        """Infer the kind of ``raw``; strings are parsed the way a CLI user types them."""

        if isinstance(raw, ConfigValue):
            return raw
        if isinstance(raw, bool):
            return cls(BOOLEAN, raw)
        if isinstance(raw, (int, float)):
            return cls(NUMBER, raw)
        if isinstance(raw, (list, tuple, dict)):
            return cls(JSON, json.loads(json.dumps(list(raw) if isinstance(raw, tuple) else raw)))
        if raw is None:
            raise ConfigurationError("Configuration values cannot be empty")
        text = str(raw).strip()
        lowered = text.lower()
        if lowered in {"true", "false"}:
            return cls(BOOLEAN, lowered == "true")
        try:
            number = float(text)
        except ValueError:
            pass
        else:
            return cls(NUMBER, int(number) if number.is_integer() and "." not in text else number)
        if text[:1] in {"[", "{"}:
            try:
                return cls(JSON, json.loads(text))
            except json.JSONDecodeError as exc:
                raise ConfigurationError(f"Invalid JSON value {text!r}") from exc
        return cls(STRING, text)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "value": self.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConfigValue":
        kind = str(data.get("kind", STRING))
        if kind not in VALUE_KINDS:
            raise ConfigurationError(f"Unknown configuration value kind {kind!r}")
        return cls(kind, data.get("value"))


class JsonConfigStore:
    """Persist configuration overrides to a JSON document."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path or CONFIG_STORE_FILE
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------
    def _load(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {"values": {}, "audit": []}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                content = fh.read().strip()
        except OSError as exc:
            raise PersistenceError(f"Unable to read config store {self.path}: {exc}") from exc
        if not content:
            return {"values": {}, "audit": []}
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Config store {self.path} contains invalid JSON: {exc}") from exc
        data.setdefault("values", {})
        data.setdefault("audit", [])
        return data

    def _write(self, data: Mapping[str, Any]) -> None:
        directory = os.path.dirname(self.path)
        tmp_path = f"{self.path}.tmp"
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise PersistenceError(f"Unable to write config store {self.path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def get(self, key: str) -> Optional[ConfigValue]:
        with self._lock:
            entry = self._load()["values"].get(key)
        return ConfigValue.from_dict(entry) if entry is not None else None

    def values(self) -> Dict[str, Any]:
        """Return the raw override values keyed by dotted name."""

        with self._lock:
            stored = self._load()["values"]
        return {key: ConfigValue.from_dict(entry).value for key, entry in stored.items()}

    def set(
        self, key: str, value: Any, actor: str = "system", base: Optional[EngineConfig] = None
    ) -> ConfigValue:
        """Store ``value`` under ``key`` after checking it yields a valid config.

        The check resolves against ``base`` (defaults when omitted), so pass the
        environment-derived config to catch conflicts with it.
        """

        parsed = ConfigValue.parse(value)
        with self._lock:
            data = self._load()
            current = {k: ConfigValue.from_dict(v).value for k, v in data["values"].items()}
            current[key] = parsed.value
            # Reject unknown keys and invalid values before anything is written.
            (base or EngineConfig()).with_overrides(current).validate()
            previous = data["values"].get(key)
            data["values"][key] = parsed.to_dict()
            audit: List[Dict[str, Any]] = list(data["audit"])
            audit.append(
                {
                    "key": key,
                    "old": previous.get("value") if previous else None,
                    "new": parsed.value,
                    "actor": actor,
                    "ts": time.time(),
                }
            )
            data["audit"] = audit[-MAX_AUDIT_ENTRIES:]
            self._write(data)
        logger.info("Config %s set to %r by %s", key, parsed.value, actor)
        return parsed

    def unset(self, key: str, actor: str = "system") -> bool:
        with self._lock:
            data = self._load()
            previous = data["values"].pop(key, None)
            if previous is None:
                return False
            data["audit"] = (
                list(data["audit"])
                + [{"key": key, "old": previous.get("value"), "new": None, "actor": actor, "ts": time.time()}]
            )[-MAX_AUDIT_ENTRIES:]
            self._write(data)
        return True

    def audit_log(self, limit: int = 50) -> List[Dict[str, Any]]:
        with self._lock:
            audit = list(self._load()["audit"])
        return audit[-limit:] if limit > 0 else audit

    def snapshot(self, base: Optional[EngineConfig] = None) -> EngineConfig:
        """Resolve an immutable config: ``base`` (or defaults) plus stored overrides."""

        base_config = base or EngineConfig()
        return base_config.with_overrides(self.values()).validate()


__all__ = ["ConfigValue", "JsonConfigStore"]
