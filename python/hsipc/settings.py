"""Persisted key-value settings backing hsipc configuration."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional


LOGGER = logging.getLogger("hsipc.settings")


class SettingsStore:
    """JSON-file backed settings; in-memory only when no path is given."""

    def __init__(self, path: Optional[Path | str] = None):
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = {}
        self._path: Optional[Path] = Path(path).expanduser() if path else None
        if self._path and self._path.exists():
            try:
                payload = json.loads(self._path.read_text(encoding="utf-8"))
            except (ValueError, OSError) as exc:
                LOGGER.warning("ignoring unreadable settings file %s: %s", self._path, exc)
                payload = {}
            if isinstance(payload, dict):
                self._data = {str(key): value for key, value in payload.items()}

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def _write_to_disk(self) -> None:
        if not self._path:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(self._data, sort_keys=True, indent=2), encoding="utf-8")
        tmp_path.replace(self._path)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None:
            return default
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)

    def get_int(self, key: str, default: int) -> int:
        value = self.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            LOGGER.warning("setting %s=%r is not an integer; using %s", key, value, default)
            return default

    def set(self, key: str, value: Any) -> None:
        json.dumps(value)  # reject values the file could not hold
        with self._lock:
            self._data[key] = value
            self._write_to_disk()

    def clear(self, key: str) -> bool:
        with self._lock:
            if key not in self._data:
                return False
            del self._data[key]
            self._write_to_disk()
            return True

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)


__all__ = ["SettingsStore"]
