"""Host and client configuration assembled from settings and the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .protocol import DEFAULT_LISTENER_NAME
from .registry import DEFAULT_REAP_INTERVAL
from .settings import SettingsStore


HOME_ENV = "HSIPC_HOME"
LOG_ENV = "HSIPC_LOG"

KEY_LOG_LEVEL = "ipc.logLevel"
KEY_SAVE_HISTORY = "ipc.cli.saveHistory"
KEY_HISTORY_LIMIT = "ipc.cli.historyLimit"
KEY_LISTENER_NAME = "ipc.listenerName"
KEY_REAP_INTERVAL = "ipc.reapInterval"

DEFAULT_LOG_LEVEL = "warning"
DEFAULT_HISTORY_LIMIT = 1000
DEFAULT_TIMEOUT = 5.0


def default_home() -> Path:
    override = os.environ.get(HOME_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".hsipc"


def default_settings_path() -> Path:
    return default_home() / "settings.json"


def default_runtime_dir() -> Path:
    return default_home() / "run"


def resolve_log_level(store: Optional[SettingsStore], override: Optional[str] = None) -> str:
    """Pick the effective level: explicit override, then $HSIPC_LOG, then the setting."""
    if override:
        return override
    env_level = os.environ.get(LOG_ENV)
    if env_level:
        return env_level
    if store is not None:
        value = store.get(KEY_LOG_LEVEL)
        if isinstance(value, str) and value:
            return value
    return DEFAULT_LOG_LEVEL


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@dataclass
class HostConfig:
    listener_name: str = DEFAULT_LISTENER_NAME
    runtime_dir: Optional[Path] = None
    reap_interval: float = DEFAULT_REAP_INTERVAL
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_settings(cls, store: SettingsStore) -> "HostConfig":
        interval = store.get(KEY_REAP_INTERVAL)
        try:
            reap_interval = float(interval) if interval is not None else DEFAULT_REAP_INTERVAL
        except (TypeError, ValueError):
            reap_interval = DEFAULT_REAP_INTERVAL
        return cls(
            listener_name=str(store.get(KEY_LISTENER_NAME) or DEFAULT_LISTENER_NAME),
            runtime_dir=default_runtime_dir(),
            reap_interval=reap_interval,
            log_level=resolve_log_level(store),
        )


@dataclass
class ClientConfig:
    listener_name: str = DEFAULT_LISTENER_NAME
    runtime_dir: Optional[Path] = None
    timeout: float = DEFAULT_TIMEOUT
    save_history: bool = False
    history_limit: int = DEFAULT_HISTORY_LIMIT
    history_path: Optional[Path] = None

    @classmethod
    def from_settings(cls, store: SettingsStore) -> "ClientConfig":
        return cls(
            listener_name=str(store.get(KEY_LISTENER_NAME) or DEFAULT_LISTENER_NAME),
            runtime_dir=default_runtime_dir(),
            save_history=store.get_bool(KEY_SAVE_HISTORY, False),
            history_limit=store.get_int(KEY_HISTORY_LIMIT, DEFAULT_HISTORY_LIMIT),
            history_path=default_home() / "cli.history",
        )

    @property
    def effective_history_path(self) -> Optional[Path]:
        return self.history_path if self.save_history else None


__all__ = [
    "HOME_ENV",
    "LOG_ENV",
    "KEY_LOG_LEVEL",
    "KEY_SAVE_HISTORY",
    "KEY_HISTORY_LIMIT",
    "KEY_LISTENER_NAME",
    "KEY_REAP_INTERVAL",
    "default_home",
    "default_settings_path",
    "default_runtime_dir",
    "resolve_log_level",
    "configure_logging",
    "HostConfig",
    "ClientConfig",
]
