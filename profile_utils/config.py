"""Profiler storage configuration.

Settings come from three places, highest priority first:

1. ``PROFILER_*`` environment variables,
2. the YAML file ``profiler.yaml`` (path overridable with
   ``PROFILER_CONFIG_FILE``),
3. built-in defaults.

Usage::

    from profile_utils.config import StorageConfig, cfg

    cfg.get_int("storage.cache_seconds")   # 1800
    StorageConfig().redis_url              # "redis://127.0.0.1:6379/0"

The YAML key ``storage.cache_seconds`` maps to the environment variable
``PROFILER_STORAGE_CACHE_SECONDS``.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _find_config_path() -> Path:
    env_path = os.getenv("PROFILER_CONFIG_FILE", "").strip()
    if env_path:
        return Path(env_path)
    return Path.cwd() / "profiler.yaml"


class StoreConfig:
    """Dotted-key settings lookup with env > yaml > default priority.

    The YAML file is read lazily on first access, once, under a lock.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._data: dict[str, Any] = {}
        self._loaded: bool = False
        self._lock = threading.Lock()

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        with self._lock:
            if self._loaded:
                return
            self._load()
            self._loaded = True

    def _load(self) -> None:
        config_path = self._path or _find_config_path()
        if not config_path.exists():
            self._data = {}
            return
        with open(config_path, "r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
        self._data = raw if isinstance(raw, dict) else {}

    def reload(self) -> None:
        """Re-read the YAML file."""
        with self._lock:
            self._loaded = False
            self._load()
            self._loaded = True

    def _resolve(self, dotted_key: str) -> Any:
        """``storage.cache_seconds`` -> data["storage"]["cache_seconds"]."""
        self._ensure_loaded()
        node: Any = self._data
        for part in dotted_key.split("."):
            if not isinstance(node, dict):
                return None
            node = node.get(part)
        return node

    @staticmethod
    def _env_key(dotted_key: str) -> str:
        return "PROFILER_" + dotted_key.upper().replace(".", "_")

    def _raw(self, key: str) -> Any:
        env_val = os.getenv(self._env_key(key), "").strip()
        if env_val:
            return env_val
        return self._resolve(key)

    def get_str(self, key: str, default: str = "") -> str:
        value = self._raw(key)
        return default if value is None else str(value)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self._raw(key)
        if value is None:
            return default
        try:
            return int(value)
        except (ValueError, TypeError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self._raw(key)
        if value is None:
            return default
        try:
            return float(value)
        except (ValueError, TypeError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._raw(key)
        if isinstance(value, bool):
            return value
        if value is None:
            return default
        raw = str(value).strip().lower()
        if raw in _TRUE_VALUES:
            return True
        if raw in _FALSE_VALUES:
            return False
        return default

    def __repr__(self) -> str:
        self._ensure_loaded()
        return f"<StoreConfig sections={list(self._data.keys())}>"


cfg = StoreConfig()


@dataclass(slots=True)
class StorageConfig:
    """Settings for :class:`~profile_store.redis_storage.RedisProfileStorage`.

    Fields use ``default_factory`` so values are read when the config is
    instantiated, not at import time (``monkeypatch.setenv`` works in tests).
    """

    redis_url: str = field(default_factory=lambda: cfg.get_str("redis.url", "redis://127.0.0.1:6379/0"))
    cache_seconds: float = field(default_factory=lambda: cfg.get_float("storage.cache_seconds", 1800.0))
    results_key: str = field(default_factory=lambda: cfg.get_str("storage.results_key", "mini-profiler-results"))
    unviewed_prefix: str = field(default_factory=lambda: cfg.get_str("storage.unviewed_prefix", "mini-profiler-unviewed-for-user-"))
    sweep_interval_seconds: float = field(default_factory=lambda: cfg.get_float("storage.sweep_interval_seconds", 0.0))
