"""In-process key-value backend with the Redis primitives the storage uses.

:class:`LocalKeyValueBackend` mirrors the subset of the ``redis.Redis``
client API that :class:`~profile_store.redis_storage.RedisProfileStorage`
calls (hashes, sets and millisecond expiry), with the same return values a
client created with ``decode_responses=True`` gives.  It backs the tests and
single-process deployments, and is what :func:`connect_backend` falls back to
when Redis cannot be reached.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable

import redis

_log = logging.getLogger("profiler.storage.local")


def _to_millis(value: int | float | timedelta) -> int:
    if isinstance(value, timedelta):
        return int(value.total_seconds() * 1000)
    return int(value)


@dataclass
class LocalKeyValueBackend:
    """Thread-safe dict-backed store with lazy, Redis-style key expiry.

    Attributes:
        clock:  Time source in seconds; tests swap it to move time forward.
    """

    clock: Callable[[], float] = time.time
    _hashes: dict[str, dict[str, str]] = field(default_factory=dict)
    _sets: dict[str, set[str]] = field(default_factory=dict)
    _expires_at: dict[str, float] = field(default_factory=dict)
    _lock: threading.RLock = field(default_factory=threading.RLock)

    # ── key bookkeeping ────────────────────────────────────────────────

    def _purge_if_expired(self, key: str) -> None:
        expires_at = self._expires_at.get(key)
        if expires_at is not None and expires_at <= self.clock():
            self._drop(key)

    def _drop(self, key: str) -> None:
        self._hashes.pop(key, None)
        self._sets.pop(key, None)
        self._expires_at.pop(key, None)

    def _exists(self, key: str) -> bool:
        self._purge_if_expired(key)
        return key in self._hashes or key in self._sets

    def ping(self) -> bool:
        return True

    # ── hashes ─────────────────────────────────────────────────────────

    def hset(self, name: str, key: str, value: Any) -> int:
        with self._lock:
            self._purge_if_expired(name)
            if name in self._sets:
                raise redis.ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
            fields = self._hashes.setdefault(name, {})
            added = 0 if key in fields else 1
            fields[key] = str(value)
            return added

    def hget(self, name: str, key: str) -> str | None:
        with self._lock:
            self._purge_if_expired(name)
            return self._hashes.get(name, {}).get(key)

    def hgetall(self, name: str) -> dict[str, str]:
        with self._lock:
            self._purge_if_expired(name)
            return dict(self._hashes.get(name, {}))

    def hdel(self, name: str, *keys: str) -> int:
        if not keys:
            raise redis.ResponseError("wrong number of arguments for 'hdel' command")
        with self._lock:
            self._purge_if_expired(name)
            fields = self._hashes.get(name)
            if fields is None:
                return 0
            removed = 0
            for key in keys:
                if fields.pop(key, None) is not None:
                    removed += 1
            if not fields:
                self._drop(name)
            return removed

    # ── sets ───────────────────────────────────────────────────────────

    def sadd(self, name: str, *values: Any) -> int:
        with self._lock:
            self._purge_if_expired(name)
            if name in self._hashes:
                raise redis.ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
            members = self._sets.setdefault(name, set())
            before = len(members)
            members.update(str(value) for value in values)
            return len(members) - before

    def srem(self, name: str, *values: Any) -> int:
        with self._lock:
            self._purge_if_expired(name)
            members = self._sets.get(name)
            if members is None:
                return 0
            removed = 0
            for value in values:
                if str(value) in members:
                    members.discard(str(value))
                    removed += 1
            if not members:
                self._drop(name)
            return removed

    def smembers(self, name: str) -> set[str]:
        with self._lock:
            self._purge_if_expired(name)
            return set(self._sets.get(name, set()))

    # ── expiry ─────────────────────────────────────────────────────────

    def pexpire(self, name: str, time: int | timedelta) -> bool:
        """Expire *name* after *time* milliseconds; ``False`` if it is missing."""
        millis = _to_millis(time)
        with self._lock:
            if not self._exists(name):
                return False
            if millis <= 0:
                self._drop(name)
                return True
            self._expires_at[name] = self.clock() + millis / 1000.0
            return True

    def pttl(self, name: str) -> int:
        """Remaining lifetime in ms, ``-1`` without expiry, ``-2`` if missing."""
        with self._lock:
            if not self._exists(name):
                return -2
            expires_at = self._expires_at.get(name)
            if expires_at is None:
                return -1
            return max(0, int(round((expires_at - self.clock()) * 1000)))


def connect_backend(redis_url: str) -> tuple[Any, str]:
    """Return ``(client, backend_name)`` for *redis_url*.

    Tries a real Redis connection first.  If the ping fails the process
    keeps working on a :class:`LocalKeyValueBackend`, which only shares
    results within this process.
    """
    try:
        client = redis.Redis.from_url(redis_url, decode_responses=True)
        client.ping()
        return client, "redis"
    except Exception as exc:
        _log.warning("Redis unavailable (%s), using in-memory fallback", exc)
        return LocalKeyValueBackend(), "memory"
