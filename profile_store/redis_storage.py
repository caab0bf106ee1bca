"""Redis storage for profiler results.

All results live in one hash (``results_key``), one field per record id.
Each user gets a set of record ids they have not looked at yet, stored
under ``unviewed_prefix + user``.  Both expire after ``cache_duration``:

* the results hash has a sliding expiry, refreshed by every :meth:`save`;
* individual records are swept lazily by :meth:`load` and :meth:`list`
  once their ``started`` time is older than ``cache_duration``;
* an unviewed set expires ``cache_duration`` after its *first* member was
  added and is not refreshed by later additions.

Profiling must never break the request being profiled, so every backend
failure is logged and turned into an empty result instead of raised.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from profile_store.models import ListResultsOrder, ProfileRecord, to_utc, utcnow

if TYPE_CHECKING:
    from profile_utils.config import StorageConfig

_log = logging.getLogger("profiler.storage.redis")

RESULTS_KEY = "mini-profiler-results"
"""Hash holding every stored result."""

UNVIEWED_USER_PREFIX = "mini-profiler-unviewed-for-user-"
"""Prefix of the per-user unviewed set, e.g. ``mini-profiler-unviewed-for-user-::1``."""

T = TypeVar("T")


def _as_timedelta(value: timedelta | float | int) -> timedelta:
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=float(value))


def _millis(value: timedelta) -> int:
    return max(1, int(value.total_seconds() * 1000))


class RedisProfileStorage:
    """Shared profiler result store on top of a Redis-like client.

    Args:
        backend:          ``redis.Redis`` (``decode_responses=True``) or a
                          :class:`~profile_store.local_backend.LocalKeyValueBackend`.
        cache_duration:   How long results are kept, as a ``timedelta`` or
                          seconds.  May be changed after construction.
        results_key:      Name of the results hash.
        unviewed_prefix:  Prefix of the per-user unviewed sets.
        sweep_interval:   Minimum time between two expiry sweeps run by this
                          instance.  Zero sweeps on every read.
    """

    def __init__(
        self,
        backend: Any,
        cache_duration: timedelta | float | int,
        *,
        results_key: str = RESULTS_KEY,
        unviewed_prefix: str = UNVIEWED_USER_PREFIX,
        sweep_interval: timedelta | float | int = 0,
    ) -> None:
        self.backend = backend
        self.cache_duration = cache_duration
        self.results_key = results_key
        self.unviewed_prefix = unviewed_prefix
        self.sweep_interval = _as_timedelta(sweep_interval)
        self._errors = threading.local()
        self._last_sweep: datetime | None = None

    @classmethod
    def from_config(cls, config: StorageConfig) -> RedisProfileStorage:
        """Connect to ``config.redis_url`` and build a store from *config*."""
        from profile_store.local_backend import connect_backend

        backend, backend_name = connect_backend(config.redis_url)
        _log.info("Profiler storage using %s backend", backend_name)
        return cls(
            backend,
            config.cache_seconds,
            results_key=config.results_key,
            unviewed_prefix=config.unviewed_prefix,
            sweep_interval=config.sweep_interval_seconds,
        )

    @property
    def cache_duration(self) -> timedelta:
        return self._cache_duration

    @cache_duration.setter
    def cache_duration(self, value: timedelta | float | int) -> None:
        self._cache_duration = _as_timedelta(value)

    @property
    def last_error(self) -> Exception | None:
        """Error swallowed by the calling thread's most recent operation.

        Kept per thread: a store shared by a server's request threads
        reports each thread its own outcome.
        """
        return getattr(self._errors, "last", None)

    # ── failure boundary ───────────────────────────────────────────────

    def _guarded(self, operation: str, default: T, func: Callable[[], T]) -> T:
        """Run *func*; on any error log it, remember it and return *default*."""
        try:
            result = func()
        except Exception as exc:
            self._errors.last = exc
            _log.warning("Profiler storage %s failed: %s", operation, exc)
            return default
        self._errors.last = None
        return result

    # ── public API ─────────────────────────────────────────────────────

    def save(self, record: ProfileRecord) -> None:
        """Store *record* and push the results hash expiry forward."""

        def _save() -> None:
            self.backend.hset(self.results_key, str(record.id), record.to_json())
            # Sliding expiry: everything goes once saves stop for cache_duration.
            self.backend.pexpire(self.results_key, _millis(self.cache_duration))

        self._guarded("save", None, _save)

    def load(self, id: uuid.UUID) -> ProfileRecord | None:
        """Return the stored record for *id*, or ``None``.

        Expired results are removed here rather than in :meth:`save` so the
        sweep delays requests for profiler results, not the profiled pages.
        """

        def _load() -> ProfileRecord | None:
            value = self.backend.hget(self.results_key, str(id))
            record = ProfileRecord.from_json(value) if value is not None else None
            if self._sweep_due():
                self._remove_expired(self._fetch_snapshot())
            if record is None or self._has_expired(record):
                return None
            return record

        return self._guarded("load", None, _load)

    def list(
        self,
        max_results: int,
        start: datetime | None = None,
        finish: datetime | None = None,
        order: ListResultsOrder = ListResultsOrder.DESCENDING,
    ) -> list[uuid.UUID]:
        """Return ids of the latest unexpired results.

        *start* and *finish* are exclusive bounds on ``started``; either may
        be omitted.  Results are sorted by ``started`` and cut to
        *max_results*.
        """
        return [r.id for r in self.list_records(max_results, start, finish, order)]

    def list_records(
        self,
        max_results: int,
        start: datetime | None = None,
        finish: datetime | None = None,
        order: ListResultsOrder = ListResultsOrder.DESCENDING,
    ) -> list[ProfileRecord]:
        """Same as :meth:`list` but returns the records, all read from one snapshot."""

        def _list() -> list[ProfileRecord]:
            snapshot = self._fetch_snapshot()
            if self._sweep_due():
                self._remove_expired(snapshot)

            records = [r for r in snapshot.values() if r is not None and not self._has_expired(r)]
            if start is not None:
                lower = to_utc(start)
                records = [r for r in records if r.started > lower]
            if finish is not None:
                upper = to_utc(finish)
                records = [r for r in records if r.started < upper]

            records.sort(
                key=lambda r: r.started,
                reverse=order != ListResultsOrder.ASCENDING,
            )
            return records[: max(0, max_results)]

        return self._guarded("list", [], _list)

    def get_unviewed_ids(self, user: str) -> list[uuid.UUID]:
        """Ids of results *user* has not seen yet."""

        def _get() -> list[uuid.UUID]:
            members = self.backend.smembers(self._unviewed_key(user))
            return [uuid.UUID(str(member)) for member in members]

        return self._guarded("get_unviewed_ids", [], _get)

    def set_unviewed(self, user: str, id: uuid.UUID) -> None:
        """Remember that *user* has not seen result *id*."""

        def _set() -> None:
            key = self._unviewed_key(user)
            self.backend.sadd(key, str(id))
            # Absolute expiry counted from the first entry.  Two first
            # inserts racing here both set it, which is harmless.
            if self.backend.pttl(key) < 0:
                self.backend.pexpire(key, _millis(self.cache_duration))

        self._guarded("set_unviewed", None, _set)

    def set_viewed(self, user: str, id: uuid.UUID) -> None:
        """Mark result *id* as seen by *user*."""
        self._guarded(
            "set_viewed",
            None,
            lambda: self.backend.srem(self._unviewed_key(user), str(id)),
        )

    def sweep(self) -> int:
        """Remove every expired result now; returns how many were removed."""
        return self._guarded("sweep", 0, lambda: self._remove_expired(self._fetch_snapshot()))

    # ── internals ──────────────────────────────────────────────────────

    def _unviewed_key(self, user: str) -> str:
        return self.unviewed_prefix + user

    def _has_expired(self, record: ProfileRecord) -> bool:
        return to_utc(record.started) < utcnow() - self.cache_duration

    def _sweep_due(self) -> bool:
        if self.sweep_interval <= timedelta(0) or self._last_sweep is None:
            return True
        return utcnow() - self._last_sweep >= self.sweep_interval

    def _fetch_snapshot(self) -> dict[str, ProfileRecord | None]:
        """All stored results by field; ``None`` marks an undecodable entry."""
        snapshot: dict[str, ProfileRecord | None] = {}
        for field_name, value in self.backend.hgetall(self.results_key).items():
            try:
                snapshot[field_name] = ProfileRecord.from_json(value)
            except (ValueError, KeyError, TypeError) as exc:
                _log.warning("Dropping undecodable profiler result %s: %s", field_name, exc)
                snapshot[field_name] = None
        return snapshot

    def _remove_expired(self, snapshot: dict[str, ProfileRecord | None]) -> int:
        self._last_sweep = utcnow()
        expired = [
            field_name
            for field_name, record in snapshot.items()
            if record is None or self._has_expired(record)
        ]
        if not expired:
            return 0
        removed = int(self.backend.hdel(self.results_key, *expired))
        _log.debug("Swept %d expired profiler results", removed)
        return removed
