"""Tests for profile_store.local_backend — in-process Redis primitives.

The local backend has to answer exactly like a ``decode_responses=True``
redis client for the calls the profiler storage makes.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
import redis

from profile_store.local_backend import LocalKeyValueBackend, connect_backend


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_backend() -> tuple[LocalKeyValueBackend, FakeClock]:
    clock = FakeClock()
    return LocalKeyValueBackend(clock=clock), clock


class TestHashes:
    def test_hset_and_hget(self) -> None:
        kv, _ = _make_backend()
        assert kv.hset("h", "a", "1") == 1
        assert kv.hset("h", "a", "2") == 0
        assert kv.hget("h", "a") == "2"
        assert kv.hget("h", "missing") is None
        assert kv.hget("nope", "a") is None

    def test_hgetall_returns_copy(self) -> None:
        kv, _ = _make_backend()
        kv.hset("h", "a", "1")
        kv.hset("h", "b", "2")
        snapshot = kv.hgetall("h")
        snapshot["c"] = "3"
        assert kv.hgetall("h") == {"a": "1", "b": "2"}
        assert kv.hgetall("missing") == {}

    def test_hdel_counts_removed_fields(self) -> None:
        kv, _ = _make_backend()
        kv.hset("h", "a", "1")
        kv.hset("h", "b", "2")
        assert kv.hdel("h", "a", "zzz") == 1
        assert kv.hgetall("h") == {"b": "2"}

    def test_hdel_last_field_removes_key(self) -> None:
        kv, _ = _make_backend()
        kv.hset("h", "a", "1")
        kv.pexpire("h", 5000)
        kv.hdel("h", "a")
        assert kv.pttl("h") == -2

    def test_hdel_without_fields_is_an_error(self) -> None:
        kv, _ = _make_backend()
        kv.hset("h", "a", "1")
        with pytest.raises(redis.ResponseError):
            kv.hdel("h")

    def test_wrong_type(self) -> None:
        kv, _ = _make_backend()
        kv.sadd("s", "x")
        with pytest.raises(redis.ResponseError):
            kv.hset("s", "a", "1")


class TestSets:
    def test_sadd_smembers_srem(self) -> None:
        kv, _ = _make_backend()
        assert kv.sadd("s", "x") == 1
        assert kv.sadd("s", "x", "y") == 1
        assert kv.smembers("s") == {"x", "y"}
        assert kv.srem("s", "x") == 1
        assert kv.srem("s", "x") == 0
        assert kv.smembers("s") == {"y"}

    def test_empty_set_disappears(self) -> None:
        kv, _ = _make_backend()
        kv.sadd("s", "x")
        kv.srem("s", "x")
        assert kv.pttl("s") == -2
        assert kv.smembers("s") == set()


class TestExpiry:
    def test_pttl_states(self) -> None:
        kv, _ = _make_backend()
        assert kv.pttl("missing") == -2
        kv.sadd("s", "x")
        assert kv.pttl("s") == -1
        assert kv.pexpire("s", 1500) is True
        assert kv.pttl("s") == 1500

    def test_pexpire_missing_key(self) -> None:
        kv, _ = _make_backend()
        assert kv.pexpire("missing", 1000) is False
        assert kv.pttl("missing") == -2

    def test_pexpire_accepts_timedelta(self) -> None:
        kv, _ = _make_backend()
        kv.hset("h", "a", "1")
        kv.pexpire("h", timedelta(seconds=2))
        assert kv.pttl("h") == 2000

    def test_key_expires_lazily(self) -> None:
        kv, clock = _make_backend()
        kv.hset("h", "a", "1")
        kv.pexpire("h", 1000)
        clock.advance(0.5)
        assert kv.hget("h", "a") == "1"
        clock.advance(0.6)
        assert kv.hget("h", "a") is None
        assert kv.hgetall("h") == {}
        assert kv.pttl("h") == -2

    def test_expired_key_starts_fresh_without_ttl(self) -> None:
        kv, clock = _make_backend()
        kv.sadd("s", "old")
        kv.pexpire("s", 1000)
        clock.advance(2)
        kv.sadd("s", "new")
        assert kv.smembers("s") == {"new"}
        assert kv.pttl("s") == -1

    def test_non_positive_expire_deletes(self) -> None:
        kv, _ = _make_backend()
        kv.sadd("s", "x")
        assert kv.pexpire("s", 0) is True
        assert kv.smembers("s") == set()


class TestConnectBackend:
    def test_falls_back_to_memory_when_redis_is_down(self) -> None:
        client, backend = connect_backend("redis://127.0.0.1:1/0")
        assert backend == "memory"
        assert isinstance(client, LocalKeyValueBackend)
        assert client.ping() is True
