"""Tests for the optional Redis cache."""

import pytest
import redis

import redis_store
from redis_store import cache_key, get_json, redis_health, setex_json


class FakeRedis:
    def __init__(self, fail: bool = False) -> None:
        self.data = {}
        self.ttls = {}
        self.fail = fail

    def get(self, key):
        if self.fail:
            raise redis.ConnectionError("down")
        return self.data.get(key)

    def setex(self, key, ttl, value):
        if self.fail:
            raise redis.ConnectionError("down")
        self.data[key] = value
        self.ttls[key] = ttl

    def ping(self):
        if self.fail:
            raise redis.ConnectionError("down")
        return True


class TestDisabled:
    def test_no_url(self) -> None:
        assert redis_store.get_redis() is None
        assert get_json("k") is None
        assert setex_json("k", 60, {"a": 1}) is False
        assert redis_health() == {"enabled": False, "connected": False}


class TestWithClient:
    def test_round_trip(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fake = FakeRedis()
        monkeypatch.setattr(redis_store, "get_redis", lambda: fake)

        assert setex_json("k", 60, {"totalUsers": 3}) is True
        assert fake.ttls["k"] == 60
        assert get_json("k") == {"totalUsers": 3}
        assert redis_health() == {"enabled": True, "connected": True}

    def test_zero_ttl_skips_write(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fake = FakeRedis()
        monkeypatch.setattr(redis_store, "get_redis", lambda: fake)
        assert setex_json("k", 0, {"a": 1}) is False
        assert fake.data == {}

    def test_errors_are_misses(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(redis_store, "get_redis", lambda: FakeRedis(fail=True))
        assert get_json("k") is None
        assert setex_json("k", 60, {"a": 1}) is False
        assert redis_health()["connected"] is False

    def test_undecodable_entry(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fake = FakeRedis()
        fake.data["k"] = "{broken"
        monkeypatch.setattr(redis_store, "get_redis", lambda: fake)
        assert get_json("k") is None

    def test_cache_key(self) -> None:
        assert cache_key("overview", "mdl_") == "lms_dashboard:overview:mdl_"
