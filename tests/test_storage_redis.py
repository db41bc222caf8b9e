"""Tests for the Redis storage adapter.

These tests use fakeredis to simulate Redis without requiring a real server.
"""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from satoken.config import Settings
from satoken.service.errors import InvalidTokenDataError
from satoken.service.manager import Manager
from satoken.storage.base import TTL_MISSING, TTL_NO_EXPIRY
from satoken.storage.errors import InvalidStoredValue, StorageError
from satoken.storage.redis_cache import RedisStorage

fakeredis = pytest.importorskip("fakeredis", reason="fakeredis not installed (pip install fakeredis)")


@pytest.fixture
def fake_redis():
    """Create a fake Redis client for testing."""
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def redis_storage(fake_redis):
    return RedisStorage(client=fake_redis)


class TestRedisStorage:
    def test_string_and_list_keep_their_variant(self, redis_storage):
        redis_storage.set("s", "value")
        redis_storage.set("l", ["a", "b"])
        assert redis_storage.get("s") == "value"
        assert redis_storage.get("l") == ["a", "b"]

    def test_values_are_json_encoded(self, redis_storage, fake_redis):
        redis_storage.set("s", "1")
        assert fake_redis.get("s") == '"1"'

    def test_rejects_invalid_values(self, redis_storage):
        with pytest.raises(InvalidStoredValue):
            redis_storage.set("k", {"a": 1})

    def test_foreign_value_is_reported(self, redis_storage, fake_redis):
        fake_redis.set("foreign", "not-json{")
        with pytest.raises(InvalidStoredValue):
            redis_storage.get("foreign")

    def test_ttl_conventions(self, redis_storage):
        redis_storage.set("temp", "v", 100)
        redis_storage.set("forever", "v")
        assert 0 < redis_storage.ttl("temp") <= 100
        assert redis_storage.ttl("forever") == TTL_NO_EXPIRY
        assert redis_storage.ttl("missing") == TTL_MISSING

    def test_expire(self, redis_storage):
        redis_storage.set("k", "v", 10)
        assert redis_storage.expire("k", 500) is True
        assert redis_storage.ttl("k") > 10
        assert redis_storage.expire("k", 0) is True
        assert redis_storage.ttl("k") == TTL_NO_EXPIRY
        assert redis_storage.expire("missing", 10) is False

    def test_pop_is_single_use(self, redis_storage):
        redis_storage.set("n", "1", 60)
        assert redis_storage.pop("n") == "1"
        assert redis_storage.pop("n") is None
        assert redis_storage.exists("n") is False

    def test_keys_by_prefix(self, redis_storage):
        redis_storage.set("p:account:1:web", "a")
        redis_storage.set("p:account:1:app", "b")
        redis_storage.set("p:account:12:web", "c")
        assert sorted(redis_storage.keys("p:account:1:*")) == [
            "p:account:1:app",
            "p:account:1:web",
        ]

    def test_delete(self, redis_storage):
        redis_storage.set("k", "v")
        redis_storage.delete("k")
        assert redis_storage.get("k") is None

    def test_redis_errors_become_storage_errors(self, redis_storage, monkeypatch):
        def broken(*args, **kwargs):
            raise RedisConnectionError("connection refused")

        monkeypatch.setattr(redis_storage.client, "get", broken)
        with pytest.raises(StorageError):
            redis_storage.get("k")


class TestManagerOnRedis:
    def test_login_flow(self, redis_storage):
        with Manager(redis_storage, Settings(auto_renew=False)) as manager:
            token = manager.login(1001, "web")
            assert manager.is_login(token)
            assert manager.get_login_id(token) == "1001"
            assert manager.get_token_value_list_by_login_id("1001") == [token]
            manager.logout(1001, "web")
            assert not manager.is_login(token)

    def test_disable_reports_remaining_time(self, redis_storage):
        with Manager(redis_storage, Settings(auto_renew=False)) as manager:
            manager.disable("u1", 120)
            assert 0 < manager.get_disable_time("u1") <= 120
            manager.disable("u2", 0)
            assert manager.get_disable_time("u2") == -1
            assert manager.get_disable_time("u3") == -2

    def test_unreadable_token_value_is_invalid_token_data(self, redis_storage, fake_redis):
        fake_redis.set("satoken:token:abc", "not json{")
        fake_redis.set("satoken:token:plain", "1001")
        with Manager(redis_storage, Settings(auto_renew=False)) as manager:
            with pytest.raises(InvalidTokenDataError):
                manager.get_login_id_not_check("abc")
            with pytest.raises(InvalidTokenDataError):
                manager.get_login_id_not_check("plain")
