"""Tests for the in-process storage adapter."""

import threading

import pytest

from satoken.storage.base import TTL_MISSING, TTL_NO_EXPIRY, match_pattern
from satoken.storage.errors import InvalidStoredValue


class TestValues:
    def test_string_round_trip(self, storage):
        storage.set("k", "v")
        assert storage.get("k") == "v"

    def test_list_round_trip(self, storage):
        storage.set("k", ["a", "b"])
        assert storage.get("k") == ["a", "b"]

    def test_tuple_is_stored_as_list(self, storage):
        storage.set("k", ("a", "b"))
        assert storage.get("k") == ["a", "b"]

    def test_returned_list_is_a_copy(self, storage):
        storage.set("k", ["a"])
        storage.get("k").append("mutated")
        assert storage.get("k") == ["a"]

    @pytest.mark.parametrize("value", [1, None, {"a": "b"}, ["a", 1], b"bytes"])
    def test_rejects_values_outside_the_variants(self, storage, value):
        with pytest.raises(InvalidStoredValue):
            storage.set("k", value)

    @pytest.mark.parametrize("ttl", [-1, 1.5, True, "10"])
    def test_rejects_bad_ttl(self, storage, ttl):
        with pytest.raises(ValueError):
            storage.set("k", "v", ttl)

    def test_missing_key(self, storage):
        assert storage.get("missing") is None
        assert storage.exists("missing") is False


class TestExpiry:
    def test_key_expires_after_ttl(self, storage, clock):
        storage.set("k", "v", 10)
        clock.advance(9)
        assert storage.get("k") == "v"
        clock.advance(1)
        assert storage.get("k") is None
        assert storage.exists("k") is False

    def test_ttl_conventions(self, storage, clock):
        storage.set("temp", "v", 10)
        storage.set("forever", "v")
        clock.advance(2.5)
        assert storage.ttl("temp") == 8
        assert storage.ttl("forever") == TTL_NO_EXPIRY
        assert storage.ttl("missing") == TTL_MISSING

    def test_expire_extends_live_key(self, storage, clock):
        storage.set("k", "v", 10)
        clock.advance(8)
        assert storage.expire("k", 10) is True
        clock.advance(8)
        assert storage.get("k") == "v"

    def test_expire_zero_removes_expiry(self, storage):
        storage.set("k", "v", 10)
        assert storage.expire("k", 0) is True
        assert storage.ttl("k") == TTL_NO_EXPIRY

    def test_expire_missing_key_returns_false(self, storage):
        assert storage.expire("missing", 10) is False

    def test_purge_expired(self, storage, clock):
        storage.set("a", "v", 1)
        storage.set("b", "v", 100)
        clock.advance(5)
        assert storage.purge_expired() == 1
        assert len(storage) == 1


class TestPopAndDelete:
    def test_pop_returns_and_removes(self, storage):
        storage.set("k", "v")
        assert storage.pop("k") == "v"
        assert storage.pop("k") is None

    def test_pop_expired_key(self, storage, clock):
        storage.set("k", "v", 1)
        clock.advance(2)
        assert storage.pop("k") is None

    def test_delete_is_idempotent(self, storage):
        storage.set("k", "v")
        storage.delete("k")
        storage.delete("k")
        assert storage.exists("k") is False

    def test_concurrent_pop_has_single_winner(self, storage):
        storage.set("once", "1")
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(storage.pop("once"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results.count("1") == 1


class TestKeys:
    def test_prefix_pattern(self, storage):
        storage.set("p:account:1:web", "t1")
        storage.set("p:account:1:app", "t2")
        storage.set("p:account:2:web", "t3")
        assert sorted(storage.keys("p:account:1:*")) == ["p:account:1:app", "p:account:1:web"]

    def test_exact_pattern(self, storage):
        storage.set("p:a", "v")
        storage.set("p:ab", "v")
        assert storage.keys("p:a") == ["p:a"]

    def test_expired_keys_are_not_listed(self, storage, clock):
        storage.set("p:x", "v", 1)
        clock.advance(2)
        assert storage.keys("p:*") == []

    def test_match_pattern(self):
        assert match_pattern("a:*", "a:b:c")
        assert not match_pattern("a:*", "b:a")
        assert match_pattern("a", "a")
