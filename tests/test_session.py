"""Tests for the per-identity session store."""

import pytest

from satoken.service.errors import ValidationError
from satoken.service.session import Session, session_key


class TestSession:
    def test_new_session_is_not_persisted_until_set(self, storage):
        session = Session.new("1001", storage, "satoken", timeout=60)
        assert storage.exists(session.key) is False
        session.set("name", "alice")
        assert storage.exists(session_key("satoken", "1001"))

    def test_load_restores_values(self, storage):
        session = Session.new("1001", storage, "satoken")
        session.set("name", "alice")
        session.set("tags", ["a", "b"])

        loaded = Session.load("1001", storage, "satoken")
        assert loaded is not None
        assert loaded.get("name") == "alice"
        assert loaded.get("tags") == ["a", "b"]
        assert loaded.create_time == session.create_time
        assert sorted(loaded.keys()) == ["name", "tags"]

    def test_load_missing_returns_none(self, storage):
        assert Session.load("nobody", storage, "satoken") is None

    def test_corrupt_blob_is_treated_as_absent(self, storage):
        storage.set(session_key("satoken", "1001"), "{not json")
        assert Session.load("1001", storage, "satoken") is None

    def test_list_value_under_session_key_is_treated_as_absent(self, storage):
        storage.set(session_key("satoken", "1001"), ["x"])
        assert Session.load("1001", storage, "satoken") is None

    def test_has_and_contains(self, storage):
        session = Session.new("1", storage, "satoken")
        session.set("k", None)
        assert session.has("k")
        assert "k" in session
        assert "missing" not in session
        assert session.get("missing", "fallback") == "fallback"

    def test_delete_key(self, storage):
        session = Session.new("1", storage, "satoken")
        session.set("k", "v")
        session.delete("k")
        assert Session.load("1", storage, "satoken").has("k") is False

    def test_set_rejects_unserializable_values(self, storage):
        session = Session.new("1", storage, "satoken")
        with pytest.raises(ValidationError):
            session.set("k", object())

    def test_writes_from_other_handles_are_kept(self, storage):
        first = Session.new("1", storage, "satoken")
        second = Session.new("1", storage, "satoken")
        first.set("a", 1)
        second.set("b", 2)
        assert Session.load("1", storage, "satoken").data == {"a": 1, "b": 2}

    def test_timeout_applies_to_blob(self, storage, clock):
        session = Session.new("1", storage, "satoken", timeout=30)
        session.set("k", "v")
        clock.advance(31)
        assert Session.load("1", storage, "satoken") is None

    def test_update_sets_many(self, storage):
        session = Session.new("1", storage, "satoken")
        session.update({"a": 1, "b": [1, 2]})
        assert Session.load("1", storage, "satoken").data == {"a": 1, "b": [1, 2]}

    def test_destroy(self, storage):
        session = Session.new("1", storage, "satoken")
        session.set("k", "v")
        session.destroy()
        assert Session.load("1", storage, "satoken") is None
        assert session.data == {}

    def test_data_is_a_copy(self, storage):
        session = Session.new("1", storage, "satoken")
        session.set("k", "v")
        session.data["k"] = "changed"
        assert session.get("k") == "v"
