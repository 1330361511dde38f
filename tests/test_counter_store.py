import pytest
import redis

from app.core.errors import StoreUnavailable


def test_get_missing_key_returns_none(store):
    assert store.get("nope") is None


def test_set_and_get_structured_value(store):
    store.set("access:ABC", {"code": "ABC", "used": False})
    assert store.get("access:ABC") == {"code": "ABC", "used": False}


def test_counter_reads_back_as_int(store):
    assert store.incr("usage:x") == 1
    assert store.incr("usage:x") == 2
    assert store.get("usage:x") == 2
    assert store.decr("usage:x") == 1


def test_ttl_is_minus_one_without_expiry(store):
    store.set("k", 1)
    assert store.ttl("k") == -1
    assert store.ttl("missing") == -1
    store.expire("k", 60)
    assert 0 < store.ttl("k") <= 60


def test_set_if_absent_only_first_caller_wins(store):
    assert store.set_if_absent("claim", "a") is True
    assert store.set_if_absent("claim", "b") is False
    assert store.get("claim") == "a"


def test_list_operations(store):
    store.list_append("all", "A")
    store.list_append("all", "B")
    store.list_append("all", "A")
    assert store.list_range("all") == ["A", "B", "A"]
    assert store.list_remove("all", "A") == 2
    assert store.list_range("all") == ["B"]


def test_delete_reports_whether_anything_was_removed(store):
    store.set("k", 1)
    assert store.delete("k") is True
    assert store.delete("k") is False


def test_redis_errors_surface_as_store_unavailable(store, monkeypatch):
    def boom(*args, **kwargs):
        raise redis.exceptions.ConnectionError("connection refused")

    monkeypatch.setattr(store.client, "get", boom)
    monkeypatch.setattr(store.client, "incr", boom)

    with pytest.raises(StoreUnavailable):
        store.get("anything")
    with pytest.raises(StoreUnavailable):
        store.incr("anything")


def test_timeouts_surface_as_store_unavailable(store, monkeypatch):
    def slow(*args, **kwargs):
        raise redis.exceptions.TimeoutError("timed out")

    monkeypatch.setattr(store.client, "set", slow)
    with pytest.raises(StoreUnavailable):
        store.set("k", 1)
