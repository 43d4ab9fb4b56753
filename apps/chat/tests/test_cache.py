"""Unit tests for KeyValueCache: JSON round trip, TTL, degraded reads, propagated writes."""

import logging
from datetime import datetime, timezone

import pytest

from apps.chat.services.cache import TTL_MISSING, TTL_NO_EXPIRY, CacheBackendError, KeyValueCache


def test_set_get_returns_deserialized_value(cache) -> None:
    """Values come back as plain JSON types."""
    cache.set("user:ann:profile", {"name": "ann", "tags": [1, 2]})
    assert cache.get("user:ann:profile") == {"name": "ann", "tags": [1, 2]}


def test_get_missing_key_returns_none(cache) -> None:
    assert cache.get("never-set") is None


def test_datetime_values_serialize_as_iso(cache) -> None:
    """datetime payloads are stored as ISO-8601 strings with Z suffix."""
    cache.set("k", {"at": datetime(2026, 1, 29, 12, 30, tzinfo=timezone.utc)})
    assert cache.get("k") == {"at": "2026-01-29T12:30:00.000Z"}


def test_unserializable_value_raises(cache) -> None:
    with pytest.raises(TypeError):
        cache.set("k", {"obj": object()})


def test_entry_absent_after_ttl(cache, clock) -> None:
    """A read at or after expiry returns None, never stale data."""
    cache.set("k", "v", ttl_seconds=10)
    clock.advance(9)
    assert cache.get("k") == "v"
    clock.advance(1)
    assert cache.get("k") is None
    assert cache.exists("k") is False


def test_no_ttl_never_expires(cache, clock) -> None:
    cache.set("k", "v")
    clock.advance(10 * 365 * 86400)
    assert cache.get("k") == "v"
    assert cache.ttl("k") == TTL_NO_EXPIRY


def test_delete_is_idempotent(cache) -> None:
    cache.set("k", 1)
    cache.delete("k")
    cache.delete("k")
    assert cache.get("k") is None
    assert cache.exists("k") is False


def test_exists(cache) -> None:
    assert cache.exists("k") is False
    cache.set("k", 0)
    assert cache.exists("k") is True


def test_keys_matches_glob_and_skips_expired(cache, clock) -> None:
    cache.set("conversation:ann:t1", {}, ttl_seconds=5)
    cache.set("conversation:ann:t2", {}, ttl_seconds=100)
    cache.set("conversation:bob:t1", {})
    cache.set("conversation_history:ann", [])
    clock.advance(5)
    assert cache.keys("conversation:ann:*") == ["conversation:ann:t2"]
    assert cache.keys("conversation:*:t1") == ["conversation:bob:t1"]


def test_ttl_and_expire(cache, clock) -> None:
    assert cache.ttl("k") == TTL_MISSING
    assert cache.expire("k", 10) is False
    cache.set("k", "v", ttl_seconds=100)
    assert cache.ttl("k") == 100
    assert cache.expire("k", 3) is True
    clock.advance(1)
    assert cache.ttl("k") == 2
    clock.advance(2)
    assert cache.get("k") is None


def test_corrupt_payload_treated_as_absent(sql_backend, caplog) -> None:
    """Corrupt JSON is logged and returned as None, not raised."""
    cache = KeyValueCache(sql_backend)
    sql_backend.set("bad", "{not json")
    with caplog.at_level(logging.ERROR, logger="apps.chat.services.cache"):
        assert cache.get("bad") is None
    assert "Failed to parse JSON for key bad" in caplog.text


def test_key_prefix_applied_and_stripped(sql_backend) -> None:
    cache = KeyValueCache(sql_backend, key_prefix="app:")
    cache.set("user:ann:profile", {"name": "ann"})
    assert sql_backend.get("app:user:ann:profile") is not None
    assert sql_backend.get("user:ann:profile") is None
    assert cache.keys("user:*") == ["user:ann:profile"]


def test_read_failures_degrade(dict_backend, caplog) -> None:
    """Backend read errors are logged; get/exists/keys/ttl return empty results."""
    cache = KeyValueCache(dict_backend)
    cache.set("k", "v")
    dict_backend.fail_reads = True
    with caplog.at_level(logging.ERROR):
        assert cache.get("k") is None
        assert cache.exists("k") is False
        assert cache.keys("*") == []
        assert cache.ttl("k") == TTL_MISSING
    assert "Cache read failed for key k" in caplog.text


def test_strict_get_raises_backend_errors(dict_backend, sql_backend) -> None:
    """strict=True surfaces read failures; corrupt JSON is still absent."""
    cache = KeyValueCache(dict_backend)
    cache.set("k", "v")
    assert cache.get("k", strict=True) == "v"
    dict_backend.fail_reads = True
    with pytest.raises(CacheBackendError):
        cache.get("k", strict=True)

    sql_backend.set("bad", "{not json")
    assert KeyValueCache(sql_backend).get("bad", strict=True) is None


def test_write_failures_propagate(dict_backend) -> None:
    cache = KeyValueCache(dict_backend)
    dict_backend.fail_writes = True
    with pytest.raises(CacheBackendError):
        cache.set("k", "v")
    with pytest.raises(CacheBackendError):
        cache.delete("k")


def test_close_closes_backend(dict_backend) -> None:
    KeyValueCache(dict_backend).close()
    assert dict_backend.closed is True
