"""Tests for CacheStore, DurableCache and payload integrity."""

import asyncio

import pytest

from docsync.cache import CacheStore, DurableCache, compute_hash, serialize
from docsync.cache.integrity import verify


class TestIntegrity:
    """Tests for canonical serialization and hashing."""

    def test_serialization_is_key_order_independent(self):
        assert serialize({"b": 1, "a": {"d": 2, "c": 3}}) == serialize(
            {"a": {"c": 3, "d": 2}, "b": 1}
        )

    def test_hash_is_stable(self):
        text = serialize({"records": [1, 2, 3]})
        assert compute_hash(text) == compute_hash(text)
        assert len(compute_hash(text)) == 64

    def test_hash_detects_changes(self):
        original = serialize({"records": [1, 2, 3]})
        changed = serialize({"records": [1, 2, 4]})
        assert compute_hash(original) != compute_hash(changed)
        assert not verify(changed, compute_hash(original))

    def test_unicode_is_kept(self):
        assert serialize({"name": "café"}) == '{"name":"café"}'


class TestCacheStoreTTL:
    """Tests for freshness handling."""

    def test_hit_within_ttl(self, store, clock):
        store.set("k", {"v": 1}, ttl_ms=1000)
        clock.advance(999)
        assert store.get("k") == {"v": 1}

    def test_miss_at_ttl(self, store, clock):
        store.set("k", {"v": 1}, ttl_ms=1000)
        clock.advance(1000)
        assert store.get("k") is None

    def test_stale_entry_kept_for_fallback(self, store, clock):
        store.set("k", {"v": 1}, ttl_ms=1000)
        clock.advance(5000)
        assert store.get("k") is None
        assert store.get_stale("k") == {"v": 1}
        assert "k" in store.keys()

    def test_default_ttl(self, clock):
        store = CacheStore(default_ttl_ms=100, clock=clock)
        entry = store.set("k", [1])
        assert entry.ttl_ms == 100
        clock.advance(100)
        assert store.get("k") is None

    def test_get_returns_copy(self, store):
        store.set("k", {"items": [1]})
        first = store.get("k")
        first["items"].append(2)
        assert store.get("k") == {"items": [1]}

    def test_missing_key(self, store):
        assert store.get("nope") is None
        assert store.get_stale("nope") is None

    def test_invalidate(self, store):
        store.set("k", 1)
        store.invalidate("k")
        assert store.get_stale("k") is None
        store.invalidate("k")

    def test_sweep_removes_only_expired(self, store, clock):
        store.set("short", 1, ttl_ms=10)
        store.set("long", 2, ttl_ms=10_000)
        clock.advance(50)
        assert store.sweep() == 1
        assert store.keys() == ["long"]


class TestDurableLayer:
    """Tests for the DuckDB-backed layer."""

    def test_promotes_from_durable(self, durable_store):
        durable_store.set("k", {"v": 1})
        durable_store.clear(durable=False)
        assert durable_store.get("k") == {"v": 1}
        assert durable_store.stats()["memory_entries"] == 1

    def test_corruption_purges_entry(self, durable_store):
        durable_store.set("k", {"v": 1})
        durable_store.clear(durable=False)
        conn = durable_store.durable._get_connection()
        conn.execute("UPDATE cache_entries SET payload = ? WHERE key = ?", ['{"v":2}', "k"])

        assert durable_store.get("k") is None
        assert durable_store.corruption_count == 1
        assert durable_store.durable.load("k") is None

    def test_corrupt_entry_not_served_stale(self, durable_store, clock):
        durable_store.set("k", {"v": 1}, ttl_ms=10)
        durable_store.clear(durable=False)
        conn = durable_store.durable._get_connection()
        conn.execute("UPDATE cache_entries SET hash = 'bad' WHERE key = ?", ["k"])
        clock.advance(100)

        assert durable_store.get_stale("k") is None
        assert durable_store.keys() == []

    def test_sweep_when_over_max_bytes(self, clock):
        store = CacheStore(durable=DurableCache(":memory:"), max_bytes=100, clock=clock)
        store.set("old", "x" * 60, ttl_ms=0)
        store.set("big", "y" * 60)
        assert store.keys() == ["big"]
        store.close()

    def test_memory_only_sweep_when_over_max_bytes(self, clock):
        store = CacheStore(max_bytes=100, clock=clock)
        store.set("old", "x" * 60, ttl_ms=0)
        store.set("big", "y" * 60)
        assert store.keys() == ["big"]
        assert store.stats()["memory_bytes"] <= 100

    def test_file_database_survives_reopen(self, tmp_path, clock):
        db_path = str(tmp_path / "cache.duckdb")
        store = CacheStore(durable=DurableCache(db_path), clock=clock)
        store.set("k", {"v": 1})
        store.close()

        reopened = CacheStore(durable=DurableCache(db_path), clock=clock)
        assert reopened.get("k") == {"v": 1}
        stats = reopened.stats()["durable"]
        assert stats["entries"] == 1
        assert stats["db_path"] == db_path
        reopened.close()

    def test_clear_empties_both_layers(self, durable_store):
        durable_store.set("a", 1)
        durable_store.set("b", 2)
        durable_store.clear()
        assert durable_store.keys() == []
        assert durable_store.durable.total_bytes() == 0


class TestLocks:
    """Tests for per-key locks."""

    def test_same_key_same_lock(self, store):
        assert store.lock("a") is store.lock("a")
        assert store.lock("a") is not store.lock("b")

    def test_lock_dropped_with_entry(self, store, clock):
        first = store.lock("a")
        store.set("a", 1)
        store.invalidate("a")
        assert store.lock("a") is not first

        store.set("b", 2, ttl_ms=10)
        second = store.lock("b")
        clock.advance(10)
        store.sweep()
        assert store.lock("b") is not second

    def test_held_lock_survives_invalidate(self, store):
        async def run():
            async with store.lock("a"):
                held = store.lock("a")
                store.invalidate("a")
                store.clear()
                return held is store.lock("a")

        assert asyncio.run(run())


@pytest.mark.parametrize("payload", [None, 0, "", [], {}])
def test_falsy_payloads_roundtrip_as_stored(store, payload):
    store.set("k", payload)
    assert store.entry("k").payload == serialize(payload)
