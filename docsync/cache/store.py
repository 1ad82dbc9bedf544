"""TTL and integrity checked cache store.

An in-memory layer sits in front of an optional DuckDB layer. Entries are
served only while fresh and intact; corrupted entries are purged on sight.

Entry states:
    Empty -> Fresh      on set()
    Fresh -> Stale      when the TTL elapses (kept, not served by get())
    Stale -> Empty      on replacement, invalidate() or sweep()
    Fresh -> Empty      on integrity failure
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional

import duckdb
from loguru import logger

from .integrity import compute_hash, deserialize, serialize, verify
from .manager import DurableCache
from ..errors import CacheCorruption
from ..models.dataset import CacheEntry

DEFAULT_TTL_MS = 5 * 60 * 1000
DEFAULT_MAX_BYTES = 50 * 1024 * 1024


def epoch_ms() -> float:
    return time.time() * 1000


class CacheStore:
    """Process-wide cache of JSON payloads keyed by string."""

    def __init__(
        self,
        durable: Optional[DurableCache] = None,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        max_bytes: int = DEFAULT_MAX_BYTES,
        clock: Callable[[], float] = epoch_ms,
    ):
        """Initialize cache store.

        Args:
            durable: Durable layer (memory-only when None)
            default_ttl_ms: TTL applied when set() is called without one
            max_bytes: Soft cap on durable payload bytes; crossing it sweeps
            clock: Returns the current time in epoch ms
        """
        self._durable = durable
        self.default_ttl_ms = default_ttl_ms
        self.max_bytes = max_bytes
        self._clock = clock
        self._memory: Dict[str, CacheEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self.corruption_count = 0

    @property
    def durable(self) -> Optional[DurableCache]:
        return self._durable

    def now(self) -> int:
        return int(self._clock())

    def lock(self, key: str) -> asyncio.Lock:
        """Get the lock serializing async read-modify-write on a key.

        Args:
            key: Cache key

        Returns:
            Lock shared by every caller using this key
        """
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    # === Reads ===

    def _load_entry(self, key: str) -> Optional[CacheEntry]:
        """Find an entry in memory, falling back to the durable layer."""
        entry = self._memory.get(key)
        if entry is not None:
            return entry

        if self._durable is None:
            return None

        try:
            entry = self._durable.load(key)
        except duckdb.Error as e:
            logger.warning("Durable cache read failed for {}: {}", key, e)
            return None

        if entry is not None:
            self._memory[key] = entry
        return entry

    def _check_integrity(self, entry: CacheEntry) -> None:
        if not verify(entry.payload, entry.integrity_hash):
            raise CacheCorruption(
                "Cache integrity check failed",
                operation="cache_get",
                key=entry.key,
            )

    def _read(self, key: str, allow_stale: bool) -> Optional[Any]:
        entry = self._load_entry(key)
        if entry is None:
            return None

        try:
            self._check_integrity(entry)
        except CacheCorruption as e:
            self.corruption_count += 1
            logger.warning("{}; purging entry", e)
            self.invalidate(key)
            return None

        if not allow_stale and entry.is_expired(self.now()):
            logger.debug("Cache entry {} is stale", key)
            return None

        return deserialize(entry.payload)

    def get(self, key: str) -> Optional[Any]:
        """Get a payload if its entry is fresh and intact.

        Args:
            key: Cache key

        Returns:
            A fresh copy of the payload, or None on miss
        """
        payload = self._read(key, allow_stale=False)
        if payload is None:
            logger.debug("Cache miss: {}", key)
        else:
            logger.debug("Cache hit: {}", key)
        return payload

    def get_stale(self, key: str) -> Optional[Any]:
        """Get a payload ignoring TTL; integrity is still enforced.

        Args:
            key: Cache key

        Returns:
            Payload of a fresh or stale entry, or None
        """
        return self._read(key, allow_stale=True)

    def entry(self, key: str) -> Optional[CacheEntry]:
        """Get the raw entry without any checks (for inspection only)."""
        return self._load_entry(key)

    # === Writes ===

    def set(self, key: str, payload: Any, ttl_ms: Optional[int] = None) -> CacheEntry:
        """Store a payload.

        Args:
            key: Cache key
            payload: JSON-compatible value
            ttl_ms: Time to live in ms (default_ttl_ms when None)

        Returns:
            The stored entry
        """
        serialized = serialize(payload)
        entry = CacheEntry(
            key=key,
            payload=serialized,
            stored_at=self.now(),
            ttl_ms=self.default_ttl_ms if ttl_ms is None else ttl_ms,
            integrity_hash=compute_hash(serialized),
        )
        self._memory[key] = entry

        if self._durable is not None:
            try:
                self._durable.store(entry)
            except duckdb.Error as e:
                logger.warning("Durable cache write failed for {}: {}", key, e)
                self.sweep()
                return entry

        if self._stored_bytes() > self.max_bytes:
            logger.info("Cache storage above {} bytes, sweeping", self.max_bytes)
            self.sweep()

        return entry

    def _stored_bytes(self) -> int:
        if self._durable is not None:
            return self._durable.total_bytes()
        return sum(e.size_bytes for e in self._memory.values())

    def _release_lock(self, key: str) -> None:
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]

    def invalidate(self, key: str) -> None:
        """Remove an entry from every layer.

        Args:
            key: Cache key
        """
        self._memory.pop(key, None)
        if self._durable is not None:
            try:
                self._durable.delete(key)
            except duckdb.Error as e:
                logger.warning("Durable cache delete failed for {}: {}", key, e)
        self._release_lock(key)
        logger.debug("Invalidated cache entry {}", key)

    def sweep(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of distinct keys removed
        """
        now = self.now()
        removed = {key for key, entry in self._memory.items() if entry.is_expired(now)}
        for key in removed:
            del self._memory[key]

        if self._durable is not None:
            try:
                removed.update(self._durable.delete_expired(now))
            except duckdb.Error as e:
                logger.warning("Durable cache sweep failed: {}", e)

        for key in removed:
            self._release_lock(key)

        if removed:
            logger.info("Swept {} expired cache entries", len(removed))
        return len(removed)

    def clear(self, durable: bool = True) -> None:
        """Drop all entries.

        Args:
            durable: Also clear the durable layer
        """
        self._memory.clear()
        if durable and self._durable is not None:
            self._durable.clear()
        for key in list(self._locks):
            self._release_lock(key)

    # === Introspection ===

    def keys(self) -> List[str]:
        keys = set(self._memory)
        if self._durable is not None:
            keys.update(self._durable.keys())
        return sorted(keys)

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dict with memory and durable layer statistics
        """
        now = self.now()
        stats: Dict[str, Any] = {
            "memory_entries": len(self._memory),
            "memory_bytes": sum(e.size_bytes for e in self._memory.values()),
            "memory_expired": sum(1 for e in self._memory.values() if e.is_expired(now)),
            "corruptions": self.corruption_count,
            "max_bytes": self.max_bytes,
            "durable": None,
        }
        if self._durable is not None:
            stats["durable"] = self._durable.get_stats(now)
        return stats

    def close(self) -> None:
        self._memory.clear()
        if self._durable is not None:
            self._durable.close()
