"""Durable cache layer for docsync.

Persists cache entries in DuckDB so they survive process restarts.
"""

import os
from pathlib import Path
from typing import Optional, List, Dict, Any

import duckdb

from .schema import CacheSchema
from ..models.dataset import CacheEntry

MEMORY_DB = ":memory:"


def get_default_cache_path() -> Path:
    """Get default cache database path.

    Returns:
        Path to cache database file
    """
    if os.name == "nt":
        cache_base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    else:
        cache_base = Path(os.environ.get("XDG_CACHE_HOME", Path.home() / ".cache"))

    cache_dir = cache_base / "docsync"
    cache_dir.mkdir(parents=True, exist_ok=True)

    return cache_dir / "cache.duckdb"


class DurableCache:
    """Key/value table of cache entries in DuckDB.

    Does no TTL or integrity checking of its own; CacheStore decides what
    is servable.
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        read_only: bool = False,
    ):
        """Initialize durable cache.

        Args:
            db_path: Path to DuckDB database file, ":memory:" for a
                process-local database (default: ~/.cache/docsync/cache.duckdb)
            read_only: Open database in read-only mode
        """
        if db_path == MEMORY_DB:
            self.db_path: Optional[Path] = None
        elif db_path:
            self.db_path = Path(db_path).expanduser()
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        else:
            self.db_path = get_default_cache_path()

        self._read_only = read_only
        self._conn: Optional[duckdb.DuckDBPyConnection] = None

    @property
    def location(self) -> str:
        return str(self.db_path) if self.db_path else MEMORY_DB

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create database connection.

        Returns:
            DuckDB connection
        """
        if self._conn is None:
            self._conn = duckdb.connect(
                self.location,
                read_only=self._read_only,
            )
            if not self._read_only:
                if CacheSchema.needs_migration(self._conn):
                    CacheSchema.migrate(self._conn)
        return self._conn

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "DurableCache":
        self._get_connection()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # === Entry operations ===

    def load(self, key: str) -> Optional[CacheEntry]:
        """Load a raw entry.

        Args:
            key: Cache key

        Returns:
            Stored entry or None if absent
        """
        conn = self._get_connection()
        row = conn.execute(
            """
            SELECT key, payload, stored_at, ttl_ms, hash FROM cache_entries
            WHERE key = ?
            """,
            [key],
        ).fetchone()

        if not row:
            return None

        return CacheEntry(
            key=row[0],
            payload=row[1],
            stored_at=row[2],
            ttl_ms=row[3],
            integrity_hash=row[4],
        )

    def store(self, entry: CacheEntry) -> None:
        """Insert or replace an entry.

        Args:
            entry: Entry to persist
        """
        conn = self._get_connection()
        conn.execute(
            """
            INSERT OR REPLACE INTO cache_entries
            (key, payload, stored_at, ttl_ms, hash)
            VALUES (?, ?, ?, ?, ?)
            """,
            [entry.key, entry.payload, entry.stored_at, entry.ttl_ms, entry.integrity_hash],
        )

    def delete(self, key: str) -> None:
        conn = self._get_connection()
        conn.execute("DELETE FROM cache_entries WHERE key = ?", [key])

    def delete_expired(self, now_ms: int) -> List[str]:
        """Delete every entry whose TTL has elapsed.

        Args:
            now_ms: Current time in epoch ms

        Returns:
            Keys that were deleted
        """
        conn = self._get_connection()
        rows = conn.execute(
            "SELECT key FROM cache_entries WHERE ? - stored_at >= ttl_ms",
            [now_ms],
        ).fetchall()

        if rows:
            conn.execute(
                "DELETE FROM cache_entries WHERE ? - stored_at >= ttl_ms",
                [now_ms],
            )

        return [row[0] for row in rows]

    def keys(self) -> List[str]:
        conn = self._get_connection()
        rows = conn.execute("SELECT key FROM cache_entries ORDER BY key").fetchall()
        return [row[0] for row in rows]

    def total_bytes(self) -> int:
        """Get storage used by payloads.

        Returns:
            Sum of payload sizes in bytes
        """
        conn = self._get_connection()
        result = conn.execute(
            "SELECT COALESCE(SUM(strlen(payload)), 0) FROM cache_entries"
        ).fetchone()
        return int(result[0]) if result else 0

    # === Cache management ===

    def clear(self) -> None:
        """Clear all cached data."""
        conn = self._get_connection()
        CacheSchema.drop_all_tables(conn)
        CacheSchema.create_schema(conn)

    def get_stats(self, now_ms: int) -> Dict[str, Any]:
        """Get cache statistics.

        Args:
            now_ms: Current time in epoch ms, used to count expired entries

        Returns:
            Dict with cache statistics
        """
        conn = self._get_connection()

        entries = conn.execute("SELECT COUNT(*) FROM cache_entries").fetchone()[0]
        expired = conn.execute(
            "SELECT COUNT(*) FROM cache_entries WHERE ? - stored_at >= ttl_ms",
            [now_ms],
        ).fetchone()[0]
        oldest = conn.execute("SELECT MIN(stored_at) FROM cache_entries").fetchone()[0]

        db_size = self.db_path.stat().st_size if self.db_path and self.db_path.exists() else 0

        return {
            "entries": entries,
            "expired": expired,
            "payload_bytes": self.total_bytes(),
            "oldest_stored_at": oldest,
            "db_size_bytes": db_size,
            "db_path": self.location,
        }

    def vacuum(self) -> None:
        """Optimize database storage."""
        conn = self._get_connection()
        conn.execute("VACUUM")
