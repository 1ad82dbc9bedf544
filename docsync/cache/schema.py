"""DuckDB schema definitions for the durable cache layer.

Provides schema creation and migration for the cache database.
"""

from typing import Optional
import duckdb


class CacheSchema:
    """Manages DuckDB schema for cache database."""

    SCHEMA_VERSION = 1

    CREATE_CACHE_META = """
    CREATE TABLE IF NOT EXISTS cache_meta (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """

    CREATE_CACHE_ENTRIES = """
    CREATE TABLE IF NOT EXISTS cache_entries (
        key TEXT PRIMARY KEY,
        payload TEXT NOT NULL,
        stored_at BIGINT NOT NULL,
        ttl_ms BIGINT NOT NULL,
        hash TEXT NOT NULL
    )
    """

    @classmethod
    def create_schema(cls, conn: duckdb.DuckDBPyConnection) -> None:
        """Create all tables.

        Args:
            conn: DuckDB connection
        """
        conn.execute(cls.CREATE_CACHE_META)
        conn.execute(cls.CREATE_CACHE_ENTRIES)

        conn.execute(
            """
            INSERT OR REPLACE INTO cache_meta (key, value, updated_at)
            VALUES ('schema_version', ?, CURRENT_TIMESTAMP)
            """,
            [str(cls.SCHEMA_VERSION)],
        )

    @classmethod
    def get_schema_version(cls, conn: duckdb.DuckDBPyConnection) -> Optional[int]:
        """Get current schema version from database.

        Args:
            conn: DuckDB connection

        Returns:
            Schema version or None if not set
        """
        try:
            result = conn.execute(
                "SELECT value FROM cache_meta WHERE key = 'schema_version'"
            ).fetchone()
            if result:
                return int(result[0])
        except duckdb.CatalogException:
            pass
        return None

    @classmethod
    def needs_migration(cls, conn: duckdb.DuckDBPyConnection) -> bool:
        current_version = cls.get_schema_version(conn)
        return current_version is None or current_version < cls.SCHEMA_VERSION

    @classmethod
    def migrate(cls, conn: duckdb.DuckDBPyConnection) -> None:
        """Migrate schema to latest version.

        Args:
            conn: DuckDB connection
        """
        current_version = cls.get_schema_version(conn)

        if current_version is None:
            cls.create_schema(conn)
            return

        conn.execute(
            """
            INSERT OR REPLACE INTO cache_meta (key, value, updated_at)
            VALUES ('schema_version', ?, CURRENT_TIMESTAMP)
            """,
            [str(cls.SCHEMA_VERSION)],
        )

    @classmethod
    def drop_all_tables(cls, conn: duckdb.DuckDBPyConnection) -> None:
        """Drop all tables (for cache clear).

        Args:
            conn: DuckDB connection
        """
        for table in ("cache_entries", "cache_meta"):
            try:
                conn.execute(f"DROP TABLE IF EXISTS {table}")
            except duckdb.CatalogException:
                pass
