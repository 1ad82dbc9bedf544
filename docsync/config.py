"""Configuration management for docsync."""

import os
import toml
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .errors import ConfigError
from .models.document import OrderBy, RemoteQuery


def default_cache_db_path() -> str:
    base = os.getenv("XDG_CACHE_HOME") or "~/.cache"
    return os.path.join(base, "docsync", "cache.duckdb")


class CacheConfig(BaseModel):
    """Configuration for the cache store."""

    enabled: bool = Field(
        default=True,
        description="Persist cache entries in DuckDB (memory-only when False)",
    )
    db_path: str = Field(
        default_factory=default_cache_db_path,
        description="Path to DuckDB cache database file",
    )
    ttl_ms: int = Field(
        default=5 * 60 * 1000,
        ge=0,
        description="Time to live for cached datasets, in milliseconds",
    )
    max_bytes: int = Field(
        default=50 * 1024 * 1024,
        ge=1024,
        description="Soft cap on durable payload bytes; crossing it triggers a sweep",
    )

    @field_validator("db_path")
    @classmethod
    def expand_db_path(cls, v):
        """Expand user paths and environment variables."""
        if v == ":memory:":
            return v
        return os.path.expanduser(os.path.expandvars(v))


class BatchConfig(BaseModel):
    """Configuration for batched writes."""

    batch_limit: int = Field(
        default=500,
        ge=1,
        le=500,
        description="Maximum mutations per atomic chunk (provider limit)",
    )
    max_concurrency: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Chunks committed concurrently",
    )
    group_by_collection: bool = Field(
        default=False,
        description="Never mix collections inside one chunk",
    )


class SourceConfig(BaseModel):
    """One remote collection the dataset is built from."""

    collection: str
    order_by: Optional[str] = Field(default="timestamp")
    direction: str = Field(default="desc", pattern="^(asc|desc)$")
    limit: Optional[int] = Field(default=None, ge=1)

    def to_query(self) -> RemoteQuery:
        order = OrderBy(field=self.order_by, direction=self.direction) if self.order_by else None
        return RemoteQuery(collection=self.collection, order_by=order, limit=self.limit)


class IndexConfig(BaseModel):
    """Configuration for the derived grouping index."""

    group_field: Optional[str] = Field(
        default="career",
        description="Field holding the group key directly",
    )
    path_field: Optional[str] = Field(
        default="pageUrl",
        description="URL-like field the group is extracted from as a fallback",
    )
    path_anchor: str = Field(
        default="careerlibrary",
        description="Path segment preceding the group segment",
    )


def default_sources() -> List[SourceConfig]:
    return [
        SourceConfig(collection="careerPages"),
        SourceConfig(collection="savedUrls"),
    ]


class DatasetConfig(BaseModel):
    """Configuration for the merged dataset."""

    name: str = Field(default="career_pages", pattern="^[A-Za-z0-9_.-]+$")
    sources: List[SourceConfig] = Field(default_factory=default_sources, min_length=1)
    index: IndexConfig = Field(default_factory=IndexConfig)

    @property
    def cache_key(self) -> str:
        """Composite cache key covering every source collection."""
        collections = "+".join(sorted(s.collection for s in self.sources))
        return f"dataset:{self.name}:{collections}"

    @property
    def collections(self) -> List[str]:
        return [s.collection for s in self.sources]


class SchedulingConfig(BaseModel):
    """Configuration for debounce/throttle timings."""

    autosave_delay_ms: int = Field(default=2000, ge=0, le=60000)
    refresh_throttle_ms: int = Field(default=1000, ge=0, le=60000)
    draft_prefix: str = Field(
        default="new_",
        description="Document IDs with this prefix are never autosaved",
    )


class LoggingConfig(BaseModel):
    """Configuration for log output."""

    level: str = Field(
        default="INFO",
        pattern="^(TRACE|DEBUG|INFO|SUCCESS|WARNING|ERROR|CRITICAL)$",
    )
    file: Optional[str] = Field(default=None, description="Optional JSON log file")

    @field_validator("level", mode="before")
    @classmethod
    def upper_level(cls, v):
        return v.upper() if isinstance(v, str) else v


class Config(BaseModel):
    """Main configuration class."""

    cache: CacheConfig = Field(default_factory=CacheConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    dataset: DatasetConfig = Field(default_factory=DatasetConfig)
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigManager:
    """Manages configuration loading and access."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to configuration file. If None, searches standard locations.
        """
        self.config_path = config_path or self._find_config_file()
        self._config: Optional[Config] = None

    def _find_config_file(self) -> str:
        """Find configuration file in standard locations."""
        search_paths = [
            os.path.expanduser("~/.config/docsync/config.toml"),
            "docsync.toml",
            "config.toml",
        ]

        for path in search_paths:
            if os.path.exists(path):
                return path

        # Return default path even if it doesn't exist
        return search_paths[0]

    @property
    def config(self) -> Config:
        """Get configuration, loading if necessary."""
        if self._config is None:
            self._config = self._load_config()
        return self._config

    def _load_config(self) -> Config:
        """Load configuration from TOML file."""
        if not os.path.exists(self.config_path):
            return Config()

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                config_data = toml.load(f)
            return Config(**config_data)
        except (toml.TomlDecodeError, ValueError) as e:
            raise ConfigError(
                f"Invalid configuration file {self.config_path}: {e}",
                operation="load_config",
                key=self.config_path,
                cause=e,
            ) from e

    def reload(self):
        """Reload configuration."""
        self._config = None


# Global configuration manager instance
config_manager = ConfigManager()
