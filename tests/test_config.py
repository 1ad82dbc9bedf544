"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from docsync.config import BatchConfig, Config, ConfigManager, DatasetConfig, SourceConfig
from docsync.errors import ConfigError


class TestConfig:
    """Tests for config models."""

    def test_defaults(self):
        config = Config()
        assert config.cache.ttl_ms == 300_000
        assert config.batch.batch_limit == 500
        assert config.scheduling.autosave_delay_ms == 2000
        assert config.dataset.collections == ["careerPages", "savedUrls"]

    def test_cache_key_is_order_independent(self):
        a = DatasetConfig(sources=[SourceConfig(collection="b"), SourceConfig(collection="a")])
        b = DatasetConfig(sources=[SourceConfig(collection="a"), SourceConfig(collection="b")])
        assert a.cache_key == b.cache_key == "dataset:career_pages:a+b"

    def test_batch_limit_capped(self):
        with pytest.raises(ValidationError):
            BatchConfig(batch_limit=501)

    def test_source_query(self):
        query = SourceConfig(collection="pages", direction="asc", limit=5).to_query()
        assert query.collection == "pages"
        assert query.order_by.direction == "asc"
        assert query.limit == 5


class TestConfigManager:
    """Tests for TOML loading."""

    def test_missing_file_gives_defaults(self, tmp_path):
        manager = ConfigManager(str(tmp_path / "missing.toml"))
        assert manager.config == Config()

    def test_load_file(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(
            """
[cache]
db_path = ":memory:"
ttl_ms = 1000

[logging]
level = "debug"

[[dataset.sources]]
collection = "pages"
order_by = "updated"
""",
            encoding="utf-8",
        )
        config = ConfigManager(str(path)).config
        assert config.cache.db_path == ":memory:"
        assert config.cache.ttl_ms == 1000
        assert config.logging.level == "DEBUG"
        assert config.dataset.collections == ["pages"]

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[batch]\nbatch_limit = 9000\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            ConfigManager(str(path)).config

    def test_reload(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[cache]\nttl_ms = 10\n", encoding="utf-8")
        manager = ConfigManager(str(path))
        assert manager.config.cache.ttl_ms == 10

        path.write_text("[cache]\nttl_ms = 20\n", encoding="utf-8")
        manager.reload()
        assert manager.config.cache.ttl_ms == 20
