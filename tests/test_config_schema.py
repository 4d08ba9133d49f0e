"""Tests for the unified config schema and the to_fallbacks() adapter.

Tests all Pydantic models in config_schema.py (UnifiedConfig, ServerConfig,
StorageConfig, SyncConfig, LoggingConfig), the build_config() factory, and
the to_fallbacks() flattening used by load_config().
"""

import pytest
from pydantic import ValidationError

from readnext_sync.config_schema import (
    MAX_PAGE_SIZE_LIMIT,
    LoggingConfig,
    ServerConfig,
    StorageConfig,
    SyncConfig,
    UnifiedConfig,
    build_config,
    to_fallbacks,
)

# ---------------------------------------------------------------------------
# UnifiedConfig tests
# ---------------------------------------------------------------------------


class TestUnifiedConfig:
    """Tests for the top-level UnifiedConfig model."""

    def test_empty_produces_valid_defaults(self):
        config = UnifiedConfig()
        assert config.server.port is None
        assert config.storage.mongodb_uri is None
        assert config.sync.max_page_size is None
        assert config.logging.level == "INFO"
        assert config.logging.format == "text"

    def test_full_config_with_all_sections(self):
        config = build_config(
            {
                "server": {"host": "127.0.0.1", "port": 8080, "pin": "1234"},
                "storage": {
                    "mongodb_uri": "mongodb://localhost:27017",
                    "exact_counts": True,
                },
                "sync": {"max_page_size": 100},
                "logging": {"level": "DEBUG", "file": "/tmp/readnext.log"},
            }
        )
        assert config.server.port == 8080
        assert config.server.pin == "1234"
        assert config.storage.exact_counts is True
        assert config.sync.max_page_size == 100
        assert config.logging.file == "/tmp/readnext.log"

    def test_unknown_sections_ignored(self):
        """Unknown sections are ignored (forward compatibility)."""
        config = build_config(
            {"server": {"port": 3001}, "future_section": {"key": "value"}}
        )
        assert config.server.port == 3001
        assert not hasattr(config, "future_section")

    def test_frozen_model_prevents_mutation(self):
        config = UnifiedConfig()
        with pytest.raises(ValidationError):
            config.server = ServerConfig(port=1)


# ---------------------------------------------------------------------------
# Section model tests
# ---------------------------------------------------------------------------


class TestSectionModels:
    """Range checks on the section models."""

    @pytest.mark.parametrize("port", [0, 65536])
    def test_port_out_of_range_rejected(self, port):
        with pytest.raises(ValidationError):
            ServerConfig(port=port)

    def test_page_size_ceiling(self):
        assert SyncConfig(max_page_size=MAX_PAGE_SIZE_LIMIT).max_page_size == (
            MAX_PAGE_SIZE_LIMIT
        )
        with pytest.raises(ValidationError):
            SyncConfig(max_page_size=MAX_PAGE_SIZE_LIMIT + 1)

    def test_page_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            SyncConfig(max_page_size=0)

    def test_mongodb_timeout_bounds(self):
        with pytest.raises(ValidationError):
            StorageConfig(mongodb_timeout_ms=10)

    def test_logging_defaults(self):
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.file is None
        assert config.format == "text"


# ---------------------------------------------------------------------------
# build_config() tests
# ---------------------------------------------------------------------------


class TestBuildConfig:
    """Tests for the build_config() factory."""

    def test_empty_dict(self):
        assert build_config({}) == UnifiedConfig()

    def test_missing_sections_get_defaults(self):
        config = build_config({"storage": {"db_file": "articles.json"}})
        assert config.storage.db_file == "articles.json"
        assert config.server == ServerConfig()

    def test_invalid_section_raises(self):
        with pytest.raises(ValidationError):
            build_config({"server": {"port": "not-a-port"}})


# ---------------------------------------------------------------------------
# to_fallbacks() tests
# ---------------------------------------------------------------------------


class TestToFallbacks:
    """Tests for flattening UnifiedConfig into load_config() fallbacks."""

    def test_zero_config_is_empty(self):
        assert to_fallbacks(UnifiedConfig()) == {}

    def test_only_set_values_returned(self):
        unified = build_config(
            {
                "server": {"port": 4000, "pin": "9999"},
                "storage": {"db_file": "store.json"},
            }
        )
        assert to_fallbacks(unified) == {
            "port": 4000,
            "server_pin": "9999",
            "db_file": "store.json",
        }

    def test_all_keys_mapped(self):
        unified = build_config(
            {
                "server": {
                    "host": "127.0.0.1",
                    "port": 4000,
                    "pin": "p",
                    "cors_origins": ["https://app.example.com"],
                },
                "storage": {
                    "db_file": "x.json",
                    "mongodb_uri": "mongodb://db",
                    "mongodb_database": "rn",
                    "mongodb_timeout_ms": 2000,
                    "exact_counts": False,
                },
                "sync": {"max_page_size": 75},
            }
        )
        fb = to_fallbacks(unified)
        assert fb["host"] == "127.0.0.1"
        assert fb["cors_origins"] == ["https://app.example.com"]
        assert fb["mongodb_database"] == "rn"
        assert fb["mongodb_timeout_ms"] == 2000
        # False is a real value, not "unset"
        assert fb["exact_counts"] is False
        assert fb["max_page_size"] == 75
