"""Unified configuration schema for readnext_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the HTTP server, storage backend, sync tuning and logging.
Includes an adapter that flattens the sections into fallback values for
``load_config()``.

Usage:
    from readnext_sync.config_schema import build_config, to_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Absolute ceiling for the configurable page cap.
MAX_PAGE_SIZE_LIMIT = 500


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class ServerConfig(BaseModel):
    """HTTP server settings."""

    host: str | None = Field(default=None, description="Bind address")
    port: int | None = Field(
        default=None, ge=1, le=65535, description="Listen port"
    )
    pin: str | None = Field(
        default=None,
        description="Shared secret expected in X-Auth-Pin (unset = open)",
    )
    cors_origins: list[str] | None = Field(
        default=None, description="Allowed CORS origins"
    )

    model_config = {"frozen": True}


class StorageConfig(BaseModel):
    """Storage backend settings.

    ``mongodb_uri`` selects the MongoDB backend; otherwise the JSON file at
    ``db_file`` is used.
    """

    db_file: str | None = Field(
        default=None, description="JSON store file path"
    )
    mongodb_uri: str | None = Field(
        default=None, description="MongoDB connection URI"
    )
    mongodb_database: str | None = Field(
        default=None, description="MongoDB database name"
    )
    mongodb_timeout_ms: int | None = Field(
        default=None,
        ge=100,
        le=120000,
        description="Server selection timeout in milliseconds",
    )
    exact_counts: bool | None = Field(
        default=None,
        description="Count pending updates exactly (MongoDB only)",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Sync protocol tuning."""

    max_page_size: int | None = Field(
        default=None,
        ge=1,
        le=MAX_PAGE_SIZE_LIMIT,
        description="Hard cap on records returned per pull page",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: "text" or "json".
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: str = Field(default="text", description="text or json")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully - anything absent gets defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> load_config() fallbacks
# ---------------------------------------------------------------------------


def to_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten a ``UnifiedConfig`` into ``load_config()`` fallback values.

    Only values actually set in the YAML (non-``None``) are returned, so
    built-in defaults in ``load_config()`` still apply to everything else.

    Keys: host, port, server_pin, cors_origins, db_file, mongodb_uri,
    mongodb_database, mongodb_timeout_ms, exact_counts, max_page_size.
    """
    flat = {
        "host": unified.server.host,
        "port": unified.server.port,
        "server_pin": unified.server.pin,
        "cors_origins": unified.server.cors_origins,
        "db_file": unified.storage.db_file,
        "mongodb_uri": unified.storage.mongodb_uri,
        "mongodb_database": unified.storage.mongodb_database,
        "mongodb_timeout_ms": unified.storage.mongodb_timeout_ms,
        "exact_counts": unified.storage.exact_counts,
        "max_page_size": unified.sync.max_page_size,
    }
    return {k: v for k, v in flat.items() if v is not None}
