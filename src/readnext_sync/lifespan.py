"""Startup and shutdown shared by the HTTP server and the MCP server."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from dotenv import load_dotenv

from .config import Config, load_config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config, to_fallbacks
from .errors import StoreUnavailable
from .store import Store, create_store

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


def resolve_config(
    config_overrides: dict[str, Any] | None = None,
) -> tuple[Config, UnifiedConfig]:
    """Build the runtime config from every source.

    Precedence: CLI overrides > env vars (.env loaded first) > YAML > defaults.

    Returns:
        The validated ``Config`` plus the parsed ``UnifiedConfig`` (its
        ``logging`` section is consumed by the entry points).

    Raises:
        RuntimeError: If the configuration is invalid.
    """
    overrides = config_overrides or {}
    try:
        # .env first so ${VAR} interpolation in YAML can see its values
        load_dotenv()

        unified = build_config(load_hierarchical_config())
        sources = [f"config file: {p}" for p in discover_config_files()[:1]]

        config = load_config(
            host=overrides.get("host"),
            port=overrides.get("port"),
            db_file=overrides.get("db_file"),
            mongodb_uri=overrides.get("mongodb_uri"),
            server_pin=overrides.get("server_pin"),
            debug=overrides.get("debug", False),
            yaml_fallbacks=to_fallbacks(unified),
        )
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    if overrides:
        sources.append("CLI arguments")
    sources.append("environment variables")
    logger.info("Configuration loaded from: %s", ", ".join(sources))
    return config, unified


@contextmanager
def store_lifespan(config: Config) -> Iterator[Store]:
    """Open the configured store for the life of the server.

    The backend is chosen once here; a MongoDB backend is pinged so the
    server fails fast when the database is unreachable.

    Raises:
        RuntimeError: If the store cannot be opened.
    """
    logger.info("Opening %s store...", config.backend)
    try:
        store = create_store(config)
    except StoreUnavailable as e:
        logger.error("Store unavailable at startup: %s", e)
        _stderr_print(f"ERROR: Storage backend unavailable: {e.detail}")
        raise RuntimeError(f"Storage backend unavailable: {e}") from e

    try:
        yield store
    finally:
        logger.info("Closing %s store", config.backend)
        store.close()
