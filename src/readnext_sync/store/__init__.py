"""Storage backends for article records.

``Store`` is the interface the sync core consumes.  Two implementations are
interchangeable behind it:

- ``FileStore``  -- whole collection in memory, persisted to one JSON file.
- ``MongoStore`` -- MongoDB collection with native secondary indexes.

``create_store()`` picks one exactly once, at startup, from the config.
"""

from __future__ import annotations

import logging
from pathlib import Path

from readnext_sync.config import Config

from .base import APPROXIMATE_TOTAL, Store
from .file_store import FileStore
from .mongo_store import MongoStore

logger = logging.getLogger(__name__)


def create_store(config: Config) -> Store:
    """Build the store selected by *config*.

    A configured ``mongodb_uri`` selects ``MongoStore``; otherwise a
    ``FileStore`` is opened at ``db_file``.

    Raises:
        StoreUnavailable: If MongoDB is configured but unreachable.
    """
    if config.mongodb_uri:
        logger.info("Using MongoDB storage (database=%s)", config.mongodb_database)
        return MongoStore.connect(
            config.mongodb_uri,
            database=config.mongodb_database,
            timeout_ms=config.mongodb_timeout_ms,
            exact_counts=config.exact_counts,
        )

    logger.info("No MONGODB_URI found. Using local file storage (%s)", config.db_file)
    return FileStore(Path(config.db_file))


__all__ = [
    "APPROXIMATE_TOTAL",
    "FileStore",
    "MongoStore",
    "Store",
    "create_store",
]
