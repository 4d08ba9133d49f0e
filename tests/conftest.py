"""Shared pytest fixtures for readnext-sync tests."""

import pytest

from readnext_sync.config import Config
from readnext_sync.store import FileStore

# Env vars read by load_config(); cleared so a developer's shell or .env
# cannot leak into tests.
CONFIG_ENV_VARS = (
    "READNEXT_HOST",
    "READNEXT_PORT",
    "READNEXT_DB_FILE",
    "MONGODB_URI",
    "MONGODB_DATABASE",
    "SERVER_PIN",
    "READNEXT_MAX_PAGE_SIZE",
    "READNEXT_EXACT_COUNTS",
    "READNEXT_CORS_ORIGINS",
    "READNEXT_DEBUG",
    "READNEXT_SYNC_CONFIG",
    "LOG_LEVEL",
)

# Long enough to count as full content
FULL_TEXT = "Full article text. " * 20
SHORT_TEXT = "Loading..."


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all readnext-sync config env vars."""
    for key in CONFIG_ENV_VARS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "db.json"


@pytest.fixture
def file_store(db_path):
    """Empty FileStore in a temp directory."""
    return FileStore(db_path)


@pytest.fixture
def clock():
    """Controllable server clock in milliseconds.

    ``clock.now`` is the value returned; tests may advance it.
    """

    class _Clock:
        now = 1_700_000_000_000

        def __call__(self) -> int:
            return self.now

    return _Clock()


@pytest.fixture
def mock_config(db_path):
    """Config for an open (no PIN) server over a temp JSON store."""
    return Config(db_file=str(db_path))


@pytest.fixture
def article():
    """Factory for article payloads as a client would push them."""

    def _article(article_id, content=FULL_TEXT, updated_at=None, **extra):
        payload = {"id": article_id, "title": f"Title {article_id}", **extra}
        if content is not None:
            payload["content"] = content
        if updated_at is not None:
            payload["updatedAt"] = updated_at
        return payload

    return _article
