"""Runtime configuration for the sync server.

Reads settings from CLI args, environment variables, .env files, and YAML
config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    READNEXT_HOST: Bind address (optional, default: 0.0.0.0)
    READNEXT_PORT: Listen port (optional, default: 3000)
    READNEXT_DB_FILE: JSON store path (optional, default: db.json)
    MONGODB_URI: MongoDB URI; selects the MongoDB backend when set
    MONGODB_DATABASE: MongoDB database name (optional, default: readnext)
    SERVER_PIN: Shared secret for X-Auth-Pin (optional; unset = open access)
    READNEXT_MAX_PAGE_SIZE: Pull page cap (optional, default: 50)
    READNEXT_EXACT_COUNTS: Exact totalUpdates on MongoDB (optional, default: false)
    READNEXT_CORS_ORIGINS: Comma-separated CORS origins (optional, default: *)
    READNEXT_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass, field

from .config_schema import MAX_PAGE_SIZE_LIMIT

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50


@dataclass
class Config:
    host: str = "0.0.0.0"
    port: int = 3000
    db_file: str = "db.json"
    mongodb_uri: str | None = None
    mongodb_database: str = "readnext"
    mongodb_timeout_ms: int = 5000
    server_pin: str | None = None
    max_page_size: int = DEFAULT_PAGE_SIZE
    exact_counts: bool = False
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    debug: bool = False

    @property
    def backend(self) -> str:
        """``"mongodb"`` when a URI is configured, else ``"file"``."""
        return "mongodb" if self.mongodb_uri else "file"


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If a value is out of range or malformed.
    """
    if not (1 <= config.port <= 65535):
        raise ValueError(
            f"Invalid port {config.port}: must be between 1 and 65535"
        )

    if not (1 <= config.max_page_size <= MAX_PAGE_SIZE_LIMIT):
        raise ValueError(
            f"Invalid max page size {config.max_page_size}: "
            f"must be between 1 and {MAX_PAGE_SIZE_LIMIT}"
        )

    if config.mongodb_uri is not None:
        config.mongodb_uri = config.mongodb_uri.strip()
        if not config.mongodb_uri.startswith(
            ("mongodb://", "mongodb+srv://")
        ):
            raise ValueError(
                "Invalid MongoDB URI: must start with mongodb:// or mongodb+srv://"
            )
    elif not config.db_file.strip():
        raise ValueError(
            "Store file path cannot be empty. Set READNEXT_DB_FILE or MONGODB_URI."
        )

    if config.server_pin is not None:
        config.server_pin = config.server_pin.strip() or None

    if config.server_pin is None:
        logger.warning(
            "WARNING: SERVER_PIN not set. Sync endpoints are open to anyone "
            "who can reach this server."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_int_env(key: str, low: int, high: int) -> int | None:
    """Return an int from env var within [low, high], or None if unset."""
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_config(
    host: str | None = None,
    port: int | None = None,
    db_file: str | None = None,
    mongodb_uri: str | None = None,
    server_pin: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        host: Override bind address.
        port: Override listen port.
        db_file: Override JSON store path.
        mongodb_uri: Override MongoDB URI (selects the MongoDB backend).
        server_pin: Override shared secret.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flattened YAML values from ``to_fallbacks()``.
            Used when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is malformed or out of range.
    """
    fb = yaml_fallbacks or {}
    defaults = Config()

    # --- String fields: CLI > env > YAML > default ---

    final_host = (
        host or os.getenv("READNEXT_HOST") or fb.get("host") or defaults.host
    )
    final_db_file = (
        db_file
        or os.getenv("READNEXT_DB_FILE")
        or fb.get("db_file")
        or defaults.db_file
    )
    final_mongodb_uri = (
        mongodb_uri or os.getenv("MONGODB_URI") or fb.get("mongodb_uri")
    )
    final_mongodb_database = (
        os.getenv("MONGODB_DATABASE")
        or fb.get("mongodb_database")
        or defaults.mongodb_database
    )
    final_pin = server_pin or os.getenv("SERVER_PIN") or fb.get("server_pin")

    cors_raw = os.getenv("READNEXT_CORS_ORIGINS")
    if cors_raw is not None:
        final_cors = [o.strip() for o in cors_raw.split(",") if o.strip()]
    else:
        final_cors = list(fb.get("cors_origins") or defaults.cors_origins)

    # --- Numeric fields: CLI > env > YAML > default ---

    if port is not None:
        final_port = port
    else:
        env_port = _get_int_env("READNEXT_PORT", 1, 65535)
        final_port = (
            env_port
            if env_port is not None
            else int(fb.get("port", defaults.port))
        )

    env_page = _get_int_env(
        "READNEXT_MAX_PAGE_SIZE", 1, MAX_PAGE_SIZE_LIMIT
    )
    final_page = (
        env_page
        if env_page is not None
        else int(fb.get("max_page_size", defaults.max_page_size))
    )

    final_timeout = int(
        fb.get("mongodb_timeout_ms", defaults.mongodb_timeout_ms)
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    env_exact = _get_bool_env("READNEXT_EXACT_COUNTS")
    final_exact = (
        env_exact
        if env_exact is not None
        else bool(fb.get("exact_counts", False))
    )

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("READNEXT_DEBUG")
        final_debug = env_debug if env_debug is not None else False

    config = Config(
        host=final_host.strip(),
        port=final_port,
        db_file=final_db_file.strip(),
        mongodb_uri=final_mongodb_uri,
        mongodb_database=final_mongodb_database,
        mongodb_timeout_ms=final_timeout,
        server_pin=final_pin,
        max_page_size=final_page,
        exact_counts=final_exact,
        cors_origins=final_cors,
        debug=final_debug,
    )

    validate_config(config)

    return config
