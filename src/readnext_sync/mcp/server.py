"""MCP server exposing sync diagnostics over stdio.

Operators point an MCP client at the same storage the HTTP server uses to
inspect articles, truncated content and pull pages without touching a
device.  All tools are read-only.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..lifespan import resolve_config, store_lifespan
from ..logger import setup_logging
from ..store import Store
from .tools import ToolRegistry, build_article_specs, build_error_response

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("readnext-sync")

# Global store instance (initialized in main)
_store: Store | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_store() -> Store:
    """Get the global Store instance.

    Raises:
        RuntimeError: If the store is not initialized
    """
    if _store is None:
        raise RuntimeError("Store not initialized. Server lifespan not started.")
    return _store


def set_store(store: Store | None) -> None:
    """Set the global Store instance, or None to clear."""
    global _store
    _store = store


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available diagnostic tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    store = get_store()
    try:
        return await get_registry().call_tool(name, arguments, store)
    except ValueError as e:
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Logging goes to a file only: stdout carries the JSON-RPC stream.

    Args:
        config_overrides: Optional dict with config values to override
            (db_file, mongodb_uri, log_file)
    """
    overrides = dict(config_overrides or {})
    log_file = overrides.pop("log_file", None)

    # Must run BEFORE stdio_server so nothing reaches stdout
    setup_logging(mode="mcp", log_file=log_file)

    config, _ = resolve_config(overrides)

    registry = ToolRegistry(build_article_specs(config.max_page_size))
    logger.info("Registered %d tools", registry.tool_count())
    set_registry(registry)

    with store_lifespan(config) as store:
        set_store(store)
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="readnext-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_store(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="readnext-sync-mcp",
        description="ReadNext Sync diagnostics - MCP server over the sync store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Inspect the store configured in .env or .readnext_sync/config.yml
  readnext-sync-mcp

  # Inspect a specific JSON store
  readnext-sync-mcp --db-file /var/lib/readnext/db.json

  # Inspect a MongoDB store
  readnext-sync-mcp --mongodb-uri mongodb://localhost:27017

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr.
        """,
    )

    parser.add_argument(
        "--db-file",
        help="JSON store path (takes precedence over READNEXT_DB_FILE and config files)",
    )
    parser.add_argument(
        "--mongodb-uri",
        help="MongoDB connection URI (takes precedence over MONGODB_URI and config files)",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/readnext-sync-mcp.log",
        help="Log file path (default: /tmp/readnext-sync-mcp.log)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"readnext-sync-mcp version {__version__}",
    )

    args = parser.parse_args()

    config_overrides = {}
    if args.db_file:
        config_overrides["db_file"] = args.db_file
    if args.mongodb_uri:
        config_overrides["mongodb_uri"] = args.mongodb_uri
    if args.log_file:
        config_overrides["log_file"] = args.log_file

    try:
        asyncio.run(main(config_overrides=config_overrides))
    except RuntimeError:
        # Error already printed to stderr by resolve_config / store_lifespan
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
