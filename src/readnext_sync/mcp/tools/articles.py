"""Read-only article diagnostic tools for the MCP server.

Defines three tools:

- ``article_get`` -- one stored article as it would be sent to a client.
- ``namespace_stats`` -- record count plus truncated articles.
- ``changes_pull`` -- one pull page, exactly as a client would receive it.

None of the tools push; the store is never written from here.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import mcp.types as types

from ...config import DEFAULT_PAGE_SIZE
from ...core.async_utils import run_sync
from ...store import Store
from ...sync import (
    HEALING_THRESHOLD,
    CursorPager,
    collect_namespace_stats,
    format_namespace_stats,
    format_page,
)
from .errors import build_error_response
from .registry import ToolSpec

logger = logging.getLogger(__name__)

# Preview length for article content in text output
CONTENT_PREVIEW_CHARS = 280


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_READ_ONLY = types.ToolAnnotations(
    readOnlyHint=True,
    destructiveHint=False,
    idempotentHint=True,
    openWorldHint=False,
)

ARTICLE_TOOLS: list[types.Tool] = [
    types.Tool(
        name="article_get",
        description=(
            "Get one stored article by id, with its revision and content "
            "length. Set full_content=true to include the whole content "
            "instead of a preview."
        ),
        annotations=_READ_ONLY,
        inputSchema={
            "type": "object",
            "properties": {
                "namespace": {
                    "type": "string",
                    "description": "Sync namespace (one per user/device group)",
                },
                "article_id": {
                    "type": "string",
                    "description": "Article id",
                },
                "full_content": {
                    "type": "boolean",
                    "description": "Return the whole content (default: false)",
                    "default": False,
                },
            },
            "required": ["namespace", "article_id"],
        },
    ),
    types.Tool(
        name="namespace_stats",
        description=(
            "Show the number of stored articles in a namespace and list "
            "articles whose content is shorter than the healing threshold."
        ),
        annotations=_READ_ONLY,
        inputSchema={
            "type": "object",
            "properties": {
                "namespace": {
                    "type": "string",
                    "description": "Sync namespace",
                },
                "threshold": {
                    "type": "integer",
                    "description": f"Truncation threshold in characters (default: {HEALING_THRESHOLD})",
                    "default": HEALING_THRESHOLD,
                    "minimum": 1,
                },
            },
            "required": ["namespace"],
        },
    ),
    types.Tool(
        name="changes_pull",
        description=(
            "Return one page of articles changed since a revision, the "
            "same page a client would pull. Does not push anything."
        ),
        annotations=_READ_ONLY,
        inputSchema={
            "type": "object",
            "properties": {
                "namespace": {
                    "type": "string",
                    "description": "Sync namespace",
                },
                "since": {
                    "type": "integer",
                    "description": "Minimum revision, inclusive (default: 0)",
                    "default": 0,
                },
                "page_size": {
                    "type": "integer",
                    "description": "Records per page (capped by the server)",
                },
                "page": {
                    "type": "integer",
                    "description": "Zero-based page index (default: 0)",
                    "default": 0,
                    "minimum": 0,
                },
            },
            "required": ["namespace"],
        },
    ),
]


# ---------------------------------------------------------------------------
# Tool handler
# ---------------------------------------------------------------------------


async def handle_article_tool(
    name: str,
    arguments: dict[str, Any] | None,
    store: Store,
    max_page_size: int = DEFAULT_PAGE_SIZE,
) -> types.CallToolResult:
    """Dispatch and execute an article tool.

    Args:
        name: Tool name (article_get, namespace_stats, changes_pull)
        arguments: Tool arguments dict
        store: Store to read from
        max_page_size: Page cap the sync server applies to clients

    Returns:
        CallToolResult with text and structured JSON, or an error result.

    Raises:
        ValueError: If tool name is unknown
    """
    args = arguments or {}

    match name:
        case "article_get":
            return await _handle_article_get(store, args)
        case "namespace_stats":
            return await _handle_namespace_stats(store, args)
        case "changes_pull":
            return await _handle_changes_pull(store, args, max_page_size)
        case _:
            raise ValueError(f"Unknown article tool: {name}")


def _require_str(args: dict, key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value:
        raise ValueError(f"'{key}' must be a non-empty string")
    return value


def _optional_int(args: dict, key: str, default: int | None) -> int | None:
    value = args.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{key}' must be an integer")
    return value


async def _handle_article_get(
    store: Store, args: dict
) -> types.CallToolResult:
    """Handle article_get."""
    namespace = _require_str(args, "namespace")
    article_id = _require_str(args, "article_id")
    full_content = bool(args.get("full_content", False))

    record = await run_sync(store.get, namespace, article_id)
    if record is None:
        return build_error_response(
            "not_found",
            f"Article '{article_id}' not found in namespace '{namespace}'",
            "Use changes_pull to list article ids in this namespace.",
        )

    payload = record.to_payload()
    shown = dict(payload)
    content = record.content or ""
    if not full_content and len(content) > CONTENT_PREVIEW_CHARS:
        shown["content"] = content[:CONTENT_PREVIEW_CHARS] + "..."

    header = (
        f"Article '{record.id}' (revision {record.revision}, "
        f"{record.content_length} chars"
        + (", truncated" if record.content_length < HEALING_THRESHOLD else "")
        + ")"
    )
    text = header + "\n\n" + json.dumps(shown, indent=2, ensure_ascii=False)

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={
            "namespace": namespace,
            "article": payload if full_content else shown,
            "content_length": record.content_length,
        },
    )


async def _handle_namespace_stats(
    store: Store, args: dict
) -> types.CallToolResult:
    """Handle namespace_stats."""
    namespace = _require_str(args, "namespace")
    threshold = _optional_int(args, "threshold", HEALING_THRESHOLD)
    if threshold is None or threshold < 1:
        raise ValueError("'threshold' must be at least 1")

    stats = await run_sync(
        collect_namespace_stats, store, namespace, threshold
    )
    return types.CallToolResult(
        content=[
            types.TextContent(type="text", text=format_namespace_stats(stats))
        ],
        structuredContent=stats.model_dump(),
    )


async def _handle_changes_pull(
    store: Store, args: dict, max_page_size: int
) -> types.CallToolResult:
    """Handle changes_pull."""
    namespace = _require_str(args, "namespace")
    since = _optional_int(args, "since", 0) or 0
    page_size = _optional_int(args, "page_size", None)
    page_index = _optional_int(args, "page", 0) or 0

    pager = CursorPager(store, max_page_size=max_page_size)
    page = await run_sync(
        pager.fetch, namespace, since, page_size, page_index
    )
    logger.debug(
        "changes_pull [%s] since=%d page=%d -> %d record(s)",
        namespace,
        since,
        page_index,
        len(page.records),
    )

    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text", text=format_page(namespace, page, page_index)
            )
        ],
        structuredContent={
            "namespace": namespace,
            "page": page_index,
            "ids": [record.id for record in page.records],
            "revisions": [record.revision for record in page.records],
            "has_more": page.has_more,
            "total_updates": page.total_updates,
        },
    )


def _dispatcher(
    name: str, max_page_size: int
) -> Callable[[Store, dict], Awaitable[types.CallToolResult]]:
    async def handler(store: Store, args: dict) -> types.CallToolResult:
        return await handle_article_tool(name, args, store, max_page_size)

    return handler


def build_article_specs(
    max_page_size: int = DEFAULT_PAGE_SIZE,
) -> list[ToolSpec]:
    """Build the article ToolSpecs, paging with the server's page cap."""
    return [
        ToolSpec(tool=tool, handler=_dispatcher(tool.name, max_page_size))
        for tool in ARTICLE_TOOLS
    ]


ARTICLE_SPECS: list[ToolSpec] = build_article_specs()
