"""MCP tool handlers for sync diagnostics.

This package contains read-only MCP tools that wrap the sync store with
async handlers and structured error responses.
"""

from .articles import (
    ARTICLE_SPECS,
    ARTICLE_TOOLS,
    build_article_specs,
    handle_article_tool,
)
from .errors import build_error_response, translate_store_error
from .registry import ToolRegistry, ToolSpec

ALL_SPECS: list[ToolSpec] = list(ARTICLE_SPECS)

__all__ = [
    "build_error_response",
    "translate_store_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # ToolSpec lists
    "ALL_SPECS",
    "ARTICLE_SPECS",
    "build_article_specs",
    # Tool lists
    "ARTICLE_TOOLS",
    "handle_article_tool",
]
