"""Runtime helpers shared between the HTTP and MCP surfaces."""

from .async_utils import run_sync

__all__ = ["run_sync"]
