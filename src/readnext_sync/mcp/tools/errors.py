"""Error response builders for MCP tool handlers.

Tool failures are returned as ``CallToolResult(isError=True)`` carrying a
corrective action, so an agent can recover without human intervention.
"""

import mcp.types as types

from ...errors import StoreUnavailable


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, validation_error,
            store_unavailable, server_error, unknown_tool)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Article 'a1' not found", "Use changes_pull to list article ids.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def translate_store_error(error: StoreUnavailable) -> types.CallToolResult:
    """Translate a store failure to a structured error response."""
    if error.operation == "ping":
        action = "Check MONGODB_URI and that the database is reachable."
    else:
        action = (
            "Retry later; if the failure persists check the storage "
            "backend (MONGODB_URI or READNEXT_DB_FILE)."
        )
    return build_error_response("store_unavailable", str(error), action)
