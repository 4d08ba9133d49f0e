"""MCP stdio server exposing read-only sync diagnostics."""
