"""Fetch and post operations exposed by the CLI and the MCP server."""
