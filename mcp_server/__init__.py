"""Blockwatch MCP server package."""
