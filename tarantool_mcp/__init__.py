"""MCP server exposing a Tarantool instance as a set of tools."""

__version__ = "1.0.0"
