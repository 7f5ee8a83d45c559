"""Core business logic — models, scoring, caches and the upstream client.

This module is framework-agnostic. It has no dependency on MCP or any server
framework; the FastMCP server only wires it up.
"""
