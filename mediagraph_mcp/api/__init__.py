"""Mediagraph REST API client."""

from mediagraph_mcp.api.client import MediagraphApiError, MediagraphClient

__all__ = ["MediagraphApiError", "MediagraphClient"]
