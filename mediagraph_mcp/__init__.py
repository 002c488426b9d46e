"""Mediagraph MCP

An MCP server exposing the Mediagraph digital asset management API,
with OAuth 2.0 + PKCE authentication and encrypted local token storage.
"""

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("mediagraph-mcp")
except PackageNotFoundError:
    __version__ = "0.1.0"
__author__ = "Mediagraph"
