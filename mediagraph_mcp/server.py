"""FastMCP stdio server for Mediagraph.

Every tool that talks to the API first makes sure the process holds a
usable access token, starting the browser authorization when it does
not. Concurrent tool calls share one authorization attempt.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from mediagraph_mcp.api.client import MediagraphApiError
from mediagraph_mcp.context import AuthContext
from mediagraph_mcp.core.config import Config
from mediagraph_mcp.core.oauth import AuthStatus

logger = logging.getLogger(__name__)

AUTH_PENDING_MESSAGE = (
    "Authorization is in progress. Please complete the login in your browser, "
    "then try this request again."
)


def status_to_dict(status: AuthStatus) -> dict[str, Any]:
    """JSON-friendly view of an AuthStatus."""
    if not status.authenticated:
        return {"authenticated": False}
    return {
        "authenticated": True,
        "expired": status.expired,
        "expires_in_seconds": status.expires_in_seconds,
        "has_refresh_token": status.has_refresh_token,
        "organization": status.organization_name,
        "organization_slug": status.organization_slug,
        "user": status.user_email,
    }


async def require_access_token(context: AuthContext) -> str:
    """Return a token or fail the tool call with a user-facing message."""
    token = await context.flow.ensure_access_token()
    if not token:
        raise ToolError(AUTH_PENDING_MESSAGE)
    return token


def register_auth_tools(mcp: FastMCP, context: AuthContext) -> None:
    """Register identity and session tools with the MCP server."""

    @mcp.tool()
    async def whoami() -> dict[str, Any]:
        """Get the current Mediagraph user and organization."""
        token = await require_access_token(context)
        try:
            return await context.client.whoami(access_token=token)
        except MediagraphApiError as e:
            logger.warning("whoami failed: %s", e)
            raise ToolError(str(e)) from e

    @mcp.tool()
    async def auth_status() -> dict[str, Any]:
        """Show whether this server is connected to Mediagraph, without logging in."""
        return status_to_dict(await asyncio.to_thread(context.flow.get_status))

    @mcp.tool()
    async def reauthorize() -> dict[str, Any]:
        """Log in again, e.g. to switch to another Mediagraph account or organization.

        Opens a browser window for the new login.
        """
        success = await context.flow.reauthorize()
        if not success:
            return {"success": False, "error": context.flow.last_error}
        status = await asyncio.to_thread(context.flow.get_status)
        return {
            "success": True,
            "organization": status.organization_name,
            "user": status.user_email,
        }


def create_server(context: AuthContext) -> FastMCP:
    """Create and configure the FastMCP server."""
    mcp = FastMCP("mediagraph-mcp")
    register_auth_tools(mcp, context)
    return mcp


async def run_server_async(config: Config) -> None:
    """Serve MCP over stdio until the client disconnects."""
    context = AuthContext.create(config)
    server = create_server(context)
    logger.info("Mediagraph MCP server started")
    try:
        await server.run_async(transport="stdio")
    except asyncio.CancelledError:
        logger.info("Server task cancelled")
    finally:
        await context.aclose()
