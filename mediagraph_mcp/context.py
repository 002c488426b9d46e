"""Wiring of the objects one process shares.

The OAuth flow and the API client depend on each other: the client asks
the flow for tokens, and the flow asks the client who the new tokens
belong to. ``AuthContext.create`` ties the knot once so the CLI and the
MCP server build them the same way.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from mediagraph_mcp.api.client import MediagraphClient
from mediagraph_mcp.core.config import Config
from mediagraph_mcp.core.oauth import AuthStorage, OAuthFlow


@dataclass
class AuthContext:
    """Application context shared by CLI commands and MCP tools."""

    config: Config
    storage: AuthStorage
    flow: OAuthFlow
    client: MediagraphClient

    @classmethod
    def create(
        cls,
        config: Config,
        storage: AuthStorage | None = None,
        on_authorization_url: Callable[[str], None] | None = None,
    ) -> AuthContext:
        """Build the flow and client for ``config``.

        Raises:
            ValidationError: If the OAuth settings are invalid
        """
        oauth_config = config.oauth_config()
        storage = storage or config.create_storage()
        flow = OAuthFlow(
            storage,
            oauth_config,
            on_authorization_url=on_authorization_url,
        )
        client = MediagraphClient(
            get_access_token=flow.get_access_token,
            api_url=oauth_config.api_url,
            timeout=oauth_config.http_timeout,
        )
        flow.identity_fetcher = lambda token: client.whoami(access_token=token)
        return cls(config=config, storage=storage, flow=flow, client=client)

    async def aclose(self) -> None:
        await self.flow.aclose()
        await self.client.aclose()
