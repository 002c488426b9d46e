"""Unit tests for the MCP tool surface."""

import json
import time

import httpx
import pytest
import pytest_asyncio
import respx
from fastmcp import Client
from fastmcp.exceptions import ToolError

from mediagraph_mcp.context import AuthContext
from mediagraph_mcp.core.config import Config
from mediagraph_mcp.core.oauth import AuthStatus, InMemoryAuthStorage
from mediagraph_mcp.server import (
    AUTH_PENDING_MESSAGE,
    create_server,
    require_access_token,
    status_to_dict,
)
from tests.fixtures.doubles import make_bundle

WHOAMI_URL = "https://api.mediagraph.io/api/whoami"


@pytest_asyncio.fixture
async def context(stored_identity):
    context = AuthContext.create(Config.load(), storage=InMemoryAuthStorage(stored_identity))
    yield context
    await context.aclose()


def _payload(result) -> dict:
    return json.loads(result.content[0].text)


@pytest.mark.unit
class TestStatusToDict:
    def test_unauthenticated(self):
        assert status_to_dict(AuthStatus(authenticated=False)) == {"authenticated": False}

    def test_authenticated(self):
        status = AuthStatus(
            authenticated=True,
            expired=False,
            expires_at=1,
            expires_in_seconds=120,
            has_refresh_token=True,
            organization_name="Acme Media",
            organization_slug="acme",
            user_email="jo@acme.test",
        )
        assert status_to_dict(status) == {
            "authenticated": True,
            "expired": False,
            "expires_in_seconds": 120,
            "has_refresh_token": True,
            "organization": "Acme Media",
            "organization_slug": "acme",
            "user": "jo@acme.test",
        }


@pytest.mark.unit
class TestRequireAccessToken:
    @pytest.mark.asyncio
    async def test_returns_token(self, context, monkeypatch):
        async def ensure():
            return "A"

        monkeypatch.setattr(context.flow, "ensure_access_token", ensure)
        assert await require_access_token(context) == "A"

    @pytest.mark.asyncio
    async def test_pending_authorization_is_a_tool_error(self, context, monkeypatch):
        async def ensure():
            return None

        monkeypatch.setattr(context.flow, "ensure_access_token", ensure)
        with pytest.raises(ToolError, match="Authorization is in progress"):
            await require_access_token(context)


@pytest.mark.unit
class TestTools:
    @pytest.mark.asyncio
    async def test_registered_tools(self, context):
        async with Client(create_server(context)) as client:
            names = {tool.name for tool in await client.list_tools()}
        assert {"whoami", "auth_status", "reauthorize"} <= names

    @pytest.mark.asyncio
    async def test_auth_status_reports_stored_session(self, context):
        async with Client(create_server(context)) as client:
            result = await client.call_tool_mcp("auth_status", {})

        payload = _payload(result)
        assert payload["authenticated"] is True
        assert payload["organization"] == "Acme Media"
        assert payload["user"] == "jo@acme.test"

    @pytest.mark.asyncio
    async def test_whoami_calls_api_with_session_token(self, context):
        context.flow.session.tokens = make_bundle(access_token="live", issued_at=time.time())
        with respx.mock:
            route = respx.get(WHOAMI_URL).mock(
                return_value=httpx.Response(200, json={"user": {"email": "jo@acme.test"}})
            )
            async with Client(create_server(context)) as client:
                result = await client.call_tool_mcp("whoami", {})
            request = route.calls.last.request

        assert _payload(result) == {"user": {"email": "jo@acme.test"}}
        assert request.headers["authorization"] == "Bearer live"

    @pytest.mark.asyncio
    async def test_whoami_without_token_asks_user_to_finish_login(self, context, monkeypatch):
        async def ensure():
            return None

        monkeypatch.setattr(context.flow, "ensure_access_token", ensure)
        async with Client(create_server(context)) as client:
            result = await client.call_tool_mcp("whoami", {})

        assert result.isError
        assert AUTH_PENDING_MESSAGE in result.content[0].text

    @pytest.mark.asyncio
    async def test_failed_reauthorize_reports_error(self, context, monkeypatch):
        async def reauthorize():
            context.flow.last_error = "State parameter mismatch"
            return False

        monkeypatch.setattr(context.flow, "reauthorize", reauthorize)
        async with Client(create_server(context)) as client:
            result = await client.call_tool_mcp("reauthorize", {})

        assert _payload(result) == {"success": False, "error": "State parameter mismatch"}

    @pytest.mark.asyncio
    async def test_successful_reauthorize_reports_identity(self, context, monkeypatch):
        async def reauthorize():
            return True

        monkeypatch.setattr(context.flow, "reauthorize", reauthorize)
        async with Client(create_server(context)) as client:
            result = await client.call_tool_mcp("reauthorize", {})

        assert _payload(result) == {
            "success": True,
            "organization": "Acme Media",
            "user": "jo@acme.test",
        }


@pytest.mark.unit
class TestAuthContext:
    @pytest.mark.asyncio
    async def test_flow_uses_client_for_identity(self, context):
        with respx.mock:
            route = respx.get(WHOAMI_URL).mock(
                return_value=httpx.Response(200, json={"organization": {"id": 7}})
            )
            whoami = await context.flow.identity_fetcher("fresh")
            assert route.calls.last.request.headers["authorization"] == "Bearer fresh"

        assert whoami == {"organization": {"id": 7}}
        assert context.client.api_url == "https://api.mediagraph.io"
