"""Shared pytest configuration and fixtures for Mediagraph MCP tests."""

import pytest

from mediagraph_mcp.core.oauth import OAuthConfig, StoredIdentity
from tests.fixtures.doubles import FakeClock, make_bundle

_ENV_VARS = (
    "MEDIAGRAPH_CLIENT_ID",
    "MEDIAGRAPH_CLIENT_SECRET",
    "MEDIAGRAPH_OAUTH_URL",
    "MEDIAGRAPH_API_URL",
    "MEDIAGRAPH_REDIRECT_PORT",
    "MEDIAGRAPH_SCOPES",
    "MEDIAGRAPH_TOKEN_FILE",
    "MEDIAGRAPH_CALLBACK_TIMEOUT",
    "MEDIAGRAPH_HTTP_TIMEOUT",
    "LOG_LEVEL",
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def oauth_config():
    return OAuthConfig(
        client_id="test-client",
        oauth_url="https://auth.example.test",
        api_url="https://api.example.test",
        redirect_port=52584,
        callback_timeout=5,
    )


@pytest.fixture
def token_response():
    """Standard token endpoint success body."""
    return {
        "access_token": "A",
        "refresh_token": "R",
        "expires_in": 3600,
        "token_type": "Bearer",
    }


@pytest.fixture
def stored_identity():
    return StoredIdentity(
        tokens=make_bundle(),
        organization_id=7,
        organization_name="Acme Media",
        organization_slug="acme",
        user_id=42,
        user_email="jo@acme.test",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests (fast, no external deps)")
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (real local sockets)"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers to tests based on their location."""
    for item in items:
        path = str(item.fspath).replace("\\", "/")
        if "tests/unit/" in path:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in path:
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep tests away from the real home directory and the user's settings."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("USERPROFILE", str(tmp_path / "home"))
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
