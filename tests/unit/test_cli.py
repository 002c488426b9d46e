"""Unit tests for the mediagraph-mcp command line."""

import logging

import httpx
import pytest
import respx
from typer.testing import CliRunner

from mediagraph_mcp.cli.main import app
from mediagraph_mcp.core.oauth import EncryptedFileAuthStorage

runner = CliRunner()

REVOKE_URL = "https://mediagraph.io/oauth/revoke"


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def token_file(tmp_path, monkeypatch):
    path = tmp_path / "tokens.enc"
    monkeypatch.setenv("MEDIAGRAPH_TOKEN_FILE", str(path))
    monkeypatch.setenv("COLUMNS", "200")
    return path


@pytest.mark.unit
class TestStatusCommand:
    def test_not_authenticated(self, token_file):
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "Not authenticated" in result.output
        assert "mediagraph-mcp authorize" in result.output

    def test_shows_stored_identity(self, token_file, stored_identity):
        EncryptedFileAuthStorage(token_file).save(stored_identity)

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "Acme Media" in result.output
        assert "jo@acme.test" in result.output
        assert "Expired" in result.output
        assert "Available" in result.output

    def test_whoami_alias(self, token_file, stored_identity):
        EncryptedFileAuthStorage(token_file).save(stored_identity)

        result = runner.invoke(app, ["whoami"])

        assert result.exit_code == 0
        assert "Acme Media" in result.output


@pytest.mark.unit
class TestLogoutCommand:
    def test_revokes_and_clears(self, token_file, stored_identity):
        EncryptedFileAuthStorage(token_file).save(stored_identity)

        with respx.mock:
            route = respx.post(REVOKE_URL).mock(return_value=httpx.Response(200))
            result = runner.invoke(app, ["logout"])
            assert route.called

        assert result.exit_code == 0
        assert "Token revoked successfully" in result.output
        assert "Logged out" in result.output
        assert not token_file.exists()

    def test_failed_revoke_still_logs_out(self, token_file, stored_identity):
        EncryptedFileAuthStorage(token_file).save(stored_identity)

        with respx.mock:
            respx.post(REVOKE_URL).mock(return_value=httpx.Response(500))
            result = runner.invoke(app, ["revoke"])

        assert result.exit_code == 0
        assert "not revoked" in result.output
        assert not token_file.exists()


@pytest.mark.unit
class TestConfigurationErrors:
    def test_invalid_port_exits_with_panel(self, token_file, monkeypatch):
        monkeypatch.setenv("MEDIAGRAPH_REDIRECT_PORT", "not-a-port")

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 1
        assert "Configuration Error" in result.output
        assert "MEDIAGRAPH_REDIRECT_PORT" in result.output

    def test_every_invalid_variable_is_listed(self, token_file, monkeypatch):
        monkeypatch.setenv("MEDIAGRAPH_REDIRECT_PORT", "80")
        monkeypatch.setenv("MEDIAGRAPH_OAUTH_URL", "mediagraph.io")
        monkeypatch.setenv("LOG_LEVEL", "LOUD")

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 1
        assert "MEDIAGRAPH_REDIRECT_PORT=80" in result.output
        assert "MEDIAGRAPH_OAUTH_URL=mediagraph.io" in result.output
        assert "LOG_LEVEL=LOUD" in result.output


@pytest.mark.unit
class TestInfoCommands:
    def test_help_lists_commands_and_variables(self, token_file):
        result = runner.invoke(app, ["help"])

        assert result.exit_code == 0
        assert "authorize" in result.output
        assert "MEDIAGRAPH_REDIRECT_PORT" in result.output
        assert "52584" in result.output

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "mediagraph-mcp" in result.output
