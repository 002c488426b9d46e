"""Every environment variable the server reads, with its type and default.

`load_env_var` coerces and checks values against these specs, and the CLI
`help` command lists them.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from mediagraph_mcp.core.oauth.constants import (
    OAuthClient,
    OAuthDefaults,
    ValidationLimits,
)

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass(frozen=True)
class EnvVarSpec:
    """One environment variable.

    ``type_hint`` picks the coercion (int, float, or tuple for comma-separated
    lists). ``validator`` runs on the coerced value and returns False to
    reject it. ``default`` is returned as-is when the variable is unset or
    empty.
    """

    name: str
    default: Any
    type_hint: type
    description: str
    validator: Callable[[Any], bool] | None = None

    @property
    def display_default(self) -> str:
        if self.default is None:
            return "unset"
        if isinstance(self.default, tuple):
            return ",".join(self.default)
        return str(self.default)


def _is_http_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


class ConfigSchema:
    """Registry of all configuration environment variables."""

    # === OAuth Client ===

    MEDIAGRAPH_CLIENT_ID = EnvVarSpec(
        name="MEDIAGRAPH_CLIENT_ID",
        default=OAuthClient.CLIENT_ID,
        type_hint=str,
        description="OAuth client ID (defaults to the public Mediagraph MCP client)",
        validator=lambda x: bool(x.strip()),
    )

    MEDIAGRAPH_CLIENT_SECRET = EnvVarSpec(
        name="MEDIAGRAPH_CLIENT_SECRET",
        default=None,
        type_hint=str,
        description="Optional client secret, sent on token and revoke calls",
    )

    MEDIAGRAPH_SCOPES = EnvVarSpec(
        name="MEDIAGRAPH_SCOPES",
        default=OAuthClient.SCOPES,
        type_hint=tuple,
        description="Comma-separated OAuth scopes to request",
        validator=lambda x: len(x) > 0,
    )

    # === Endpoints ===

    MEDIAGRAPH_OAUTH_URL = EnvVarSpec(
        name="MEDIAGRAPH_OAUTH_URL",
        default=OAuthClient.OAUTH_URL,
        type_hint=str,
        description="Authorization server base URL",
        validator=_is_http_url,
    )

    MEDIAGRAPH_API_URL = EnvVarSpec(
        name="MEDIAGRAPH_API_URL",
        default=OAuthClient.API_URL,
        type_hint=str,
        description="Mediagraph REST API base URL",
        validator=_is_http_url,
    )

    # === Callback Listener ===

    MEDIAGRAPH_REDIRECT_PORT = EnvVarSpec(
        name="MEDIAGRAPH_REDIRECT_PORT",
        default=OAuthDefaults.CALLBACK_PORT,
        type_hint=int,
        description="Local port for the OAuth callback listener",
        validator=lambda x: ValidationLimits.MIN_PORT <= x <= ValidationLimits.MAX_PORT,
    )

    MEDIAGRAPH_CALLBACK_TIMEOUT = EnvVarSpec(
        name="MEDIAGRAPH_CALLBACK_TIMEOUT",
        default=OAuthDefaults.CALLBACK_TIMEOUT,
        type_hint=float,
        description="Seconds to wait for the browser to complete authorization",
        validator=lambda x: ValidationLimits.MIN_TIMEOUT_SECONDS
        <= x
        <= ValidationLimits.MAX_TIMEOUT_SECONDS,
    )

    # === HTTP ===

    MEDIAGRAPH_HTTP_TIMEOUT = EnvVarSpec(
        name="MEDIAGRAPH_HTTP_TIMEOUT",
        default=OAuthDefaults.HTTP_REQUEST_TIMEOUT,
        type_hint=float,
        description="Timeout in seconds for outbound HTTP requests",
        validator=lambda x: x > 0,
    )

    # === Storage ===

    MEDIAGRAPH_TOKEN_FILE = EnvVarSpec(
        name="MEDIAGRAPH_TOKEN_FILE",
        default=None,
        type_hint=str,
        description="Encrypted token file (default: ~/.mediagraph/tokens.enc)",
    )

    # === Logging ===

    LOG_LEVEL = EnvVarSpec(
        name="LOG_LEVEL",
        default="INFO",
        type_hint=str,
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        validator=lambda x: x.upper() in _LOG_LEVELS,
    )

    @classmethod
    def all_specs(cls) -> dict[str, EnvVarSpec]:
        """Specs keyed by variable name."""
        return {
            value.name: value for value in vars(cls).values() if isinstance(value, EnvVarSpec)
        }
