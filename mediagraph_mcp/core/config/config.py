"""Configuration for the Mediagraph MCP process.

All values are loaded from environment variables (after ``.env`` has
been applied on package import) through ConfigSchema, then handed to the
OAuth layer as a validated OAuthConfig.
"""

from dataclasses import dataclass
from pathlib import Path

from mediagraph_mcp.core.config.schema import ConfigSchema
from mediagraph_mcp.core.config.validation import load_env_var
from mediagraph_mcp.core.oauth import EncryptedFileAuthStorage, OAuthConfig


@dataclass(frozen=True)
class Config:
    """Settings snapshot read from the environment.

    Build with ``Config.load()``; construct directly in tests.
    """

    client_id: str
    client_secret: str | None
    oauth_url: str
    api_url: str
    redirect_port: int
    scopes: tuple[str, ...]
    token_file: str | None
    callback_timeout: float
    http_timeout: float
    log_level: str

    @classmethod
    def load(cls) -> "Config":
        """Read every setting from the environment.

        Raises:
            ConfigError: If a variable cannot be coerced or fails validation
        """
        return cls(
            client_id=load_env_var(ConfigSchema.MEDIAGRAPH_CLIENT_ID),
            client_secret=load_env_var(ConfigSchema.MEDIAGRAPH_CLIENT_SECRET),
            oauth_url=load_env_var(ConfigSchema.MEDIAGRAPH_OAUTH_URL).rstrip("/"),
            api_url=load_env_var(ConfigSchema.MEDIAGRAPH_API_URL).rstrip("/"),
            redirect_port=load_env_var(ConfigSchema.MEDIAGRAPH_REDIRECT_PORT),
            scopes=tuple(load_env_var(ConfigSchema.MEDIAGRAPH_SCOPES)),
            token_file=load_env_var(ConfigSchema.MEDIAGRAPH_TOKEN_FILE),
            callback_timeout=load_env_var(ConfigSchema.MEDIAGRAPH_CALLBACK_TIMEOUT),
            http_timeout=load_env_var(ConfigSchema.MEDIAGRAPH_HTTP_TIMEOUT),
            log_level=load_env_var(ConfigSchema.LOG_LEVEL).upper(),
        )

    def oauth_config(self) -> OAuthConfig:
        """Validated OAuth settings.

        Raises:
            ValidationError: If a value is outside the accepted range
        """
        return OAuthConfig(
            client_id=self.client_id,
            client_secret=self.client_secret,
            oauth_url=self.oauth_url,
            api_url=self.api_url,
            redirect_port=self.redirect_port,
            scopes=self.scopes,
            callback_timeout=self.callback_timeout,
            http_timeout=self.http_timeout,
        )

    @property
    def token_path(self) -> Path | None:
        return Path(self.token_file).expanduser() if self.token_file else None

    def create_storage(self) -> EncryptedFileAuthStorage:
        return EncryptedFileAuthStorage(self.token_path)
