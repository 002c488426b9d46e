"""Environment-driven configuration."""

from mediagraph_mcp.core.config.config import Config
from mediagraph_mcp.core.config.schema import ConfigSchema, EnvVarSpec
from mediagraph_mcp.core.config.validation import ConfigError, load_env_var, validate_all

__all__ = [
    "Config",
    "ConfigError",
    "ConfigSchema",
    "EnvVarSpec",
    "load_env_var",
    "validate_all",
]
