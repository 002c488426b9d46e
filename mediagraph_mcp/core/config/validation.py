"""Turn raw ``MEDIAGRAPH_*`` environment strings into typed settings."""

import os
from collections.abc import Callable
from typing import Any

from mediagraph_mcp.core.config.schema import ConfigSchema, EnvVarSpec


class ConfigError(Exception):
    """An environment variable that could not be coerced or failed its check.

    Attributes:
        env_var: Offending variable name
        value: Raw string read from the environment
        message: What was wrong with it
    """

    def __init__(self, env_var: str, value: str, message: str) -> None:
        self.env_var = env_var
        self.value = value
        self.message = message
        super().__init__(f"{env_var}={value}: {message}")


def _to_scopes(raw: str) -> tuple[str, ...]:
    # "read, write ,,admin" -> ("read", "write", "admin")
    return tuple(filter(None, (item.strip() for item in raw.split(","))))


_COERCERS: dict[type, Callable[[str], Any]] = {
    int: int,
    float: float,
    tuple: _to_scopes,
}


def _coerce(spec: EnvVarSpec, raw: str) -> Any:
    convert = _COERCERS.get(spec.type_hint)
    if convert is None:
        return raw
    try:
        return convert(raw)
    except (ValueError, TypeError) as e:
        raise ConfigError(
            spec.name, raw, f"expected {spec.type_hint.__name__} ({e})"
        ) from e


def load_env_var(spec: EnvVarSpec) -> Any:
    """Read ``spec.name`` from the environment.

    An unset or empty variable yields ``spec.default`` without running the
    validator. Anything else is coerced and then checked.

    Raises:
        ConfigError: when coercion or ``EnvVarSpec.validator`` rejects the value
    """
    raw = os.environ.get(spec.name, "")
    if raw == "":
        return spec.default

    value = _coerce(spec, raw)
    if spec.validator is None:
        return value

    try:
        accepted = spec.validator(value)
    except TypeError as e:
        raise ConfigError(spec.name, raw, f"cannot be checked: {e}") from e
    if not accepted:
        raise ConfigError(spec.name, raw, f"not an acceptable {spec.type_hint.__name__}")
    return value


def load_all_specs() -> dict[str, Any]:
    """Load every declared variable, keeping failures as ConfigError values."""
    loaded: dict[str, Any] = {}
    for name, spec in ConfigSchema.all_specs().items():
        try:
            loaded[name] = load_env_var(spec)
        except ConfigError as e:
            loaded[name] = e
    return loaded


def validate_all() -> list[ConfigError]:
    """Every configuration problem at once, so a user can fix them in one go."""
    return [value for value in load_all_specs().values() if isinstance(value, ConfigError)]
