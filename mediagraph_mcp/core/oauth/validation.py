"""
Field checks shared by the OAuth configuration, PKCE and token records.

Every check raises ValidationError naming the offending field, e.g.::

    >>> validate_port(80, "redirect_port")
    ValidationError: Invalid 'redirect_port': must be at least 1024 (got 80)
"""

from __future__ import annotations

import urllib.parse
from typing import Any

from .constants import PkceProtocol, ValidationLimits
from .exceptions import ValidationError


def _type_label(expected: type | tuple[type, ...]) -> str:
    if isinstance(expected, type):
        return expected.__name__
    return " or ".join(t.__name__ for t in expected)


def validate_type(value: object, expected_type: type | tuple[type, ...], field_name: str) -> None:
    if not isinstance(value, expected_type):
        raise ValidationError(
            field_name,
            value,
            f"must be {_type_label(expected_type)}, got {type(value).__name__}",
        )


def validate_string(value: object, field_name: str, allow_empty: bool = False) -> str:
    """Return ``value`` if it is a str, rejecting "" unless ``allow_empty``."""
    validate_type(value, str, field_name)
    assert isinstance(value, str)

    if not value and not allow_empty:
        raise ValidationError(field_name, value, "must be a non-empty string")
    return value


def validate_range(
    value: int | float,
    field_name: str,
    min_value: int | float | None = None,
    max_value: int | float | None = None,
) -> None:
    """Inclusive bounds check. Booleans are not accepted as numbers."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(
            field_name, value, f"must be int or float, got {type(value).__name__}"
        )
    if min_value is not None and value < min_value:
        raise ValidationError(field_name, value, f"must be at least {min_value}")
    if max_value is not None and value > max_value:
        raise ValidationError(field_name, value, f"must be at most {max_value}")


def validate_port(port: int, field_name: str = "port") -> None:
    """Callback ports must be unprivileged: 1024 through 65535."""
    if isinstance(port, bool) or not isinstance(port, int):
        raise ValidationError(field_name, port, f"must be int, got {type(port).__name__}")
    validate_range(port, field_name, ValidationLimits.MIN_PORT, ValidationLimits.MAX_PORT)


def validate_url(value: str, field_name: str) -> str:
    """Accept absolute http or https URLs only."""
    validate_string(value, field_name)
    try:
        parsed = urllib.parse.urlparse(value)
    except ValueError as e:
        raise ValidationError(field_name, value, f"malformed URL: {e}") from e

    if parsed.scheme not in ("http", "https"):
        raise ValidationError(field_name, value, "URL must use http or https")
    if not parsed.netloc:
        raise ValidationError(field_name, value, "URL has no host")
    return value


def validate_code_verifier(value: str, field_name: str = "code_verifier") -> str:
    """RFC 7636 section 4.1: 43 to 128 unreserved characters."""
    validate_string(value, field_name)

    low, high = PkceProtocol.MIN_VERIFIER_LENGTH, PkceProtocol.MAX_VERIFIER_LENGTH
    if not low <= len(value) <= high:
        raise ValidationError(
            field_name, value, f"length must be between {low} and {high} characters"
        )
    if not set(value) <= PkceProtocol.VERIFIER_ALPHABET:
        raise ValidationError(field_name, value, "contains characters outside [A-Za-z0-9-._~]")
    return value


def validate_storage_instance(storage: Any, param_name: str = "storage") -> None:
    from .storage import AuthStorage  # storage imports this module

    if not isinstance(storage, AuthStorage):
        raise ValidationError(
            param_name, storage, f"must be an AuthStorage, got {type(storage).__name__}"
        )


def validate_dict_keys(data: dict[str, Any], allowed_keys: set[str], context: str) -> None:
    """Reject persisted records carrying fields this version does not know."""
    unknown = sorted(set(data) - allowed_keys)
    if unknown:
        raise ValidationError(
            f"{context}.keys",
            unknown,
            f"unknown field(s): {', '.join(unknown)}. "
            f"Valid fields are: {', '.join(sorted(allowed_keys))}",
        )


__all__ = [
    "validate_type",
    "validate_string",
    "validate_range",
    "validate_port",
    "validate_url",
    "validate_code_verifier",
    "validate_storage_instance",
    "validate_dict_keys",
]
