"""
Errors raised by the OAuth client.

`OAuthError` is the common base. The callback errors say why the browser
round trip produced no authorization code, and `TokenExchangeError`
carries the OAuth error fields from the token endpoint.
"""

from __future__ import annotations


class OAuthError(Exception):
    """Base class for every error raised by this package."""

    pass


class ValidationError(OAuthError):
    """A configuration or record field holds an unusable value.

    Attributes:
        field: Offending field name
        value: Rejected value
        message: What is wrong with it

    Example:
        >>> OAuthConfig(client_id="x", redirect_port=99999)
        ValidationError: Invalid 'redirect_port': must be at most 65535 (got 99999)
    """

    def __init__(self, field: str, value: object, message: str) -> None:
        self.field = field
        self.value = value
        self.message = message
        super().__init__(f"Invalid {field!r}: {message} (got {value!r})")

    def __repr__(self) -> str:
        return (
            f"ValidationError(field={self.field!r}, value={self.value!r}, message={self.message!r})"
        )


class TokenError(OAuthError):
    """A token could not be obtained, refreshed or parsed."""

    pass


class TokenExchangeError(TokenError):
    """The token endpoint rejected a code exchange or refresh.

    Attributes:
        status_code: HTTP status returned by the token endpoint
        error: OAuth ``error`` code from the response body, if any
        error_description: OAuth ``error_description``, if any
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        error: str | None = None,
        error_description: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.error = error
        self.error_description = error_description
        super().__init__(message)


class StorageError(OAuthError):
    """The token file could not be written or removed.

    Reads never raise this; an unreadable store is reported as "no session".
    Writes and deletes raise it on I/O failure.
    """

    pass


class OAuthFlowError(OAuthError):
    """The browser sign-in could not be started or completed."""

    pass


class CallbackError(OAuthFlowError):
    """The authorization callback did not deliver a usable code."""

    pass


class AuthorizationDeniedError(CallbackError):
    """The authorization server redirected back with an ``error`` parameter."""

    def __init__(self, error: str, description: str | None = None) -> None:
        self.error = error
        self.description = description
        super().__init__(description or error)


class MissingCallbackParameterError(CallbackError):
    """The callback arrived without ``code`` or ``state``."""

    pass


class StateMismatchError(CallbackError):
    """The callback ``state`` differs from the one issued (possible CSRF)."""

    pass


class CallbackTimeoutError(CallbackError):
    """No callback arrived before the listener timed out."""

    pass


__all__ = [
    "OAuthError",
    "ValidationError",
    "TokenError",
    "TokenExchangeError",
    "StorageError",
    "OAuthFlowError",
    "CallbackError",
    "AuthorizationDeniedError",
    "MissingCallbackParameterError",
    "StateMismatchError",
    "CallbackTimeoutError",
]
