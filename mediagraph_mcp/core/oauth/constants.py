"""
Fixed values for the Mediagraph OAuth client.

Client registration and callback defaults can be overridden through
`MEDIAGRAPH_*` environment variables. The token file layout and scrypt
parameters must stay fixed, or existing token files stop decrypting.
"""

from __future__ import annotations


class OAuthClient:
    """OAuth client registration for the official Mediagraph MCP server.

    These values identify the application to the authorization server and
    must match the registered client configuration.
    """

    CLIENT_ID = "7Y8rlAetr9IK2N91X4wCvVlo2hQLX6nJvFY1N8CY0GI"
    OAUTH_URL = "https://mediagraph.io"
    API_URL = "https://api.mediagraph.io"
    SCOPES = ("read", "write")


class OAuthDefaults:
    """Callback listener and HTTP defaults.

    52584 is the port registered in the client's redirect URI. The user gets
    five minutes to finish signing in.
    """

    CALLBACK_HOST = "127.0.0.1"
    CALLBACK_PORT = 52584
    CALLBACK_PATH = "/callback"
    CALLBACK_TIMEOUT = 300

    # Interval for polling the uvicorn "started" flag
    LISTENER_STARTUP_POLL_INTERVAL = 0.01
    LISTENER_STARTUP_TIMEOUT = 10.0

    # Token and revoke calls, in seconds
    HTTP_REQUEST_TIMEOUT = 30


class TokenRefreshDefaults:
    """Default values for token expiry checks.

    Access tokens are treated as expired 5 minutes before their actual
    expiry so that a request never starts with a token about to lapse.
    """

    EXPIRY_BUFFER_SECONDS = 300

    # Used when the token endpoint omits expires_in
    DEFAULT_EXPIRES_IN_SECONDS = 3600


class OAuthProtocol:
    """Authorization server paths and RFC 6749 parameter values."""

    # HTTP status codes
    HTTP_OK = 200
    HTTP_BAD_REQUEST = 400
    HTTP_NOT_FOUND = 404

    # Endpoint paths relative to the OAuth base URL
    AUTHORIZE_PATH = "/oauth/authorize"
    TOKEN_PATH = "/oauth/token"
    REVOKE_PATH = "/oauth/revoke"

    RESPONSE_TYPE_CODE = "code"

    GRANT_TYPE_AUTH_CODE = "authorization_code"
    GRANT_TYPE_REFRESH_TOKEN = "refresh_token"

    TOKEN_TYPE_BEARER = "Bearer"

    FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class PkceProtocol:
    """RFC 7636 limits: a verifier is 43 to 128 unreserved characters."""

    # 32 random bytes -> 43 base64url characters without padding
    CODE_VERIFIER_BYTES = 32
    STATE_BYTES = 16

    MIN_VERIFIER_LENGTH = 43
    MAX_VERIFIER_LENGTH = 128
    VERIFIER_ALPHABET = frozenset(
        "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"
    )

    CODE_CHALLENGE_METHOD = "S256"


class StorageDefaults:
    """Encrypted filesystem storage defaults."""

    DIR_NAME = ".mediagraph"
    FILE_NAME = "tokens.enc"

    # octal 0600 = rw------- and 0700 = rwx------
    FILE_PERMISSIONS = 0o600
    DIR_PERMISSIONS = 0o700

    # On-disk layout: salt || iv || tag || ciphertext
    SALT_LENGTH = 16
    IV_LENGTH = 12
    TAG_LENGTH = 16

    # Key derivation (scrypt) parameters
    KDF_SALT = b"mediagraph-mcp-salt"
    KDF_IDENTITY_SUFFIX = "-mediagraph-mcp"
    KEY_LENGTH = 32
    SCRYPT_N = 2**14
    SCRYPT_R = 8
    SCRYPT_P = 1


class ValidationLimits:
    """Bounds enforced on ports and timeouts read from the environment."""

    MIN_PORT = 1024
    MAX_PORT = 65535

    # seconds
    MIN_TIMEOUT_SECONDS = 1
    MAX_TIMEOUT_SECONDS = 3600


__all__ = [
    "OAuthClient",
    "OAuthDefaults",
    "TokenRefreshDefaults",
    "OAuthProtocol",
    "PkceProtocol",
    "StorageDefaults",
    "ValidationLimits",
]
