"""
Mediagraph OAuth Library

OAuth 2.0 Authorization Code + PKCE authentication for a local
Mediagraph MCP process.

This library provides:
- The interactive browser flow with a single-use local callback listener
- Token refresh with single-flight protection
- AES-GCM encrypted session storage in ~/.mediagraph/tokens.enc

Basic Usage:
    >>> from mediagraph_mcp.core.oauth import OAuthFlow, EncryptedFileAuthStorage
    >>>
    >>> storage = EncryptedFileAuthStorage()
    >>> flow = OAuthFlow(storage)
    >>>
    >>> # Reuses stored tokens, refreshes, or opens the browser
    >>> access_token = await flow.ensure_access_token()
    >>>
    >>> headers = {"Authorization": f"Bearer {access_token}"}

Tests pass `InMemoryAuthStorage()` instead, which never touches the disk.
"""

from .callback_server import CallbackListener, CallbackResult, ListenerState

# Exceptions
from .exceptions import (
    AuthorizationDeniedError,
    CallbackError,
    CallbackTimeoutError,
    MissingCallbackParameterError,
    OAuthError,
    OAuthFlowError,
    StateMismatchError,
    StorageError,
    TokenError,
    TokenExchangeError,
    ValidationError,
)

# HTTP client
from .http_client import (
    HttpClient,
    HttpClientConfig,
    HttpError,
    HttpResponse,
    HttpxHttpClient,
)

# OAuth flow
from .oauth import (
    AuthSession,
    AuthState,
    AuthStatus,
    LogoutResult,
    OAuthConfig,
    OAuthFlow,
    identity_from_whoami,
)
from .pkce import PkceCodes, compute_code_challenge, generate_pkce, generate_state

# Storage backend
from .storage import (
    AuthStorage,
    EncryptedFileAuthStorage,
    InMemoryAuthStorage,
    StoredIdentity,
    TokenBundle,
)
from .token_exchanger import TokenExchanger
from .urls import build_authorization_url, build_redirect_uri

__all__ = [
    # Storage
    "AuthStorage",
    "EncryptedFileAuthStorage",
    "InMemoryAuthStorage",
    "StoredIdentity",
    "TokenBundle",
    # OAuth
    "AuthSession",
    "AuthState",
    "AuthStatus",
    "CallbackListener",
    "CallbackResult",
    "ListenerState",
    "LogoutResult",
    "OAuthConfig",
    "OAuthFlow",
    "TokenExchanger",
    "identity_from_whoami",
    # Utilities
    "PkceCodes",
    "build_authorization_url",
    "build_redirect_uri",
    "compute_code_challenge",
    "generate_pkce",
    "generate_state",
    # HTTP client
    "HttpClient",
    "HttpClientConfig",
    "HttpError",
    "HttpResponse",
    "HttpxHttpClient",
    # Exceptions
    "AuthorizationDeniedError",
    "CallbackError",
    "CallbackTimeoutError",
    "MissingCallbackParameterError",
    "OAuthError",
    "OAuthFlowError",
    "StateMismatchError",
    "StorageError",
    "TokenError",
    "TokenExchangeError",
    "ValidationError",
]
