"""OAuth 2.0 + PKCE flow for Mediagraph authentication.

This module provides high-level orchestration: the interactive
authorization attempt, transparent refresh, re-authorization and
logout. HTTP server infrastructure is in callback_server.py and token
endpoint calls are in token_exchanger.py.
"""

import asyncio
import logging
import time
import webbrowser
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .callback_server import CallbackListener
from .constants import OAuthClient, OAuthDefaults, TokenRefreshDefaults, ValidationLimits
from .exceptions import OAuthError, OAuthFlowError, StorageError
from .http_client import HttpClient, HttpClientConfig, HttpxHttpClient
from .pkce import generate_pkce, generate_state
from .storage import AuthStorage, Clock, StoredIdentity, TokenBundle, now_ms
from .token_exchanger import TokenExchanger
from .urls import build_authorization_url
from .validation import (
    validate_port,
    validate_range,
    validate_storage_instance,
    validate_string,
    validate_url,
)

_logger = logging.getLogger(__name__)

IdentityFetcher = Callable[[str], Awaitable[Mapping[str, Any]]]
BrowserOpener = Callable[[str], bool]


@dataclass
class OAuthConfig:
    """Configuration for the OAuth flow.

    Attributes:
        client_id: OAuth client ID (defaults to the official MCP client)
        client_secret: Optional secret for confidential clients
        oauth_url: Authorization server base URL
        api_url: Mediagraph REST API base URL
        redirect_port: Local port for the callback listener (1024-65535)
        scopes: Requested scopes, space-joined in the authorize URL
        callback_timeout: Seconds to wait for the callback (1-3600)
        callback_host: Interface the callback listener binds to
        http_timeout: Seconds per token endpoint request

    Raises:
        ValidationError: If any parameter fails validation
    """

    client_id: str = OAuthClient.CLIENT_ID
    client_secret: str | None = None
    oauth_url: str = OAuthClient.OAUTH_URL
    api_url: str = OAuthClient.API_URL
    redirect_port: int = OAuthDefaults.CALLBACK_PORT
    scopes: tuple[str, ...] = OAuthClient.SCOPES
    callback_timeout: float = OAuthDefaults.CALLBACK_TIMEOUT
    callback_host: str = OAuthDefaults.CALLBACK_HOST
    http_timeout: float = OAuthDefaults.HTTP_REQUEST_TIMEOUT

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        validate_string(self.client_id, "client_id", allow_empty=False)
        if self.client_secret is not None:
            validate_string(self.client_secret, "client_secret", allow_empty=True)
        validate_url(self.oauth_url, "oauth_url")
        validate_url(self.api_url, "api_url")
        validate_port(self.redirect_port, "redirect_port")
        self.scopes = tuple(self.scopes)
        for scope in self.scopes:
            validate_string(scope, "scopes", allow_empty=False)
        validate_range(
            self.callback_timeout,
            "callback_timeout",
            min_value=ValidationLimits.MIN_TIMEOUT_SECONDS,
            max_value=ValidationLimits.MAX_TIMEOUT_SECONDS,
        )
        validate_string(self.callback_host, "callback_host", allow_empty=False)
        validate_range(self.http_timeout, "http_timeout", min_value=0.1)


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHORIZING = "authorizing"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


@dataclass
class AuthSession:
    """In-memory copy of the current token bundle, owned by one OAuthFlow."""

    tokens: TokenBundle | None = None

    def valid_access_token(self, at_ms: int, buffer_seconds: int) -> str | None:
        if self.tokens is None or self.tokens.is_expired(buffer_seconds, at_ms):
            return None
        return self.tokens.access_token

    def clear(self) -> None:
        self.tokens = None


@dataclass(frozen=True)
class AuthStatus:
    """Snapshot of the stored session for status reporting."""

    authenticated: bool
    expired: bool = True
    expires_at: int | None = None
    expires_in_seconds: int | None = None
    has_refresh_token: bool = False
    organization_name: str | None = None
    organization_slug: str | None = None
    user_email: str | None = None


@dataclass(frozen=True)
class LogoutResult:
    revoked: bool
    cleared: bool


def identity_from_whoami(
    record: StoredIdentity, whoami: Mapping[str, Any]
) -> StoredIdentity | None:
    """Merge a ``/api/whoami`` response into ``record``.

    Returns None when the response carries no organization id.
    The organization display name is ``title``, falling back to ``name``.
    """
    organization = whoami.get("organization") or {}
    user = whoami.get("user") or {}
    if not isinstance(organization, Mapping) or not organization.get("id"):
        return None
    if not isinstance(user, Mapping):
        user = {}

    return StoredIdentity(
        tokens=record.tokens,
        organization_id=organization.get("id"),
        organization_name=organization.get("title") or organization.get("name"),
        organization_slug=organization.get("slug"),
        user_id=user.get("id"),
        user_email=user.get("email"),
    )


class OAuthFlow:
    """Authorization state machine for one local user.

    States: UNAUTHENTICATED -> AUTHORIZING -> AUTHENTICATED, and
    AUTHENTICATED -> REFRESHING -> AUTHENTICATED. ``logout`` returns to
    UNAUTHENTICATED from any state.

    Public entry points never raise OAuth errors; they return a token,
    None, or a boolean and log the details.

    Example:
        >>> storage = EncryptedFileAuthStorage()
        >>> flow = OAuthFlow(storage, OAuthConfig())
        >>> token = await flow.ensure_access_token()
    """

    def __init__(
        self,
        storage: AuthStorage,
        config: OAuthConfig | None = None,
        http_client: HttpClient | None = None,
        identity_fetcher: IdentityFetcher | None = None,
        browser_opener: BrowserOpener | None = None,
        on_authorization_url: Callable[[str], None] | None = None,
        clock: Clock = time.time,
        expiry_buffer_seconds: int = TokenRefreshDefaults.EXPIRY_BUFFER_SECONDS,
    ) -> None:
        """Initialize OAuth flow.

        Args:
            storage: Storage backend for persisting the session
            config: OAuth configuration (uses defaults if None)
            http_client: HTTP client for token requests (httpx if None)
            identity_fetcher: Coroutine returning a whoami payload for an
                access token; used to enrich the stored session
            browser_opener: Opens the authorization URL (webbrowser.open if None)
            on_authorization_url: Called with the URL once the listener is up,
                so a CLI can print it as a fallback
            clock: Time source in epoch seconds
            expiry_buffer_seconds: Treat tokens as expired this early

        Raises:
            ValidationError: If storage is not a valid AuthStorage instance
        """
        validate_storage_instance(storage, "storage")
        self.storage = storage
        self.config = config or OAuthConfig()
        self._owns_http_client = http_client is None
        self.http_client = http_client or HttpxHttpClient(
            HttpClientConfig(timeout=self.config.http_timeout)
        )
        self.exchanger = TokenExchanger(self.http_client, self.config, clock)
        self.identity_fetcher = identity_fetcher
        self.browser_opener = browser_opener or webbrowser.open
        self.on_authorization_url = on_authorization_url
        self.expiry_buffer_seconds = expiry_buffer_seconds
        self._clock = clock

        self.session = AuthSession()
        self.state = AuthState.UNAUTHENTICATED
        self.last_error: str | None = None

        self._auth_lock = asyncio.Lock()
        self._refresh_lock = asyncio.Lock()
        self._auth_task: asyncio.Task[bool] | None = None

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def get_access_token(self) -> str | None:
        """Return a usable access token, refreshing if needed.

        Order: in-memory session, then storage, then a refresh-token
        grant. Returns None when the caller has to re-authorize.
        """
        at = now_ms(self._clock)
        token = self.session.valid_access_token(at, self.expiry_buffer_seconds)
        if token:
            return token

        record = await asyncio.to_thread(self.storage.load)
        if record is None:
            self.session.clear()
            self._transition(AuthState.UNAUTHENTICATED)
            return None

        if not record.tokens.is_expired(self.expiry_buffer_seconds, at):
            self.session.tokens = record.tokens
            self._transition(AuthState.AUTHENTICATED)
            return record.tokens.access_token

        if not record.tokens.refresh_token:
            _logger.info("Access token expired and no refresh token is stored")
            self.session.clear()
            self._transition(AuthState.UNAUTHENTICATED)
            return None

        return await self._refresh()

    async def _refresh(self) -> str | None:
        async with self._refresh_lock:
            # Another caller may have refreshed while this one waited
            at = now_ms(self._clock)
            token = self.session.valid_access_token(at, self.expiry_buffer_seconds)
            if token:
                return token

            record = await asyncio.to_thread(self.storage.load)
            if record is None or not record.tokens.refresh_token:
                return None
            if not record.tokens.is_expired(self.expiry_buffer_seconds, at):
                self.session.tokens = record.tokens
                return record.tokens.access_token

            self._transition(AuthState.REFRESHING)
            try:
                bundle = await self.exchanger.refresh_token(record.tokens.refresh_token)
            except OAuthError as e:
                _logger.warning("Failed to refresh token: %s", e)
                return self._refresh_failed(e)
            except Exception as e:
                _logger.exception("Token refresh failed unexpectedly")
                return self._refresh_failed(e)

            self.session.tokens = bundle
            self._transition(AuthState.AUTHENTICATED)
            try:
                await asyncio.to_thread(self.storage.save, record.with_tokens(bundle))
            except StorageError as e:
                _logger.error("Refreshed token could not be persisted: %s", e)
            _logger.info("Access token refreshed")
            return bundle.access_token

    def _refresh_failed(self, error: Exception) -> None:
        # The stored record stays so status can still report "expired"
        self.last_error = str(error)
        self.session.clear()
        self._transition(AuthState.UNAUTHENTICATED)

    def _transition(self, state: AuthState) -> None:
        # A running authorization attempt owns the state until it finishes
        if not self.authorization_in_progress:
            self.state = state

    async def ensure_access_token(self) -> str | None:
        """Return an access token, running the interactive flow if needed."""
        token = await self.get_access_token()
        if token:
            return token

        if not await self.run_authorization():
            return None
        return await self.get_access_token()

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    @property
    def authorization_in_progress(self) -> bool:
        return self._auth_task is not None and not self._auth_task.done()

    async def run_authorization(self) -> bool:
        """Run (or join) the interactive authorization attempt.

        Concurrent callers share one attempt: one listener, one browser
        window, one result.

        Returns:
            True if tokens were obtained and persisted, False otherwise
        """
        async with self._auth_lock:
            if self.authorization_in_progress:
                _logger.info("OAuth already in progress, waiting for completion...")
            else:
                self._auth_task = asyncio.create_task(self._authorize())
            task = self._auth_task
            if task is None:
                raise OAuthFlowError("Authorization attempt was not started")

        # A cancelled waiter must not cancel the attempt other callers share
        return await asyncio.shield(task)

    async def _authorize(self) -> bool:
        self.state = AuthState.AUTHORIZING
        self.last_error = None
        _logger.info("Starting OAuth flow...")

        pkce = generate_pkce()
        state = generate_state()
        auth_url = build_authorization_url(self.config, pkce.code_challenge, state)
        listener = CallbackListener(
            expected_state=state,
            port=self.config.redirect_port,
            host=self.config.callback_host,
        )

        try:
            await listener.start()
            self._open_browser(auth_url)

            _logger.info("Waiting for OAuth callback...")
            result = await listener.wait_for_callback(self.config.callback_timeout)

            _logger.info("OAuth callback received, exchanging code...")
            try:
                bundle = await self.exchanger.exchange_code(result.code, pkce.code_verifier)
            finally:
                # The verifier is single-use whatever the outcome
                pkce = None

            self.session.tokens = bundle
            record = StoredIdentity(tokens=bundle)
            # Persist before identity lookup so a whoami failure keeps the tokens
            await asyncio.to_thread(self.storage.save, record)
            self.state = AuthState.AUTHENTICATED
            _logger.info("Token exchange successful")

            await self._enrich_identity(record)
            return True

        except OAuthError as e:
            _logger.error("Authorization failed: %s", e)
            self.last_error = str(e)
            return False
        except Exception as e:
            _logger.exception("Authorization failed unexpectedly")
            self.last_error = str(e)
            return False
        finally:
            await listener.stop()
            if self.state is AuthState.AUTHORIZING:
                self.state = (
                    AuthState.AUTHENTICATED if self.session.tokens else AuthState.UNAUTHENTICATED
                )

    def _open_browser(self, url: str) -> None:
        try:
            opened = self.browser_opener(url)
        except webbrowser.Error as e:
            _logger.warning("Failed to open browser: %s", e)
            opened = False

        if not opened:
            _logger.warning("Could not open a browser. Visit this URL to authorize:\n%s", url)
        if self.on_authorization_url is not None:
            self.on_authorization_url(url)

    async def _enrich_identity(self, record: StoredIdentity) -> None:
        if self.identity_fetcher is None:
            return

        try:
            whoami = await self.identity_fetcher(record.tokens.access_token)
        except Exception as e:
            _logger.warning("Authenticated (identity lookup failed, tokens saved): %s", e)
            return

        enriched = identity_from_whoami(record, whoami)
        if enriched is None:
            _logger.info("Authenticated (whoami returned incomplete data)")
            return

        try:
            await asyncio.to_thread(self.storage.save, enriched)
        except StorageError as e:
            _logger.warning("Identity details could not be persisted: %s", e)
            return
        _logger.info(
            "Authenticated as %s in %s",
            enriched.user_email or "unknown user",
            enriched.organization_name or "unknown organization",
        )

    async def reauthorize(self) -> bool:
        """Forget the current session and run a new authorization.

        Used to switch accounts or organizations.
        """
        _logger.info("Reauthorize requested, clearing tokens and starting new OAuth flow...")
        self.session.clear()
        self.state = AuthState.UNAUTHENTICATED
        try:
            await asyncio.to_thread(self.storage.clear)
        except StorageError as e:
            _logger.error("Could not clear stored session: %s", e)
            self.last_error = str(e)
            return False
        return await self.run_authorization()

    async def logout(self) -> LogoutResult:
        """Revoke the access token (best effort) and clear the session.

        The local session is cleared whatever happens to the revocation.
        """
        token = self.session.tokens.access_token if self.session.tokens else None
        if token is None:
            record = await asyncio.to_thread(self.storage.load)
            token = record.tokens.access_token if record else None

        revoked = False
        try:
            if token:
                revoked = await self.exchanger.revoke_token(token)
        except Exception:
            _logger.exception("Token revocation failed unexpectedly")
        finally:
            self.session.clear()
            self.state = AuthState.UNAUTHENTICATED

        try:
            await asyncio.to_thread(self.storage.clear)
        except StorageError as e:
            _logger.error("Could not clear stored session: %s", e)
            return LogoutResult(revoked=revoked, cleared=False)
        _logger.info("Logged out; stored tokens cleared")
        return LogoutResult(revoked=revoked, cleared=True)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_status(self) -> AuthStatus:
        """Describe the stored session without refreshing it."""
        record = self.storage.load()
        if record is None:
            return AuthStatus(authenticated=False)

        at = now_ms(self._clock)
        expires_at = record.tokens.expires_at
        return AuthStatus(
            authenticated=True,
            expired=at >= expires_at,
            expires_at=expires_at,
            expires_in_seconds=(expires_at - at) // 1000,
            has_refresh_token=bool(record.tokens.refresh_token),
            organization_name=record.organization_name,
            organization_slug=record.organization_slug,
            user_email=record.user_email,
        )

    def get_organization_slug(self) -> str | None:
        record = self.storage.load()
        return record.organization_slug if record else None

    async def aclose(self) -> None:
        """Wait out any in-flight attempt and release the HTTP client."""
        task = self._auth_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        if self._owns_http_client:
            await self.http_client.aclose()


__all__ = [
    "AuthSession",
    "AuthState",
    "AuthStatus",
    "BrowserOpener",
    "IdentityFetcher",
    "LogoutResult",
    "OAuthConfig",
    "OAuthFlow",
    "identity_from_whoami",
]
