"""
Session records and the interface for persisting them.

`StoredIdentity` is what lands on disk: the token bundle plus the user and
organization resolved through whoami. Backends implement `AuthStorage`.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ..constants import OAuthProtocol, TokenRefreshDefaults
from ..validation import (
    ValidationError,
    validate_dict_keys,
    validate_string,
    validate_type,
)

Clock = Callable[[], float]

_TOKEN_BUNDLE_ALLOWED_FIELDS = {
    "access_token",
    "refresh_token",
    "token_type",
    "expires_in",
    "expires_at",
    "scope",
}

_STORED_IDENTITY_ALLOWED_FIELDS = {
    "tokens",
    "organization_id",
    "organization_name",
    "organization_slug",
    "user_id",
    "user_email",
}

# Field names used by token files written by the Node.js server
_CAMEL_CASE_IDENTITY_FIELDS = {
    "organizationId": "organization_id",
    "organizationName": "organization_name",
    "organizationSlug": "organization_slug",
    "userId": "user_id",
    "userEmail": "user_email",
}


def now_ms(clock: Clock = time.time) -> int:
    """Current epoch time in milliseconds according to ``clock``."""
    return int(clock() * 1000)


@dataclass(frozen=True)
class TokenBundle:
    """Access/refresh token pair as issued by the token endpoint.

    ``expires_at`` is computed locally at receipt time
    (``now + expires_in * 1000``); a server-supplied absolute expiry is
    never trusted. Bundles are replaced on refresh, never mutated.

    Attributes:
        access_token: Bearer credential for API calls
        token_type: Token type reported by the server (usually "Bearer")
        expires_in: Lifetime in seconds as reported by the server
        expires_at: Absolute expiry in epoch milliseconds
        refresh_token: Credential for obtaining a new access token, if issued
        scope: Granted scopes, if reported
    """

    access_token: str
    token_type: str
    expires_in: int
    expires_at: int
    refresh_token: str | None = None
    scope: str | None = None

    def __post_init__(self) -> None:
        validate_string(self.access_token, "access_token", allow_empty=False)
        validate_string(self.token_type, "token_type", allow_empty=False)
        validate_type(self.expires_in, int, "expires_in")
        validate_type(self.expires_at, int, "expires_at")
        if self.refresh_token is not None:
            validate_string(self.refresh_token, "refresh_token", allow_empty=True)
        if self.scope is not None:
            validate_string(self.scope, "scope", allow_empty=True)

    @classmethod
    def from_token_response(
        cls,
        payload: dict[str, Any],
        received_at_ms: int,
        previous_refresh_token: str | None = None,
    ) -> "TokenBundle":
        """Build a bundle from a token endpoint JSON response.

        Args:
            payload: Parsed JSON body of a successful token response
            received_at_ms: Epoch milliseconds at which the response arrived
            previous_refresh_token: Kept when the response does not rotate it

        Raises:
            ValidationError: If access_token is missing or fields are malformed
        """
        access_token = payload.get("access_token")
        if not access_token:
            raise ValidationError(
                "access_token", access_token, "required field is missing or empty"
            )

        raw_expires_in = payload.get("expires_in")
        if raw_expires_in is None:
            expires_in = TokenRefreshDefaults.DEFAULT_EXPIRES_IN_SECONDS
        else:
            try:
                expires_in = int(raw_expires_in)
            except (TypeError, ValueError) as e:
                raise ValidationError("expires_in", raw_expires_in, "must be an integer") from e

        return cls(
            access_token=access_token,
            token_type=payload.get("token_type") or OAuthProtocol.TOKEN_TYPE_BEARER,
            expires_in=expires_in,
            expires_at=received_at_ms + expires_in * 1000,
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
            scope=payload.get("scope"),
        )

    def is_expired(
        self,
        buffer_seconds: int = TokenRefreshDefaults.EXPIRY_BUFFER_SECONDS,
        at_ms: int | None = None,
    ) -> bool:
        """True if ``at_ms >= expires_at - buffer``."""
        current = now_ms() if at_ms is None else at_ms
        return current >= self.expires_at - buffer_seconds * 1000

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "expires_at": self.expires_at,
            "scope": self.scope,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenBundle":
        """Create from a dictionary written by ``to_dict``.

        Raises:
            ValidationError: If data is invalid or contains unknown fields
        """
        validate_type(data, dict, "tokens")
        validate_dict_keys(data, _TOKEN_BUNDLE_ALLOWED_FIELDS, "TokenBundle")

        return cls(
            access_token=data.get("access_token", ""),
            token_type=data.get("token_type", ""),
            expires_in=data.get("expires_in"),  # type: ignore[arg-type]
            expires_at=data.get("expires_at"),  # type: ignore[arg-type]
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
        )

    def __repr__(self) -> str:
        return (
            f"TokenBundle(token_type={self.token_type!r}, expires_at={self.expires_at}, "
            f"has_refresh_token={bool(self.refresh_token)}, scope={self.scope!r})"
        )


@dataclass(frozen=True)
class StoredIdentity:
    """Persisted session: the token bundle plus best-effort identity details.

    Identity fields come from a ``whoami`` lookup after authorization and
    may be missing when that lookup failed.
    """

    tokens: TokenBundle
    organization_id: int | str | None = None
    organization_name: str | None = None
    organization_slug: str | None = None
    user_id: int | str | None = None
    user_email: str | None = None

    def with_tokens(self, tokens: TokenBundle) -> "StoredIdentity":
        """Copy of this record with a new token bundle and the same identity."""
        return StoredIdentity(
            tokens=tokens,
            organization_id=self.organization_id,
            organization_name=self.organization_name,
            organization_slug=self.organization_slug,
            user_id=self.user_id,
            user_email=self.user_email,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "tokens": self.tokens.to_dict(),
            "organization_id": self.organization_id,
            "organization_name": self.organization_name,
            "organization_slug": self.organization_slug,
            "user_id": self.user_id,
            "user_email": self.user_email,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StoredIdentity":
        """Create from a dictionary written by ``to_dict``.

        camelCase identity keys (``organizationId``, ``userEmail``...) are
        accepted as well, so token files from the Node.js server still load.

        Raises:
            ValidationError: If data is invalid or contains unknown fields
        """
        validate_type(data, dict, "StoredIdentity")
        data = {_CAMEL_CASE_IDENTITY_FIELDS.get(key, key): value for key, value in data.items()}
        validate_dict_keys(data, _STORED_IDENTITY_ALLOWED_FIELDS, "StoredIdentity")
        if "tokens" not in data:
            raise ValidationError("tokens", None, "required field is missing")

        return cls(
            tokens=TokenBundle.from_dict(data["tokens"]),
            organization_id=data.get("organization_id"),
            organization_name=data.get("organization_name"),
            organization_slug=data.get("organization_slug"),
            user_id=data.get("user_id"),
            user_email=data.get("user_email"),
        )


class AuthStorage(ABC):
    """Abstract storage backend for the single persisted session.

    Implementations:
    - EncryptedFileAuthStorage: AES-GCM encrypted ~/.mediagraph/tokens.enc
    - InMemoryAuthStorage: For testing and ephemeral use

    ``load`` never raises: anything unreadable is reported as ``None``.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock

    @abstractmethod
    def load(self) -> StoredIdentity | None:
        """Read the stored session, or None if absent or unreadable."""
        pass

    @abstractmethod
    def save(self, record: StoredIdentity) -> None:
        """Replace the stored session.

        Raises:
            StorageError: If write fails
        """
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove the stored session.

        Raises:
            StorageError: If removal fails
        """
        pass

    def has_tokens(self) -> bool:
        """True if a readable session exists (expired or not)."""
        return self.load() is not None

    def is_token_expired(
        self, buffer_seconds: int = TokenRefreshDefaults.EXPIRY_BUFFER_SECONDS
    ) -> bool:
        """True if there is no session or its access token is within the buffer."""
        record = self.load()
        if record is None:
            return True
        return record.tokens.is_expired(buffer_seconds, now_ms(self._clock))

    def get_access_token(
        self, buffer_seconds: int = TokenRefreshDefaults.EXPIRY_BUFFER_SECONDS
    ) -> str | None:
        """Access token if present and not expired, else None (caller refreshes)."""
        record = self.load()
        if record is None or record.tokens.is_expired(buffer_seconds, now_ms(self._clock)):
            return None
        return record.tokens.access_token

    def get_refresh_token(self) -> str | None:
        record = self.load()
        if record is None:
            return None
        return record.tokens.refresh_token or None


# Import implementations (E402 exemption: implementations depend on the base)
from .file_storage import EncryptedFileAuthStorage  # noqa: E402
from .memory_storage import InMemoryAuthStorage  # noqa: E402

__all__ = [
    "AuthStorage",
    "Clock",
    "EncryptedFileAuthStorage",
    "InMemoryAuthStorage",
    "StoredIdentity",
    "TokenBundle",
    "now_ms",
]
