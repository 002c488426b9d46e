"""
PKCE (Proof Key for Code Exchange) utilities for OAuth security.

PKCE is an extension to the Authorization Code flow to prevent
authorization code interception attacks. It's used for public
clients (like this local MCP server) that cannot securely store a
client secret.

This module generates the code verifier, the code challenge and the
anti-CSRF state token used by each authorization attempt.
"""

import base64
import hashlib
import secrets
from dataclasses import dataclass

from .constants import PkceProtocol
from .validation import validate_code_verifier


@dataclass(frozen=True)
class PkceCodes:
    """PKCE code verifier and challenge pair.

    Attributes:
        code_verifier: Cryptographically random string (43-128 chars)
        code_challenge: Base64url-encoded SHA256 hash of verifier
    """

    code_verifier: str
    code_challenge: str

    def __repr__(self) -> str:
        # The verifier is a secret for the lifetime of the attempt
        return f"PkceCodes(code_verifier='***', code_challenge={self.code_challenge!r})"


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def compute_code_challenge(code_verifier: str) -> str:
    """Return base64url(SHA256(code_verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return _b64url(digest)


def generate_pkce(code_verifier: str | None = None) -> PkceCodes:
    """Generate PKCE code verifier and challenge.

    Uses SHA-256 as the challenge method (S256).

    The code verifier is:
    - 32 bytes from secrets.token_bytes()
    - Base64url-encoded (no padding), i.e. 43 characters

    The code challenge is:
    - SHA-256 hash of the verifier
    - Base64url-encoded (no padding)

    Args:
        code_verifier: Use this verifier instead of drawing a random one.
            Intended for tests; it must satisfy RFC 7636 section 4.1.

    Returns:
        PkceCodes containing verifier and challenge

    Raises:
        ValidationError: If an injected verifier is malformed

    Example:
        >>> pkce = generate_pkce()
        >>> len(pkce.code_verifier)
        43
    """
    if code_verifier is None:
        code_verifier = _b64url(secrets.token_bytes(PkceProtocol.CODE_VERIFIER_BYTES))
    else:
        validate_code_verifier(code_verifier)

    return PkceCodes(
        code_verifier=code_verifier,
        code_challenge=compute_code_challenge(code_verifier),
    )


def generate_state() -> str:
    """Generate the anti-CSRF state token for one authorization attempt."""
    return _b64url(secrets.token_bytes(PkceProtocol.STATE_BYTES))


__all__ = [
    "PkceCodes",
    "compute_code_challenge",
    "generate_pkce",
    "generate_state",
]
