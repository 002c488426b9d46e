"""Authorization server URL construction.

The redirect URI built here is the one the callback listener serves;
authorization servers match it exactly, so both sides derive it from
the same config.
"""

import urllib.parse
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .oauth import OAuthConfig

from .constants import OAuthDefaults, OAuthProtocol, PkceProtocol


def _endpoint(config: "OAuthConfig", path: str) -> str:
    return f"{config.oauth_url.rstrip('/')}{path}"


def build_redirect_uri(config: "OAuthConfig") -> str:
    """Return ``http://localhost:{port}/callback`` for the configured port."""
    return f"http://localhost:{config.redirect_port}{OAuthDefaults.CALLBACK_PATH}"


def build_token_url(config: "OAuthConfig") -> str:
    return _endpoint(config, OAuthProtocol.TOKEN_PATH)


def build_revoke_url(config: "OAuthConfig") -> str:
    return _endpoint(config, OAuthProtocol.REVOKE_PATH)


def build_authorization_url(config: "OAuthConfig", code_challenge: str, state: str) -> str:
    """Compose the URL the user opens to grant access.

    Args:
        config: OAuth configuration (client id, base URL, port, scopes)
        code_challenge: S256 PKCE challenge for this attempt
        state: Anti-CSRF token for this attempt

    Returns:
        ``{oauth_url}/oauth/authorize?...`` with the query parameters in a
        stable order
    """
    params = {
        "response_type": OAuthProtocol.RESPONSE_TYPE_CODE,
        "client_id": config.client_id,
        "redirect_uri": build_redirect_uri(config),
        "scope": " ".join(config.scopes),
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": PkceProtocol.CODE_CHALLENGE_METHOD,
    }
    query = urllib.parse.urlencode(params, quote_via=urllib.parse.quote)
    return f"{_endpoint(config, OAuthProtocol.AUTHORIZE_PATH)}?{query}"


__all__ = [
    "build_authorization_url",
    "build_redirect_uri",
    "build_revoke_url",
    "build_token_url",
]
