"""Token endpoint calls for the OAuth flow.

This module exchanges authorization codes and refresh tokens for token
bundles and revokes tokens, separated from the callback server and the
orchestration logic.
"""

import json
import logging
import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .oauth import OAuthConfig

from .constants import OAuthProtocol
from .exceptions import TokenExchangeError, ValidationError
from .http_client import HttpClient, HttpError, HttpResponse
from .storage import Clock, TokenBundle, now_ms
from .urls import build_redirect_uri, build_revoke_url, build_token_url

_logger = logging.getLogger(__name__)

_FORM_HEADERS = {
    "Content-Type": OAuthProtocol.FORM_CONTENT_TYPE,
    "Accept": "application/json",
}


class TokenExchanger:
    """Talk to ``/oauth/token`` and ``/oauth/revoke``.

    Failures are not retried. Each call either returns a fresh
    TokenBundle or raises:

    - TokenExchangeError: the endpoint answered non-2xx or with an
      unusable body
    - HttpError (status_code 0): the endpoint was unreachable
    """

    def __init__(
        self,
        http_client: HttpClient,
        config: "OAuthConfig",
        clock: Clock = time.time,
    ) -> None:
        self.http_client = http_client
        self.config = config
        self._clock = clock

    async def exchange_code(self, code: str, code_verifier: str) -> TokenBundle:
        """Exchange an authorization code for tokens.

        The caller must drop ``code_verifier`` after this returns or raises.

        Args:
            code: Authorization code from the callback
            code_verifier: PKCE verifier issued for the same attempt

        Returns:
            TokenBundle with ``expires_at`` computed at receipt time

        Raises:
            TokenExchangeError: If the token endpoint rejects the code
            HttpError: If the token endpoint is unreachable
        """
        form = {
            "grant_type": OAuthProtocol.GRANT_TYPE_AUTH_CODE,
            "code": code,
            "redirect_uri": build_redirect_uri(self.config),
            "client_id": self.config.client_id,
            "code_verifier": code_verifier,
        }
        return await self._request_tokens(form, "Token exchange")

    async def refresh_token(self, refresh_token: str) -> TokenBundle:
        """Obtain a new token bundle using a refresh token.

        A response that does not rotate the refresh token keeps the old one.

        Raises:
            TokenExchangeError: If the token endpoint rejects the refresh token
            HttpError: If the token endpoint is unreachable
        """
        form = {
            "grant_type": OAuthProtocol.GRANT_TYPE_REFRESH_TOKEN,
            "refresh_token": refresh_token,
            "client_id": self.config.client_id,
        }
        return await self._request_tokens(
            form, "Token refresh", previous_refresh_token=refresh_token
        )

    async def revoke_token(self, token: str) -> bool:
        """Best-effort revocation.

        Returns:
            True if the server acknowledged the revocation, False otherwise.
            Never raises for HTTP or transport errors.
        """
        form = {"token": token, "client_id": self.config.client_id}
        self._add_client_secret(form)

        try:
            await self.http_client.post(
                build_revoke_url(self.config), data=form, headers=_FORM_HEADERS
            )
        except HttpError as e:
            if e.status_code == 0:
                _logger.warning("Token revocation failed: Network error - %s", e.reason)
            else:
                _logger.warning("Token revocation failed: HTTP %s - %s", e.status_code, e.reason)
            return False

        _logger.info("Token revoked")
        return True

    def _add_client_secret(self, form: dict[str, str]) -> None:
        if self.config.client_secret:
            form["client_secret"] = self.config.client_secret

    async def _request_tokens(
        self,
        form: dict[str, str],
        action: str,
        previous_refresh_token: str | None = None,
    ) -> TokenBundle:
        self._add_client_secret(form)

        try:
            response = await self.http_client.post(
                build_token_url(self.config), data=form, headers=_FORM_HEADERS
            )
        except HttpError as e:
            if e.status_code == 0:
                _logger.warning("%s failed: Network error - %s", action, e.reason)
                raise
            raise _error_from_status(action, e) from e

        received_at = now_ms(self._clock)
        payload = _parse_json_object(response, action)

        try:
            return TokenBundle.from_token_response(
                payload, received_at, previous_refresh_token=previous_refresh_token
            )
        except ValidationError as e:
            raise TokenExchangeError(
                f"{action} failed: invalid token response - {e.message}",
                status_code=response.status_code,
            ) from e


def _parse_json_object(response: HttpResponse, action: str) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as e:
        raise TokenExchangeError(
            f"{action} failed: response is not JSON (HTTP {response.status_code})",
            status_code=response.status_code,
        ) from e

    if not isinstance(payload, dict):
        raise TokenExchangeError(
            f"{action} failed: unexpected response body (HTTP {response.status_code})",
            status_code=response.status_code,
        )
    return payload


def _error_from_status(action: str, error: HttpError) -> TokenExchangeError:
    """Build a TokenExchangeError from a non-2xx token endpoint response.

    Uses the OAuth ``error``/``error_description`` fields when the body is
    JSON, otherwise falls back to the HTTP status.
    """
    try:
        body = json.loads(error.body)
    except ValueError:
        body = None

    if isinstance(body, dict) and (body.get("error") or body.get("error_description")):
        oauth_error = body.get("error")
        description = body.get("error_description")
        message = f"{action} failed: {description or oauth_error}"
        _logger.error("%s (HTTP %s)", message, error.status_code)
        return TokenExchangeError(
            message,
            status_code=error.status_code,
            error=oauth_error,
            error_description=description,
        )

    message = f"{action} failed: HTTP {error.status_code}"
    _logger.error("%s - %s", message, error.reason)
    return TokenExchangeError(message, status_code=error.status_code)


__all__ = ["TokenExchanger"]
