"""Async client for the Mediagraph REST API.

Only the calls the authorization layer needs live here; the asset
catalogue is out of scope. Every request carries the bearer token
returned by the injected ``get_access_token`` coroutine.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import httpx

from mediagraph_mcp.core.oauth.constants import OAuthClient, OAuthDefaults

_logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str | None]]

_STATUS_MESSAGES = {
    401: ("unauthorized", "Access token expired or invalid. Please re-authorize."),
    403: ("forbidden", "You do not have permission to perform this action."),
    404: ("not_found", "The requested resource was not found."),
}


class MediagraphApiError(Exception):
    """Non-2xx API response, a missing token, or an unreachable API.

    Attributes:
        status_code: HTTP status (401 when no token was available, 0 for
            network errors)
        body: Error payload, at least ``error`` and ``message``
    """

    def __init__(self, status_code: int, body: Mapping[str, Any]) -> None:
        self.status_code = status_code
        self.body = dict(body)
        super().__init__(self.body.get("message") or self.body.get("error") or "API Error")


def _encode_params(params: Mapping[str, Any] | None) -> list[tuple[str, str]]:
    """Flatten query params, expanding lists as ``key[]`` entries and dropping None."""
    encoded: list[tuple[str, str]] = []
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            encoded.extend((f"{key}[]", str(item)) for item in value)
        elif isinstance(value, bool):
            encoded.append((key, "true" if value else "false"))
        else:
            encoded.append((key, str(value)))
    return encoded


class MediagraphClient:
    """Thin httpx wrapper around the Mediagraph API.

    Example:
        >>> client = MediagraphClient(get_access_token=flow.get_access_token)
        >>> me = await client.whoami()
    """

    def __init__(
        self,
        get_access_token: TokenProvider,
        api_url: str = OAuthClient.API_URL,
        timeout: float = OAuthDefaults.HTTP_REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self._get_access_token = get_access_token
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport)

    async def request(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        access_token: str | None = None,
    ) -> Any:
        """Send an authenticated request and return the decoded JSON body.

        Args:
            method: HTTP method
            path: Path below the API base URL, e.g. ``/api/whoami``
            params: Query parameters; lists become ``key[]`` entries
            json: JSON body for non-GET requests
            access_token: Use this token instead of asking the provider

        Returns:
            Parsed JSON, or an empty dict for non-JSON responses

        Raises:
            MediagraphApiError: On a missing token, a non-2xx status or a
                network failure
        """
        token = access_token or await self._get_access_token()
        if not token:
            raise MediagraphApiError(
                401,
                {
                    "error": "unauthorized",
                    "message": "Not authenticated. Please authorize with Mediagraph first.",
                },
            )

        url = f"{self.api_url}{path}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

        try:
            response = await self._client.request(
                method,
                url,
                params=_encode_params(params),
                json=json if method.upper() != "GET" else None,
                headers=headers,
            )
        except httpx.TransportError as e:
            _logger.warning("Mediagraph API %s %s failed: %s", method, path, e)
            raise MediagraphApiError(
                0, {"error": "network_error", "message": str(e) or type(e).__name__}
            ) from e

        _logger.debug("Mediagraph API %s %s -> HTTP %s", method, path, response.status_code)

        if response.is_error:
            raise MediagraphApiError(response.status_code, self._error_body(response))

        if "application/json" not in response.headers.get("content-type", ""):
            return {}
        return response.json()

    @staticmethod
    def _error_body(response: httpx.Response) -> dict[str, Any]:
        if response.status_code in _STATUS_MESSAGES:
            error, message = _STATUS_MESSAGES[response.status_code]
            return {"error": error, "message": message}
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            return body
        return {"error": "unknown_error", "message": response.reason_phrase}

    async def whoami(self, access_token: str | None = None) -> dict[str, Any]:
        """Current user and organization (``GET /api/whoami``)."""
        return await self.request("GET", "/api/whoami", access_token=access_token)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "MediagraphClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
