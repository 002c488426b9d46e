"""
Form-encoded POST transport for the token and revoke endpoints.

``HttpClient`` is the seam the token exchanger talks to. The default
``HttpxHttpClient`` wraps one pooled ``httpx.AsyncClient``. Nothing is
retried: a failed token call surfaces at once and the flow decides whether
to ask the user to sign in again.
"""

from __future__ import annotations

import abc
import logging
import typing
from dataclasses import dataclass

import httpx

from .constants import OAuthDefaults
from .exceptions import OAuthError

_logger = logging.getLogger(__name__)

_BODY_PREVIEW_CHARS = 200


@dataclass
class HttpClientConfig:
    timeout: float = OAuthDefaults.HTTP_REQUEST_TIMEOUT
    # Request lines only. Bodies carry codes and tokens and are never logged.
    enable_logging: bool = True


@dataclass
class HttpResponse:
    """A successful (2xx) response from the authorization server."""

    _raw: httpx.Response

    @property
    def status_code(self) -> int:
        return self._raw.status_code

    def json(self) -> typing.Any:
        return self._raw.json()


class HttpError(OAuthError):
    """A token endpoint call that did not produce a 2xx response.

    Attributes:
        status_code: HTTP status, or 0 when no usable response arrived
        reason: Reason phrase or transport error description
        body: Raw response text, kept so OAuth error JSON can be parsed
        url: Endpoint that was called
    """

    def __init__(self, status_code: int, reason: str, body: str, url: str) -> None:
        self.status_code = status_code
        self.reason = reason
        self.body = body
        self.url = url

        if not body:
            preview = "(empty)"
        elif len(body) > _BODY_PREVIEW_CHARS:
            preview = body[:_BODY_PREVIEW_CHARS] + "..."
        else:
            preview = body
        super().__init__(f"HTTP {status_code} - {reason} for {url}\nResponse: {preview}")


class HttpClient(abc.ABC):
    """Async transport used by ``TokenExchanger``.

    Implementations raise HttpError for non-2xx statuses, and with
    status_code 0 when no usable response was received.
    """

    @abc.abstractmethod
    async def post(
        self,
        url: str,
        data: dict[str, str],
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> HttpResponse: ...

    async def aclose(self) -> None:
        return None

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class HttpxHttpClient(HttpClient):
    """``HttpClient`` backed by a pooled ``httpx.AsyncClient``.

    Example:
        >>> async with HttpxHttpClient() as client:
        ...     await client.post("https://mediagraph.io/oauth/token", {"grant_type": "..."})
    """

    def __init__(self, config: HttpClientConfig | None = None) -> None:
        self.config = config or HttpClientConfig()
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.config.timeout))

    async def post(
        self,
        url: str,
        data: dict[str, str],
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> HttpResponse:
        request_timeout = timeout or self.config.timeout
        if self.config.enable_logging:
            _logger.debug("POST %s (timeout=%ss)", url, request_timeout)

        if self._client.is_closed:
            raise HttpError(0, "HTTP client is closed", "", url)

        try:
            response = await self._client.post(
                url, data=data, headers=headers, timeout=httpx.Timeout(request_timeout)
            )
        except httpx.HTTPError as e:
            # No usable response, e.g. a refused connection or a body that fails to decode
            raise HttpError(0, str(e) or type(e).__name__, "", url) from e

        if self.config.enable_logging:
            _logger.debug("POST %s -> %s", url, response.status_code)

        if response.is_error:
            raise HttpError(
                response.status_code, response.reason_phrase, response.text, str(response.url)
            )
        return HttpResponse(response)

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = [
    "HttpClient",
    "HttpClientConfig",
    "HttpResponse",
    "HttpError",
    "HttpxHttpClient",
]
