"""Test doubles and helpers shared across the suite."""

import socket
from urllib.parse import parse_qs, urlparse

import httpx

from mediagraph_mcp.core.oauth import HttpClient, HttpError, HttpResponse, TokenBundle

T0 = 1_700_000_000.0


class FakeClock:
    """Settable epoch-seconds clock."""

    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingHttpClient(HttpClient):
    """HttpClient double that replays queued responses and records posts.

    Queue entries are either ``(status, json_body)`` tuples or exceptions
    to raise.
    """

    def __init__(self, responses=None) -> None:
        self.responses = list(responses or [])
        self.posts: list[tuple[str, dict]] = []
        self.closed = False

    async def post(self, url, data, headers=None, timeout=None):
        self.posts.append((url, dict(data)))
        return self._next("POST", url)

    async def aclose(self) -> None:
        self.closed = True

    def _next(self, method: str, url: str) -> HttpResponse:
        if not self.responses:
            raise AssertionError(f"Unexpected {method} {url}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        status, body = item
        response = httpx.Response(status, json=body, request=httpx.Request(method, url))
        if response.is_error:
            raise HttpError(status, response.reason_phrase, response.text, url)
        return HttpResponse(response)


def free_port() -> int:
    """A port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def query_param(url: str, name: str) -> str:
    return parse_qs(urlparse(url).query)[name][0]


def make_bundle(
    access_token: str = "A",
    refresh_token: str | None = "R",
    expires_in: int = 3600,
    issued_at: float = T0,
) -> TokenBundle:
    return TokenBundle(
        access_token=access_token,
        token_type="Bearer",
        expires_in=expires_in,
        expires_at=int(issued_at * 1000) + expires_in * 1000,
        refresh_token=refresh_token,
    )
