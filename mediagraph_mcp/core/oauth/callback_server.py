"""HTTP callback listener for the OAuth flow.

A single-use local server that receives the authorization server's
redirect, checks it against the state issued for the attempt, and
settles one pending wait with the authorization code. The first request
to the callback path, valid or not, settles the wait and stops the
server so a code cannot be replayed.

State machine::

    IDLE -> LISTENING -> (CODE_RECEIVED | ERROR_RECEIVED | TIMED_OUT) -> STOPPED
"""

import asyncio
import html
import logging
import os
import secrets
import socket
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from .constants import OAuthDefaults, OAuthProtocol
from .exceptions import (
    AuthorizationDeniedError,
    CallbackError,
    CallbackTimeoutError,
    MissingCallbackParameterError,
    OAuthFlowError,
    StateMismatchError,
)

_logger = logging.getLogger(__name__)

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>{title}</title>
  </head>
  <body>
    <div style="max-width: 640px; margin: 80px auto; text-align: center;
                font-family: system-ui, -apple-system, sans-serif;">
      <h1 style="color: {color};">{title}</h1>
      <p>{message}</p>
      <p>You can close this window and return to your application.</p>
    </div>
  </body>
</html>
"""

_SUCCESS_COLOR = "#28a745"
_ERROR_COLOR = "#dc3545"


class ListenerState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    CODE_RECEIVED = "code_received"
    ERROR_RECEIVED = "error_received"
    TIMED_OUT = "timed_out"
    STOPPED = "stopped"


@dataclass(frozen=True)
class CallbackResult:
    """Authorization code and the (verified) state it came back with."""

    code: str
    state: str

    def __repr__(self) -> str:
        return "CallbackResult(code='***', state='***')"


def _page(title: str, message: str, status_code: int, color: str = _ERROR_COLOR) -> HTMLResponse:
    body = _PAGE_TEMPLATE.format(
        title=html.escape(title),
        message=html.escape(message),
        color=color,
    )
    return HTMLResponse(content=body, status_code=status_code)


class CallbackListener:
    """Single-use local HTTP server for the OAuth redirect.

    Usage::

        listener = CallbackListener(expected_state=state, port=52584)
        await listener.start()          # returns once the socket accepts
        webbrowser.open(auth_url)       # only after start() returned
        result = await listener.wait_for_callback()

    ``start()`` may be called once per instance. ``wait_for_callback()``
    settles exactly once and always leaves the server stopped and the
    port released.
    """

    def __init__(
        self,
        expected_state: str,
        port: int = OAuthDefaults.CALLBACK_PORT,
        host: str = OAuthDefaults.CALLBACK_HOST,
    ) -> None:
        self.expected_state = expected_state
        self.host = host
        self.port = port
        self.listener_state = ListenerState.IDLE

        self._future: asyncio.Future[CallbackResult] | None = None
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._socket: socket.socket | None = None

        self.app = self._build_app()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Bind the port and serve until the callback arrives.

        Returns only once uvicorn reports it is serving, so the caller can
        safely open the browser afterwards.

        Raises:
            OAuthFlowError: If the listener already ran, the port is in
                use, or the server fails to come up
        """
        if self.listener_state is ListenerState.LISTENING:
            raise OAuthFlowError("Callback listener is already running")
        if self.listener_state is not ListenerState.IDLE:
            raise OAuthFlowError("Callback listener is single-use and cannot be restarted")

        loop = asyncio.get_running_loop()
        self._future = loop.create_future()
        self._socket = self._bind_socket()

        config = uvicorn.Config(
            self.app,
            log_config=None,
            log_level="warning",
            access_log=False,
            lifespan="off",
        )
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[self._socket]))

        elapsed = 0.0
        while not self._server.started:
            if self._serve_task.done():
                await self._cleanup()
                self.listener_state = ListenerState.STOPPED
                raise OAuthFlowError("Callback listener exited during startup")
            if elapsed >= OAuthDefaults.LISTENER_STARTUP_TIMEOUT:
                await self.stop()
                raise OAuthFlowError("Callback listener did not start in time")
            await asyncio.sleep(OAuthDefaults.LISTENER_STARTUP_POLL_INTERVAL)
            elapsed += OAuthDefaults.LISTENER_STARTUP_POLL_INTERVAL

        self.listener_state = ListenerState.LISTENING
        _logger.info(
            "Listening for OAuth callback on http://%s:%s%s",
            self.host,
            self.port,
            OAuthDefaults.CALLBACK_PATH,
        )

    async def wait_for_callback(
        self, timeout: float = OAuthDefaults.CALLBACK_TIMEOUT
    ) -> CallbackResult:
        """Wait for the redirect, then stop the server.

        Args:
            timeout: Seconds to wait before giving up

        Returns:
            CallbackResult with the authorization code

        Raises:
            AuthorizationDeniedError: The provider redirected with ``error``
            MissingCallbackParameterError: ``code`` or ``state`` was missing
            StateMismatchError: ``state`` did not match (possible CSRF)
            CallbackTimeoutError: Nothing arrived within ``timeout``
            OAuthFlowError: The listener was never started
        """
        if self._future is None:
            raise OAuthFlowError("Callback listener has not been started")

        try:
            return await asyncio.wait_for(self._future, timeout)
        except asyncio.TimeoutError:
            self.listener_state = ListenerState.TIMED_OUT
            _logger.warning("No OAuth callback received within %s seconds", timeout)
            raise CallbackTimeoutError(
                f"Authorization timed out after {timeout:g} seconds"
            ) from None
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop serving and release the port. Safe to call repeatedly."""
        if self._future is not None:
            if not self._future.done():
                self._future.cancel()
            elif not self._future.cancelled():
                # Mark a failure as retrieved when nobody is waiting on it
                self._future.exception()
        if self._server is not None:
            self._server.should_exit = True
        await self._cleanup()
        if self.listener_state is not ListenerState.IDLE:
            self.listener_state = ListenerState.STOPPED

    @property
    def is_listening(self) -> bool:
        return self.listener_state is ListenerState.LISTENING

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _bind_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            if os.name == "posix":
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
            sock.listen()
        except OSError as e:
            sock.close()
            self.listener_state = ListenerState.STOPPED
            raise OAuthFlowError(
                f"Cannot listen on {self.host}:{self.port} for the OAuth callback: {e}"
            ) from e

        # Port 0 lets the OS choose
        self.port = sock.getsockname()[1]
        return sock

    async def _cleanup(self) -> None:
        task = self._serve_task
        if task is not None:
            await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                _logger.warning("Callback listener stopped with error: %s", task.exception())
        self._server = None
        self._serve_task = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    def _build_app(self) -> FastAPI:
        app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

        @app.get(OAuthDefaults.CALLBACK_PATH, response_class=HTMLResponse)
        async def oauth_callback(request: Request) -> HTMLResponse:
            return self._handle_callback(request.query_params)

        return app

    def _handle_callback(self, params: Mapping[str, str]) -> HTMLResponse:
        if self._future is None or self._future.done():
            # Only the first callback of an attempt is honored
            return _page(
                "Not Found",
                "This login link has already been used.",
                OAuthProtocol.HTTP_NOT_FOUND,
            )

        error = params.get("error")
        code = params.get("code")
        state = params.get("state")

        if error:
            description = params.get("error_description") or error
            _logger.warning("Authorization server returned error: %s", error)
            self._settle(ListenerState.ERROR_RECEIVED, AuthorizationDeniedError(error, description))
            return _page("Authorization Failed", description, OAuthProtocol.HTTP_BAD_REQUEST)

        if not code or not state:
            self._settle(
                ListenerState.ERROR_RECEIVED,
                MissingCallbackParameterError("Missing authorization code or state"),
            )
            return _page(
                "Invalid Callback",
                "Missing authorization code or state.",
                OAuthProtocol.HTTP_BAD_REQUEST,
            )

        if not secrets.compare_digest(state.encode(), self.expected_state.encode()):
            _logger.warning("OAuth callback state mismatch; rejecting attempt")
            self._settle(
                ListenerState.ERROR_RECEIVED,
                StateMismatchError("State parameter mismatch"),
            )
            return _page(
                "Security Error",
                "State parameter mismatch. This could indicate a CSRF attack.",
                OAuthProtocol.HTTP_BAD_REQUEST,
            )

        self._settle(ListenerState.CODE_RECEIVED, CallbackResult(code=code, state=state))
        return _page(
            "Authorization Successful",
            "You have successfully connected to Mediagraph.",
            OAuthProtocol.HTTP_OK,
            color=_SUCCESS_COLOR,
        )

    def _settle(self, new_state: ListenerState, outcome: CallbackResult | CallbackError) -> None:
        if self._future is None or self._future.done():
            return
        self.listener_state = new_state
        if isinstance(outcome, CallbackError):
            self._future.set_exception(outcome)
        else:
            self._future.set_result(outcome)
        if self._server is not None:
            self._server.should_exit = True


__all__ = [
    "CallbackListener",
    "CallbackResult",
    "ListenerState",
]
