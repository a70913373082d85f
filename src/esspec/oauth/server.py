"""Local OAuth callback listener for handling the consent redirect.

Starts a temporary local HTTP server that waits for exactly one redirect
carrying the authorization code (or the provider's error), under a timeout.
The listening socket and the timer are released on every exit path, so an
immediate retry can bind the same port again.
"""

from __future__ import annotations

import asyncio
import errno
import html
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable
from urllib.parse import parse_qs, urlparse

from ..config import settings

log = logging.getLogger(__name__)


class CallbackOutcome(str, Enum):
    CODE = "code"
    PROVIDER_ERROR = "provider_error"
    TIMED_OUT = "timed_out"
    PORT_IN_USE = "port_in_use"


@dataclass
class CallbackResult:
    """Result from OAuth callback."""

    outcome: CallbackOutcome
    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome is CallbackOutcome.CODE and self.code is not None


SUCCESS_PAGE = """<!DOCTYPE html>
<html>
<head>
    <title>esspec Authorization Successful</title>
    <style>
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            display: flex;
            justify-content: center;
            align-items: center;
            height: 100vh;
            margin: 0;
            background: #f4f6f8;
        }
        .container { background: white; padding: 40px 60px; border-radius: 12px; text-align: center; }
        h1 { color: #333; margin-bottom: 10px; }
        p { color: #666; }
    </style>
</head>
<body>
    <div class="container">
        <h1>Authentication Successful!</h1>
        <p>You can close this window and return to the terminal.</p>
    </div>
</body>
</html>
"""

ERROR_PAGE = """<!DOCTYPE html>
<html>
<head>
    <title>esspec Authorization Failed</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            display: flex;
            justify-content: center;
            align-items: center;
            height: 100vh;
            margin: 0;
            background: #fbeaea;
        }}
        .container {{ background: white; padding: 40px 60px; border-radius: 12px; text-align: center; }}
        h1 {{ color: #333; margin-bottom: 10px; }}
        p {{ color: #666; }}
        .error-code {{ font-family: monospace; background: #f5f5f5; padding: 4px 8px; border-radius: 4px; }}
    </style>
</head>
<body>
    <div class="container">
        <h1>Authentication Failed</h1>
        <p>{description}</p>
        <p><span class="error-code">{error}</span></p>
        <p>Please check the terminal for details.</p>
    </div>
</body>
</html>
"""

_REASONS = {200: "OK", 400: "Bad Request", 404: "Not Found"}


class CallbackListener:
    """Ephemeral HTTP endpoint for one authorization redirect.

    Usage:
        listener = CallbackListener(port=3000)
        result = await listener.wait_for_code(timeout=300, on_listening=open_browser)

        if result.outcome is CallbackOutcome.CODE:
            tokens = await client.exchange_code(result.code, result.state)

    Passing ``port=0`` binds an ephemeral port (use an explicit ``host`` such
    as ``127.0.0.1`` so only one socket is bound); ``port`` is updated once
    the listener is up.
    """

    def __init__(self, port: int | None = None, host: str | None = None):
        self.port = settings.callback_port if port is None else port
        self.host = host or settings.callback_host
        self._result: asyncio.Future[CallbackResult] | None = None
        self._connections: set[asyncio.StreamWriter] = set()

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/"

    async def wait_for_code(
        self,
        timeout: float,
        on_listening: Callable[[str], None] | None = None,
    ) -> CallbackResult:
        """Wait for the redirect, the timeout, or a bind failure.

        Args:
            timeout: Maximum seconds to wait for a qualifying request
            on_listening: Called with the listener URL once the port is bound

        Returns:
            CallbackResult with exactly one outcome. By the time it is
            returned the port and the timer have been released.
        """
        loop = asyncio.get_running_loop()
        self._result = loop.create_future()
        self._connections = set()

        try:
            server = await asyncio.start_server(self._handle_connection, self.host, self.port)
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                log.warning("Port %s is already in use", self.port)
                return CallbackResult(outcome=CallbackOutcome.PORT_IN_USE)
            raise

        try:
            if self.port == 0 and server.sockets:
                self.port = server.sockets[0].getsockname()[1]
            log.info("Local server started on %s", self.url)

            if on_listening:
                on_listening(self.url)

            try:
                return await asyncio.wait_for(self._result, timeout)
            except asyncio.TimeoutError:
                log.warning("No OAuth callback received within %s seconds", timeout)
                return CallbackResult(outcome=CallbackOutcome.TIMED_OUT)
        finally:
            await self._close(server)

    async def _close(self, server: asyncio.AbstractServer) -> None:
        server.close()
        # Idle keep-alive connections would otherwise hold wait_closed() open
        for writer in list(self._connections):
            writer.close()
        self._connections.clear()
        await server.wait_closed()
        log.debug("Callback listener on port %s closed", self.port)

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self._connections.add(writer)
        result: CallbackResult | None = None
        try:
            request_line = await reader.readline()
            if not request_line:
                return

            parts = request_line.decode("latin-1").split()
            while True:
                line = await reader.readline()
                if line in (b"\r\n", b"\n", b""):
                    break

            if len(parts) < 2:
                await self._respond(writer, 400, "Bad Request", content_type="text/plain")
                return

            log.debug("Callback request: %s %s", parts[0], urlparse(parts[1]).path)
            params = parse_qs(urlparse(parts[1]).query)
            code = params.get("code", [None])[0]
            state = params.get("state", [None])[0]
            error = params.get("error", [None])[0]
            error_desc = params.get("error_description", [None])[0]

            if code:
                result = CallbackResult(CallbackOutcome.CODE, code=code, state=state)
                await self._respond(writer, 200, SUCCESS_PAGE)
            elif error:
                result = CallbackResult(
                    CallbackOutcome.PROVIDER_ERROR,
                    state=state,
                    error=error,
                    error_description=error_desc,
                )
                page = ERROR_PAGE.format(
                    description=html.escape(error_desc or "An error occurred during authorization."),
                    error=html.escape(error),
                )
                await self._respond(writer, 400, page)
            else:
                await self._respond(writer, 404, "Not Found", content_type="text/plain")
        except (ConnectionError, ValueError) as e:
            log.debug("Callback connection failed: %s", e)
        finally:
            self._connections.discard(writer)
            writer.close()

        if result is not None and self._result is not None and not self._result.done():
            self._result.set_result(result)

    @staticmethod
    async def _respond(
        writer: asyncio.StreamWriter,
        status: int,
        body: str,
        content_type: str = "text/html",
    ) -> None:
        payload = body.encode("utf-8")
        head = (
            f"HTTP/1.1 {status} {_REASONS.get(status, '')}\r\n"
            f"Content-Type: {content_type}; charset=utf-8\r\n"
            f"Content-Length: {len(payload)}\r\n"
            "Connection: close\r\n"
            "\r\n"
        )
        writer.write(head.encode("latin-1") + payload)
        await writer.drain()


async def wait_for_code(
    port: int,
    timeout: float,
    host: str | None = None,
    on_listening: Callable[[str], None] | None = None,
) -> CallbackResult:
    """Run a one-shot CallbackListener on ``port``."""
    listener = CallbackListener(port=port, host=host)
    return await listener.wait_for_code(timeout, on_listening=on_listening)
