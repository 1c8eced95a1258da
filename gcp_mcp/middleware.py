"""Transport security for the streamable HTTP server.

An ASGI middleware in front of the MCP app that:
- rejects browser requests whose Origin is not allow-listed (DNS rebinding)
- caps the number of in-flight HTTP connections
- adds security headers to every response
"""

import logging
from typing import Any

from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Cache-Control": "no-store",
}


def is_origin_allowed(origin: str | None, allowed_origins: list[str]) -> bool:
    """Check an Origin header against the allow-list.

    Requests without an Origin (MCP clients, curl) are allowed. An allowed
    entry matches the exact origin or the same origin on any port, so
    "http://localhost" admits "http://localhost:5173" but not
    "http://localhost.evil.example".
    """
    if not origin:
        return True
    origin = origin.rstrip("/")
    return any(
        origin == allowed or origin.startswith(f"{allowed}:")
        for allowed in allowed_origins
    )


class TransportSecurityMiddleware:
    """Origin validation, connection limit and security headers."""

    def __init__(
        self, app: ASGIApp, allowed_origins: list[str], max_connections: int
    ) -> None:
        self.app = app
        self.allowed_origins = list(allowed_origins)
        self.max_connections = max_connections
        self.active_connections = 0

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        origin = headers.get("origin")
        client = scope.get("client")
        client_host = client[0] if client else "unknown"

        if not is_origin_allowed(origin, self.allowed_origins):
            self._log_security_event(
                "invalid_origin", origin=origin, client=client_host, path=scope["path"]
            )
            response = PlainTextResponse("Forbidden: Invalid origin", status_code=403)
            await response(scope, receive, self._with_security_headers(send))
            return

        if self.active_connections >= self.max_connections:
            self._log_security_event(
                "connection_limit_exceeded",
                client=client_host,
                active=self.active_connections,
                limit=self.max_connections,
            )
            response = PlainTextResponse(
                "Service Unavailable: Too many connections", status_code=503
            )
            await response(scope, receive, self._with_security_headers(send))
            return

        self.active_connections += 1
        try:
            await self.app(scope, receive, self._with_security_headers(send))
        finally:
            self.active_connections -= 1

    def _with_security_headers(self, send: Send) -> Send:
        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                for name, value in SECURITY_HEADERS.items():
                    response_headers.setdefault(name, value)
                if "server" in response_headers:
                    del response_headers["server"]
            await send(message)

        return send_wrapper

    def _log_security_event(self, event: str, **details: Any) -> None:
        logger.warning(
            f"🛡️  Security event '{event}': "
            + ", ".join(f"{k}={v}" for k, v in details.items())
        )
