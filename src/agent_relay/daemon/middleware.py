"""Middleware for the relay daemon.

DynamicCORSMiddleware allows the localhost origins fixed at startup plus
the current tunnel URL, which changes every time the tunnel restarts.
"""

import logging
from collections.abc import MutableMapping
from http import HTTPStatus
from typing import Any

from starlette.datastructures import Headers, MutableHeaders
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

from agent_relay.constants import CORS_MAX_AGE_SECONDS, CORS_WILDCARD
from agent_relay.daemon.state import get_state

logger = logging.getLogger(__name__)


class DynamicCORSMiddleware(CORSMiddleware):
    """CORS middleware that checks both static and dynamic origins.

    Static origins (localhost) are configured at startup via the parent class.
    Dynamic origins (tunnel URLs) are read from DaemonState at request time.
    """

    def __init__(
        self,
        app: ASGIApp,
        allow_origins: list[str] | None = None,
        allow_methods: list[str] | None = None,
        allow_headers: list[str] | None = None,
        allow_credentials: bool = False,
    ) -> None:
        self._static_origins: set[str] = set(allow_origins or [])

        # Parent gets no origins; origin matching happens in is_allowed_origin
        super().__init__(
            app,
            allow_origins=[],
            allow_methods=allow_methods or [CORS_WILDCARD],
            allow_headers=allow_headers or [CORS_WILDCARD],
            allow_credentials=allow_credentials,
        )

    def is_allowed_origin(self, origin: str) -> bool:
        if not origin:
            return False
        if origin in self._static_origins:
            return True
        return origin in get_state().get_dynamic_cors_origins()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Handle CORS for both static and dynamic origins."""
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        origin = Headers(scope=scope).get("origin")

        # Not a CORS request, or an origin the browser should block
        if not origin or not self.is_allowed_origin(origin):
            await self.app(scope, receive, send)
            return

        if scope["method"] == "OPTIONS":
            preflight_headers = {
                "access-control-allow-origin": origin,
                "access-control-allow-methods": ", ".join(self.allow_methods),
                "access-control-allow-headers": ", ".join(self.allow_headers),
                "access-control-max-age": str(CORS_MAX_AGE_SECONDS),
                "vary": "Origin",
            }
            await send(
                {
                    "type": "http.response.start",
                    "status": HTTPStatus.OK,
                    "headers": [(k.encode(), v.encode()) for k, v in preflight_headers.items()],
                }
            )
            await send({"type": "http.response.body", "body": b""})
            return

        async def send_with_cors(message: MutableMapping[str, Any]) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(raw=list(message.get("headers", [])))
                headers["access-control-allow-origin"] = origin
                headers["vary"] = "Origin"
                message["headers"] = headers.raw
            await send(message)

        await self.app(scope, receive, send_with_cors)
