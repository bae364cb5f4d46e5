"""ASGI middleware that appends configurable security headers to HTTP responses."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send


class SecurityHeadersMiddleware:
    """Add security headers unless the route already set them.

    Blank values disable the corresponding header. Non-HTTP scopes (WebSocket
    board channels, lifespan) pass through untouched.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        x_content_type_options: str = "",
        x_frame_options: str = "",
        referrer_policy: str = "",
        permissions_policy: str = "",
    ) -> None:
        self.app = app
        configured = (
            ("x-content-type-options", x_content_type_options),
            ("x-frame-options", x_frame_options),
            ("referrer-policy", referrer_policy),
            ("permissions-policy", permissions_policy),
        )
        self._headers = [
            (name.encode("latin-1"), value.strip().encode("latin-1"))
            for name, value in configured
            if value and value.strip()
        ]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self._headers:
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                present = {name.lower() for name, _value in headers}
                for name, value in self._headers:
                    if name not in present:
                        headers.append((name, value))
                message = {**message, "headers": headers}
            await send(message)

        await self.app(scope, receive, send_with_headers)
