"""Shared-key check for requests arriving through the identity gateway."""
from __future__ import annotations

import hmac
from typing import Optional

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send


class GatewayKeyMiddleware:
    """Enforces the gateway key via Authorization: Bearer <key> for /api routes.

    Worker routes authenticate with their own secret and are left alone.
    """

    def __init__(self, app: ASGIApp, api_key: Optional[str], exempt_prefixes: tuple[str, ...] = ()):
        self.app = app
        self.api_key = api_key
        self.exempt_prefixes = exempt_prefixes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        path = scope.get("path", "")
        if scope.get("type") != "http" or not path.startswith("/api"):
            await self.app(scope, receive, send)
            return

        # Allow OPTIONS requests (CORS preflight)
        if scope.get("method") == "OPTIONS":
            await self.app(scope, receive, send)
            return

        # Skip enforcement if no key configured
        if not self.api_key or path.startswith(self.exempt_prefixes):
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers") or [])
        auth_header = headers.get(b"authorization")

        if not auth_header:
            await self._reject(scope, receive, send, status_code=401, detail="Missing Authorization header")
            return

        try:
            scheme, token = auth_header.decode().split(" ", 1)
        except ValueError:
            await self._reject(scope, receive, send, status_code=401, detail="Invalid Authorization header format")
            return

        if scheme.lower() != "bearer" or not hmac.compare_digest(token, self.api_key):
            await self._reject(scope, receive, send, status_code=403, detail="Invalid API key")
            return

        await self.app(scope, receive, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send, status_code: int, detail: str) -> None:
        response = JSONResponse({"detail": detail}, status_code=status_code)
        await response(scope, receive, send)
