"""FastAPI middleware: request ID tracking and access log (pure ASGI)."""

from __future__ import annotations

import logging
import time
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = b"x-request-id"


class RequestIdMiddleware:
    """Tag every HTTP request/response with an ``X-Request-ID``.

    A client-supplied ID is reused; otherwise a short UUID is generated. The
    ID is stored in ``scope["state"]`` and logged with the response status
    and latency once the response starts.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        request_id = headers.get(REQUEST_ID_HEADER, b"").decode() or uuid.uuid4().hex[:8]
        scope.setdefault("state", {})
        scope["state"]["request_id"] = request_id
        t0 = time.monotonic()

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                message["headers"] = [
                    *message.get("headers", []),
                    (REQUEST_ID_HEADER, request_id.encode()),
                ]
                logger.info(
                    "[%s] %s %s → %d (%.0fms)",
                    request_id,
                    scope.get("method", ""),
                    scope.get("path", ""),
                    message["status"],
                    (time.monotonic() - t0) * 1000,
                )
            await send(message)

        await self.app(scope, receive, send_with_request_id)
