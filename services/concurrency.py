"""Per-worker concurrency cap for the generation proxy.

Every proxied request holds an upstream LLM call open for seconds, so a
burst of scroll-triggered page loads can exhaust the upstream's rate limit.
Requests beyond the cap get 503 + ``Retry-After`` instead of queueing.

Pure ASGI implementation (not BaseHTTPMiddleware) so response bodies are
never buffered.
"""

from __future__ import annotations

import asyncio
import json
import logging

from starlette.types import ASGIApp, Receive, Scope, Send

from config.settings import get_settings
from services.generation_proxy import CORS_HEADERS

logger = logging.getLogger(__name__)

_BUSY_HEADERS = [
    (b"content-type", b"application/json"),
    (b"retry-after", b"5"),
    *[(k.lower().encode(), v.encode()) for k, v in CORS_HEADERS.items()],
]


class ConcurrencyLimitMiddleware:
    """Reject POSTs to the limited paths when the worker is at capacity.

    Preflights and every other path pass through unaffected.
    """

    def __init__(
        self,
        app: ASGIApp,
        limited_paths: frozenset[str] | None = None,
        max_concurrent: int | None = None,
    ) -> None:
        self.app = app
        settings = get_settings()
        self._paths = limited_paths or frozenset({
            f"{settings.backend_functions_prefix}/{settings.generation_proxy_route}",
        })
        self._max = max_concurrent or settings.max_concurrent_proxy_requests
        self._semaphore: asyncio.Semaphore | None = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        """Lazy-init so the semaphore binds to the running event loop."""
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._max)
            logger.info("Proxy concurrency semaphore initialized (max=%d)", self._max)
        return self._semaphore

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope["type"] != "http"
            or scope.get("method") != "POST"
            or scope.get("path", "") not in self._paths
        ):
            await self.app(scope, receive, send)
            return

        sem = self._get_semaphore()
        if sem.locked():
            logger.warning("Concurrency limit reached for %s: returning 503", scope["path"])
            body = json.dumps(
                {"error": "Server busy: too many concurrent requests. Please retry."}
            ).encode()
            await send({
                "type": "http.response.start",
                "status": 503,
                "headers": _BUSY_HEADERS,
            })
            await send({"type": "http.response.body", "body": body})
            return

        async with sem:
            await self.app(scope, receive, send)
