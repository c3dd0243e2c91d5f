"""Generation Proxy: forwards partial page requests to the generation engine.

The proxy accepts a page request that may omit its pagination fields, fills
in the defaults (first small page), forwards it to the sibling upstream
function and relays the upstream's status and JSON body verbatim.

It never retries: retry policy belongs to the caller, and the upstream is a
slow LLM-backed function where a blind retry doubles the cost. Any failure
is converted into ``500 {"error": <message>}``.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any
from urllib.parse import urlsplit

import httpx

from config.settings import get_settings
from models.pagination import apply_defaults

logger = logging.getLogger(__name__)

_proxy: GenerationProxy | None = None

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


def derive_upstream_url(
    request_url: str,
    proxy_route: str,
    upstream_route: str,
    base_url: str = "",
) -> str:
    """Swap the proxy's route segment for the upstream's (first occurrence).

    With ``base_url`` the derived path and query are resolved against that
    origin instead of the one the request arrived on.
    """
    url = request_url.replace(proxy_route, upstream_route, 1)
    if not base_url:
        return url
    parts = urlsplit(url)
    path = parts.path + (f"?{parts.query}" if parts.query else "")
    return f"{base_url.rstrip('/')}{path}"


class GenerationProxy:
    """Request forwarder with a pooled ``httpx.AsyncClient``."""

    def __init__(self) -> None:
        settings = get_settings()
        self._proxy_route = settings.generation_proxy_route
        self._upstream_route = settings.generation_upstream_route
        self._upstream_base_url = settings.generation_upstream_base_url
        self._routing_header = settings.routing_header
        self._timeout = settings.generation_timeout
        self._default_count = settings.default_page_count
        self._default_start_index = settings.default_start_index
        self._http: httpx.AsyncClient | None = None

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        if self._http is not None:
            return
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout),
            limits=httpx.Limits(
                max_connections=30,
                max_keepalive_connections=15,
                keepalive_expiry=30,
            ),
        )
        logger.info("GenerationProxy started: %s → %s", self._proxy_route, self._upstream_route)

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
            logger.info("GenerationProxy closed")

    # -- public API ----------------------------------------------------------

    async def handle(
        self,
        request_url: str,
        raw_body: bytes,
        authorization: str | None = None,
        routing: str | None = None,
    ) -> tuple[int, Any]:
        """Process one POST and return ``(status, json_body)`` for the caller."""
        try:
            body = json.loads(raw_body or b"null")
            if not isinstance(body, dict):
                raise ValueError("Request body must be a JSON object")
            body = apply_defaults(
                body,
                count=self._default_count,
                start_index=self._default_start_index,
            )
            logger.info(
                "Requesting %s blocks starting at index %s",
                body["count"], body["startIndex"],
            )
            url = derive_upstream_url(
                request_url,
                self._proxy_route,
                self._upstream_route,
                self._upstream_base_url,
            )
            return await self.forward(url, body, authorization, routing)
        except Exception as exc:
            logger.error("Generation proxy failed: %s", exc, exc_info=True)
            return 500, {"error": str(exc)}

    async def forward(
        self,
        url: str,
        body: dict[str, Any],
        authorization: str | None = None,
        routing: str | None = None,
    ) -> tuple[int, Any]:
        """POST ``body`` upstream; raises on transport errors or non-JSON bodies."""
        client = self._ensure_started()
        headers = {
            "Content-Type": "application/json",
            "Authorization": authorization or "",
            self._routing_header: routing or "",
        }
        t0 = time.monotonic()
        response = await client.post(url, content=json.dumps(body), headers=headers)
        elapsed_ms = (time.monotonic() - t0) * 1000
        logger.info("POST %s → %d (%.0fms)", url, response.status_code, elapsed_ms)
        return response.status_code, response.json()

    @property
    def routing_header(self) -> str:
        return self._routing_header

    # -- internals -----------------------------------------------------------

    def _ensure_started(self) -> httpx.AsyncClient:
        if self._http is None:
            raise RuntimeError("GenerationProxy not started: call await proxy.start() first")
        return self._http


def get_generation_proxy() -> GenerationProxy:
    """Return the module-level GenerationProxy singleton (create if needed)."""
    global _proxy
    if _proxy is None:
        _proxy = GenerationProxy()
    return _proxy
