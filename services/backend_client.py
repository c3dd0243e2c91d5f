"""HTTP client for the hosted backend's named functions.

Wraps ``httpx.AsyncClient`` with:
- base URL + functions prefix construction
- service api key / bearer token headers, overridable per call so a
  caller's token is passed through unmodified
- retry with exponential backoff (network / 5xx errors)
- extraction of the backend's ``error`` / ``message`` text on failure
- request timing logs
- connection-pool lifecycle tied to the FastAPI lifespan
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from config.settings import get_settings
from errors.exceptions import BackendFunctionError

logger = logging.getLogger(__name__)

_client: BackendClient | None = None

MAX_RETRIES = 3
RETRY_BASE_DELAY = 0.5  # seconds, doubles each attempt


def _error_message(response: httpx.Response) -> str:
    """Best human-readable error text from a failed function response."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error") or body.get("message")
        if isinstance(error, dict):
            error = error.get("message")
        if error:
            return str(error)
    return response.text[:500] if response.text else f"HTTP {response.status_code}"


class BackendClient:
    """Async client that invokes backend functions with retry."""

    def __init__(self) -> None:
        settings = get_settings()
        self._base_url = f"{settings.backend_base_url.rstrip('/')}{settings.backend_functions_prefix}"
        self._timeout = settings.backend_timeout
        self._api_key = settings.backend_api_key
        self._access_token = settings.backend_access_token
        self._http: httpx.AsyncClient | None = None

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Create the underlying ``httpx.AsyncClient`` connection pool."""
        if self._http is not None:
            return
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout),
            headers=self._auth_headers(),
            limits=httpx.Limits(
                max_connections=30,
                max_keepalive_connections=15,
                keepalive_expiry=30,
            ),
        )
        logger.info("BackendClient started: base_url=%s", self._base_url)

    async def close(self) -> None:
        """Gracefully close the connection pool."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None
            logger.info("BackendClient closed")

    # -- public API ----------------------------------------------------------

    async def invoke(
        self,
        function: str,
        body: dict[str, Any],
        *,
        authorization: str | None = None,
        headers: dict[str, str] | None = None,
        max_retries: int | None = None,
    ) -> Any:
        """POST ``body`` to the named function and return its JSON body.

        Retries on network errors and 5xx, up to ``max_retries`` attempts
        (default :data:`MAX_RETRIES`). Raises :class:`BackendFunctionError`
        on 4xx, on exhausted retries, and on a 2xx body that carries an
        ``error`` field.
        """
        client = self._ensure_started()
        path = f"/{function}"
        request_headers = dict(headers or {})
        if authorization:
            request_headers["Authorization"] = authorization
        attempts = MAX_RETRIES if max_retries is None else max(1, max_retries)

        last_exc: BackendFunctionError | None = None

        for attempt in range(1, attempts + 1):
            t0 = time.monotonic()
            try:
                response = await client.post(path, json=body, headers=request_headers)
            except httpx.TransportError as exc:
                elapsed_ms = (time.monotonic() - t0) * 1000
                last_exc = BackendFunctionError(function, str(exc) or type(exc).__name__)
                logger.warning(
                    "POST %s → network error (%.0fms): %s [attempt %d/%d]",
                    path, elapsed_ms, exc, attempt, attempts,
                )
                if attempt < attempts:
                    await asyncio.sleep(RETRY_BASE_DELAY * (2 ** (attempt - 1)))
                    continue
                break

            elapsed_ms = (time.monotonic() - t0) * 1000
            logger.info("POST %s → %d (%.0fms)", path, response.status_code, elapsed_ms)

            # 4xx: non-retryable client error
            if 400 <= response.status_code < 500:
                raise BackendFunctionError(function, _error_message(response), response.status_code)

            # 5xx: retryable server error
            if response.status_code >= 500:
                last_exc = BackendFunctionError(function, _error_message(response), response.status_code)
                if attempt < attempts:
                    delay = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(
                        "POST %s → 5xx, retry %d/%d in %.1fs",
                        path, attempt, attempts, delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                break

            if not response.text:
                return {}
            data = response.json()
            if isinstance(data, dict) and data.get("error"):
                raise BackendFunctionError(function, _error_message(response), response.status_code)
            return data

        raise last_exc  # type: ignore[misc]

    # -- internals -----------------------------------------------------------

    def _auth_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        if self._api_key:
            headers["apikey"] = self._api_key
        return headers

    def _ensure_started(self) -> httpx.AsyncClient:
        if self._http is None:
            raise RuntimeError("BackendClient not started: call await client.start() first")
        return self._http


def get_backend_client() -> BackendClient:
    """Return the module-level BackendClient singleton (create if needed)."""
    global _client
    if _client is None:
        _client = BackendClient()
    return _client
