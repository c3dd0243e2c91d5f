"""Generation proxy endpoint: ``/functions/v1/generate-curiosity-blocks-partial``.

Every response carries the fixed CORS header set, including errors and the
empty preflight reply.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from config.settings import get_settings
from services.generation_proxy import CORS_HEADERS, get_generation_proxy

logger = logging.getLogger(__name__)

_settings = get_settings()

router = APIRouter(prefix=_settings.backend_functions_prefix, tags=["generation"])

_PATH = f"/{_settings.generation_proxy_route}"


@router.options(_PATH)
async def generation_preflight() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)


@router.post(_PATH)
async def generate_partial(request: Request) -> JSONResponse:
    """Default the pagination fields, forward upstream, relay the answer."""
    proxy = get_generation_proxy()
    raw_body = await request.body()
    status, data = await proxy.handle(
        request_url=str(request.url),
        raw_body=raw_body,
        authorization=request.headers.get("authorization"),
        routing=request.headers.get(proxy.routing_header),
    )
    return JSONResponse(content=data, status_code=status, headers=CORS_HEADERS)


@router.api_route(_PATH, methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def generation_method_not_allowed(request: Request) -> JSONResponse:
    logger.info("Rejected %s on generation proxy", request.method)
    return JSONResponse(
        content={"error": f"Method {request.method} not allowed"},
        status_code=405,
        headers={**CORS_HEADERS, "Allow": "POST, OPTIONS"},
    )
