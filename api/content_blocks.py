"""Content block endpoints.

- ``POST /functions/v1/save-content-block``: the backend function the
  Persistence Gateway invokes: ``{block}`` in, ``{success, block}`` out.
- ``GET /api/curios/{curio_id}/blocks``: saved blocks of one curio, in
  save order, paged by ``startIndex`` / ``count``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from config.settings import get_settings
from errors.exceptions import ContentValidationError
from services.content_store import get_content_store, validate_block_payload
from services.generation_proxy import CORS_HEADERS

logger = logging.getLogger(__name__)

_settings = get_settings()

functions_router = APIRouter(prefix=_settings.backend_functions_prefix, tags=["content-blocks"])
router = APIRouter(prefix="/api/curios", tags=["content-blocks"])

_SAVE_PATH = f"/{_settings.save_function_name}"


def _failure(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        content={"success": False, "error": message},
        status_code=status_code,
        headers=CORS_HEADERS,
    )


@functions_router.options(_SAVE_PATH)
async def save_content_block_preflight() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)


@functions_router.post(_SAVE_PATH)
async def save_content_block(request: Request) -> JSONResponse:
    """Upsert one block; replays of the same idempotency key return the first record."""
    try:
        payload = await request.json()
    except ValueError:
        return _failure("Request body must be valid JSON")

    block_payload = payload.get("block") if isinstance(payload, dict) else None
    try:
        draft = validate_block_payload(block_payload)
    except ContentValidationError as exc:
        logger.warning("Rejected block save: %s %s", exc, exc.missing)
        return _failure(str(exc))
    except ValidationError as exc:
        logger.warning("Rejected malformed block: %s", exc)
        return _failure(f"Invalid block: {exc.errors()[0]['msg']}")

    store = get_content_store()
    block = store.upsert(draft, request.headers.get("idempotency-key"))
    logger.info(
        "Saved content block %s of type %s for curio %s",
        block.id, block.type.value, block.curio_id,
    )
    return JSONResponse(
        content={"success": True, "block": block.to_backend()},
        headers=CORS_HEADERS,
    )


@router.get("/{curio_id}/blocks")
async def list_curio_blocks(
    curio_id: str,
    start_index: int = Query(0, alias="startIndex", ge=0),
    count: int = Query(10, ge=1, le=100),
):
    blocks = get_content_store().list_for_curio(curio_id, start=start_index, count=count)
    return JSONResponse(
        content={
            "blocks": [b.to_wire() for b in blocks],
            "startIndex": start_index,
            "count": len(blocks),
        },
        headers=CORS_HEADERS,
    )
