"""Health check endpoint."""

from fastapi import APIRouter

from config.settings import get_settings
from services.content_store import get_content_store

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health():
    settings = get_settings()
    return {
        "status": "healthy",
        "generationProxyRoute": settings.generation_proxy_route,
        "upstreamRoute": settings.generation_upstream_route,
        "storedBlocks": len(get_content_store()),
    }
