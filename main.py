"""FastAPI entry point for the Curio Feed service."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from api.content_blocks import functions_router as save_function_router
from api.content_blocks import router as curio_blocks_router
from api.generation import router as generation_router
from api.health import router as health_router
from config.settings import get_settings
from services.backend_client import get_backend_client
from services.concurrency import ConcurrencyLimitMiddleware
from services.generation_proxy import get_generation_proxy
from services.middleware import RequestIdMiddleware

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle: start/stop the shared HTTP clients."""
    proxy = get_generation_proxy()
    backend = get_backend_client()
    await proxy.start()
    await backend.start()
    logger.info("Curio Feed ready on port %d", settings.service_port)

    yield

    await backend.close()
    await proxy.close()


app = FastAPI(
    title="Curio Feed",
    description="Incremental content pipeline: generation proxy and block persistence",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Middleware stack (outermost first) ─────────────────────────
# Order matters: RequestId → ConcurrencyLimit → route handler
app.add_middleware(ConcurrencyLimitMiddleware)
app.add_middleware(RequestIdMiddleware)

# ── Register routers ────────────────────────────────────────
app.include_router(health_router)
app.include_router(generation_router)
app.include_router(save_function_router)
app.include_router(curio_blocks_router)


if __name__ == "__main__":
    if settings.debug:
        # Development: single worker with reload
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.service_port,
            reload=True,
        )
    else:
        # Production: prefer gunicorn main:app -c deploy/gunicorn.conf.py
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.service_port,
            workers=4,
            timeout_keep_alive=120,
        )
