"""App-level tests: health, request-id middleware, proxy concurrency cap."""

import asyncio

import pytest
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from httpx import ASGITransport, AsyncClient

from main import app
from services.concurrency import ConcurrencyLimitMiddleware
from services.middleware import RequestIdMiddleware


@pytest.fixture
async def client(content_store):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["generationProxyRoute"] == "generate-curiosity-blocks-partial"
    assert data["storedBlocks"] == 0


@pytest.mark.asyncio
async def test_request_id_generated(client):
    resp = await client.get("/api/health")
    assert len(resp.headers["x-request-id"]) == 8


@pytest.mark.asyncio
async def test_request_id_reused(client):
    resp = await client.get("/api/health", headers={"X-Request-ID": "req-abc"})
    assert resp.headers["x-request-id"] == "req-abc"


# ---------------------------------------------------------------------------
# ConcurrencyLimitMiddleware
# ---------------------------------------------------------------------------

def _limited_app(gate: asyncio.Event, entered: asyncio.Event) -> FastAPI:
    inner = FastAPI()

    @inner.post("/slow")
    async def slow():
        entered.set()
        await gate.wait()
        return JSONResponse({"ok": True})

    @inner.get("/slow")
    async def slow_get():
        return {"ok": True}

    inner.add_middleware(
        ConcurrencyLimitMiddleware,
        limited_paths=frozenset({"/slow"}),
        max_concurrent=1,
    )
    inner.add_middleware(RequestIdMiddleware)
    return inner


@pytest.mark.asyncio
async def test_concurrency_limit_returns_503_when_full():
    gate, entered = asyncio.Event(), asyncio.Event()
    limited = _limited_app(gate, entered)

    async with AsyncClient(transport=ASGITransport(app=limited), base_url="http://test") as ac:
        first = asyncio.create_task(ac.post("/slow"))
        await entered.wait()

        busy = await ac.post("/slow")
        assert busy.status_code == 503
        assert busy.headers["retry-after"] == "5"
        assert busy.headers["access-control-allow-origin"] == "*"
        assert "x-request-id" in busy.headers

        # Other methods on the same path are not limited
        assert (await ac.get("/slow")).status_code == 200

        gate.set()
        assert (await first).status_code == 200

        assert (await ac.post("/slow")).status_code == 200
