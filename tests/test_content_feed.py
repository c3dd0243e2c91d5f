"""Tests for services/content_feed.py: the caller-side load_more."""

import asyncio

import pytest

from errors.exceptions import BackendFunctionError, UpstreamGenerationError
from models.content_block import ContentBlockDraft
from services.content_feed import LOAD_ERROR_MESSAGE, ContentFeed
from services.content_store import InMemoryContentBlockStore
from services.lifetime import Lifetime
from services.persistence import PersistenceGateway

GENERATE = "generate-curiosity-blocks-partial"
SAVE = "save-content-block"


class FakeBackend:
    """Routes invoke() by function name; saves go to a real in-memory store."""

    def __init__(self) -> None:
        self.store = InMemoryContentBlockStore()
        self.pages: list = []
        self.calls: list[tuple[str, dict, dict]] = []
        self.fail_saves_for: set[str] = set()

    async def invoke(self, function, body, **kwargs):
        self.calls.append((function, body, kwargs))
        if function == GENERATE:
            page = self.pages.pop(0)
            if isinstance(page, Exception):
                raise page
            return page
        block = body["block"]
        if block["specialist_id"] in self.fail_saves_for:
            raise BackendFunctionError(SAVE, "insert failed", 500)
        draft = ContentBlockDraft.model_validate(block)
        stored = self.store.upsert(draft, kwargs["headers"]["Idempotency-Key"])
        return {"success": True, "block": stored.to_backend()}

    def generation_bodies(self) -> list[dict]:
        return [body for fn, body, _ in self.calls if fn == GENERATE]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def feed(backend, notifier):
    gateway = PersistenceGateway(backend, notifier)
    return ContentFeed(
        "curio-1",
        backend,
        gateway,
        notifier,
        page_size=2,
        passthrough={"query": "octopus", "childId": "child-7"},
        authorization="Bearer child",
    )


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_load_more_requests_next_page(feed, backend, make_block):
    backend.pages = [[make_block("nova"), make_block("prism")]]

    appended = await feed.load_more()

    assert [b.specialist_id for b in appended] == ["nova", "prism"]
    assert all(b.curio_id == "curio-1" for b in appended)
    assert feed.next_start_index == 2
    assert feed.has_more is True

    body = backend.generation_bodies()[0]
    assert body == {
        "count": 2,
        "startIndex": 0,
        "curioId": "curio-1",
        "query": "octopus",
        "childId": "child-7",
    }


@pytest.mark.asyncio
async def test_generation_call_is_not_retried_and_passes_token(feed, backend, make_block):
    backend.pages = [[make_block("nova"), make_block("prism")]]
    await feed.load_more()

    _, _, kwargs = backend.calls[0]
    assert kwargs["max_retries"] == 1
    assert kwargs["authorization"] == "Bearer child"


@pytest.mark.asyncio
async def test_offsets_advance_across_pages(feed, backend, make_block):
    backend.pages = [
        [make_block("nova"), make_block("prism")],
        {"blocks": [make_block("spark"), make_block("lotus")]},
    ]
    await feed.load_more()
    await feed.load_more()

    assert [b["startIndex"] for b in backend.generation_bodies()] == [0, 2]
    assert len(feed.blocks) == 4
    assert feed.next_start_index == 4


@pytest.mark.asyncio
async def test_short_page_ends_feed(feed, backend, make_block):
    backend.pages = [[make_block("nova")]]
    await feed.load_more()
    assert feed.has_more is False


@pytest.mark.asyncio
async def test_provisional_ids_stripped_and_draft_ids_positional(feed, backend, make_block):
    backend.pages = [[make_block("nova"), make_block("prism")]]
    appended = await feed.load_more()

    saved = [body["block"] for fn, body, _ in backend.calls if fn == SAVE]
    assert all("id" not in block for block in saved)
    assert [b["draft_id"] for b in saved] == ["curio-1:nova:0", "curio-1:prism:1"]
    assert all(not b.id.startswith("generated-") for b in appended)


@pytest.mark.asyncio
async def test_replayed_page_does_not_duplicate(feed, backend, make_block):
    page = [make_block("nova"), make_block("prism")]
    backend.pages = [page, page]

    await feed.load_more()
    feed.next_start_index = 0  # caller replays the same window
    appended = await feed.load_more()

    assert appended == []
    assert len(feed.blocks) == 2
    assert len(backend.store) == 2


# ---------------------------------------------------------------------------
# Degradation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_failed_block_save_is_skipped(feed, backend, notifier, make_block):
    backend.pages = [[make_block("nova"), make_block("prism")]]
    backend.fail_saves_for = {"prism"}

    appended = await feed.load_more()

    assert [b.specialist_id for b in appended] == ["nova"]
    assert feed.next_start_index == 2
    assert len(notifier.pending()) == 1


@pytest.mark.asyncio
async def test_malformed_block_skipped(feed, backend, make_block):
    backend.pages = [[make_block("nova", block_type="hologram"), make_block("prism")]]
    appended = await feed.load_more()
    assert [b.specialist_id for b in appended] == ["prism"]


@pytest.mark.asyncio
async def test_generation_failure_notifies_and_raises(feed, backend, notifier):
    backend.pages = [BackendFunctionError(GENERATE, "Failed to generate content", 500)]

    with pytest.raises(UpstreamGenerationError, match="Failed to generate content"):
        await feed.load_more()

    assert feed.error == "Failed to generate content"
    assert feed.next_start_index == 0
    assert feed.has_more is True
    assert [n.message for n in notifier.pending()] == [LOAD_ERROR_MESSAGE]


@pytest.mark.asyncio
async def test_unexpected_generation_shape_raises(feed, backend):
    backend.pages = [{"unexpected": True}]
    with pytest.raises(UpstreamGenerationError):
        await feed.load_more()


@pytest.mark.asyncio
async def test_reset_clears_progress(feed, backend, make_block):
    backend.pages = [[make_block("nova")]]
    await feed.load_more()
    feed.reset()
    assert feed.blocks == []
    assert feed.next_start_index == 0
    assert feed.has_more is True


# ---------------------------------------------------------------------------
# Teardown
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_results_after_teardown_are_dropped(backend, notifier, make_block):
    lifetime = Lifetime("feed")
    gateway = PersistenceGateway(backend, notifier)
    feed = ContentFeed("curio-1", backend, gateway, notifier, lifetime=lifetime)

    original = backend.invoke

    async def teardown_mid_page(function, body, **kwargs):
        result = await original(function, body, **kwargs)
        if function == GENERATE:
            lifetime.cancel()
        return result

    backend.invoke = teardown_mid_page
    backend.pages = [[make_block("nova"), make_block("prism")]]

    assert await feed.load_more() == []
    assert feed.blocks == []
    assert feed.next_start_index == 0
    assert notifier.pending() == []


@pytest.mark.asyncio
async def test_load_more_noop_after_teardown(feed, backend):
    feed.lifetime.cancel()
    assert await feed.load_more() == []
    assert backend.calls == []
    await asyncio.sleep(0)
