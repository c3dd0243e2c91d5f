"""Shared pytest fixtures for the curio feed tests.

Provides:
- ``viewport``: a 400x800 scroll viewport at the top of the page
- ``sentinel``: a 1px sentinel element well below the fold
- ``notifier``: fresh NotificationCenter per test
- ``content_store``: fresh InMemoryContentBlockStore installed as the singleton
- ``make_block``: factory for upstream-style generated block dicts
"""

from __future__ import annotations

from typing import Any

import pytest

from services.content_store import InMemoryContentBlockStore
from services.notifications import NotificationCenter
from services.viewport import Element, Rect, ScrollViewport

SENTINEL_TOP = 1500.0


@pytest.fixture
def viewport() -> ScrollViewport:
    return ScrollViewport(width=400, height=800)


@pytest.fixture
def sentinel() -> Element:
    """Sentinel 700px below the fold: in range once scrolled past 500px."""
    return Element("load-more-sentinel", Rect(top=SENTINEL_TOP, left=0, width=400, height=1))


@pytest.fixture
def notifier() -> NotificationCenter:
    return NotificationCenter()


@pytest.fixture
def content_store(monkeypatch) -> InMemoryContentBlockStore:
    """Fresh store, swapped in for the module singleton: isolated per test."""
    store = InMemoryContentBlockStore()
    monkeypatch.setattr("services.content_store._content_store", store)
    return store


@pytest.fixture
def make_block():
    def _make(specialist: str = "nova", block_type: str = "fact", **content: Any) -> dict[str, Any]:
        return {
            "id": f"generated-1700000000000-{specialist}",
            "type": block_type,
            "specialist_id": specialist,
            "content": content or {"fact": f"A fact from {specialist}", "rabbitHoles": []},
            "liked": False,
            "bookmarked": False,
            "created_at": "2024-01-01T00:00:00Z",
        }

    return _make
