"""Pagination models for the incremental content feed."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import ConfigDict

from models.base import CamelModel

DEFAULT_COUNT = 2
DEFAULT_START_INDEX = 0


class PageRequest(CamelModel):
    """Offset/count request for the next batch of generated blocks.

    Fields other than ``count`` / ``startIndex`` (topic, childId, ...) are
    passthrough: kept verbatim and never interpreted.
    """

    model_config = ConfigDict(extra="allow")

    count: int = DEFAULT_COUNT
    start_index: int = DEFAULT_START_INDEX


def apply_defaults(
    body: dict[str, Any],
    *,
    count: int = DEFAULT_COUNT,
    start_index: int = DEFAULT_START_INDEX,
) -> dict[str, Any]:
    """Return a copy of ``body`` with pagination defaults filled in.

    A *falsy* value counts as absent, so ``{"count": 0}`` becomes
    ``{"count": 2, "startIndex": 0}``: a caller that sends nothing usable
    gets the first small page rather than an error or an unbounded page.
    """
    defaulted = dict(body)
    if not defaulted.get("count"):
        defaulted["count"] = count
    if not defaulted.get("startIndex"):
        defaulted["startIndex"] = start_index
    return defaulted


@dataclass
class PaginationState:
    """Per-controller pagination flags.

    ``loading_more`` is written only by the owning controller; ``has_more``
    is mirrored from the caller and never written by the controller.
    """

    loading_more: bool = False
    has_more: bool = True
