"""Content block models: the unit of content the feed generates and persists.

A block starts life as a :class:`ContentBlockDraft` (no server id) inside a
generation response, and becomes a :class:`ContentBlock` once the save
function has assigned it an ``id``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field

from models.base import CamelModel


class ContentBlockType(str, Enum):
    """Closed set of block kinds the renderer knows about."""

    FACT = "fact"
    QUIZ = "quiz"
    CREATIVE = "creative"
    ACTIVITY = "activity"
    NEWS = "news"
    FUN_FACT = "funFact"
    MINDFULNESS = "mindfulness"


class ContentBlockDraft(CamelModel):
    """A block as produced by generation, before the backend has saved it.

    ``draft_id`` is an optional client-generated idempotency key. When it is
    absent, :meth:`idempotency_key` falls back to a fingerprint of the
    block's identity fields and content.
    """

    id: str | None = None
    curio_id: str | None = None
    specialist_id: str
    type: ContentBlockType
    content: dict[str, Any] = Field(default_factory=dict)
    liked: bool = False
    bookmarked: bool = False
    draft_id: str | None = None

    def idempotency_key(self) -> str:
        if self.draft_id:
            return self.draft_id
        payload = json.dumps(
            [self.curio_id, self.specialist_id, self.type.value, self.content],
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        return hashlib.sha256(payload.encode()).hexdigest()


class ContentBlock(ContentBlockDraft):
    """A persisted block: ``id`` is always server-assigned.

    Columns the backend returns beyond the declared fields are kept as extras
    so a saved block round-trips unchanged.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    created_at: datetime | None = None
