"""In-memory content block store behind the ``save-content-block`` function."""

from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone

from config.settings import get_settings
from errors.exceptions import ContentValidationError
from models.content_block import ContentBlock, ContentBlockDraft

REQUIRED_FIELDS = ("type", "specialist_id", "content", "curio_id")


def validate_block_payload(payload: object) -> ContentBlockDraft:
    """Check the raw ``block`` payload and build a draft from it.

    Raises :class:`ContentValidationError` when the block is absent or any
    required property is missing or empty.
    """
    if not isinstance(payload, dict):
        raise ContentValidationError()
    missing = [
        name for name in REQUIRED_FIELDS
        if not payload.get(name) and not payload.get(_camel(name))
    ]
    if missing:
        raise ContentValidationError(missing=missing)
    return ContentBlockDraft.model_validate(payload)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class InMemoryContentBlockStore:
    """Upsert store with capacity limits.

    Records are keyed by ``id``; an idempotency key maps to the id it first
    produced, so saving the same draft twice yields one record.
    ``MAX_BLOCKS`` caps the number of stored blocks; the oldest (by
    insertion order) is evicted first.
    """

    MAX_BLOCKS = 5000

    def __init__(self, max_blocks: int | None = None) -> None:
        self._lock = threading.RLock()
        self._max_blocks = max_blocks or self.MAX_BLOCKS
        self._by_id: dict[str, ContentBlock] = {}
        self._id_by_key: dict[str, str] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)

    def upsert(self, draft: ContentBlockDraft, idempotency_key: str | None = None) -> ContentBlock:
        key = idempotency_key or draft.idempotency_key()
        with self._lock:
            block_id = draft.id or self._id_by_key.get(key)
            existing = self._by_id.get(block_id) if block_id else None

            if existing is not None and not draft.id:
                # Replay of a draft already saved under this key.
                return existing

            fields = draft.model_dump(exclude={"id", "draft_id"})
            block = ContentBlock(
                **fields,
                id=block_id or str(uuid.uuid4()),
                draft_id=draft.draft_id,
                created_at=existing.created_at if existing else datetime.now(timezone.utc),
            )
            self._by_id[block.id] = block
            self._id_by_key[key] = block.id

            if len(self._by_id) > self._max_blocks:
                oldest_id = next(iter(self._by_id))
                del self._by_id[oldest_id]
                self._id_by_key = {k: v for k, v in self._id_by_key.items() if v != oldest_id}

            return block

    def get(self, block_id: str) -> ContentBlock | None:
        with self._lock:
            return self._by_id.get(block_id)

    def list_for_curio(self, curio_id: str, start: int = 0, count: int | None = None) -> list[ContentBlock]:
        with self._lock:
            blocks = [b for b in self._by_id.values() if b.curio_id == curio_id]
        end = None if count is None else start + count
        return blocks[start:end]


_content_store: InMemoryContentBlockStore | None = None


def get_content_store() -> InMemoryContentBlockStore:
    global _content_store
    if _content_store is None:
        _content_store = InMemoryContentBlockStore(get_settings().content_store_max_blocks)
    return _content_store
