"""Persistence Gateway: saves one generated block through the backend.

Failures degrade a single item rather than the batch: the gateway records
the error, raises a user notification and returns ``None``. Concurrent
saves of *different* blocks are independent and may finish in any order;
concurrent saves that share an idempotency key are collapsed into one
backend call whose result every caller receives.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from models.content_block import ContentBlock, ContentBlockDraft
from services.backend_client import BackendClient
from services.lifetime import Lifetime
from services.notifications import NotificationCenter

logger = logging.getLogger(__name__)

SAVE_ERROR_MESSAGE = "Error saving content block"
UNKNOWN_SAVE_ERROR = "Unknown error saving block"


@dataclass
class SaveState:
    """Per-gateway save bookkeeping; ``is_saving`` holds while any save runs."""

    in_flight: int = 0
    error: str | None = None

    @property
    def is_saving(self) -> bool:
        return self.in_flight > 0


class PersistenceGateway:
    def __init__(
        self,
        client: BackendClient,
        notifier: NotificationCenter,
        function_name: str = "save-content-block",
    ) -> None:
        self._client = client
        self._notifier = notifier
        self._function_name = function_name
        self.state = SaveState()
        self._pending: dict[str, asyncio.Future[ContentBlock | None]] = {}

    @property
    def is_saving(self) -> bool:
        return self.state.is_saving

    async def save(
        self,
        draft: ContentBlockDraft,
        *,
        authorization: str | None = None,
        lifetime: Lifetime | None = None,
    ) -> ContentBlock | None:
        """Upsert ``draft`` and return the stored block, or ``None`` on failure."""
        key = draft.idempotency_key()
        while (shared := self._pending.get(key)) is not None:
            logger.debug("Save for key %s already in flight: sharing result", key[:16])
            try:
                return await asyncio.shield(shared)
            except asyncio.CancelledError:
                # Only the owning caller was cancelled; take the save over.
                if not shared.cancelled():
                    raise
                logger.debug("Owner of save %s was cancelled: retrying", key[:16])

        future: asyncio.Future[ContentBlock | None] = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        self.state.in_flight += 1
        self.state.error = None
        try:
            result = await self._save_once(draft, key, authorization, lifetime)
        except asyncio.CancelledError:
            future.cancel()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._pending.pop(key, None)
            self.state.in_flight -= 1

    async def _save_once(
        self,
        draft: ContentBlockDraft,
        key: str,
        authorization: str | None,
        lifetime: Lifetime | None,
    ) -> ContentBlock | None:
        logger.info(
            "Saving %s block from %s for curio %s",
            draft.type.value, draft.specialist_id, draft.curio_id,
        )
        try:
            data: Any = await self._client.invoke(
                self._function_name,
                {"block": draft.to_backend()},
                authorization=authorization,
                headers={"Idempotency-Key": key},
            )
            raw = data.get("block") if isinstance(data, dict) else None
            if not isinstance(raw, dict) or not raw.get("id"):
                raise ValueError("Save response did not contain a stored block")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            message = getattr(exc, "message", None) or str(exc) or UNKNOWN_SAVE_ERROR
            if lifetime is not None and lifetime.cancelled:
                logger.debug("Dropping save failure after owner teardown: %s", message)
                return None
            logger.error("Error saving content block: %s", message, exc_info=True)
            self.state.error = message
            self._notifier.error(SAVE_ERROR_MESSAGE)
            return None

        if lifetime is not None and lifetime.cancelled:
            logger.debug("Dropping saved block %s after owner teardown", raw.get("id"))
            return None
        block = _as_block(raw)
        logger.info("Content block saved: id=%s", raw.get("id"))
        return block


def _as_block(raw: dict[str, Any]) -> ContentBlock:
    """Wrap the backend's stored record without second-guessing it.

    The record is already persisted, so a shape the local model rejects
    (say a block type this build does not know yet) is logged and kept
    as-is rather than reported as a failed save.
    """
    try:
        return ContentBlock.model_validate(raw)
    except ValidationError as exc:
        logger.warning(
            "Saved block %s does not match the local schema: %s",
            raw.get("id"), exc.errors(include_url=False),
        )
        return ContentBlock.model_construct(**raw)
