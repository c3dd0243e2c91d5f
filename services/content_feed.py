"""Content feed: the ``load_more`` a curio view hands to its controller.

One :class:`ContentFeed` per curio list. Each :meth:`ContentFeed.load_more`
asks the generation proxy for the next ``page_size`` blocks starting at
``next_start_index``, saves every returned block through the Persistence
Gateway concurrently, and appends the ones that were saved.

Before saving, a block is identified only by ``(curio_id, specialist_id,
position)``; that triple becomes its ``draft_id`` so replays of the same page
upsert the same records instead of creating duplicates.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from errors.exceptions import BackendFunctionError, UpstreamGenerationError
from models.content_block import ContentBlock, ContentBlockDraft
from models.pagination import PageRequest
from services.backend_client import BackendClient
from services.lifetime import Lifetime
from services.notifications import NotificationCenter
from services.persistence import PersistenceGateway

logger = logging.getLogger(__name__)

LOAD_ERROR_MESSAGE = "Couldn't load more content. Scroll to try again."

# Keys the upstream sets on provisional blocks that must not reach the store.
_PROVISIONAL_KEYS = ("id", "created_at", "createdAt", "curio_id", "curioId", "draft_id", "draftId")


class ContentFeed:
    def __init__(
        self,
        curio_id: str,
        client: BackendClient,
        gateway: PersistenceGateway,
        notifier: NotificationCenter,
        *,
        generation_function: str = "generate-curiosity-blocks-partial",
        page_size: int = 2,
        passthrough: dict[str, Any] | None = None,
        authorization: str | None = None,
        lifetime: Lifetime | None = None,
    ) -> None:
        self.curio_id = curio_id
        self._client = client
        self._gateway = gateway
        self._notifier = notifier
        self._generation_function = generation_function
        self.page_size = page_size
        self._passthrough = dict(passthrough or {})
        self._authorization = authorization
        self.lifetime = lifetime or Lifetime(f"feed:{curio_id}")

        self.blocks: list[ContentBlock] = []
        self.next_start_index = 0
        self.has_more = True
        self.error: str | None = None

    def reset(self) -> None:
        """Forget everything loaded so far (e.g. the view switched curio)."""
        self.blocks = []
        self.next_start_index = 0
        self.has_more = True
        self.error = None

    async def load_more(self) -> list[ContentBlock]:
        """Fetch, persist and append the next page; return what was appended.

        Raises :class:`UpstreamGenerationError` when the page could not be
        generated (after notifying the user). Per-block save failures are
        not errors here, those blocks are simply skipped.
        """
        if self.lifetime.cancelled:
            return []

        start = self.next_start_index
        request = PageRequest(
            count=self.page_size,
            start_index=start,
            curioId=self.curio_id,
            **self._passthrough,
        )
        items = await self._fetch_page(request.model_dump(by_alias=True))

        drafts = [d for i, item in enumerate(items) if (d := self._to_draft(item, start + i)) is not None]
        saved = await asyncio.gather(
            *(
                self._gateway.save(d, authorization=self._authorization, lifetime=self.lifetime)
                for d in drafts
            )
        )

        if self.lifetime.cancelled:
            logger.debug("Dropping page at %d for curio %s after teardown", start, self.curio_id)
            return []

        known = {b.id for b in self.blocks}
        appended: list[ContentBlock] = []
        for block in saved:
            if block is None or block.id in known:
                continue
            known.add(block.id)
            appended.append(block)
        self.blocks.extend(appended)

        self.next_start_index = start + len(items)
        if len(items) < self.page_size:
            self.has_more = False
        self.error = None
        logger.info(
            "Curio %s: page at %d returned %d item(s), appended %d (has_more=%s)",
            self.curio_id, start, len(items), len(appended), self.has_more,
        )
        return appended

    # -- internals -----------------------------------------------------------

    async def _fetch_page(self, body: dict[str, Any]) -> list[dict[str, Any]]:
        try:
            data = await self._client.invoke(
                self._generation_function,
                body,
                authorization=self._authorization,
                max_retries=1,
            )
        except BackendFunctionError as exc:
            self._fail(exc.message)
            raise UpstreamGenerationError(exc.message, exc.status_code) from exc

        if isinstance(data, dict):
            data = data.get("blocks")
        if not isinstance(data, list):
            message = "Generation response did not contain a list of blocks"
            self._fail(message)
            raise UpstreamGenerationError(message)
        return [item for item in data if isinstance(item, dict)]

    def _fail(self, message: str) -> None:
        if self.lifetime.cancelled:
            return
        self.error = message
        self._notifier.error(LOAD_ERROR_MESSAGE)

    def _to_draft(self, item: dict[str, Any], position: int) -> ContentBlockDraft | None:
        fields = {k: v for k, v in item.items() if k not in _PROVISIONAL_KEYS}
        try:
            draft = ContentBlockDraft.model_validate({**fields, "curio_id": self.curio_id})
        except ValidationError as exc:
            logger.warning("Skipping malformed block at position %d: %s", position, exc)
            return None
        return draft.model_copy(
            update={"draft_id": f"{self.curio_id}:{draft.specialist_id}:{position}"}
        )
