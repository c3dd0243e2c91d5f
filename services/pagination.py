"""Pagination Controller: turns sentinel signals into single-flight page loads.

The controller knows nothing about what "loading more" means: it is handed
a zero-argument async ``load_more`` by the caller and only guarantees that

- a load starts only on a transition to intersecting, and only when the
  caller says there is more (``has_more``) and no load is outstanding
- at most one ``load_more()`` runs at a time per controller
- ``loading_more`` goes back to ``False`` however the load ends
- a failing load never breaks the sensor; the next intersection retries

A sentinel that stays in range after a page lands produces no new crossing.
Callers either call :meth:`PaginationController.recheck` themselves or pass
``refill=True`` to have the controller recheck after every successful load.

Usage::

    controller = observe(sentinel, feed.load_more, lambda: feed.has_more, host=viewport)
    ...
    await controller.close()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Union

from config.settings import get_settings
from models.pagination import PaginationState
from services.lifetime import Lifetime
from services.viewport import Element, ObserverOptions, ScrollViewport, ViewportTrigger

logger = logging.getLogger(__name__)

LoadMore = Callable[[], Awaitable[Any]]
HasMore = Union[bool, Callable[[], bool]]


class PaginationController:
    """Owns ``loading_more`` for one list; reads ``has_more`` from the caller."""

    def __init__(
        self,
        load_more: LoadMore,
        has_more: HasMore = True,
        *,
        host: ScrollViewport,
        options: ObserverOptions | None = None,
        lifetime: Lifetime | None = None,
        refill: bool = False,
    ) -> None:
        self._load_more = load_more
        self.has_more = has_more
        self._loading_more = False
        self._task: asyncio.Task[None] | None = None
        self._lifetime = lifetime or Lifetime("pagination")
        self._refill = refill
        if options is None:
            options = ObserverOptions(root_margin=get_settings().prefetch_root_margin)
        self._trigger = ViewportTrigger(host, options, on_change=self._on_signal)
        self.load_count = 0

    # -- consumer API --------------------------------------------------------

    @property
    def loading_more(self) -> bool:
        return self._loading_more

    @property
    def trigger_ref(self) -> Element | None:
        """The sentinel currently attached, ``None`` when unmounted."""
        return self._trigger.sentinel

    @property
    def state(self) -> PaginationState:
        return PaginationState(loading_more=self._loading_more, has_more=self._read_has_more())

    def attach(self, sentinel: Element) -> None:
        self._trigger.attach(sentinel)

    def detach(self) -> None:
        self._trigger.detach()

    def recheck(self) -> asyncio.Task[None] | None:
        """Treat a sentinel that is *still* in range as a fresh signal.

        Useful after a page was appended without pushing the sentinel out
        of range, where no new crossing would otherwise occur.
        """
        if self._trigger.is_intersecting:
            return self._maybe_load()
        return None

    async def wait_idle(self) -> None:
        """Wait until no load is running, including refills started meanwhile."""
        task = self._task
        while task is not None:
            await asyncio.gather(task, return_exceptions=True)
            if self._task is task:
                break
            task = self._task

    async def close(self) -> None:
        """Unmount: stop observing and cancel any load still in flight."""
        self._trigger.detach()
        self._lifetime.cancel()
        await self.wait_idle()

    # -- internals -----------------------------------------------------------

    def _read_has_more(self) -> bool:
        return bool(self.has_more() if callable(self.has_more) else self.has_more)

    def _on_signal(self, is_intersecting: bool) -> None:
        if is_intersecting:
            self._maybe_load()

    def _maybe_load(self) -> asyncio.Task[None] | None:
        if self._lifetime.cancelled:
            return None
        if not self._read_has_more():
            logger.debug("Sentinel in range but has_more is false: ignoring")
            return None
        if self._loading_more:
            logger.debug("Sentinel in range while a load is in flight: ignoring")
            return None

        run = self._run()
        try:
            task = self._lifetime.spawn(run)
        except RuntimeError:
            run.close()
            raise
        self._loading_more = True
        self.load_count += 1
        self._task = task
        return task

    async def _run(self) -> None:
        try:
            await self._load_more()
        except asyncio.CancelledError:
            logger.debug("load_more cancelled by owner teardown")
            raise
        except Exception:
            # Keep the sensor alive; the loader surfaces its own errors.
            logger.warning("load_more failed; sentinel stays armed", exc_info=True)
            return
        finally:
            self._loading_more = False

        if self._refill:
            self.recheck()


def observe(
    sentinel: Element,
    load_more: LoadMore,
    has_more: HasMore,
    *,
    host: ScrollViewport,
    options: ObserverOptions | None = None,
    lifetime: Lifetime | None = None,
    refill: bool = False,
) -> PaginationController:
    """Create a controller and attach it to ``sentinel`` in one step."""
    controller = PaginationController(
        load_more, has_more, host=host, options=options, lifetime=lifetime, refill=refill
    )
    controller.attach(sentinel)
    return controller
