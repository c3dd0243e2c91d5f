"""Viewport Trigger: sentinel visibility sensing.

Models the host's layout engine as a :class:`ScrollViewport` that knows the
rectangles of mounted elements and the current scroll offset, and computes
intersections the way the browser's ``IntersectionObserver`` does:

- the root box (viewport or a container element) is grown or shrunk by the
  CSS-style ``root_margin``
- an entry is delivered when an observed target crosses one of the
  observer's thresholds or flips ``is_intersecting``; the first computation
  after ``observe()`` always delivers
- edge-adjacent boxes count as intersecting (zero-area intersection)

:class:`ViewportTrigger` sits on top and reduces all of this to a single
boolean per sentinel. It never touches the network or any other state.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Sequence

logger = logging.getLogger(__name__)

# Trailing 200px: fire before the sentinel is actually on screen.
DEFAULT_ROOT_MARGIN = "0px 0px 200px 0px"

_MARGIN_TOKEN = re.compile(r"^(-?\d+(?:\.\d+)?)(px|%)$")


# ── Geometry ─────────────────────────────────────────────────


@dataclass(frozen=True)
class Rect:
    """Axis-aligned box in content coordinates (y grows downward)."""

    top: float
    left: float
    width: float
    height: float

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def area(self) -> float:
        return self.width * self.height

    def intersection(self, other: Rect) -> Rect | None:
        """Edge-inclusive intersection, ``None`` when the boxes are apart."""
        top = max(self.top, other.top)
        left = max(self.left, other.left)
        bottom = min(self.bottom, other.bottom)
        right = min(self.right, other.right)
        if bottom < top or right < left:
            return None
        return Rect(top=top, left=left, width=right - left, height=bottom - top)

    def expanded(self, top: float, right: float, bottom: float, left: float) -> Rect:
        return Rect(
            top=self.top - top,
            left=self.left - left,
            width=self.width + left + right,
            height=self.height + top + bottom,
        )


def parse_root_margin(margin: str) -> list[tuple[float, str]]:
    """Parse CSS margin shorthand into ``[top, right, bottom, left]``.

    Each side is a ``(value, unit)`` pair where unit is ``px`` or ``%``.
    Raises ``ValueError`` on anything else, mirroring the browser's
    ``SyntaxError`` for a malformed ``rootMargin``.
    """
    tokens = margin.split()
    if not 1 <= len(tokens) <= 4:
        raise ValueError(f"rootMargin must have 1 to 4 values, got {margin!r}")

    sides: list[tuple[float, str]] = []
    for token in tokens:
        match = _MARGIN_TOKEN.match(token)
        if match is None:
            raise ValueError(f"rootMargin values must be in px or %, got {token!r}")
        sides.append((float(match.group(1)), match.group(2)))

    if len(sides) == 1:
        return sides * 4
    if len(sides) == 2:
        vertical, horizontal = sides
        return [vertical, horizontal, vertical, horizontal]
    if len(sides) == 3:
        top, horizontal, bottom = sides
        return [top, horizontal, bottom, horizontal]
    return sides


def _resolve(side: tuple[float, str], basis: float) -> float:
    value, unit = side
    return basis * value / 100 if unit == "%" else value


def _normalize_thresholds(threshold: float | Sequence[float]) -> tuple[float, ...]:
    values = [threshold] if isinstance(threshold, (int, float)) else list(threshold)
    if not values:
        values = [0.0]
    for value in values:
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"threshold values must be within [0, 1], got {value}")
    return tuple(sorted(float(v) for v in values))


# ── Observer primitives ──────────────────────────────────────


@dataclass(eq=False)
class Element:
    """A mounted node the host can lay out. Compared by identity."""

    name: str
    rect: Rect


@dataclass
class ObserverOptions:
    """Options for an observer. ``root=None`` means the viewport itself."""

    root: Element | None = None
    root_margin: str = DEFAULT_ROOT_MARGIN
    threshold: float | Sequence[float] = 0.0
    thresholds: tuple[float, ...] = field(init=False)
    margins: list[tuple[float, str]] = field(init=False)

    def __post_init__(self) -> None:
        self.thresholds = _normalize_thresholds(self.threshold)
        self.margins = parse_root_margin(self.root_margin)


@dataclass(frozen=True)
class IntersectionEntry:
    target: Element
    is_intersecting: bool
    intersection_ratio: float


ObserverCallback = Callable[[list[IntersectionEntry], "IntersectionObserver"], None]


class IntersectionObserver:
    """Watches targets on a :class:`ScrollViewport` and reports crossings."""

    def __init__(
        self,
        host: ScrollViewport,
        callback: ObserverCallback,
        options: ObserverOptions | None = None,
    ) -> None:
        self._host = host
        self._callback = callback
        self.options = options or ObserverOptions()
        # target -> (threshold index, is_intersecting); index -1 = never computed
        self._targets: dict[Element, tuple[int, bool]] = {}

    @property
    def targets(self) -> list[Element]:
        return list(self._targets)

    def observe(self, target: Element) -> None:
        if target in self._targets:
            return
        self._targets[target] = (-1, False)
        self._host._register(self)
        self._host._deliver(self, [target])

    def unobserve(self, target: Element) -> None:
        if self._targets.pop(target, None) is None:
            return
        if not self._targets:
            self._host._unregister(self)

    def disconnect(self) -> None:
        self._targets.clear()
        self._host._unregister(self)

    def _compute(self, target: Element, root: Rect) -> IntersectionEntry | None:
        """Return an entry if ``target`` crossed a threshold since last time."""
        hit = target.rect.intersection(root)
        is_intersecting = hit is not None
        if target.rect.area > 0:
            ratio = hit.area / target.rect.area if hit else 0.0
        else:
            ratio = 1.0 if is_intersecting else 0.0

        index = len(self.options.thresholds)
        for i, value in enumerate(self.options.thresholds):
            if value > ratio:
                index = i
                break

        previous = self._targets.get(target)
        if previous == (index, is_intersecting):
            return None
        self._targets[target] = (index, is_intersecting)
        return IntersectionEntry(
            target=target,
            is_intersecting=is_intersecting,
            intersection_ratio=ratio,
        )


class ScrollViewport:
    """Host layout model: a scrollable viewport plus mounted elements.

    Any geometry change (scroll, resize, element moved) re-evaluates every
    registered observer and invokes callbacks for targets that crossed.
    """

    def __init__(self, width: float, height: float, scroll_top: float = 0.0) -> None:
        self.width = width
        self.height = height
        self.scroll_top = scroll_top
        self._observers: list[IntersectionObserver] = []

    @property
    def observer_count(self) -> int:
        """Number of live (observer, target) registrations."""
        return sum(len(o.targets) for o in self._observers)

    @property
    def visible_rect(self) -> Rect:
        return Rect(top=self.scroll_top, left=0.0, width=self.width, height=self.height)

    def scroll_to(self, scroll_top: float) -> None:
        self.scroll_top = max(0.0, scroll_top)
        self.refresh()

    def scroll_by(self, delta: float) -> None:
        self.scroll_to(self.scroll_top + delta)

    def resize(self, width: float, height: float) -> None:
        self.width = width
        self.height = height
        self.refresh()

    def move(self, element: Element, rect: Rect) -> None:
        element.rect = rect
        self.refresh()

    def refresh(self) -> None:
        for observer in list(self._observers):
            self._deliver(observer, observer.targets)

    # -- observer bookkeeping ------------------------------------------------

    def _register(self, observer: IntersectionObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def _unregister(self, observer: IntersectionObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _root_rect(self, options: ObserverOptions) -> Rect:
        base = options.root.rect if options.root is not None else self.visible_rect
        top, right, bottom, left = options.margins
        return base.expanded(
            top=_resolve(top, base.height),
            right=_resolve(right, base.width),
            bottom=_resolve(bottom, base.height),
            left=_resolve(left, base.width),
        )

    def _deliver(self, observer: IntersectionObserver, targets: list[Element]) -> None:
        root = self._root_rect(observer.options)
        entries = [e for t in targets if (e := observer._compute(t, root)) is not None]
        if entries:
            observer._callback(entries, observer)


# ── Viewport Trigger ─────────────────────────────────────────


class ViewportTrigger:
    """Boolean "is the sentinel in range" signal for one sentinel at a time.

    Exactly one observer exists per attached sentinel. Attaching a different
    sentinel, or calling :meth:`detach`, tears the previous one down.
    With ``once_only`` the sentinel is unobserved after its first
    intersection (reveal-once UI; the pagination path leaves it off).
    """

    def __init__(
        self,
        host: ScrollViewport,
        options: ObserverOptions | None = None,
        *,
        once_only: bool = False,
        on_change: Callable[[bool], None] | None = None,
    ) -> None:
        self._host = host
        self._options = options or ObserverOptions()
        self._once_only = once_only
        self._on_change = on_change
        self._observer: IntersectionObserver | None = None
        self._sentinel: Element | None = None
        self.is_intersecting = False

    @property
    def sentinel(self) -> Element | None:
        return self._sentinel

    def attach(self, sentinel: Element) -> None:
        if sentinel is self._sentinel:
            return
        self.detach()
        self._sentinel = sentinel
        self._observer = IntersectionObserver(self._host, self._handle, self._options)
        self._observer.observe(sentinel)

    def detach(self) -> None:
        if self._observer is not None:
            self._observer.disconnect()
        self._observer = None
        self._sentinel = None
        self.is_intersecting = False

    def _handle(self, entries: list[IntersectionEntry], observer: IntersectionObserver) -> None:
        entry = entries[-1]
        changed = entry.is_intersecting != self.is_intersecting
        self.is_intersecting = entry.is_intersecting

        if self._once_only and entry.is_intersecting:
            observer.unobserve(entry.target)

        if changed and self._on_change is not None:
            self._on_change(entry.is_intersecting)
