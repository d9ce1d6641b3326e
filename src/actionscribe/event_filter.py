from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from lxml import etree

from .document import HtmlDocument

HIGHLIGHT_KINDS = {"mousemove", "pointermove", "mouseover"}
DEFAULT_HIGHLIGHT_INTERVAL_MS = 16
DEFAULT_INPUT_DEBOUNCE_MS = 300


@dataclass(slots=True)
class RawEvent:
    """One DOM interaction as delivered by a capture host.

    ``timestamp`` is in seconds on the host's monotonic clock; ``path`` is the
    element-index path from the document root used to re-find the target in a
    fresh snapshot.
    """

    kind: str
    timestamp: float
    target: etree._Element | None = None
    x: float = 0.0
    y: float = 0.0
    key: str | None = None
    path: tuple[int, ...] = ()

    @property
    def is_highlight(self) -> bool:
        return self.kind in HIGHLIGHT_KINDS


@dataclass(slots=True)
class HighlightThrottle:
    interval_ms: int = DEFAULT_HIGHLIGHT_INTERVAL_MS
    _last: float | None = None

    def allow(self, timestamp: float) -> bool:
        if self._last is not None and (timestamp - self._last) * 1000.0 < self.interval_ms:
            return False
        self._last = timestamp
        return True

    def reset(self) -> None:
        self._last = None


@dataclass(slots=True)
class InputBurst:
    node: etree._Element
    path: tuple[int, ...]
    record_id: str
    last_seen: float

    def targets(self, node: etree._Element, path: tuple[int, ...]) -> bool:
        if path and self.path:
            return path == self.path
        return node is self.node


@dataclass(slots=True)
class InputDebouncer:
    """Coalesces a burst of ``input`` events on one field into a single record.

    The first event of a burst produces the record; later events on the same
    field within ``window_ms`` of the previous one only refresh its value.
    """

    window_ms: int = DEFAULT_INPUT_DEBOUNCE_MS
    _burst: InputBurst | None = None

    @property
    def burst(self) -> InputBurst | None:
        return self._burst

    def continues(self, node: etree._Element, event: RawEvent) -> str | None:
        burst = self._burst
        if burst is None or not burst.targets(node, event.path):
            return None
        if (event.timestamp - burst.last_seen) * 1000.0 > self.window_ms:
            return None
        burst.last_seen = event.timestamp
        return burst.record_id

    def open(self, node: etree._Element, event: RawEvent, record_id: str) -> None:
        self._burst = InputBurst(node, event.path, record_id, event.timestamp)

    def expire(self, now: float) -> bool:
        if self._burst is not None and (now - self._burst.last_seen) * 1000.0 > self.window_ms:
            self._burst = None
            return True
        return False

    def close(self) -> None:
        self._burst = None


@dataclass(slots=True)
class CaptureGuard:
    busy: bool = False

    @contextmanager
    def hold(self) -> Iterator[bool]:
        """Yields ``False`` when a capture is already running on this stack."""
        if self.busy:
            yield False
            return
        self.busy = True
        try:
            yield True
        finally:
            self.busy = False


@dataclass(slots=True)
class EventFilter:
    namespace: str = "actionscribe"
    highlight_interval_ms: int = DEFAULT_HIGHLIGHT_INTERVAL_MS
    _owned: list[etree._Element] = field(default_factory=list)
    _throttle: HighlightThrottle = field(init=False)

    def __post_init__(self) -> None:
        self._throttle = HighlightThrottle(self.highlight_interval_ms)

    def register_owned_root(self, node: etree._Element) -> None:
        if not any(owned is node for owned in self._owned):
            self._owned.append(node)

    def unregister_owned_root(self, node: etree._Element) -> None:
        self._owned = [owned for owned in self._owned if owned is not node]

    def is_owned(self, node: etree._Element, document: HtmlDocument | None = None) -> bool:
        current: etree._Element | None = node
        while current is not None:
            if any(owned is current for owned in self._owned):
                return True
            if document is not None and document.is_tool_owned(current):
                return True
            if self._has_namespace_marker(current):
                return True
            parent = current.getparent()
            if parent is None and document is not None:
                parent = document.host_of(current)
            current = parent
        return False

    def should_capture(
        self,
        event: RawEvent,
        node: etree._Element | None,
        document: HtmlDocument | None = None,
    ) -> bool:
        if node is None or self.is_owned(node, document):
            return False
        if event.is_highlight:
            return self._throttle.allow(event.timestamp)
        return True

    def reset(self) -> None:
        self._throttle.reset()

    def _has_namespace_marker(self, node: etree._Element) -> bool:
        if not self.namespace:
            return False
        marker = self.namespace.lower()
        element_id = (node.get("id") or "").lower()
        if element_id.startswith(marker):
            return True
        return any(token.lower().startswith(marker) for token in (node.get("class") or "").split())
