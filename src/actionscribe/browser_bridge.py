from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
import time
from typing import TYPE_CHECKING, Any, Callable, Mapping

from lxml import html

from .document import HtmlDocument
from .event_filter import RawEvent
from .models import ComputedStyle, Rect

if TYPE_CHECKING:
    from playwright.sync_api import Page

    from .recorder import EventHandler

logger = logging.getLogger("actionscribe.browser")

REPORT_BINDING = "__actionscribeReport"
SHADOW_ROOT_TAG = "shadow-root"
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

INJECT_SCRIPT = r"""
(() => {
  if (window.__actionscribeInstalled) {
    return;
  }

  const SNAPSHOT_KINDS = new Set(['click', 'input', 'change', 'submit', 'keydown']);
  const HIGHLIGHT_KINDS = new Set(['mousemove', 'pointermove', 'mouseover']);
  const state = {
    enabled: false,
    overlay: null,
    owned: new WeakSet(),
  };

  function ensureOverlay() {
    if (state.overlay && state.overlay.isConnected) {
      return state.overlay;
    }
    const overlay = document.createElement('div');
    overlay.id = '__actionscribe_overlay';
    overlay.style.position = 'fixed';
    overlay.style.pointerEvents = 'none';
    overlay.style.zIndex = '2147483647';
    overlay.style.border = '2px solid #2563eb';
    overlay.style.background = 'rgba(37, 99, 235, 0.12)';
    overlay.style.display = 'none';
    document.documentElement.appendChild(overlay);
    state.owned.add(overlay);
    state.overlay = overlay;
    return overlay;
  }

  function applyReply(reply) {
    if (!reply) return;
    if (typeof reply.enabled === 'boolean') {
      state.enabled = reply.enabled;
    }
    const overlay = ensureOverlay();
    const box = reply.highlight;
    if (!state.enabled || !box) {
      if (reply.clearHighlight || !state.enabled) overlay.style.display = 'none';
      return;
    }
    overlay.style.display = 'block';
    overlay.style.left = `${box.x}px`;
    overlay.style.top = `${box.y}px`;
    overlay.style.width = `${box.width}px`;
    overlay.style.height = `${box.height}px`;
  }

  function attributesOf(el) {
    const tag = el.tagName.toLowerCase();
    const attrs = {};
    for (const attr of Array.from(el.attributes)) {
      attrs[attr.name] = attr.value;
    }
    if (tag === 'input' || tag === 'textarea') {
      attrs.value = el.value;
    }
    if (tag === 'input' && (el.type === 'checkbox' || el.type === 'radio')) {
      if (el.checked) attrs.checked = ''; else delete attrs.checked;
    }
    if (tag === 'option') {
      if (el.selected) attrs.selected = ''; else delete attrs.selected;
    }
    return attrs;
  }

  function layoutOf(el) {
    const rect = el.getBoundingClientRect();
    const style = window.getComputedStyle(el);
    return {
      rect: [rect.x, rect.y, rect.width, rect.height],
      style: [style.display, style.visibility, style.opacity, style.zIndex],
    };
  }

  function serialize(el) {
    return {
      tag: el.tagName.toLowerCase(),
      attrs: attributesOf(el),
      children: serializeChildren(el.childNodes),
      ...layoutOf(el),
      owned: state.owned.has(el),
      shadow: el.shadowRoot ? { children: serializeChildren(el.shadowRoot.childNodes) } : null,
    };
  }

  function serializeChildren(nodes) {
    const children = [];
    for (const child of Array.from(nodes)) {
      if (child.nodeType === Node.TEXT_NODE) {
        children.push(child.nodeValue);
      } else if (child.nodeType === Node.ELEMENT_NODE) {
        children.push(serialize(child));
      }
    }
    return children;
  }

  function pathOf(el) {
    const steps = [];
    let current = el;
    while (current && current !== document.documentElement) {
      const parent = current.parentElement;
      if (parent) {
        steps.unshift(Array.prototype.indexOf.call(parent.children, current));
        current = parent;
        continue;
      }
      const root = current.parentNode;
      if (root instanceof ShadowRoot) {
        steps.unshift(Array.prototype.indexOf.call(root.children, current));
        steps.unshift(-1);
        current = root.host;
        continue;
      }
      return null;
    }
    return current ? steps : null;
  }

  // Ancestors of the target from the document element down, crossing shadow roots.
  function chainOf(el) {
    const chain = [];
    let current = el;
    while (current) {
      const parent = current.parentElement;
      const root = parent ? null : current.parentNode;
      const inShadow = root instanceof ShadowRoot;
      chain.unshift({
        tag: current.tagName.toLowerCase(),
        attrs: attributesOf(current),
        owned: state.owned.has(current),
        inShadow,
      });
      current = parent || (inShadow ? root.host : null);
    }
    Object.assign(chain[chain.length - 1], layoutOf(el));
    return chain;
  }

  function needsSnapshot(kind, event) {
    if (!SNAPSHOT_KINDS.has(kind)) return false;
    return kind !== 'keydown' || (event && event.key === 'Enter');
  }

  function report(kind, event) {
    if (typeof window.__actionscribeReport !== 'function') return;
    const target = event && event.composedPath ? event.composedPath()[0] : null;
    const element = target && target.nodeType === Node.ELEMENT_NODE ? target : null;
    const payload = {
      kind,
      timestamp: performance.now(),
      x: event && 'clientX' in event ? event.clientX : 0,
      y: event && 'clientY' in event ? event.clientY : 0,
      key: event && 'key' in event ? event.key : null,
      path: element ? pathOf(element) : null,
      url: window.location.href,
      title: document.title,
      viewport: [window.innerWidth, window.innerHeight],
      userAgent: navigator.userAgent,
      snapshot: null,
      chain: null,
    };
    if (needsSnapshot(kind, event)) {
      payload.snapshot = serialize(document.documentElement);
    } else if (element) {
      payload.chain = chainOf(element);
    }
    window.__actionscribeReport(payload).then(applyReply, () => {});
  }

  const listen = (kind) => (event) => {
    if (!state.enabled) return;
    if (state.owned.has(event.target)) return;
    report(kind, event);
  };

  for (const kind of [...SNAPSHOT_KINDS, ...HIGHLIGHT_KINDS]) {
    document.addEventListener(kind, listen(kind), true);
  }

  document.addEventListener('visibilitychange', () => {
    if (document.hidden) report('visibilityhidden', null);
  });
  window.addEventListener('beforeunload', () => report('beforeunload', null));

  window.__actionscribeSetEnabled = (enabled) => {
    state.enabled = !!enabled;
    if (!state.enabled) ensureOverlay().style.display = 'none';
  };

  window.__actionscribeInstalled = true;
})();
"""


@dataclass(slots=True)
class _SnapshotLayout:
    """Per-node facts gathered while rebuilding, applied once the document exists."""

    bounds: list[tuple[Any, Rect, ComputedStyle | None]] = field(default_factory=list)
    owned: list[Any] = field(default_factory=list)
    shadows: list[tuple[Any, Any]] = field(default_factory=list)

    def apply(self, document: HtmlDocument) -> None:
        for element, rect, style in self.bounds:
            document.set_layout(element, rect, style)
        for element in self.owned:
            document.mark_tool_owned(element)
        for host, shadow_root in self.shadows:
            document.attach_shadow_root(host, shadow_root)


def _safe_element(tag: str, attrs: Mapping[str, Any]) -> Any:
    try:
        element = html.Element(tag or "div")
    except ValueError:
        element = html.Element("unknown-element")
    for name, value in attrs.items():
        try:
            element.set(str(name), str(value))
        except ValueError:
            logger.debug("Skipping attribute %r on <%s>", name, tag)
    return element


def _append_children(layout: _SnapshotLayout, parent: Any, children: list[Any]) -> None:
    previous = None
    for child in children:
        if isinstance(child, str):
            child = _CONTROL_CHARS.sub("", child)
            if previous is None:
                parent.text = (parent.text or "") + child
            else:
                previous.tail = (previous.tail or "") + child
            continue
        if not isinstance(child, Mapping):
            continue
        element = _build_element(layout, child)
        parent.append(element)
        previous = element


def _build_element(layout: _SnapshotLayout, payload: Mapping[str, Any]) -> Any:
    element = _safe_element(str(payload.get("tag", "")), dict(payload.get("attrs") or {}))
    _append_children(layout, element, list(payload.get("children") or []))

    rect = payload.get("rect")
    style = payload.get("style")
    if isinstance(rect, (list, tuple)) and len(rect) == 4:
        computed = None
        if isinstance(style, (list, tuple)) and len(style) == 4:
            computed = ComputedStyle(
                display=str(style[0]),
                visibility=str(style[1]),
                opacity=str(style[2]),
                z_index=str(style[3]),
            )
        layout.bounds.append((element, Rect(*(float(value or 0.0) for value in rect)), computed))

    if payload.get("owned"):
        layout.owned.append(element)

    shadow = payload.get("shadow")
    if isinstance(shadow, Mapping):
        shadow_root = html.Element(SHADOW_ROOT_TAG)
        _append_children(layout, shadow_root, list(shadow.get("children") or []))
        layout.shadows.append((element, shadow_root))
    return element


def build_document_from_snapshot(
    snapshot: Mapping[str, Any],
    *,
    url: str = "",
    title: str | None = None,
    viewport: tuple[int, int] = (1280, 720),
    user_agent: str = "",
) -> HtmlDocument:
    """Rebuild a serialized page tree with its layout, live values and shadow roots."""
    layout = _SnapshotLayout()
    root = _build_element(layout, snapshot)
    document = HtmlDocument(root, url=url, title=title or None, viewport=viewport, user_agent=user_agent)
    layout.apply(document)
    return document


def build_document_from_chain(
    chain: list[Any],
    *,
    url: str = "",
    title: str | None = None,
    viewport: tuple[int, int] = (1280, 720),
    user_agent: str = "",
) -> tuple[HtmlDocument, Any] | None:
    """Rebuild just the ancestor chain of an event target.

    Hover and plain keystroke reports carry the chain instead of a full page
    snapshot. Each link becomes the only child of the previous one, links marked
    ``inShadow`` open a shadow root on their host, and the last link holds the
    target with its current layout. Returns ``(document, target)`` or ``None``
    for an empty chain.
    """
    layout = _SnapshotLayout()
    root = parent = None
    for link in chain:
        if not isinstance(link, Mapping):
            continue
        element = _build_element(layout, {**link, "children": [], "shadow": None})
        if parent is None:
            root = element
        elif link.get("inShadow"):
            shadow_root = html.Element(SHADOW_ROOT_TAG)
            shadow_root.append(element)
            layout.shadows.append((parent, shadow_root))
        else:
            parent.append(element)
        parent = element
    if root is None:
        return None
    document = HtmlDocument(root, url=url, title=title or None, viewport=viewport, user_agent=user_agent)
    layout.apply(document)
    return document, parent


class PlaywrightCaptureHost:
    def __init__(
        self,
        page: Page,
        *,
        on_visibility_hidden: Callable[[], Any] | None = None,
        on_before_unload: Callable[[], Any] | None = None,
    ) -> None:
        self.page = page
        self.on_visibility_hidden = on_visibility_hidden
        self.on_before_unload = on_before_unload
        self._handler: EventHandler | None = None
        self._enabled = False
        self._installed = False
        self._dispatching = False
        self._document: HtmlDocument | None = None
        self._highlight: Rect | None = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def document(self) -> HtmlDocument | None:
        return self._document

    def install(self) -> None:
        if self._installed:
            return
        self.page.expose_function(REPORT_BINDING, self._on_report)
        self.page.add_init_script(INJECT_SCRIPT)
        self.page.evaluate(INJECT_SCRIPT)
        self._installed = True

    def attach(self, handler: EventHandler) -> None:
        self.install()
        self._handler = handler
        self._enabled = True
        self._set_page_enabled(True)

    def detach(self) -> None:
        self._enabled = False
        self._handler = None
        self._highlight = None
        self._set_page_enabled(False)

    def show_highlight(self, _node: Any, rect: Rect) -> None:
        self._highlight = rect

    def _set_page_enabled(self, enabled: bool) -> None:
        if self._dispatching or not self._installed:
            return
        try:
            self.page.evaluate(
                "(isEnabled) => window.__actionscribeSetEnabled && window.__actionscribeSetEnabled(!!isEnabled)",
                enabled,
            )
        except Exception as exc:
            logger.debug("Could not toggle page listeners: %s", exc)

    def _on_report(self, payload: dict[str, Any]) -> dict[str, Any]:
        kind = str(payload.get("kind", ""))
        self._dispatching = True
        try:
            if kind == "visibilityhidden":
                if self.on_visibility_hidden:
                    self.on_visibility_hidden()
            elif kind == "beforeunload":
                if self.on_before_unload:
                    self.on_before_unload()
            elif self._enabled and self._handler is not None:
                self._dispatch(kind, payload)
        except Exception as exc:
            logger.exception("Event dispatch failed", exc_info=exc)
        finally:
            self._dispatching = False

        reply: dict[str, Any] = {"enabled": self._enabled}
        if self._highlight is not None:
            rect, self._highlight = self._highlight, None
            reply["highlight"] = {"x": rect.x, "y": rect.y, "width": rect.width, "height": rect.height}
        elif kind not in {"mousemove", "pointermove", "mouseover"}:
            reply["clearHighlight"] = True
        return reply

    def _dispatch(self, kind: str, payload: Mapping[str, Any]) -> None:
        viewport = payload.get("viewport") or (1280, 720)
        page_facts: dict[str, Any] = {
            "url": str(payload.get("url", "") or ""),
            "title": str(payload.get("title", "") or ""),
            "viewport": (int(viewport[0]), int(viewport[1])),
            "user_agent": str(payload.get("userAgent", "") or ""),
        }
        raw_path = payload.get("path")
        path = tuple(int(step) for step in raw_path) if isinstance(raw_path, list) else ()

        snapshot = payload.get("snapshot")
        chain = payload.get("chain")
        rebuilt = None
        if isinstance(snapshot, Mapping):
            self._document = build_document_from_snapshot(snapshot, **page_facts)
        elif isinstance(chain, list):
            # The chain is current but partial; it never replaces the last snapshot.
            rebuilt = build_document_from_chain(chain, **page_facts)

        if rebuilt is not None:
            document, target = rebuilt
        else:
            document = self._document
            if document is None:
                logger.debug("No page tree yet for %s report", kind)
                return
            target = document.node_at_path(path) if raw_path is not None else None
        event = RawEvent(
            kind=kind,
            timestamp=time.monotonic(),
            target=target,
            x=float(payload.get("x", 0.0) or 0.0),
            y=float(payload.get("y", 0.0) or 0.0),
            key=payload.get("key"),
            path=path,
        )
        handler = self._handler
        if handler is not None:
            handler(event, document)
