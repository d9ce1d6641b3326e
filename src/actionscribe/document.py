from __future__ import annotations

import json
import re
from typing import Iterator, Sequence

from cssselect import SelectorError
from lxml import etree, html
from lxml.cssselect import CSSSelector

from .errors import GeometryUnavailable, SelectorSyntaxError
from .models import ComputedStyle, Rect

SKIPPED_TEXT_TAGS = {"script", "style", "noscript", "template", "head", "title", "meta", "link"}

INLINE_TAGS = {
    "a", "abbr", "b", "button", "code", "em", "i", "img", "input", "label",
    "select", "small", "span", "strong", "sub", "sup", "textarea",
}

SHADOW_STEP = -1

_TEXT_EXACT = re.compile(r'^text=(".*")$', re.DOTALL)
_TEXT_SUBSTRING = re.compile(r"^text=(?!\")(.+)$", re.DOTALL)


def is_element(node: object) -> bool:
    return isinstance(node, etree._Element) and isinstance(node.tag, str)


def normalize_text(value: str | None, limit: int | None = None) -> str:
    if not value:
        return ""
    compact = re.sub(r"\s+", " ", str(value)).strip()
    if limit is not None:
        return compact[:limit]
    return compact


def own_text(node: etree._Element) -> str:
    """Direct text content of ``node``; text of descendant elements is ignored."""
    parts = [node.text or ""]
    parts.extend(child.tail or "" for child in node)
    return normalize_text(" ".join(parts))


class HtmlDocument:
    """lxml-backed document tree with the query surface the recorder needs.

    Geometry and computed style are not knowable from markup alone; a host
    (the Playwright bridge) registers them per node through ``set_layout``.
    Nodes without registered layout raise ``GeometryUnavailable`` from
    ``bounds`` and get a style derived from inline ``style``/``hidden``.
    """

    def __init__(
        self,
        root: etree._Element,
        *,
        url: str = "",
        title: str | None = None,
        viewport: tuple[int, int] = (1280, 720),
        user_agent: str = "",
    ) -> None:
        self._root = root
        self.url = url
        self.viewport = viewport
        self.user_agent = user_agent
        self._title = title
        self._bounds: dict[etree._Element, Rect] = {}
        self._styles: dict[etree._Element, ComputedStyle] = {}
        self._shadow_hosts: dict[etree._Element, etree._Element] = {}
        self._shadow_roots: dict[etree._Element, etree._Element] = {}
        self._tool_owned: set[etree._Element] = set()

    @classmethod
    def from_html(
        cls,
        markup: str,
        *,
        url: str = "",
        viewport: tuple[int, int] = (1280, 720),
        user_agent: str = "",
    ) -> HtmlDocument:
        root = html.document_fromstring(markup)
        return cls(root, url=url, viewport=viewport, user_agent=user_agent)

    @property
    def root(self) -> etree._Element:
        return self._root

    @property
    def body(self) -> etree._Element | None:
        found = self._root.find("body")
        return found if found is not None else None

    @property
    def title(self) -> str:
        if self._title is not None:
            return self._title
        node = self._root.find(".//title")
        return normalize_text(" ".join(node.itertext()) if node is not None else "")

    def iter_elements(self) -> Iterator[etree._Element]:
        return self._root.iter(etree.Element)

    def scope_of(self, node: etree._Element) -> etree._Element:
        """Root of the tree ``node`` lives in: the document root or a shadow root."""
        top = node.getroottree().getroot()
        if top in self._shadow_hosts:
            return top
        return self._root

    def css(self, selector: str, scope: etree._Element | None = None) -> list[etree._Element]:
        try:
            matcher = CSSSelector(selector, translator="html")
            return [node for node in matcher(self._scope(scope)) if is_element(node)]
        except (SelectorError, etree.XPathError) as exc:
            raise SelectorSyntaxError(selector, str(exc)) from exc

    def xpath(self, expression: str, scope: etree._Element | None = None) -> list[etree._Element]:
        try:
            result = self._scope(scope).getroottree().xpath(expression)
        except etree.XPathError as exc:
            raise SelectorSyntaxError(expression, str(exc)) from exc
        if not isinstance(result, list):
            return []
        return [node for node in result if is_element(node)]

    def text_matches(self, selector: str, scope: etree._Element | None = None) -> list[etree._Element]:
        exact = _TEXT_EXACT.match(selector)
        if exact:
            try:
                wanted = json.loads(exact.group(1))
            except json.JSONDecodeError as exc:
                raise SelectorSyntaxError(selector, str(exc)) from exc
            if not isinstance(wanted, str):
                raise SelectorSyntaxError(selector, "quoted text selector must hold a string")
            wanted = normalize_text(wanted)
            return [node for node in self._text_nodes(scope) if own_text(node) == wanted]

        substring = _TEXT_SUBSTRING.match(selector)
        if substring:
            needle = normalize_text(substring.group(1)).lower()
            if not needle:
                raise SelectorSyntaxError(selector, "empty text selector")
            return [node for node in self._text_nodes(scope) if needle in own_text(node).lower()]

        raise SelectorSyntaxError(selector, "text selectors look like text=\"...\" or text=...")

    def _text_nodes(self, scope: etree._Element | None = None) -> Iterator[etree._Element]:
        for node in self._scope(scope).iter(etree.Element):
            if node.tag in SKIPPED_TEXT_TAGS:
                continue
            if any(ancestor.tag in SKIPPED_TEXT_TAGS for ancestor in node.iterancestors()):
                continue
            yield node

    def _scope(self, scope: etree._Element | None) -> etree._Element:
        return self._root if scope is None else scope

    def set_layout(
        self,
        node: etree._Element,
        bounds: Rect,
        style: ComputedStyle | None = None,
    ) -> None:
        self._bounds[node] = bounds
        if style is not None:
            self._styles[node] = style

    def bounds(self, node: etree._Element) -> Rect:
        if not self._is_attached(node):
            raise GeometryUnavailable(f"<{node.tag}> is not attached to this document")
        rect = self._bounds.get(node)
        if rect is None:
            raise GeometryUnavailable(f"No layout recorded for <{node.tag}>")
        return rect

    def computed_style(self, node: etree._Element) -> ComputedStyle:
        registered = self._styles.get(node)
        if registered is not None:
            return registered
        return _style_from_markup(node)

    def mark_tool_owned(self, node: etree._Element) -> None:
        """Record ``node`` as the root of UI injected by the recorder itself."""
        self._tool_owned.add(node)

    def is_tool_owned(self, node: etree._Element) -> bool:
        return node in self._tool_owned

    def attach_shadow_root(self, host: etree._Element, shadow_root: etree._Element) -> None:
        """Mount ``shadow_root`` as the isolated subtree rendered by ``host``."""
        self._shadow_hosts[shadow_root] = host
        self._shadow_roots[host] = shadow_root

    def shadow_root_of(self, host: etree._Element) -> etree._Element | None:
        return self._shadow_roots.get(host)

    def host_of(self, node: etree._Element) -> etree._Element | None:
        return self._shadow_hosts.get(node.getroottree().getroot())

    def parent_of(self, node: etree._Element) -> etree._Element | None:
        parent = node.getparent()
        if parent is not None:
            return parent
        return self.host_of(node)

    def node_at_path(self, path: Sequence[int]) -> etree._Element | None:
        """Walk element-child indices from the root; ``SHADOW_STEP`` enters a shadow root."""
        current = self._root
        for step in path:
            if step == SHADOW_STEP:
                shadow = self._shadow_roots.get(current)
                if shadow is None:
                    return None
                current = shadow
                continue
            children = [child for child in current if is_element(child)]
            if step < 0 or step >= len(children):
                return None
            current = children[step]
        return current

    def _is_attached(self, node: etree._Element) -> bool:
        top = node.getroottree().getroot()
        if top is self._root:
            return True
        host = self._shadow_hosts.get(top)
        return host is not None and self._is_attached(host)


def _style_from_markup(node: etree._Element) -> ComputedStyle:
    declarations: dict[str, str] = {}
    for chunk in (node.get("style") or "").split(";"):
        if ":" not in chunk:
            continue
        name, value = chunk.split(":", 1)
        declarations[name.strip().lower()] = value.strip().lower()

    tag = node.tag if isinstance(node.tag, str) else ""
    display = declarations.get("display") or ("inline" if tag in INLINE_TAGS else "block")
    if node.get("hidden") is not None:
        display = "none"
    if tag == "input" and (node.get("type") or "").lower() == "hidden":
        display = "none"

    return ComputedStyle(
        display=display,
        visibility=declarations.get("visibility", "visible"),
        opacity=declarations.get("opacity", "1"),
        z_index=declarations.get("z-index", "auto"),
    )
