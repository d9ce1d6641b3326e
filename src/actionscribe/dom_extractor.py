from __future__ import annotations

from dataclasses import dataclass
import logging

from lxml import etree

from .document import HtmlDocument, is_element, normalize_text, own_text
from .errors import GeometryUnavailable
from .models import ComputedStyle, ElementFacts, ParentContext, Rect

logger = logging.getLogger("actionscribe.dom")

FACTS_TEXT_LIMIT = 100

__all__ = [
    "BoundsProbe",
    "extract_attributes",
    "extract_element_facts",
    "own_text",
    "probe_bounds",
    "sibling_index",
    "split_classes",
]


@dataclass(frozen=True, slots=True)
class BoundsProbe:
    bounds: Rect
    is_visible: bool
    computed_style: ComputedStyle


def probe_bounds(node: etree._Element, document: HtmlDocument) -> BoundsProbe:
    style = document.computed_style(node)
    try:
        rect = document.bounds(node)
    except GeometryUnavailable as exc:
        logger.debug("Geometry unavailable, using zero rectangle: %s", exc)
        return BoundsProbe(bounds=Rect.zero(), is_visible=False, computed_style=style)

    visible = (
        style.display != "none"
        and style.visibility != "hidden"
        and style.opacity not in {"0", "0.0"}
        and rect.width > 0
        and rect.height > 0
    )
    return BoundsProbe(bounds=rect, is_visible=visible, computed_style=style)


def extract_attributes(node: etree._Element) -> dict[str, str]:
    return {str(name): str(value) for name, value in node.attrib.items()}


def split_classes(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    seen: list[str] = []
    for token in raw.split():
        if token not in seen:
            seen.append(token)
    return tuple(seen)


def sibling_index(node: etree._Element) -> int:
    """1-based position of ``node`` among its siblings sharing the same tag."""
    index = 1
    for sibling in node.itersiblings(preceding=True):
        if sibling.tag == node.tag:
            index += 1
    return index


def has_same_tag_siblings(node: etree._Element) -> bool:
    parent = node.getparent()
    if parent is None:
        return False
    return any(child is not node and child.tag == node.tag for child in parent)


def element_children(node: etree._Element) -> list[etree._Element]:
    return [child for child in node if is_element(child)]


def parent_context(node: etree._Element) -> ParentContext | None:
    parent = node.getparent()
    if parent is None or not is_element(parent):
        return None
    children = element_children(parent)
    return ParentContext(
        tag=str(parent.tag).lower(),
        element_id=parent.get("id") or None,
        child_index=children.index(node),
    )


def extract_element_facts(node: etree._Element, document: HtmlDocument) -> ElementFacts:
    probe = probe_bounds(node, document)
    return ElementFacts(
        tag=str(node.tag).lower(),
        element_id=node.get("id") or None,
        classes=split_classes(node.get("class")),
        text=normalize_text(" ".join(node.itertext()), limit=FACTS_TEXT_LIMIT),
        attributes=extract_attributes(node),
        bounds=probe.bounds,
        is_visible=probe.is_visible,
        computed_style=probe.computed_style,
        parent=parent_context(node),
    )
