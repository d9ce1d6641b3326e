from __future__ import annotations

from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Protocol

from lxml import etree

from .document import SKIPPED_TEXT_TAGS, HtmlDocument, is_element, normalize_text, own_text
from .dom_extractor import has_same_tag_siblings, sibling_index, split_classes
from .models import SelectorSyntax, StrategyKind
from .selector_rules import (
    CANONICAL_TEST_ATTRIBUTES,
    css_attribute,
    is_canonical_test_attribute,
    is_css_identifier,
    is_dynamic_id,
    is_dynamic_value,
    is_test_attribute,
    stable_classes,
    text_exact,
    text_substring,
    xpath_literal,
)
from .validation import is_unique

FORM_CONTROL_TAGS = {"input", "select", "textarea", "button"}
LABELABLE_TAGS = {"input", "select", "textarea"}
TEXT_INPUT_TYPES = {"", "text", "email", "password", "search", "tel", "url", "number"}
MAX_CLASS_POOL = 6
MAX_CLASS_COMBINATION = 3
MAX_STRUCTURAL_DEPTH = 4
MAX_ACCESSIBLE_TEXT = 60
SUBSTRING_LENGTH = 30


@dataclass(slots=True)
class CandidateDraft:
    kind: StrategyKind
    value: str
    syntax: SelectorSyntax
    rule: str
    metadata: dict[str, Any] = field(default_factory=dict)


class SelectorStrategy(Protocol):
    kind: StrategyKind

    def generate(self, node: etree._Element, document: HtmlDocument) -> list[CandidateDraft]:
        ...


def tag_name(node: etree._Element) -> str:
    return str(node.tag).lower()


def string_value(node: etree._Element) -> str:
    """Whitespace-normalized string value, matching XPath ``normalize-space()``."""
    return normalize_text("".join(node.itertext()))


def implicit_role(node: etree._Element) -> str | None:
    tag = tag_name(node)
    if tag == "button":
        return "button"
    if tag == "a" and node.get("href") is not None:
        return "link"
    if tag == "textarea":
        return "textbox"
    if tag == "select":
        return "listbox" if node.get("multiple") is not None else "combobox"
    if tag == "img":
        return "img"
    if tag == "input":
        input_type = (node.get("type") or "text").strip().lower()
        if input_type in {"button", "submit", "reset", "image"}:
            return "button"
        if input_type in {"checkbox", "radio"}:
            return input_type
        if input_type == "range":
            return "slider"
        if input_type in TEXT_INPUT_TYPES:
            return "textbox"
    return None


def associated_label(node: etree._Element, document: HtmlDocument) -> str | None:
    element_id = (node.get("id") or "").strip()
    if element_id:
        scope = document.scope_of(node)
        for label in document.xpath(f"//label[@for={xpath_literal(element_id)}]", scope):
            text = string_value(label)
            if text:
                return text
    return None


def wrapping_label(node: etree._Element) -> etree._Element | None:
    for ancestor in node.iterancestors():
        if tag_name(ancestor) == "label":
            return ancestor
    return None


def _add(drafts: list[CandidateDraft], seen: set[tuple[str, str]], draft: CandidateDraft) -> None:
    key = (draft.syntax.value, draft.value)
    if key in seen:
        return
    seen.add(key)
    drafts.append(draft)


class DataAttributeStrategy:
    kind = StrategyKind.DATA_ATTRIBUTE

    def generate(self, node: etree._Element, document: HtmlDocument) -> list[CandidateDraft]:
        names = [name for name in node.attrib.keys() if is_test_attribute(str(name))]
        names.sort(key=_test_attribute_order)

        drafts: list[CandidateDraft] = []
        seen: set[tuple[str, str]] = set()
        tag = tag_name(node)
        for name in names:
            value = (node.get(name) or "").strip()
            if not value:
                continue
            canonical = is_canonical_test_attribute(name)
            rule = "data:canonical" if canonical else "data:custom"
            metadata = {
                "attribute": name,
                "dynamic": is_dynamic_value(value),
                "canonical_rank": CANONICAL_TEST_ATTRIBUTES.index(name.lower()) if canonical else 0,
            }
            bare = css_attribute(name, value)
            _add(drafts, seen, CandidateDraft(self.kind, bare, SelectorSyntax.CSS, rule, metadata))
            if not is_unique(bare, self.kind, node, document, SelectorSyntax.CSS):
                _add(
                    drafts,
                    seen,
                    CandidateDraft(self.kind, css_attribute(name, value, tag), SelectorSyntax.CSS, f"{rule}+tag", dict(metadata)),
                )
        return drafts


def _test_attribute_order(name: str) -> tuple[int, str]:
    lowered = name.lower()
    if lowered in CANONICAL_TEST_ATTRIBUTES:
        return CANONICAL_TEST_ATTRIBUTES.index(lowered), lowered
    return len(CANONICAL_TEST_ATTRIBUTES), lowered


class SemanticStrategy:
    kind = StrategyKind.SEMANTIC

    def generate(self, node: etree._Element, document: HtmlDocument) -> list[CandidateDraft]:
        drafts: list[CandidateDraft] = []
        seen: set[tuple[str, str]] = set()
        tag = tag_name(node)
        explicit_role = (node.get("role") or "").strip()
        role = explicit_role or implicit_role(node)

        def css(value: str, rule: str, source: str) -> None:
            _add(
                drafts,
                seen,
                CandidateDraft(self.kind, value, SelectorSyntax.CSS, rule, {"dynamic": is_dynamic_value(source)}),
            )

        def xpath(value: str, rule: str) -> None:
            _add(drafts, seen, CandidateDraft(self.kind, value, SelectorSyntax.XPATH, rule))

        aria_label = (node.get("aria-label") or "").strip()
        if aria_label:
            if explicit_role:
                css(
                    css_attribute("role", explicit_role) + css_attribute("aria-label", aria_label),
                    "semantic:role-name",
                    aria_label,
                )
            css(css_attribute("aria-label", aria_label, tag), "semantic:aria-label", aria_label)

        labelled_by = (node.get("aria-labelledby") or "").strip()
        if labelled_by:
            css(css_attribute("aria-labelledby", labelled_by, tag), "semantic:labelledby", labelled_by)

        if tag in LABELABLE_TAGS:
            label_text = associated_label(node, document)
            if label_text:
                xpath(
                    f"//{tag}[@id=//label[normalize-space()={xpath_literal(label_text)}]/@for]",
                    "semantic:label",
                )
            wrapper = wrapping_label(node)
            if wrapper is not None:
                wrapper_text = string_value(wrapper)
                if wrapper_text:
                    xpath(
                        f"//label[normalize-space()={xpath_literal(wrapper_text)}]//{tag}",
                        "semantic:label",
                    )

        if role in {"button", "link"} and not aria_label:
            accessible_text = string_value(node)
            if accessible_text and len(accessible_text) <= MAX_ACCESSIBLE_TEXT:
                xpath(f"//{tag}[normalize-space()={xpath_literal(accessible_text)}]", "semantic:role-text")

        name = (node.get("name") or "").strip()
        if name and tag in FORM_CONTROL_TAGS:
            css(css_attribute("name", name, tag), "semantic:name", name)

        placeholder = (node.get("placeholder") or "").strip()
        if placeholder:
            css(css_attribute("placeholder", placeholder, tag), "semantic:placeholder", placeholder)

        alt = (node.get("alt") or "").strip()
        if alt and tag in {"img", "area", "input"}:
            css(css_attribute("alt", alt, tag), "semantic:alt", alt)

        title = (node.get("title") or "").strip()
        if title:
            css(css_attribute("title", title, tag), "semantic:title", title)

        if explicit_role and not aria_label:
            css(css_attribute("role", explicit_role, tag), "semantic:role", explicit_role)

        input_type = (node.get("type") or "").strip()
        if tag == "input" and input_type:
            css(css_attribute("type", input_type.lower(), tag), "semantic:type", input_type)

        return drafts


class CssStrategy:
    kind = StrategyKind.CSS

    def __init__(self, ui_namespace: str | None = None) -> None:
        self.ui_namespace = ui_namespace

    def generate(self, node: etree._Element, document: HtmlDocument) -> list[CandidateDraft]:
        drafts: list[CandidateDraft] = []
        seen: set[tuple[str, str]] = set()
        tag = tag_name(node)

        element_id = (node.get("id") or "").strip()
        if element_id and not is_dynamic_id(element_id):
            value = f"#{element_id}" if is_css_identifier(element_id) else css_attribute("id", element_id, tag)
            _add(drafts, seen, CandidateDraft(self.kind, value, SelectorSyntax.CSS, "css:id"))

        class_draft = self._class_combination(node, document, tag)
        if class_draft is not None:
            _add(drafts, seen, class_draft)

        structural = self._structural_chain(node, document)
        if structural is not None:
            _add(drafts, seen, structural)
        return drafts

    def _class_combination(
        self,
        node: etree._Element,
        document: HtmlDocument,
        tag: str,
    ) -> CandidateDraft | None:
        pool = [
            token
            for token in stable_classes(split_classes(node.get("class")), namespace=self.ui_namespace)
            if is_css_identifier(token)
        ][:MAX_CLASS_POOL]
        if not pool:
            return None

        widest: tuple[str, ...] = ()
        for size in range(1, min(MAX_CLASS_COMBINATION, len(pool)) + 1):
            for combo in combinations(pool, size):
                selector = tag + "".join(f".{token}" for token in combo)
                if is_unique(selector, self.kind, node, document, SelectorSyntax.CSS):
                    return CandidateDraft(
                        self.kind, selector, SelectorSyntax.CSS, "css:class", {"class_count": size}
                    )
                widest = combo
        selector = tag + "".join(f".{token}" for token in widest)
        return CandidateDraft(self.kind, selector, SelectorSyntax.CSS, "css:class", {"class_count": len(widest)})

    def _structural_chain(self, node: etree._Element, document: HtmlDocument) -> CandidateDraft | None:
        steps: list[str] = []
        current = node
        for depth in range(1, MAX_STRUCTURAL_DEPTH + 1):
            parent = current.getparent()
            if parent is None or not is_element(parent):
                return None
            step = tag_name(current)
            if has_same_tag_siblings(current):
                step += f":nth-of-type({sibling_index(current)})"
            steps.insert(0, step)

            if parent.getparent() is None and document.host_of(parent) is not None:
                return self._shadow_chain(node, document, steps)

            parent_id = (parent.get("id") or "").strip()
            anchored = bool(parent_id) and not is_dynamic_id(parent_id) and is_css_identifier(parent_id)
            prefix = f"#{parent_id}" if anchored else tag_name(parent)
            selector = " > ".join([prefix, *steps])
            if anchored or is_unique(selector, self.kind, node, document, SelectorSyntax.CSS):
                return CandidateDraft(
                    self.kind,
                    selector,
                    SelectorSyntax.CSS,
                    "css:structural",
                    {"depth": depth, "anchored": anchored},
                )
            current = parent
        return None

    def _shadow_chain(
        self,
        node: etree._Element,
        document: HtmlDocument,
        steps: list[str],
    ) -> CandidateDraft | None:
        # Shadow roots have no tag to anchor on; the chain starts at the top level.
        selector = " > ".join(steps)
        if len(steps) < 2 or not is_unique(selector, self.kind, node, document, SelectorSyntax.CSS):
            return None
        return CandidateDraft(
            self.kind,
            selector,
            SelectorSyntax.CSS,
            "css:structural",
            {"depth": len(steps), "anchored": False},
        )


def positional_step(node: etree._Element) -> str:
    tag = tag_name(node)
    if has_same_tag_siblings(node):
        return f"{tag}[{sibling_index(node)}]"
    return tag


def build_positional_xpath(node: etree._Element) -> str:
    """Absolute path from the tree root; never fails for an element."""
    steps = [positional_step(node)]
    for ancestor in node.iterancestors():
        steps.insert(0, positional_step(ancestor))
    return "/" + "/".join(steps)


class XPathStrategy:
    kind = StrategyKind.XPATH

    def generate(self, node: etree._Element, document: HtmlDocument) -> list[CandidateDraft]:
        drafts: list[CandidateDraft] = []
        seen: set[tuple[str, str]] = set()
        tag = tag_name(node)

        element_id = (node.get("id") or "").strip()
        if element_id and not is_dynamic_id(element_id):
            _add(
                drafts,
                seen,
                CandidateDraft(
                    self.kind, f"//{tag}[@id={xpath_literal(element_id)}]", SelectorSyntax.XPATH, "xpath:id", {"depth": 0}
                ),
            )
        else:
            anchored = self._anchored_path(node)
            if anchored is not None:
                _add(drafts, seen, anchored)

        _add(
            drafts,
            seen,
            CandidateDraft(self.kind, build_positional_xpath(node), SelectorSyntax.XPATH, "xpath:positional"),
        )
        return drafts

    def _anchored_path(self, node: etree._Element) -> CandidateDraft | None:
        steps = [positional_step(node)]
        for ancestor in node.iterancestors():
            ancestor_id = (ancestor.get("id") or "").strip()
            if ancestor_id and not is_dynamic_id(ancestor_id):
                anchor = f"//{tag_name(ancestor)}[@id={xpath_literal(ancestor_id)}]"
                return CandidateDraft(
                    self.kind,
                    anchor + "/" + "/".join(steps),
                    SelectorSyntax.XPATH,
                    "xpath:anchored",
                    {"depth": len(steps)},
                )
            steps.insert(0, positional_step(ancestor))
        return None


class TextStrategy:
    kind = StrategyKind.TEXT_BASED

    def __init__(self, min_length: int = 2, max_length: int = 80) -> None:
        self.min_length = min_length
        self.max_length = max_length

    def generate(self, node: etree._Element, document: HtmlDocument) -> list[CandidateDraft]:
        if tag_name(node) in SKIPPED_TEXT_TAGS:
            return []
        text = own_text(node)
        if not (self.min_length <= len(text) <= self.max_length):
            return []

        drafts = [
            CandidateDraft(self.kind, text_exact(text), SelectorSyntax.TEXT, "text:exact", {"length": len(text)})
        ]
        snippet = _snippet(text)
        if snippet:
            drafts.append(
                CandidateDraft(
                    self.kind, text_substring(snippet), SelectorSyntax.TEXT, "text:contains", {"length": len(snippet)}
                )
            )
        return drafts


def _snippet(text: str) -> str:
    if len(text) <= SUBSTRING_LENGTH:
        return text
    cut = text[:SUBSTRING_LENGTH]
    if text[SUBSTRING_LENGTH] != " " and " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.strip()


def default_strategies(
    *,
    ui_namespace: str | None = None,
    text_min_length: int = 2,
    text_max_length: int = 80,
) -> list[SelectorStrategy]:
    return [
        DataAttributeStrategy(),
        SemanticStrategy(),
        CssStrategy(ui_namespace=ui_namespace),
        XPathStrategy(),
        TextStrategy(min_length=text_min_length, max_length=text_max_length),
    ]
