from __future__ import annotations

from lxml import etree

from .document import HtmlDocument
from .errors import SelectorSyntaxError
from .models import DEFAULT_SYNTAX, SelectorSyntax, StrategyKind


def resolve_selector(
    document: HtmlDocument,
    value: str,
    syntax: SelectorSyntax,
    scope: etree._Element | None = None,
) -> list[etree._Element]:
    """Resolve ``value`` with the semantics of ``syntax``; raises ``SelectorSyntaxError``.

    ``scope`` limits the query to one tree, such as a shadow root.
    """
    text = value.strip()
    if not text:
        raise SelectorSyntaxError(value, "empty selector")
    if syntax is SelectorSyntax.CSS:
        return document.css(text, scope)
    if syntax is SelectorSyntax.XPATH:
        return document.xpath(text, scope)
    return document.text_matches(text, scope)


def count_selector_matches(
    document: HtmlDocument,
    value: str,
    syntax: SelectorSyntax,
) -> int:
    try:
        return len(resolve_selector(document, value, syntax))
    except SelectorSyntaxError:
        return 0


def is_unique(
    value: str,
    kind: StrategyKind,
    target: etree._Element,
    document: HtmlDocument,
    syntax: SelectorSyntax | None = None,
) -> bool:
    resolved_syntax = syntax or DEFAULT_SYNTAX[kind]
    try:
        matches = resolve_selector(document, value, resolved_syntax, document.scope_of(target))
    except SelectorSyntaxError:
        return False
    return len(matches) == 1 and matches[0] is target


def validate_selector(
    value: str,
    kind: StrategyKind,
    target: etree._Element,
    document: HtmlDocument,
    syntax: SelectorSyntax | None = None,
) -> tuple[bool, int]:
    """Uniqueness verdict plus the raw match count (0 on syntax errors).

    Matching runs inside the tree that owns ``target``, so an element in a shadow
    root is judged against its own shadow tree.
    """
    resolved_syntax = syntax or DEFAULT_SYNTAX[kind]
    try:
        matches = resolve_selector(document, value, resolved_syntax, document.scope_of(target))
    except SelectorSyntaxError:
        return False, 0
    return len(matches) == 1 and matches[0] is target, len(matches)
