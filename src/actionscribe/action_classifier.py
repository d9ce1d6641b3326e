from __future__ import annotations

from lxml import etree

from .document import normalize_text, own_text
from .models import ElementFacts

TEXT_ENTRY_TYPES = {"text", "email", "password", "search", "tel", "url"}
CHECKABLE_TYPES = {"checkbox", "radio"}
ACTIVATION_KINDS = {"activate", "click", "input", "change"}
DEFAULT_VALUE_LIMIT = 50


def input_type(facts: ElementFacts) -> str:
    return (facts.attr("type") or "text").lower()


def is_text_entry(facts: ElementFacts) -> bool:
    if facts.tag == "textarea":
        return True
    if facts.tag == "input":
        return input_type(facts) in TEXT_ENTRY_TYPES
    editable = facts.attributes.get("contenteditable")
    return editable is not None and editable.strip().lower() in {"", "true", "plaintext-only"}


def is_checkable(facts: ElementFacts) -> bool:
    return facts.tag == "input" and input_type(facts) in CHECKABLE_TYPES


def selected_option_text(node: etree._Element) -> str:
    options = [option for option in node.iter("option")]
    chosen = [option for option in options if option.get("selected") is not None]
    if chosen:
        return normalize_text("".join(chosen[0].itertext()))
    if options and node.get("multiple") is None:
        return normalize_text("".join(options[0].itertext()))
    return ""


def form_action(node: etree._Element) -> str:
    form = node if str(node.tag).lower() == "form" else next(
        (ancestor for ancestor in node.iterancestors() if str(ancestor.tag).lower() == "form"), None
    )
    if form is None:
        return ""
    return (form.get("action") or "").strip()


def classify(
    interaction_kind: str,
    node: etree._Element,
    facts: ElementFacts,
    *,
    key: str | None = None,
    value_limit: int = DEFAULT_VALUE_LIMIT,
) -> tuple[str, str]:
    """Map an interaction on ``node`` to ``(action_type, value)``.

    Total: unknown interaction kinds are recorded as-is with an empty value.
    """
    kind = (interaction_kind or "activate").strip().lower()

    if kind == "submit":
        return "submit", form_action(node)
    if kind == "keypress":
        return "keypress", key or ""
    if kind not in ACTIVATION_KINDS:
        return kind, ""

    if is_text_entry(facts):
        if facts.tag in {"input", "textarea"}:
            live = facts.attributes.get("value")
            if live is None and facts.tag == "textarea":
                live = "".join(node.itertext())
            return "input", (live or "") or (facts.attr("placeholder") or "")
        return "input", normalize_text(" ".join(node.itertext()))
    if is_checkable(facts):
        return "check", "checked" if "checked" in facts.attributes else "unchecked"
    if facts.tag == "select":
        return "select", selected_option_text(node)

    text = own_text(node) or facts.text
    return "click", text[:value_limit]
