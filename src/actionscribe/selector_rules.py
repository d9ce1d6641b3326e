from __future__ import annotations

import json
import re
from dataclasses import dataclass
from math import log2

CANONICAL_TEST_ATTRIBUTES = (
    "data-testid",
    "data-test-id",
    "data-test",
    "data-qa",
    "data-cy",
    "data-e2e",
    "data-automation-id",
    "data-pw",
)

CUSTOM_TEST_ATTRIBUTE_PREFIXES = (
    "data-test-",
    "data-qa-",
    "data-automation-",
    "data-hook",
    "data-e2e-",
)

_HASH_LIKE = re.compile(r"[a-f0-9]{10,}", re.IGNORECASE)
_UUID = re.compile(r"[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}", re.IGNORECASE)
_NUMERIC_SUFFIX = re.compile(r"[_:-]\d{3,}$")
_LONG_DIGIT_RUN = re.compile(r"\d{4,}")

_FRAMEWORK_TOKENS = (
    re.compile(r"(^|[-_:])(mui|css|ng|react|ember|svelte|jdt|j_idt|sc|radix|headlessui)([-_:]|$)", re.IGNORECASE),
    re.compile(r"^:r[0-9a-z]+:$", re.IGNORECASE),
)

# JSF / PrimeFaces style ids: ``form:table:12:name``, ``form:j_idt45``.
_GENERATED_ID_SEGMENT = re.compile(r"(:\d+:|:j_idt\d+|:jdt_\d+)", re.IGNORECASE)

_DYNAMIC_CLASS_PATTERNS = (
    re.compile(r"^css-[a-z0-9_-]{4,}$", re.IGNORECASE),
    re.compile(r"^jss\d+$", re.IGNORECASE),
    re.compile(r"^sc-[a-z0-9]+$", re.IGNORECASE),
    re.compile(r"^[a-f0-9]{8,}$", re.IGNORECASE),
    re.compile(r"^[a-z]+__[a-z]+___[a-z0-9]{5,}$", re.IGNORECASE),
    re.compile(r"^_[a-z0-9]{5,}$", re.IGNORECASE),
)

_STATE_CLASSES = {"active", "hover", "focus", "focused", "selected", "open", "disabled", "visible", "show"}

_CSS_IDENTIFIER = re.compile(r"^-?[A-Za-z_][A-Za-z0-9_-]*$")


@dataclass(frozen=True, slots=True)
class AttributeStability:
    value: str
    stable: bool
    dynamic: bool
    entropy: float
    digit_ratio: float
    reasons: tuple[str, ...]


def shannon_entropy(value: str) -> float:
    text = value.strip()
    if not text:
        return 0.0
    total = len(text)
    frequencies: dict[str, int] = {}
    for char in text:
        frequencies[char] = frequencies.get(char, 0) + 1
    entropy = 0.0
    for count in frequencies.values():
        probability = count / total
        entropy -= probability * log2(probability)
    return entropy


def digit_ratio(value: str) -> float:
    text = value.strip()
    if not text:
        return 0.0
    return sum(1 for char in text if char.isdigit()) / len(text)


def analyze_attribute_stability(value: str) -> AttributeStability:
    """Classify an attribute value as hand-written or machine-generated."""
    text = value.strip()
    if not text:
        return AttributeStability(text, False, True, 0.0, 0.0, ("empty",))

    reasons: list[str] = []
    entropy = shannon_entropy(text)
    digits = digit_ratio(text)

    if digits > 0.4:
        reasons.append("digit-ratio")
    if entropy >= 4.2 and len(text) >= 8:
        reasons.append("high-entropy")
    if any(pattern.search(text) for pattern in _FRAMEWORK_TOKENS):
        reasons.append("framework-token")
    if _UUID.search(text) or _HASH_LIKE.search(text):
        reasons.append("hash-like")
    if _NUMERIC_SUFFIX.search(text):
        reasons.append("numeric-suffix")
    if _LONG_DIGIT_RUN.search(text):
        reasons.append("digit-run")
    if text.isdigit():
        reasons.append("numeric-only")

    dynamic = bool(reasons)
    return AttributeStability(
        value=text,
        stable=not dynamic and len(text) <= 120,
        dynamic=dynamic,
        entropy=round(entropy, 4),
        digit_ratio=round(digits, 4),
        reasons=tuple(reasons),
    )


def is_dynamic_value(value: str) -> bool:
    return analyze_attribute_stability(value).dynamic


def is_dynamic_id(id_value: str) -> bool:
    value = id_value.strip()
    if not value:
        return True
    if ":" in value and _GENERATED_ID_SEGMENT.search(value):
        return True
    return analyze_attribute_stability(value).dynamic


def is_dynamic_class_token(token: str) -> bool:
    value = token.strip()
    if not value:
        return True
    if any(pattern.match(value) for pattern in _DYNAMIC_CLASS_PATTERNS):
        return True
    if len(value) > 18 and re.search(r"\d", value):
        return True
    if value.count("-") >= 3 and re.search(r"\d", value):
        return True
    return False


def stable_classes(classes: tuple[str, ...] | list[str], *, namespace: str | None = None) -> list[str]:
    picked: list[str] = []
    for token in classes:
        if is_dynamic_class_token(token) or token.lower() in _STATE_CLASSES:
            continue
        if namespace and namespace in token.lower():
            continue
        if token not in picked:
            picked.append(token)
    return picked


def is_test_attribute(name: str) -> bool:
    lowered = name.lower()
    return lowered in CANONICAL_TEST_ATTRIBUTES or lowered.startswith(CUSTOM_TEST_ATTRIBUTE_PREFIXES)


def is_canonical_test_attribute(name: str) -> bool:
    return name.lower() in CANONICAL_TEST_ATTRIBUTES


def is_css_identifier(value: str) -> bool:
    return _CSS_IDENTIFIER.match(value) is not None


def escape_css_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\a ")


def css_attribute(name: str, value: str, tag: str = "") -> str:
    return f'{tag}[{name}="{escape_css_string(value)}"]'


def xpath_literal(value: str) -> str:
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    pieces = value.split("'")
    quoted = [f"'{piece}'" for piece in pieces]
    return "concat(" + ", \"'\", ".join(quoted) + ")"


def text_exact(value: str) -> str:
    return "text=" + json.dumps(value, ensure_ascii=False)


def text_substring(value: str) -> str:
    return f"text={value.lower()}"
