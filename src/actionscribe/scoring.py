from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from .models import CandidateSelector, StrategyKind

if TYPE_CHECKING:
    from .strategies import CandidateDraft

STRATEGY_BANDS: dict[StrategyKind, tuple[float, float]] = {
    StrategyKind.DATA_ATTRIBUTE: (0.90, 1.00),
    StrategyKind.SEMANTIC: (0.70, 0.90),
    StrategyKind.CSS: (0.50, 0.80),
    StrategyKind.XPATH: (0.30, 0.70),
    StrategyKind.TEXT_BASED: (0.20, 0.60),
}

RULE_BASELINES: dict[str, float] = {
    "data:canonical": 1.00,
    "data:canonical+tag": 0.98,
    "data:custom": 0.93,
    "data:custom+tag": 0.91,
    "semantic:role-name": 0.90,
    "semantic:aria-label": 0.88,
    "semantic:label": 0.86,
    "semantic:labelledby": 0.84,
    "semantic:role-text": 0.82,
    "semantic:name": 0.80,
    "semantic:placeholder": 0.78,
    "semantic:alt": 0.76,
    "semantic:title": 0.75,
    "semantic:role": 0.72,
    "semantic:type": 0.70,
    "css:id": 0.80,
    "css:class": 0.70,
    "css:structural": 0.60,
    "xpath:id": 0.70,
    "xpath:anchored": 0.65,
    "xpath:positional": 0.30,
    "text:exact": 0.60,
    "text:contains": 0.40,
}

UNVALIDATED_FACTOR = 0.5
UNVALIDATED_MARGIN = 0.01
DYNAMIC_VALUE_PENALTY = 0.04
CANONICAL_RANK_STEP = 0.005
EXTRA_CLASS_PENALTY = 0.05
STRUCTURAL_DEPTH_PENALTY = 0.03
ANCHOR_DEPTH_PENALTY = 0.05
LONG_TEXT_PENALTY = 0.10
LONG_TEXT_THRESHOLD = 40


def baseline(draft: CandidateDraft) -> float:
    low, high = STRATEGY_BANDS[draft.kind]
    base = RULE_BASELINES.get(draft.rule, low)
    meta = draft.metadata

    if draft.rule == "xpath:positional":
        return low

    base -= CANONICAL_RANK_STEP * int(meta.get("canonical_rank", 0) or 0)
    if meta.get("dynamic"):
        base -= DYNAMIC_VALUE_PENALTY
    if draft.rule == "css:class":
        base -= EXTRA_CLASS_PENALTY * max(0, int(meta.get("class_count", 1)) - 1)
    if draft.rule == "css:structural":
        base -= STRUCTURAL_DEPTH_PENALTY * max(0, int(meta.get("depth", 1)) - 1)
    if draft.rule == "xpath:anchored":
        base -= ANCHOR_DEPTH_PENALTY * max(0, int(meta.get("depth", 1)) - 1)
    if draft.kind is StrategyKind.TEXT_BASED and int(meta.get("length", 0) or 0) > LONG_TEXT_THRESHOLD:
        base -= LONG_TEXT_PENALTY

    return min(high, max(low, base))


def score_candidate(draft: CandidateDraft, validated: bool) -> float:
    """Confidence for a draft.

    Unvalidated drafts keep half of their baseline and always land below the
    floor of their strategy band, so within one strategy a unique candidate
    outranks every non-unique one.
    """
    score = baseline(draft)
    if not validated:
        low, _ = STRATEGY_BANDS[draft.kind]
        score = min(score * UNVALIDATED_FACTOR, low - UNVALIDATED_MARGIN)
    return round(score, 4)


def rank_candidates(candidates: Iterable[CandidateSelector]) -> list[CandidateSelector]:
    indexed = list(enumerate(candidates))
    indexed.sort(key=lambda item: (-item[1].confidence, item[1].kind.priority, item[0]))
    return [candidate for _, candidate in indexed]


def pick_best(ranked: list[CandidateSelector]) -> tuple[CandidateSelector, bool]:
    for candidate in ranked:
        if candidate.is_unique:
            return candidate, True
    return ranked[0], False
