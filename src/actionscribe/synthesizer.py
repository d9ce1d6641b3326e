from __future__ import annotations

import logging
from typing import Sequence

from lxml import etree

from .document import HtmlDocument
from .models import CandidateSelector, SelectorSet, SelectorSyntax, StrategyKind
from .scoring import pick_best, rank_candidates, score_candidate
from .strategies import (
    CandidateDraft,
    SelectorStrategy,
    build_positional_xpath,
    default_strategies,
)
from .validation import validate_selector

logger = logging.getLogger("actionscribe.synthesizer")


class SelectorSynthesizer:
    def __init__(self, strategies: Sequence[SelectorStrategy] | None = None) -> None:
        self.strategies: list[SelectorStrategy] = list(strategies) if strategies is not None else default_strategies()

    def synthesize(self, node: etree._Element, document: HtmlDocument) -> SelectorSet:
        """Rank selectors for ``node`` inside its own tree.

        Nodes inside shadow roots also get the best selector of every enclosing
        host, outermost first; the set is reliable only when each link is unique.
        """
        candidates, best, reliable = self._select(node, document)
        host_chain: list[CandidateSelector] = []
        host = document.host_of(node)
        while host is not None:
            _, host_best, host_reliable = self._select(host, document)
            host_chain.insert(0, host_best)
            reliable = reliable and host_reliable
            host = document.host_of(host)
        return SelectorSet(candidates=candidates, best=best, reliable=reliable, host_chain=tuple(host_chain))

    def _select(
        self,
        node: etree._Element,
        document: HtmlDocument,
    ) -> tuple[tuple[CandidateSelector, ...], CandidateSelector, bool]:
        drafts = self._collect_drafts(node, document)
        if not drafts:
            drafts = [self._positional_fallback(node)]

        candidates: list[CandidateSelector] = []
        for draft in drafts:
            unique, match_count = validate_selector(draft.value, draft.kind, node, document, draft.syntax)
            candidates.append(
                CandidateSelector(
                    kind=draft.kind,
                    value=draft.value,
                    confidence=score_candidate(draft, unique),
                    is_unique=unique,
                    syntax=draft.syntax,
                    rule=draft.rule,
                    match_count=match_count,
                )
            )

        ranked = rank_candidates(candidates)
        best, reliable = pick_best(ranked)
        if not reliable:
            logger.warning(
                "No unique selector for <%s>; best effort is %s (%d matches)",
                node.tag,
                best.value,
                best.match_count,
            )
        return tuple(ranked), best, reliable

    def _collect_drafts(self, node: etree._Element, document: HtmlDocument) -> list[CandidateDraft]:
        drafts: list[CandidateDraft] = []
        seen: set[tuple[SelectorSyntax, str]] = set()
        for strategy in self.strategies:
            try:
                produced = strategy.generate(node, document)
            except Exception:
                logger.exception("Selector strategy %s failed for <%s>", strategy.kind.value, node.tag)
                continue
            for draft in produced:
                key = (draft.syntax, draft.value)
                if not draft.value or key in seen:
                    continue
                seen.add(key)
                drafts.append(draft)
        return drafts

    @staticmethod
    def _positional_fallback(node: etree._Element) -> CandidateDraft:
        return CandidateDraft(
            kind=StrategyKind.XPATH,
            value=build_positional_xpath(node),
            syntax=SelectorSyntax.XPATH,
            rule="xpath:positional",
        )
