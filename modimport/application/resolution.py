"""Per-item match resolution: candidates, confidence, and the auto-accept decision."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from modimport.data.catalog import CatalogEntry, CatalogIndex
from modimport.data.matcher import (
    SUGGESTION_LIMIT,
    SUGGESTION_THRESHOLD,
    ConfidenceTier,
    MatchCandidate,
    MatchedVia,
    best_candidate,
    find_candidates,
)

from .jobs import MatchedEntryRef, MatchRecord

logger = logging.getLogger(__name__)

CATALOG_NOT_LOADED = "Catalog not loaded"
NO_MATCH = "No match found"
USER_CONFIRMED = "User confirmed"

AUTO_ACCEPT_TIERS = frozenset({ConfidenceTier.EXCELLENT, ConfidenceTier.HIGH})


@dataclass(frozen=True)
class ResolutionOutcome:
    query: str
    category: str | None
    candidates: tuple[MatchCandidate, ...]
    best: MatchCandidate | None
    confidence: ConfidenceTier
    match_detail: str
    catalog_loaded: bool = True

    def to_match_record(self, *, detail: str | None = None, is_duplicate: bool = False) -> MatchRecord:
        entry = self.best.entry if self.best else None
        return MatchRecord(
            matched_entry=MatchedEntryRef(entry.name, entry.category) if entry else None,
            confidence=self.confidence,
            score=self.best.score if self.best else 0.0,
            detail=detail if detail is not None else self.match_detail,
            is_duplicate=is_duplicate,
        )


def describe_match(candidate: MatchCandidate | None, tier: ConfidenceTier) -> str:
    """Human-readable reason shown next to a job's confidence badge."""
    if candidate is None or tier == ConfidenceTier.NONE:
        return NO_MATCH

    name = candidate.entry.name
    if tier == ConfidenceTier.EXCELLENT:
        if candidate.matched_via == MatchedVia.TOKEN_MATCH:
            return f"Excellent confidence: alias match '{name}'"
        return f"Excellent confidence: exact name match '{name}'"
    if tier == ConfidenceTier.HIGH:
        return f"High confidence: fuzzy match '{name}' ({candidate.score:.2f})"
    if tier == ConfidenceTier.MEDIUM:
        return f"Medium confidence: partial name match '{name}' ({candidate.score:.2f})"
    return f"Low confidence: weak match '{name}' ({candidate.score:.2f})"


class ResolutionPipeline:
    """Matches one candidate name and decides whether it can be auto-accepted.

    Pure apart from logging: safe to run in a worker thread.
    """

    def __init__(self, threshold: float = SUGGESTION_THRESHOLD, limit: int = SUGGESTION_LIMIT) -> None:
        self.threshold = threshold
        self.limit = limit

    def resolve(
        self,
        name: str,
        index: CatalogIndex | None,
        category: str | None = None,
    ) -> ResolutionOutcome:
        if index is None:
            return ResolutionOutcome(
                query=name,
                category=category,
                candidates=(),
                best=None,
                confidence=ConfidenceTier.NONE,
                match_detail=CATALOG_NOT_LOADED,
                catalog_loaded=False,
            )

        candidates = find_candidates(name, category, index, threshold=self.threshold, limit=self.limit)
        best = best_candidate(candidates)
        tier = best.confidence if best else ConfidenceTier.NONE
        detail = describe_match(best, tier)

        # Several exact hits still auto-accept the top-ranked one
        if tier == ConfidenceTier.EXCELLENT:
            others = [c for c in candidates[1:] if c.score >= 1.0]
            if others:
                suffix = "match" if len(others) == 1 else "matches"
                detail = f"{detail} (+{len(others)} other exact {suffix})"

        logger.debug("[Resolution] %r -> %s (%s)", name, tier.value, detail)
        return ResolutionOutcome(
            query=name,
            category=category,
            candidates=tuple(candidates),
            best=best,
            confidence=tier,
            match_detail=detail,
        )

    def decide(self, outcome: ResolutionOutcome, is_duplicate: bool) -> tuple[bool, str]:
        """Return ``(auto_accept, match_detail)``.

        Only excellent and high confidence matches that are not duplicates of
        an already placed asset go straight to placement.
        """
        if is_duplicate and outcome.best is not None:
            detail = f"Duplicate of existing entry '{outcome.best.entry.name}'; {outcome.match_detail}"
            return False, detail
        return outcome.confidence in AUTO_ACCEPT_TIERS, outcome.match_detail

    def direct_assignment(self, entry_name: str, category: str) -> ResolutionOutcome:
        """Synthetic excellent outcome for a user override."""
        candidate = MatchCandidate(CatalogEntry(name=entry_name, category=category), 1.0, MatchedVia.NAME_EXACT)
        return ResolutionOutcome(
            query=entry_name,
            category=category,
            candidates=(candidate,),
            best=candidate,
            confidence=ConfidenceTier.EXCELLENT,
            match_detail=USER_CONFIRMED,
        )
