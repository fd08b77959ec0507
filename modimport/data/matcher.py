"""Rank catalog entries against a free-form name.

Matching precedence, first non-empty result set wins:

1. name_exact  - query and entry name contain one another
2. token_match - query and an alias (or skin variant name) contain one another
3. fuzzy       - LCS ratio over name and alias terms, kept above a threshold

A name or alias shorter than three characters only counts as contained in
the query when it is a whole word there, so "Ei" matches "Ei Outfit" but not
"Beidou". Such short terms are also left out of fuzzy scoring.

Thresholds differ per call site: suggestions are permissive so badly named
folders still surface something, search is stricter once the user has typed
enough for literal hits.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
import re
from typing import Any

from .catalog import CatalogEntry, CatalogIndex
from .similarity import best_score

SUGGESTION_THRESHOLD = 0.25
SEARCH_THRESHOLD = 0.2
FILTER_THRESHOLD = 0.1

HIGH_THRESHOLD = 0.75
MEDIUM_THRESHOLD = 0.5

SUGGESTION_LIMIT = 4
DEFAULT_RESULT_LIMIT = 20
MAX_RESULT_LIMIT = 120

# Queries shorter than this only get literal (substring) hits
MIN_FUZZY_QUERY_LENGTH = 3

# Names and aliases shorter than this only match inside a query as a whole word
MIN_CONTAINED_TERM_LENGTH = 3

_WORD_RE = re.compile(r"[^\W_]+")


class MatchedVia(StrEnum):
    NAME_EXACT = "name_exact"
    TOKEN_MATCH = "token_match"
    FUZZY = "fuzzy"


class ConfidenceTier(StrEnum):
    EXCELLENT = "excellent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    @property
    def label(self) -> str:
        return self.value.capitalize()


_TIER_RANK = {
    ConfidenceTier.NONE: 0,
    ConfidenceTier.LOW: 1,
    ConfidenceTier.MEDIUM: 2,
    ConfidenceTier.HIGH: 3,
    ConfidenceTier.EXCELLENT: 4,
}


def confidence_tier(score: float, threshold: float = SUGGESTION_THRESHOLD) -> ConfidenceTier:
    """Map a candidate score to its confidence tier."""
    if score >= 1.0:
        return ConfidenceTier.EXCELLENT
    if score >= HIGH_THRESHOLD:
        return ConfidenceTier.HIGH
    if score >= MEDIUM_THRESHOLD:
        return ConfidenceTier.MEDIUM
    if score > 0.0 and score >= threshold:
        return ConfidenceTier.LOW
    return ConfidenceTier.NONE


def capped_limit(limit: int | None, *, default: int = DEFAULT_RESULT_LIMIT) -> int:
    if limit is None:
        return default
    return max(1, min(int(limit), MAX_RESULT_LIMIT))


@dataclass(frozen=True)
class MatchCandidate:
    entry: CatalogEntry
    score: float
    matched_via: MatchedVia
    # Low boundary the candidate was filtered with
    threshold: float = SUGGESTION_THRESHOLD

    @property
    def confidence(self) -> ConfidenceTier:
        return confidence_tier(self.score, self.threshold)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.entry.name,
            "category": self.entry.category,
            "score": round(self.score, 3),
            "matched_via": self.matched_via.value,
            "thumbnail_reference": self.entry.thumbnail_reference,
        }


def _contains_either_way(query: str, target: str) -> bool:
    target = target.lower()
    if not target:
        return False
    if query in target:
        return True
    if target not in query:
        return False
    return len(target) >= MIN_CONTAINED_TERM_LENGTH or target in _WORD_RE.findall(query)


def _rank(candidates: list[MatchCandidate], limit: int) -> list[MatchCandidate]:
    # Equal scores: the longer (more specific) name wins, then alphabetical
    candidates.sort(key=lambda c: (-c.score, -len(c.entry.name), c.entry.name.lower()))
    return candidates[:limit]


def find_candidates(
    query: str,
    category: str | None,
    index: CatalogIndex,
    threshold: float = SUGGESTION_THRESHOLD,
    limit: int | None = DEFAULT_RESULT_LIMIT,
) -> list[MatchCandidate]:
    """Ranked candidates for ``query`` within ``category`` (or the fallback scope)."""
    q = query.strip().lower()
    if not q:
        return []

    max_results = capped_limit(limit)
    entries = index.entries_for(category)

    exact = [
        MatchCandidate(entry, 1.0, MatchedVia.NAME_EXACT, threshold)
        for entry in entries
        if _contains_either_way(q, entry.name)
    ]
    if exact:
        return _rank(exact, max_results)

    token = [
        MatchCandidate(entry, 1.0, MatchedVia.TOKEN_MATCH, threshold)
        for entry in entries
        if any(_contains_either_way(q, term) for term in entry.alias_terms())
    ]
    if token:
        return _rank(token, max_results)

    if len(q) < MIN_FUZZY_QUERY_LENGTH:
        return []

    fuzzy: list[MatchCandidate] = []
    for entry in entries:
        terms = [
            term
            for term in (entry.name, *entry.alias_terms())
            if len(term.strip()) >= MIN_CONTAINED_TERM_LENGTH
        ]
        score = best_score(q, terms)
        if score > 0.0 and score >= threshold:
            fuzzy.append(MatchCandidate(entry, score, MatchedVia.FUZZY, threshold))
    return _rank(fuzzy, max_results)


def best_candidate(candidates: list[MatchCandidate]) -> MatchCandidate | None:
    return candidates[0] if candidates else None
