"""String similarity scoring for catalog matching.

The score is a longest-common-subsequence ratio with a substring
short-circuit:

- empty input on either side scores 0.0
- one string containing the other (case-insensitive) scores 1.0
- otherwise LCS length divided by the length of the shorter string

Example: "Dilucc" vs "Diluc" → substring, 1.0; "Dilucc" vs "Dilc" → 4/4 = 1.0;
"Dilucc" vs "Diluk" → LCS "Dilu" = 4, min length 5 → 0.8
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from .catalog import CatalogEntry


def lcs_length(a: str, b: str) -> int:
    """Length of the longest common subsequence of ``a`` and ``b``.

    Uses two rolling rows sized by the shorter string, so memory is
    O(min(len(a), len(b))).
    """
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return 0

    prev = [0] * (len(b) + 1)
    curr = [0] * (len(b) + 1)
    for ch_a in a:
        for j, ch_b in enumerate(b, start=1):
            if ch_a == ch_b:
                curr[j] = prev[j - 1] + 1
            else:
                curr[j] = max(prev[j], curr[j - 1])
        prev, curr = curr, prev
    return prev[len(b)]


def fuzzy_score(query: str, target: str) -> float:
    """Case-insensitive similarity in [0, 1] between ``query`` and ``target``."""
    if not query or not target:
        return 0.0

    q = query.lower()
    t = target.lower()

    if q in t or t in q:
        return 1.0

    return lcs_length(q, t) / min(len(q), len(t))


def best_score(query: str, terms: Iterable[str]) -> float:
    """Highest ``fuzzy_score`` of ``query`` against any of ``terms``."""
    best = 0.0
    for term in terms:
        score = fuzzy_score(query, term)
        if score > best:
            best = score
            if best == 1.0:
                break
    return best


def entry_score(query: str, entry: "CatalogEntry") -> float:
    """Score an entry by its name and every alias term."""
    return best_score(query, (entry.name, *entry.alias_terms()))
