from __future__ import annotations

from typing import Iterable, Optional, Tuple, TypeVar

from rapidfuzz.distance import Levenshtein

from .entities import SIMILARITY_THRESHOLD


T = TypeVar("T")

__all__ = [
    "SIMILARITY_THRESHOLD",
    "similarity",
    "best_match",
]


def similarity(requested: str, candidate: str) -> float:
    """Case-insensitive similarity in [0, 1]: ``(maxLen - distance) / maxLen``.

    The distance is the unit-cost Levenshtein distance between the
    lowercased names.
    """
    a = (requested or "").lower()
    b = (candidate or "").lower()
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - Levenshtein.distance(a, b)) / longest


def best_match(requested: str, candidates: Iterable[Tuple[T, str]]) -> Optional[Tuple[T, float]]:
    """Pick the candidate whose name is most similar to ``requested``.

    ``candidates`` yields ``(payload, name)`` pairs. Ties keep the first
    maximal candidate. Returns ``(payload, score)`` or None when empty.
    """
    best: Optional[Tuple[T, float]] = None
    for payload, name in candidates:
        score = similarity(requested, name)
        if best is None or score > best[1]:
            best = (payload, score)
    return best
