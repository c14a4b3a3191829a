import logging
from typing import Iterable, List, Optional, Tuple

from festmix.domain.entities import ArtistMatchDiagnostic, ArtistSearchResult, SIMILARITY_THRESHOLD
from festmix.domain.similarity import best_match


logger = logging.getLogger(__name__)

POOR_MATCH_THRESHOLD = 0.9


class ArtistMatcher:
    """Picks the catalog artist that best matches a requested name.

    Matching is purely name based: every candidate returned by the platform
    search is scored with the edit-distance similarity and the first
    candidate with the highest score wins. Whether the winner is accepted is
    decided by ``ArtistSearchResult.matched``; rejected winners are still
    returned so diagnostics can show what was suppressed.
    """

    def __init__(self, platform_label: str = ""):
        """Initialize the matcher.

        Args:
            platform_label: Platform name used in log lines
        """
        self.platform_label = platform_label

    def match(self, requested: str, candidates: Iterable[Tuple[str, str]]) -> Optional[ArtistSearchResult]:
        """Find the best match for ``requested``.

        Args:
            requested: Artist name as read from the lineup
            candidates: ``(artist_id, artist_name)`` pairs in platform order

        Returns:
            ArtistSearchResult for the best candidate, or None when there are none
        """
        winner = best_match(requested, (((artist_id, name), name) for artist_id, name in candidates))
        if winner is None:
            logger.info(f"[{self.platform_label}] No results for artist: {requested}")
            return None

        (artist_id, name), score = winner
        result = ArtistSearchResult(id=artist_id, name=name, similarity=score)

        if not result.matched:
            logger.warning(
                f"[{self.platform_label}] Low match for \"{requested}\": found \"{result.name}\" "
                f"(similarity: {score:.2f}, threshold: {SIMILARITY_THRESHOLD})"
            )
        elif score < 1.0:
            logger.info(
                f"[{self.platform_label}] Fuzzy match: \"{requested}\" -> \"{result.name}\" "
                f"(similarity: {score:.2f})"
            )
        else:
            logger.debug(f"[{self.platform_label}] Exact match: \"{requested}\" -> \"{result.name}\"")

        return result


def calculate_match_rate(diagnostics: List[ArtistMatchDiagnostic]) -> float:
    """Share of requested artists that were accepted (0.0 to 1.0)."""
    if not diagnostics:
        return 0.0
    return sum(1 for d in diagnostics if d.matched) / len(diagnostics)


def summarize_matches(diagnostics: List[ArtistMatchDiagnostic]) -> dict:
    """Get detailed statistics about artist match diagnostics.

    Returns:
        Dictionary with total, matched, fuzzy, low_confidence, not_found and match_rate
    """
    total = len(diagnostics)
    matched = sum(1 for d in diagnostics if d.matched)
    fuzzy = sum(1 for d in diagnostics if d.matched and d.similarity < POOR_MATCH_THRESHOLD)
    low_confidence = sum(1 for d in diagnostics if d.found is not None and not d.matched)
    not_found = sum(1 for d in diagnostics if d.found is None)

    return {
        "total": total,
        "matched": matched,
        "fuzzy": fuzzy,
        "low_confidence": low_confidence,
        "not_found": not_found,
        "match_rate": calculate_match_rate(diagnostics),
    }
