import logging

from festmix.application.matching import ArtistMatcher, calculate_match_rate, summarize_matches
from festmix.domain.entities import ArtistMatchDiagnostic


class TestArtistMatcher:
    """Tests for name-based artist matching."""

    def setup_method(self):
        self.matcher = ArtistMatcher("Spotify")

    def test_no_candidates(self):
        assert self.matcher.match("Muse", []) is None

    def test_exact_match(self):
        result = self.matcher.match("Muse", [("id1", "Muse Tribute"), ("id2", "muse")])

        assert result.id == "id2"
        assert result.name == "muse"
        assert result.similarity == 1.0
        assert result.matched is True

    def test_rejected_winner_is_returned(self):
        result = self.matcher.match("Radiohead", [("id1", "Coldplay")])

        assert result is not None
        assert result.matched is False

    def test_low_match_is_logged_as_warning(self, caplog):
        with caplog.at_level(logging.INFO, logger="festmix"):
            self.matcher.match("Radiohead", [("id1", "Coldplay")])

        assert any(r.levelno == logging.WARNING and "Low match" in r.getMessage() for r in caplog.records)

    def test_fuzzy_match_is_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="festmix"):
            result = self.matcher.match("Beyonce", [("id1", "Beyoncé")])

        assert result.matched is True
        assert any("Fuzzy match" in r.getMessage() for r in caplog.records)


class TestMatchSummary:

    def test_match_rate_of_empty_list(self):
        assert calculate_match_rate([]) == 0.0

    def test_summary_counts(self):
        diagnostics = [
            ArtistMatchDiagnostic("Muse", "Muse", 1.0, True),
            ArtistMatchDiagnostic("Beyonce", "Beyoncé", 0.857, True),
            ArtistMatchDiagnostic("Radiohead", "Coldplay", 0.2, False),
            ArtistMatchDiagnostic("Nobody", None, 0.0, False),
        ]

        stats = summarize_matches(diagnostics)

        assert stats == {
            "total": 4,
            "matched": 2,
            "fuzzy": 1,
            "low_confidence": 1,
            "not_found": 1,
            "match_rate": 0.5,
        }
