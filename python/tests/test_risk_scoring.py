"""
Unit tests for the keyword risk scoring heuristic.
"""

import pytest

from risk_scoring import (
    BASE_SCORE,
    HIGH_RISK,
    MEDIUM_RISK,
    compute_entry_score,
    compute_score,
    empty_distribution,
    match_rule,
    score_bucket,
)


class TestComputeScore:
    """Tests for compute_score."""

    def test_neutral_reason_scores_base(self):
        assert compute_score("Left without paying", False, False) == BASE_SCORE

    @pytest.mark.parametrize("reason", [
        "Fraud and theft",
        "suspected FRAUD",
        "caught in a scam",
        "violence at the counter",
        "criminal record",
        "Theft of equipment",
    ])
    def test_high_risk_keywords(self, reason):
        score = compute_score(reason, False, False)
        assert score == 80

    @pytest.mark.parametrize("reason", [
        "Unpaid invoice dispute",
        "customer complaint",
        "contract BREACH",
    ])
    def test_medium_risk_keywords(self, reason):
        assert compute_score(reason, False, False) == 65

    def test_keyword_matches_inside_words(self):
        assert compute_score("defrauded the shop", False, False) == 80

    def test_high_risk_takes_precedence_over_medium(self):
        # +30 only, never +45
        assert compute_score("fraud dispute", False, False) == 80

    def test_evidence_bonuses(self):
        assert compute_score("nothing notable", True, False) == 60
        assert compute_score("nothing notable", False, True) == 60
        assert compute_score("nothing notable", True, True) == 70

    def test_clamped_at_100(self):
        assert compute_score("fraud", True, True) == 100

    def test_medium_risk_range_with_evidence(self):
        scores = {
            compute_score("unpaid", docs, face)
            for docs in (False, True) for face in (False, True)
        }
        assert scores == {65, 75, 85}
        assert compute_score("unpaid", True, False) == 75

    def test_medium_below_high_for_equal_flags(self):
        for docs in (False, True):
            for face in (False, True):
                assert compute_score("dispute", docs, face) < compute_score("scam", docs, face)

    @pytest.mark.parametrize("reason", ["fraud", "dispute", "plain text", ""])
    def test_monotonic_in_evidence(self, reason):
        assert (
            compute_score(reason, False, False)
            <= compute_score(reason, True, False)
            <= compute_score(reason, True, True)
        )

    def test_deterministic(self):
        assert compute_score("Scam artist", True, False) == compute_score("Scam artist", True, False)


class TestRules:
    """Tests for rule matching helpers."""

    def test_match_rule_returns_first_match(self):
        assert match_rule("a breach and a theft") is HIGH_RISK
        assert match_rule("a breach") is MEDIUM_RISK
        assert match_rule("nothing") is None

    def test_compute_entry_score_uses_field_presence(self):
        assert compute_entry_score("fraud", [], None) == 80
        assert compute_entry_score("fraud", ["doc.pdf"], None) == 90
        assert compute_entry_score("fraud", [], "") == 80
        assert compute_entry_score("fraud", None, "face.jpg") == 90


class TestBuckets:
    """Tests for score distribution buckets."""

    @pytest.mark.parametrize("score,label", [
        (0, "0-20"), (20, "0-20"), (21, "21-40"), (50, "41-60"),
        (61, "61-80"), (80, "61-80"), (81, "81-100"), (100, "81-100"),
    ])
    def test_score_bucket(self, score, label):
        assert score_bucket(score) == label

    def test_score_bucket_out_of_range(self):
        with pytest.raises(ValueError):
            score_bucket(101)

    def test_empty_distribution_has_five_zero_buckets(self):
        distribution = empty_distribution()
        assert [b["range"] for b in distribution] == ["0-20", "21-40", "41-60", "61-80", "81-100"]
        assert all(b["count"] == 0 for b in distribution)
