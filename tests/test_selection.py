"""
Test suite for population ranking.

Tests cover:
- Pairwise Pareto scoring on native / non-native ratios
- Error-based scoring
- Elite thresholds and elite extraction
- Coin-flip criterion choice and configuration parsing
"""

import random
from types import SimpleNamespace

import pytest

from contact_evolve.evolutionary.fitness import ErrorScores
from contact_evolve.evolutionary.selection import (
    RankingCriterion,
    choose_criterion,
    elite_threshold,
    error_scores,
    native_ratio_scores,
    parse_criterion,
    rank_candidates,
)


def fake_candidate(native2: int, non2: int, native3: int = 0, non3: int = 0,
                   cm_error: float = 0.0, dm_error=None):
    scores = ErrorScores(contact_map_error=cm_error, distance_map_error=dm_error)
    return SimpleNamespace(
        natives={2: native2, 3: native3},
        non_natives={2: non2, 3: non3},
        errors=lambda: scores
    )


class TestNativeRatioScores:
    """Test the Pareto rule on native / non-native ratios."""

    def test_dominant_candidate_scores_maximum(self):
        """Test that a candidate dominating all others scores P - 1."""
        scores = native_ratio_scores([10, 5, 5, 5], [1, 3, 3, 3])
        assert scores[0] == 3

    def test_ties_award_both(self):
        """Test that equal ratios give both candidates a point."""
        assert native_ratio_scores([4, 4], [2, 2]) == [1, 1]

    def test_tradeoff_awards_neither(self):
        """Test that more natives with more non-natives is no dominance."""
        assert native_ratio_scores([10, 5], [6, 1]) == [0, 0]

    def test_zero_totals(self):
        """Test that pairs without any entries award no point."""
        assert native_ratio_scores([0, 0], [0, 0]) == [0, 0]
        assert native_ratio_scores([0, 0, 2], [0, 0, 0]) == [0, 0, 2]

    def test_length_mismatch(self):
        """Test that count lists must align."""
        with pytest.raises(ValueError):
            native_ratio_scores([1, 2], [1])


class TestErrorScores:
    """Test error-based scoring."""

    def test_lower_error_wins(self):
        """Test that smaller errors accumulate more points."""
        assert error_scores([0.1, 0.2, 0.3]) == [2, 1, 0]

    def test_equal_errors(self):
        """Test that equal errors award both."""
        assert error_scores([0.5, 0.5]) == [1, 1]


class TestRanking:
    """Test elite extraction."""

    def test_thresholds(self):
        """Test the elite thresholds of both rule families."""
        assert elite_threshold(RankingCriterion.POWER2, 8) == pytest.approx(1.0)
        assert elite_threshold(RankingCriterion.POWER3, 10) == pytest.approx(1.5)
        assert elite_threshold(RankingCriterion.CONTACT_MAP_ERROR, 5) == pytest.approx(2.0)

    def test_dominant_candidate_is_elite(self):
        """Test that the dominating candidate is always elite."""
        candidates = [fake_candidate(5, 4)] * 7 + [fake_candidate(20, 1)]
        result = rank_candidates(candidates, RankingCriterion.POWER2)
        assert result.scores[7] == len(candidates) - 1
        assert 7 in result.elite

    def test_power3_uses_third_power(self):
        """Test that power 3 ranking reads the power 3 counts."""
        candidates = [
            fake_candidate(1, 9, native3=9, non3=1),
            fake_candidate(9, 1, native3=1, non3=9),
        ]
        assert rank_candidates(candidates, RankingCriterion.POWER3).scores == [1, 0]
        assert rank_candidates(candidates, RankingCriterion.POWER2).scores == [0, 1]

    def test_elite_in_index_order(self):
        """Test that elite indices are ascending."""
        candidates = [fake_candidate(n, 10 - n) for n in (3, 9, 5, 7)]
        result = rank_candidates(candidates, RankingCriterion.POWER2)
        assert result.elite == sorted(result.elite)
        assert result.threshold == pytest.approx(0.0)

    def test_incomparable_candidates_keep_best(self):
        """Test that the elite set falls back to the best scored candidates."""
        candidates = [fake_candidate(n, n) for n in (1, 2, 3, 4, 5)]
        result = rank_candidates(candidates, RankingCriterion.POWER2)
        assert result.scores == [0, 0, 0, 0, 0]
        assert result.threshold > 0
        assert result.elite == [0, 1, 2, 3, 4]

    def test_contact_map_error_ranking(self):
        """Test ranking by contact map error."""
        candidates = [fake_candidate(0, 0, cm_error=e) for e in (0.3, 0.1, 0.2)]
        result = rank_candidates(candidates, RankingCriterion.CONTACT_MAP_ERROR)
        assert result.scores == [0, 2, 1]
        assert result.elite == [1, 2]

    def test_distance_map_ranking_needs_distances(self):
        """Test that missing distance errors are rejected."""
        candidates = [fake_candidate(0, 0), fake_candidate(0, 0)]
        with pytest.raises(ValueError):
            rank_candidates(candidates, RankingCriterion.DISTANCE_MAP_ERROR)

    def test_to_dict(self):
        """Test the dictionary representation of a ranking."""
        result = rank_candidates([fake_candidate(1, 1)], RankingCriterion.POWER2)
        data = result.to_dict()
        assert data['criterion'] == 'power2'
        assert data['elite'] == [0]


class TestCriterion:
    """Test criterion choice and parsing."""

    def test_coin_flip_covers_both(self):
        """Test that the coin flip yields both native-ratio criteria."""
        rng = random.Random(0)
        seen = {choose_criterion(rng) for _ in range(50)}
        assert seen == {RankingCriterion.POWER2, RankingCriterion.POWER3}

    def test_coin_flip_reproducible(self):
        """Test that seeded coin flips repeat."""
        first = [choose_criterion(random.Random(8)) for _ in range(3)]
        second = [choose_criterion(random.Random(8)) for _ in range(3)]
        assert first == second

    def test_power_property(self):
        """Test the power of each criterion."""
        assert RankingCriterion.POWER2.power == 2
        assert RankingCriterion.POWER3.power == 3
        assert RankingCriterion.CONTACT_MAP_ERROR.power is None
        assert RankingCriterion.DISTANCE_MAP_ERROR.uses_errors

    def test_parse(self):
        """Test parsing configuration values."""
        assert parse_criterion('random') is None
        assert parse_criterion(None) is None
        assert parse_criterion('power3') is RankingCriterion.POWER3
        with pytest.raises(ValueError):
            parse_criterion('fitness')
