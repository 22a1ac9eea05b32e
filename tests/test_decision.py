"""Tests for the cache decision policy."""

import pytest

from workout_cache.config import SimilarityThresholds
from workout_cache.decision.policy import CacheDecision, DecisionPolicy


class TestCacheDecision:
    """Tests for CacheDecision ordering."""

    def test_ordering(self) -> None:
        """MISS < GOOD < VERY_GOOD < EXCELLENT."""
        assert (
            CacheDecision.MISS
            < CacheDecision.GOOD
            < CacheDecision.VERY_GOOD
            < CacheDecision.EXCELLENT
        )
        assert max(CacheDecision) is CacheDecision.EXCELLENT

    def test_is_hit(self) -> None:
        """Everything but MISS is a hit."""
        assert not CacheDecision.MISS.is_hit
        assert CacheDecision.GOOD.is_hit
        assert CacheDecision.EXCELLENT.is_hit

    def test_serializes_as_value(self) -> None:
        """Decisions are plain strings on the wire."""
        assert CacheDecision.VERY_GOOD.value == "very_good"
        assert CacheDecision("excellent") is CacheDecision.EXCELLENT


class TestDecisionPolicy:
    """Tests for DecisionPolicy."""

    @pytest.mark.parametrize(
        ("score", "expected"),
        [
            (1.0, CacheDecision.EXCELLENT),
            (0.90, CacheDecision.EXCELLENT),
            (0.8999, CacheDecision.VERY_GOOD),
            (0.80, CacheDecision.VERY_GOOD),
            (0.75, CacheDecision.GOOD),
            (0.70, CacheDecision.GOOD),
            (0.6999, CacheDecision.MISS),
            (0.0, CacheDecision.MISS),
        ],
    )
    def test_default_thresholds(self, score: float, expected: CacheDecision) -> None:
        """Thresholds are inclusive lower bounds."""
        assert DecisionPolicy().decide(score) is expected

    def test_monotonic(self) -> None:
        """A higher score never yields a worse decision."""
        policy = DecisionPolicy()
        scores = [i / 100 for i in range(101)]
        decisions = [policy.decide(s) for s in scores]
        assert all(a <= b for a, b in zip(decisions, decisions[1:], strict=False))

    def test_custom_thresholds(self) -> None:
        """Thresholds come from configuration."""
        policy = DecisionPolicy(SimilarityThresholds(excellent=0.95, very_good=0.9, good=0.5))
        assert policy.decide(0.92) is CacheDecision.VERY_GOOD
        assert policy.decide(0.55) is CacheDecision.GOOD

    def test_best_of_scores(self) -> None:
        """best labels the highest score."""
        policy = DecisionPolicy()
        assert policy.best([0.2, 0.85, 0.5]) is CacheDecision.VERY_GOOD

    def test_best_of_nothing_is_miss(self) -> None:
        """No candidates means MISS."""
        assert DecisionPolicy().best([]) is CacheDecision.MISS
