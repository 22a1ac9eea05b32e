"""Score to cache-decision mapping."""

from enum import Enum

from workout_cache.config import SimilarityThresholds


class CacheDecision(str, Enum):
    """Outcome of comparing a similarity score against the thresholds.

    Ordered MISS < GOOD < VERY_GOOD < EXCELLENT.
    """

    EXCELLENT = "excellent"
    VERY_GOOD = "very_good"
    GOOD = "good"
    MISS = "miss"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @property
    def is_hit(self) -> bool:
        """Whether the caller may reuse the cached workout."""
        return self is not CacheDecision.MISS

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, CacheDecision):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, CacheDecision):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, CacheDecision):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, CacheDecision):
            return NotImplemented
        return self.rank >= other.rank


_RANKS = {
    CacheDecision.MISS: 0,
    CacheDecision.GOOD: 1,
    CacheDecision.VERY_GOOD: 2,
    CacheDecision.EXCELLENT: 3,
}


class DecisionPolicy:
    """Maps a similarity score to a CacheDecision.

    Pure and backend-agnostic. Thresholds are lower bounds (inclusive):
    a score equal to ``excellent`` is EXCELLENT.
    """

    def __init__(self, thresholds: SimilarityThresholds | None = None) -> None:
        """Initialize the policy.

        Args:
            thresholds: Score thresholds. Uses defaults if not provided.
        """
        self._thresholds = thresholds or SimilarityThresholds()

    @property
    def thresholds(self) -> SimilarityThresholds:
        return self._thresholds

    def decide(self, score: float) -> CacheDecision:
        """Label a single similarity score."""
        if score >= self._thresholds.excellent:
            return CacheDecision.EXCELLENT
        if score >= self._thresholds.very_good:
            return CacheDecision.VERY_GOOD
        if score >= self._thresholds.good:
            return CacheDecision.GOOD
        return CacheDecision.MISS

    def best(self, scores: list[float]) -> CacheDecision:
        """Decision for the best of several scores; MISS when empty."""
        if not scores:
            return CacheDecision.MISS
        return self.decide(max(scores))
