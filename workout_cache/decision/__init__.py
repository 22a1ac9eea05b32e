"""Cache decision policy module."""

from workout_cache.decision.policy import CacheDecision, DecisionPolicy

__all__ = [
    "CacheDecision",
    "DecisionPolicy",
]
