"""Semantic cache for generated workouts."""

__version__ = "0.1.0"
