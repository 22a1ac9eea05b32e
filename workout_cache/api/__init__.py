"""HTTP API for the workout cache."""
