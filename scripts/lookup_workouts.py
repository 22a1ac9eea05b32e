#!/usr/bin/env python
"""Load workouts into a cache and run a lookup against them.

Usage:
    python -m scripts.lookup_workouts --workouts data/workouts.json \
        --query "5k interval training" --filter sport_type=run

The workouts file holds a JSON list of objects with ``id``, ``text`` and
optional ``metadata``. Exits non-zero when the best decision is a miss, so
the script can gate smoke tests against a live embedding service.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from workout_cache.config import get_settings
from workout_cache.items.models import Item
from workout_cache.logging_config import get_logger, setup_logging
from workout_cache.service import build_cache_service

logger = get_logger(__name__)


def parse_filter_args(pairs: list[str]) -> dict[str, Any]:
    """Turn ``key=value`` pairs into a filter mapping.

    Numeric values are passed as numbers; repeated keys become a list.
    """
    filters: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got {pair!r}")
        value: Any = int(raw) if raw.isdigit() else raw
        if key in filters:
            existing = filters[key]
            filters[key] = [*existing, value] if isinstance(existing, list) else [existing, value]
        else:
            filters[key] = value
    return filters


async def run_lookup(
    workouts_path: Path,
    query: str,
    filters: dict[str, Any],
    limit: int | None,
    output_path: Path | None = None,
) -> bool:
    """Store the workouts, run one lookup and report it.

    Returns:
        True if the lookup was a hit.
    """
    setup_logging(level="INFO")
    settings = get_settings()

    logger.info(f"Loading workouts from {workouts_path}")
    raw_items = json.loads(workouts_path.read_text())

    service = build_cache_service(settings)
    try:
        for raw in raw_items:
            await service.store(Item.model_validate({**raw, "raw_payload": raw}))
        # Managed backends only see the workouts after a refresh
        await service.refresh()

        lookup = await service.find_cached(query, filters=filters, limit=limit)
    finally:
        await service.close()

    # Print summary
    print("\n" + "=" * 60)
    print("CACHE LOOKUP")
    print("=" * 60)
    print(f"Query: {query}")
    print(f"Backend: {settings.cache.backend.value}")
    print(f"Stored Workouts: {len(raw_items)}")
    print(f"Decision: {lookup.decision.value}")
    if lookup.degraded:
        print(f"Degraded: {lookup.error_code}")
    print("\nCandidates:")
    for result in lookup.results:
        print(f"  {result.item_id}: {result.score:.4f} ({result.decision.value})")
    print("=" * 60)

    if output_path:
        output_path.write_text(lookup.model_dump_json(indent=2))
        logger.info(f"Lookup saved to {output_path}")

    return lookup.is_hit


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run a cache lookup against a set of workouts",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--workouts",
        type=Path,
        required=True,
        help="Path to workouts JSON file",
    )
    parser.add_argument(
        "--query",
        required=True,
        help="Workout request text",
    )
    parser.add_argument(
        "--filter",
        action="append",
        default=[],
        help="Metadata constraint as key=value (repeatable)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum candidates to return",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Path to save the lookup JSON",
    )

    args = parser.parse_args()

    try:
        filters = parse_filter_args(args.filter)
    except ValueError as e:
        parser.error(str(e))

    hit = asyncio.run(
        run_lookup(
            workouts_path=args.workouts,
            query=args.query,
            filters=filters,
            limit=args.limit,
            output_path=args.output,
        )
    )

    sys.exit(0 if hit else 1)


if __name__ == "__main__":
    main()
