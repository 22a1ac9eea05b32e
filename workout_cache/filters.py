"""Typed metadata filters.

Callers pass filters as a plain mapping of attribute name to constraint:

    {"sport_type": "run"}                              # equality
    {"sport_type": ["run", "trail_run"]}               # membership
    {"distance_meters": {"gte": 4500, "lte": 6000}}    # range

The mapping is validated against the workout metadata schema before it
reaches any backend, so both backends see the same constraint objects.
"""

from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from workout_cache.exceptions import ErrorCode, InvalidQueryError
from workout_cache.items.models import WorkoutMetadata

AttributeValue = str | int | float

# Attribute name -> value type; must match WorkoutMetadata.
METADATA_SCHEMA: dict[str, type] = {
    "sport_type": str,
    "difficulty": str,
    "duration_seconds": int,
    "distance_meters": int,
    "generation_model": str,
    "source": str,
    "version": str,
}

_RANGE_OPERATORS = frozenset({"gte", "lte"})
_OPERATORS = _RANGE_OPERATORS | {"eq", "in"}


class Equals(BaseModel):
    """Attribute equals a value."""

    kind: Literal["eq"] = "eq"
    attribute: str
    value: AttributeValue

    def matches(self, actual: Any) -> bool:
        return actual is not None and actual == self.value


class OneOf(BaseModel):
    """Attribute is one of several values."""

    kind: Literal["in"] = "in"
    attribute: str
    values: list[AttributeValue] = Field(min_length=1)

    def matches(self, actual: Any) -> bool:
        return actual is not None and actual in self.values


class Range(BaseModel):
    """Numeric attribute within inclusive bounds."""

    kind: Literal["range"] = "range"
    attribute: str
    gte: float | None = None
    lte: float | None = None

    def matches(self, actual: Any) -> bool:
        if actual is None:
            return False
        if self.gte is not None and actual < self.gte:
            return False
        if self.lte is not None and actual > self.lte:
            return False
        return True


Constraint = Annotated[Equals | OneOf | Range, Field(discriminator="kind")]


class MetadataFilter(BaseModel):
    """Conjunction of validated constraints."""

    constraints: list[Constraint] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.constraints

    def matches(self, metadata: WorkoutMetadata) -> bool:
        """Return True if every constraint holds for ``metadata``."""
        return all(
            c.matches(getattr(metadata, c.attribute)) for c in self.constraints
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _check_value(
    attribute: str,
    value: Any,
    allow_fraction: bool = False,
) -> AttributeValue:
    expected = METADATA_SCHEMA[attribute]
    if expected is int:
        ok = _is_number(value) and (allow_fraction or float(value).is_integer())
    else:
        ok = isinstance(value, expected)
    if not ok:
        raise InvalidQueryError(
            f"Filter value for {attribute!r} must be {expected.__name__}, "
            f"got {type(value).__name__}",
            code=ErrorCode.FILTER_TYPE_MISMATCH,
            details={"attribute": attribute, "value": repr(value)},
        )
    if expected is int and not allow_fraction:
        return int(value)
    return value


def _parse_operators(attribute: str, operators: Mapping[str, Any]) -> list[Constraint]:
    unknown = set(operators) - _OPERATORS
    if unknown or not operators:
        raise InvalidQueryError(
            f"Unsupported filter operator for {attribute!r}: {sorted(unknown) or '{}'}",
            details={"attribute": attribute, "allowed": sorted(_OPERATORS)},
        )

    constraints: list[Constraint] = []
    if "eq" in operators:
        constraints.append(
            Equals(attribute=attribute, value=_check_value(attribute, operators["eq"]))
        )
    if "in" in operators:
        constraints.append(_parse_one_of(attribute, operators["in"]))

    bounds = {op: operators[op] for op in _RANGE_OPERATORS if op in operators}
    if bounds:
        if METADATA_SCHEMA[attribute] is not int:
            raise InvalidQueryError(
                f"Range filter is only valid on numeric attributes, not {attribute!r}",
                code=ErrorCode.FILTER_TYPE_MISMATCH,
                details={"attribute": attribute},
            )
        for value in bounds.values():
            _check_value(attribute, value, allow_fraction=True)
        gte, lte = bounds.get("gte"), bounds.get("lte")
        if gte is not None and lte is not None and gte > lte:
            raise InvalidQueryError(
                f"Empty range for {attribute!r}: gte {gte} > lte {lte}",
                details={"attribute": attribute},
            )
        constraints.append(Range(attribute=attribute, gte=gte, lte=lte))

    return constraints


def _parse_one_of(attribute: str, values: Any) -> OneOf:
    if not isinstance(values, list | tuple) or not values:
        raise InvalidQueryError(
            f"Membership filter for {attribute!r} needs a non-empty list",
            details={"attribute": attribute},
        )
    return OneOf(
        attribute=attribute,
        values=[_check_value(attribute, v) for v in values],
    )


def parse_filters(raw: Mapping[str, Any] | MetadataFilter | None) -> MetadataFilter:
    """Validate a raw filter mapping against the metadata schema.

    Args:
        raw: Attribute -> constraint mapping, an already parsed filter, or None.

    Returns:
        MetadataFilter with one or more constraints per attribute.

    Raises:
        InvalidQueryError: On unknown attributes, bad operators or type mismatches.
    """
    if raw is None:
        return MetadataFilter()
    if isinstance(raw, MetadataFilter):
        return raw
    if not isinstance(raw, Mapping):
        raise InvalidQueryError(
            "Filters must be a mapping of attribute to constraint",
            details={"type": type(raw).__name__},
        )

    constraints: list[Constraint] = []
    for attribute, value in raw.items():
        if attribute not in METADATA_SCHEMA:
            raise InvalidQueryError(
                f"Unknown filter attribute: {attribute!r}",
                code=ErrorCode.UNKNOWN_ATTRIBUTE,
                details={"attribute": attribute, "known": sorted(METADATA_SCHEMA)},
            )
        if isinstance(value, Mapping):
            constraints.extend(_parse_operators(attribute, value))
        elif isinstance(value, list | tuple):
            constraints.append(_parse_one_of(attribute, value))
        else:
            constraints.append(
                Equals(attribute=attribute, value=_check_value(attribute, value))
            )

    return MetadataFilter(constraints=constraints)
