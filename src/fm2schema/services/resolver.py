"""SchemaPathResolver: place per-document payloads where the schema says.

Insertion points are the properties (at any depth, through ``properties``
chains only) that carry ``x-frontmatter-part``.  The payload list is
written at each point; intermediate objects are created on demand.

INVARIANT: If any insertion point is nested (dotted), the result is
always the full structure, even for a single document.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from fm2schema.domain.errors import SchemaAnnotationMissing, StructureSynthesisFailed
from fm2schema.domain.path_model import PathModel
from fm2schema.domain.schema import Schema

logger = logging.getLogger(__name__)

STAGE = "structure"


@dataclass(frozen=True)
class InsertionPoint:
    """One ``x-frontmatter-part`` location.

    ``source_key`` is set when the annotation is a string: the slot is
    then filled with each document's value at that key instead of the
    whole payload.
    """

    path: str
    source_key: str | None = None

    @property
    def nested(self) -> bool:
        return "." in self.path


class SchemaPathResolver:
    """Builds the output structure from ``x-frontmatter-part`` annotations."""

    def find_insertion_points(self, schema: Schema) -> list[InsertionPoint]:
        points = [
            InsertionPoint(path=path, source_key=value if isinstance(value, str) else None)
            for path, value in schema.frontmatter_parts()
        ]
        logger.debug("Found %d insertion point(s): %s", len(points), [p.path for p in points])
        return points

    @staticmethod
    def has_nested_paths(points: Sequence[InsertionPoint]) -> bool:
        return any(p.nested for p in points)

    def resolve(self, schema: Schema, payloads: Sequence[Mapping[str, Any]]) -> PathModel:
        """Place *payloads* at every insertion point.

        Raises:
            SchemaAnnotationMissing: The schema has no insertion point.
            StructureSynthesisFailed: One insertion point lies inside
                another, so both cannot hold an array.
        """
        points = self.find_insertion_points(schema)
        if not points:
            msg = "Schema declares no x-frontmatter-part property"
            raise SchemaAnnotationMissing(msg, stage=STAGE)
        _check_disjoint(points)

        if len(payloads) == 1 and len(points) == 1 and self._can_unwrap(points[0]):
            logger.debug("Single document at top-level point %r; returning it unwrapped", points[0].path)
            return PathModel(payloads[0])

        structure = PathModel()
        for point in points:
            structure = structure.set(point.path, _slot_values(point, payloads))
        return structure

    def create_empty_structure(self, schema: Schema) -> PathModel:
        """Skeleton with an empty array at every insertion point."""
        return self.resolve(schema, [])

    def _can_unwrap(self, point: InsertionPoint) -> bool:
        return not point.nested and point.source_key is None


def _slot_values(point: InsertionPoint, payloads: Sequence[Mapping[str, Any]]) -> list[Any]:
    if point.source_key is None:
        return [dict(p) for p in payloads]

    values: list[Any] = []
    for payload in payloads:
        lookup = PathModel(payload).lookup(point.source_key)
        if not lookup.found:
            continue
        if isinstance(lookup.value, list):
            values.extend(lookup.value)
        else:
            values.append(lookup.value)
    return values


def _check_disjoint(points: Sequence[InsertionPoint]) -> None:
    paths = [p.path for p in points]
    for outer in paths:
        for inner in paths:
            if inner.startswith(f"{outer}."):
                msg = f"Insertion point {inner!r} is nested inside insertion point {outer!r}"
                raise StructureSynthesisFailed(
                    msg, stage=STAGE, detail={"outer": outer, "inner": inner}
                )
