"""Reducers that turn N per-document data sets into one.

Three closed strategies behind :class:`AggregationStrategy`:

- ``single``: exactly one source, returned verbatim.
- ``array``: wrap every source under ``array_key`` with a document count.
- ``merge``: deep key-by-key merge under a :class:`ConflictResolution`
  policy.

:func:`create_strategy` is the only constructor callers should use;
:func:`select_strategy` picks one from the source count.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from fm2schema.domain.errors import EmptySourceSet, IncompatibleStrategy
from fm2schema.domain.path_model import PathModel

logger = logging.getLogger(__name__)

STAGE = "aggregation"

type Source = PathModel | Mapping[str, Any]


class StrategyKind(StrEnum):
    SINGLE = "single"
    ARRAY = "array"
    MERGE = "merge"


class ConflictResolution(StrEnum):
    FIRST_WINS = "first-wins"
    LAST_WINS = "last-wins"
    ARRAY_COMBINE = "array-combine"


class StrategyConfig(BaseModel):
    """Options shared by all strategies; each reads only what it needs."""

    model_config = {"frozen": True}

    array_key: str = "documents"
    include_metadata: bool = True
    preserve_arrays: bool = True
    deep_merge: bool = True
    conflict_resolution: ConflictResolution = ConflictResolution.LAST_WINS


@dataclass(frozen=True)
class AggregationResult:
    data: PathModel
    source_count: int
    strategy_name: str
    execution_time_ms: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.data.to_dict(),
            "source_count": self.source_count,
            "strategy_name": self.strategy_name,
            "execution_time_ms": self.execution_time_ms,
        }


def _as_dict(source: Source) -> dict[str, Any]:
    if isinstance(source, PathModel):
        return source.to_dict()
    return PathModel(source).to_dict()


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class AggregationStrategy(ABC):
    """Combines a sequence of sources into one PathModel."""

    kind: StrategyKind

    def __init__(self, config: StrategyConfig | None = None) -> None:
        self.config = config or StrategyConfig()

    @abstractmethod
    def combine(self, sources: Sequence[Source]) -> PathModel: ...

    @abstractmethod
    def is_compatible(self, source_count: int) -> bool: ...

    def describe(self) -> str:
        return self.kind.value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.config!r})"


class SingleSourceStrategy(AggregationStrategy):
    kind = StrategyKind.SINGLE

    def is_compatible(self, source_count: int) -> bool:
        return source_count == 1

    def combine(self, sources: Sequence[Source]) -> PathModel:
        if not self.is_compatible(len(sources)):
            msg = f"Single-source strategy needs exactly 1 source, got {len(sources)}"
            raise IncompatibleStrategy(
                msg, stage=STAGE, detail={"strategy": self.kind.value, "source_count": len(sources)}
            )
        return PathModel(_as_dict(sources[0]))


class ArrayAggregationStrategy(AggregationStrategy):
    """``{array_key: [...], totalDocuments: N, aggregationMetadata?: {...}}``."""

    kind = StrategyKind.ARRAY

    def is_compatible(self, source_count: int) -> bool:
        return source_count >= 1

    def combine(self, sources: Sequence[Source]) -> PathModel:
        if not sources:
            msg = "Array aggregation needs at least one source"
            raise EmptySourceSet(msg, stage=STAGE, detail={"strategy": self.kind.value})

        data: dict[str, Any] = {
            self.config.array_key: [_as_dict(s) for s in sources],
            "totalDocuments": len(sources),
        }
        if self.config.include_metadata:
            data["aggregationMetadata"] = {
                "strategy": self.kind.value,
                "sourceCount": len(sources),
            }
        return PathModel(data)

    def describe(self) -> str:
        return f"array (key={self.config.array_key!r})"


class MergeAggregationStrategy(AggregationStrategy):
    """Deep merge in document order.

    For a key present in several sources: objects merge recursively
    (when ``deep_merge``), arrays concatenate (when ``preserve_arrays``),
    anything else follows ``conflict_resolution``.
    """

    kind = StrategyKind.MERGE

    def is_compatible(self, source_count: int) -> bool:
        return source_count >= 1

    def combine(self, sources: Sequence[Source]) -> PathModel:
        if not sources:
            msg = "Merge aggregation needs at least one source"
            raise EmptySourceSet(msg, stage=STAGE, detail={"strategy": self.kind.value})

        merged: dict[str, Any] = {}
        for source in sources:
            merged = self._merge_objects(merged, _as_dict(source))
        return PathModel(merged)

    def describe(self) -> str:
        return f"merge ({self.config.conflict_resolution.value})"

    def _merge_objects(self, left: dict[str, Any], right: dict[str, Any]) -> dict[str, Any]:
        result = dict(left)
        for key, incoming in right.items():
            if key in result:
                result[key] = self._merge_values(result[key], incoming)
            else:
                result[key] = incoming
        return result

    def _merge_values(self, existing: Any, incoming: Any) -> Any:
        match existing, incoming:
            case dict(), dict() if self.config.deep_merge:
                return self._merge_objects(existing, incoming)
            case list(), list() if self.config.preserve_arrays:
                return [*existing, *incoming]
        return self._resolve_conflict(existing, incoming)

    def _resolve_conflict(self, existing: Any, incoming: Any) -> Any:
        match self.config.conflict_resolution:
            case ConflictResolution.FIRST_WINS:
                return existing
            case ConflictResolution.LAST_WINS:
                return incoming
            case ConflictResolution.ARRAY_COMBINE:
                if isinstance(existing, list):
                    return [*existing, incoming]
                return [existing, incoming]


# ---------------------------------------------------------------------------
# Factory and selection
# ---------------------------------------------------------------------------


def create_strategy(kind: StrategyKind | str, config: StrategyConfig | None = None) -> AggregationStrategy:
    """Build a strategy for *kind*.

    Raises:
        ValueError: *kind* is not a :class:`StrategyKind` value.
    """
    match StrategyKind(kind):
        case StrategyKind.SINGLE:
            return SingleSourceStrategy(config)
        case StrategyKind.ARRAY:
            return ArrayAggregationStrategy(config)
        case StrategyKind.MERGE:
            return MergeAggregationStrategy(config)


def select_strategy(source_count: int, config: StrategyConfig | None = None) -> AggregationStrategy:
    """0 sources is an error, 1 is single-source, more is array.

    Merge is never chosen automatically; request it explicitly.
    """
    if source_count <= 0:
        msg = "Cannot select a strategy for zero sources"
        raise EmptySourceSet(msg, stage=STAGE)
    if source_count == 1:
        return create_strategy(StrategyKind.SINGLE, config)
    return create_strategy(StrategyKind.ARRAY, config)


def aggregate(
    sources: Sequence[Source],
    strategy: AggregationStrategy | None = None,
    config: StrategyConfig | None = None,
) -> AggregationResult:
    """Combine *sources*, timing the call."""
    chosen = strategy or select_strategy(len(sources), config)
    start = time.perf_counter()
    data = chosen.combine(sources)
    elapsed = (time.perf_counter() - start) * 1000
    logger.debug("Aggregated %d source(s) with %s in %.2fms", len(sources), chosen.describe(), elapsed)
    return AggregationResult(
        data=data,
        source_count=len(sources),
        strategy_name=chosen.kind.value,
        execution_time_ms=round(elapsed, 3),
    )
