"""Tests for the aggregation strategies, factory and selection."""

import pytest

from fm2schema.domain.errors import EmptySourceSet, IncompatibleStrategy
from fm2schema.domain.path_model import PathModel
from fm2schema.services.strategies import (
    ArrayAggregationStrategy,
    ConflictResolution,
    MergeAggregationStrategy,
    SingleSourceStrategy,
    StrategyConfig,
    StrategyKind,
    aggregate,
    create_strategy,
    select_strategy,
)


def _merge(**config: object) -> MergeAggregationStrategy:
    return MergeAggregationStrategy(StrategyConfig(**config))  # type: ignore[arg-type]


class TestSingleSource:
    def test_returns_payload_verbatim(self) -> None:
        assert SingleSourceStrategy().combine([{"a": 1}]) == {"a": 1}

    @pytest.mark.parametrize("count", [0, 2])
    def test_other_cardinality_fails(self, count: int) -> None:
        with pytest.raises(IncompatibleStrategy):
            SingleSourceStrategy().combine([{"a": i} for i in range(count)])


class TestArrayAggregation:
    def test_empty_fails(self) -> None:
        with pytest.raises(EmptySourceSet):
            ArrayAggregationStrategy().combine([])

    def test_two_sources(self) -> None:
        result = ArrayAggregationStrategy().combine([{"a": 1}, PathModel({"b": 2})])
        assert result.get("totalDocuments") == 2
        assert result.get("documents") == [{"a": 1}, {"b": 2}]
        assert result.get("aggregationMetadata") == {"strategy": "array", "sourceCount": 2}

    def test_custom_key_without_metadata(self) -> None:
        strategy = ArrayAggregationStrategy(StrategyConfig(array_key="items", include_metadata=False))
        assert strategy.combine([{"a": 1}]).data == {"items": [{"a": 1}], "totalDocuments": 1}


class TestMergeAggregation:
    @pytest.mark.parametrize(
        ("policy", "expected"),
        [
            (ConflictResolution.LAST_WINS, 2),
            (ConflictResolution.FIRST_WINS, 1),
            (ConflictResolution.ARRAY_COMBINE, [1, 2]),
        ],
    )
    def test_conflict_policies(self, policy: ConflictResolution, expected: object) -> None:
        result = _merge(conflict_resolution=policy).combine([{"x": 1}, {"x": 2}])
        assert result.get("x") == expected

    def test_last_wins_is_default(self) -> None:
        assert MergeAggregationStrategy().combine([{"x": 1}, {"x": 2}]).get("x") == 2

    def test_array_combine_extends_in_encounter_order(self) -> None:
        result = _merge(conflict_resolution="array-combine").combine([{"x": 1}, {"x": 2}, {"x": 3}])
        assert result.get("x") == [1, 2, 3]

    def test_empty_fails(self) -> None:
        with pytest.raises(EmptySourceSet):
            MergeAggregationStrategy().combine([])

    def test_deep_merge(self) -> None:
        result = MergeAggregationStrategy().combine(
            [{"meta": {"a": 1, "n": {"x": 1}}}, {"meta": {"b": 2, "n": {"y": 2}}}]
        )
        assert result.get("meta") == {"a": 1, "n": {"x": 1, "y": 2}, "b": 2}

    def test_shallow_when_deep_merge_off(self) -> None:
        result = _merge(deep_merge=False).combine([{"meta": {"a": 1}}, {"meta": {"b": 2}}])
        assert result.get("meta") == {"b": 2}

    def test_arrays_concatenate(self) -> None:
        result = MergeAggregationStrategy().combine([{"tags": ["x", "y"]}, {"tags": ["y", "z"]}])
        assert result.get("tags") == ["x", "y", "y", "z"]

    def test_arrays_follow_policy_without_preserve(self) -> None:
        result = _merge(preserve_arrays=False).combine([{"tags": ["x"]}, {"tags": ["z"]}])
        assert result.get("tags") == ["z"]

    def test_disjoint_keys_union(self) -> None:
        assert MergeAggregationStrategy().combine([{"a": 1}, {"b": 2}]) == {"a": 1, "b": 2}

    def test_sources_are_not_mutated(self) -> None:
        first = {"meta": {"a": 1}}
        MergeAggregationStrategy().combine([first, {"meta": {"b": 2}}])
        assert first == {"meta": {"a": 1}}


class TestFactoryAndSelection:
    @pytest.mark.parametrize(
        ("kind", "cls"),
        [
            ("single", SingleSourceStrategy),
            (StrategyKind.ARRAY, ArrayAggregationStrategy),
            ("merge", MergeAggregationStrategy),
        ],
    )
    def test_create(self, kind: str, cls: type) -> None:
        assert isinstance(create_strategy(kind), cls)

    def test_unknown_kind(self) -> None:
        with pytest.raises(ValueError):
            create_strategy("nope")

    def test_select_zero_fails(self) -> None:
        with pytest.raises(EmptySourceSet):
            select_strategy(0)

    def test_select_one_is_single(self) -> None:
        assert select_strategy(1).kind is StrategyKind.SINGLE

    def test_select_many_is_array_not_merge(self) -> None:
        assert select_strategy(3).kind is StrategyKind.ARRAY

    def test_compatibility(self) -> None:
        assert SingleSourceStrategy().is_compatible(1)
        assert not SingleSourceStrategy().is_compatible(2)
        assert not ArrayAggregationStrategy().is_compatible(0)


class TestAggregate:
    def test_result_fields(self) -> None:
        result = aggregate([{"a": 1}, {"a": 2}])
        assert result.source_count == 2
        assert result.strategy_name == "array"
        assert result.execution_time_ms >= 0
        assert result.to_dict()["data"]["totalDocuments"] == 2

    def test_explicit_strategy(self) -> None:
        result = aggregate([{"a": 1}, {"a": 2}], strategy=create_strategy("merge"))
        assert result.data == {"a": 2}
