"""Tests for PathModel: parsing, lookup, persistent set, merge."""

from datetime import date

import pytest

from fm2schema.domain.errors import ErrorCode, InvalidPathError
from fm2schema.domain.path_model import (
    ArrayIndex,
    PathErrorKind,
    PathModel,
    Projection,
    Property,
    format_path,
    parse_path,
    to_json_value,
)


class TestParsePath:
    def test_dotted(self) -> None:
        assert parse_path("tools.commands") == [Property("tools"), Property("commands")]

    @pytest.mark.parametrize("path", ["items.0", "items.[0]", "items[0]"])
    def test_index_forms(self, path: str) -> None:
        assert parse_path(path) == [Property("items"), ArrayIndex(0)]

    def test_chained_indices(self) -> None:
        assert parse_path("grid[1][2].x") == [
            Property("grid"),
            ArrayIndex(1),
            ArrayIndex(2),
            Property("x"),
        ]

    def test_projection_requires_opt_in(self) -> None:
        with pytest.raises(InvalidPathError):
            parse_path("commands[].c1")
        assert parse_path("commands[].c1", allow_projection=True) == [
            Property("commands"),
            Projection(),
            Property("c1"),
        ]

    @pytest.mark.parametrize("path", ["", "  ", "a..b", ".a", "a.", "a[x]", "a[0"])
    def test_malformed(self, path: str) -> None:
        with pytest.raises(InvalidPathError) as exc_info:
            parse_path(path)
        assert exc_info.value.code == ErrorCode.INVALID_PATH

    def test_format_is_canonical(self) -> None:
        assert format_path(parse_path("a[0].b")) == "a.[0].b"


class TestToJsonValue:
    def test_dates_become_iso(self) -> None:
        assert to_json_value({"d": date(2024, 1, 2)}) == {"d": "2024-01-02"}

    def test_keys_become_strings_and_tuples_lists(self) -> None:
        assert to_json_value({1: (1, 2)}) == {"1": [1, 2]}

    def test_rejects_objects(self) -> None:
        with pytest.raises(TypeError):
            to_json_value({"x": object()})


class TestLookup:
    model = PathModel({"a": {"b": [10, {"c": "deep"}]}, "s": "text"})

    def test_found(self) -> None:
        assert self.model.lookup("a.b[1].c").value == "deep"
        assert self.model.get("a.b.0") == 10

    def test_missing_key_is_not_found(self) -> None:
        result = self.model.lookup("a.missing")
        assert not result.found
        assert result.error is not None
        assert result.error.kind == PathErrorKind.NOT_FOUND
        assert result.error.segment == 1

    def test_out_of_range_is_not_found(self) -> None:
        result = self.model.lookup("a.b[5]")
        assert result.error is not None
        assert result.error.kind == PathErrorKind.NOT_FOUND

    def test_property_on_scalar_is_wrong_shape(self) -> None:
        result = self.model.lookup("s.x")
        assert result.error is not None
        assert result.error.kind == PathErrorKind.WRONG_SHAPE

    def test_index_on_object_is_wrong_shape(self) -> None:
        result = self.model.lookup("a[0]")
        assert result.error is not None
        assert result.error.kind == PathErrorKind.WRONG_SHAPE

    def test_invalid_path_never_raises(self) -> None:
        result = self.model.lookup("a..b")
        assert not result.found
        assert result.error is not None
        assert result.error.kind == PathErrorKind.INVALID_PATH

    def test_get_default(self) -> None:
        assert self.model.get("nope", "fallback") == "fallback"

    def test_found_none_value(self) -> None:
        model = PathModel({"n": None})
        assert model.lookup("n").found
        assert model.has("n")


class TestSet:
    def test_returns_new_model_and_leaves_original(self) -> None:
        original = PathModel({"a": {"b": 1}})
        updated = original.set("a.b", 2)
        assert original.get("a.b") == 1
        assert updated.get("a.b") == 2

    def test_creates_intermediates(self) -> None:
        assert PathModel().set("x.y.z", []).data == {"x": {"y": {"z": []}}}

    def test_shares_untouched_branches(self) -> None:
        original = PathModel({"left": {"deep": [1, 2]}, "right": {"v": 1}})
        updated = original.set("right.v", 2)
        assert updated.data["left"] is original.data["left"]
        assert updated.data["right"] is not original.data["right"]

    def test_index_write(self) -> None:
        model = PathModel({"items": [{"v": 1}, {"v": 2}]})
        assert model.set("items[1].v", 3).get("items.1.v") == 3
        assert model.get("items.1.v") == 2

    def test_index_into_non_array_raises(self) -> None:
        with pytest.raises(InvalidPathError):
            PathModel({"a": {}}).set("a[0]", 1)

    def test_index_out_of_range_raises(self) -> None:
        with pytest.raises(InvalidPathError):
            PathModel({"a": [1]}).set("a[3]", 1)

    def test_leading_index_raises(self) -> None:
        with pytest.raises(InvalidPathError):
            PathModel().set("[0]", 1)

    def test_value_is_normalised(self) -> None:
        assert PathModel().set("d", date(2024, 5, 1)).get("d") == "2024-05-01"


class TestMergeAndKeys:
    def test_merge_is_shallow_and_right_biased(self) -> None:
        left = PathModel({"a": {"x": 1}, "b": 1})
        right = PathModel({"a": {"y": 2}})
        assert left.merge(right).data == {"a": {"y": 2}, "b": 1}

    def test_merge_accepts_mapping(self) -> None:
        assert PathModel({"a": 1}).merge({"b": 2}) == {"a": 1, "b": 2}

    def test_all_keys_treat_arrays_as_terminal(self) -> None:
        model = PathModel({"a": {"b": {"c": 1}}, "list": [{"x": 1}]})
        assert model.all_keys() == ["a", "a.b", "a.b.c", "list"]

    def test_constructor_copies_input(self) -> None:
        raw = {"a": [1]}
        model = PathModel(raw)
        raw["a"].append(2)
        assert model.get("a") == [1]

    def test_to_dict_is_detached(self) -> None:
        model = PathModel({"a": [1]})
        copy = model.to_dict()
        copy["a"].append(2)
        assert model.get("a") == [1]
