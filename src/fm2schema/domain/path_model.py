"""PathModel: immutable, path-addressable frontmatter container.

Paths are dotted strings parsed into segments:

- ``title``              → ``Property("title")``
- ``tools.commands``     → ``Property("tools"), Property("commands")``
- ``items.0`` / ``items.[0]`` / ``items[0]`` → ``..., ArrayIndex(0)``
- ``commands[].c1``      → ``Property("commands"), Projection(), Property("c1")``

``Projection`` is only meaningful to the derivation engine; PathModel
navigation rejects it as an invalid path.

INVARIANT: A PathModel never mutates its mapping.  ``set`` copies only
the containers along the written path and shares every untouched
branch with the previous model by reference.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from fm2schema.domain.errors import InvalidPathError

type JsonValue = None | bool | int | float | str | list[JsonValue] | dict[str, JsonValue]

_INDEX_RE = re.compile(r"^\[(\d+)\]$")
_INTEGER_RE = re.compile(r"^\d+$")
_BRACKET_SUFFIX_RE = re.compile(r"\[(\d*)\]")


# ---------------------------------------------------------------------------
# Path segments
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Property:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class ArrayIndex:
    index: int

    def __str__(self) -> str:
        return f"[{self.index}]"


@dataclass(frozen=True)
class Projection:
    """``[]`` marker: map the rest of the path over every array element."""

    def __str__(self) -> str:
        return "[]"


type Segment = Property | ArrayIndex | Projection


class PathErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    WRONG_SHAPE = "wrong_shape"
    INVALID_PATH = "invalid_path"


@dataclass(frozen=True)
class PathError:
    """Typed navigation failure returned by :meth:`PathModel.lookup`."""

    kind: PathErrorKind
    path: str
    message: str
    segment: int | None = None


@dataclass(frozen=True)
class PathLookup:
    """Outcome of a path lookup: either ``found`` with a value, or an error."""

    found: bool
    value: Any = None
    error: PathError | None = None


def parse_path(path: str, *, allow_projection: bool = False) -> list[Segment]:
    """Parse a dotted path into segments.

    Raises:
        InvalidPathError: On empty paths or empty segments, or a ``[]``
            projection when *allow_projection* is False.
    """
    if not isinstance(path, str) or not path.strip():
        msg = f"Path must be a non-empty string, got {path!r}"
        raise InvalidPathError(msg, detail={"path": path})

    segments: list[Segment] = []
    for raw in path.split("."):
        if raw == "":
            msg = f"Empty segment in path {path!r}"
            raise InvalidPathError(msg, detail={"path": path})

        index_match = _INDEX_RE.match(raw)
        if index_match:
            segments.append(ArrayIndex(int(index_match.group(1))))
            continue
        if _INTEGER_RE.match(raw):
            segments.append(ArrayIndex(int(raw)))
            continue

        # ``name[0]``, ``name[]``, ``name[0][1]``
        head, _, _ = raw.partition("[")
        suffix = raw[len(head) :]
        if suffix and _BRACKET_SUFFIX_RE.sub("", suffix) != "":
            msg = f"Malformed segment {raw!r} in path {path!r}"
            raise InvalidPathError(msg, detail={"path": path})
        if head:
            segments.append(Property(head))
        for bracket in _BRACKET_SUFFIX_RE.finditer(suffix):
            if bracket.group(1) == "":
                if not allow_projection:
                    msg = f"Projection '[]' is not allowed in path {path!r}"
                    raise InvalidPathError(msg, detail={"path": path})
                segments.append(Projection())
            else:
                segments.append(ArrayIndex(int(bracket.group(1))))

    return segments


def format_path(segments: list[Segment]) -> str:
    """Inverse of :func:`parse_path` (canonical dotted form)."""
    return ".".join(str(s) for s in segments)


# ---------------------------------------------------------------------------
# Normalisation of parsed YAML/JSON into plain JSON values
# ---------------------------------------------------------------------------


def to_json_value(value: Any) -> JsonValue:
    """Convert parsed YAML/JSON data into plain ``dict``/``list``/scalars.

    Dates become ISO strings, tuples become lists, mapping keys become
    strings.  Unsupported objects raise ``TypeError``.
    """
    match value:
        case None | bool() | int() | float() | str():
            return value
        case datetime() | date():
            return value.isoformat()
        case Mapping():
            return {str(k): to_json_value(v) for k, v in value.items()}
        case list() | tuple():
            return [to_json_value(v) for v in value]
        case _:
            msg = f"Unsupported frontmatter value type: {type(value).__name__}"
            raise TypeError(msg)


# ---------------------------------------------------------------------------
# PathModel
# ---------------------------------------------------------------------------


class PathModel:
    """Immutable, path-addressable key/value container."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = to_json_value(data or {})  # type: ignore[assignment]

    @classmethod
    def _wrap(cls, data: dict[str, Any]) -> PathModel:
        """Wrap an already-normalised dict without copying it."""
        model = cls.__new__(cls)
        model._data = data
        return model

    # -- read ---------------------------------------------------------------

    @property
    def data(self) -> Mapping[str, Any]:
        """The underlying mapping.  Treat as read-only."""
        return self._data

    def to_dict(self) -> dict[str, Any]:
        """Deep copy of the data, safe to mutate."""
        return copy.deepcopy(self._data)

    def lookup(self, path: str) -> PathLookup:
        """Navigate *path*; never raises."""
        try:
            segments = parse_path(path)
        except InvalidPathError as exc:
            return PathLookup(
                found=False,
                error=PathError(PathErrorKind.INVALID_PATH, str(path), exc.message),
            )

        current: Any = self._data
        for position, segment in enumerate(segments):
            match segment, current:
                case Property(name), dict():
                    if name not in current:
                        return _not_found(path, position, f"Key {name!r} not found")
                    current = current[name]
                case Property(name), _:
                    return _wrong_shape(
                        path, position, f"Expected object at {name!r}, got {_kind(current)}"
                    )
                case ArrayIndex(index), list():
                    if index >= len(current):
                        return _not_found(
                            path, position, f"Index {index} out of range (length {len(current)})"
                        )
                    current = current[index]
                case ArrayIndex(index), _:
                    return _wrong_shape(
                        path, position, f"Expected array at [{index}], got {_kind(current)}"
                    )
        return PathLookup(found=True, value=current)

    def get(self, path: str, default: Any = None) -> Any:
        """Value at *path*, or *default* when the lookup fails."""
        result = self.lookup(path)
        return result.value if result.found else default

    def has(self, path: str) -> bool:
        return self.lookup(path).found

    def keys(self) -> Iterator[str]:
        return iter(self._data)

    def all_keys(self) -> list[str]:
        """Dotted paths of every key; arrays are terminal (no index keys)."""
        keys: list[str] = []

        def walk(node: Mapping[str, Any], prefix: str) -> None:
            for key, value in node.items():
                dotted = f"{prefix}.{key}" if prefix else key
                keys.append(dotted)
                if isinstance(value, dict):
                    walk(value, dotted)

        walk(self._data, "")
        return keys

    # -- write --------------------------------------------------------------

    def set(self, path: str, value: Any) -> PathModel:
        """Return a new model with *value* written at *path*.

        Missing or non-object intermediates on property segments are
        replaced with fresh objects.

        Raises:
            InvalidPathError: Malformed path, or an index segment that
                addresses a non-array or an out-of-range position.
        """
        segments = parse_path(path)
        if not isinstance(segments[0], Property):
            msg = f"Path {path!r} must start with a property name"
            raise InvalidPathError(msg, detail={"path": path})
        new_root = _assoc(self._data, segments, to_json_value(value), path)
        return PathModel._wrap(new_root)

    def merge(self, other: PathModel | Mapping[str, Any]) -> PathModel:
        """Shallow, right-biased top-level merge."""
        right = other._data if isinstance(other, PathModel) else PathModel(other)._data
        return PathModel._wrap({**self._data, **right})

    # -- dunder -------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PathModel):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        return bool(self._data)

    def __repr__(self) -> str:
        return f"PathModel({self._data!r})"


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


def _kind(value: Any) -> str:
    match value:
        case None:
            return "null"
        case dict():
            return "object"
        case list():
            return "array"
        case bool():
            return "boolean"
        case int() | float():
            return "number"
        case str():
            return "string"
        case _:
            return type(value).__name__


def _not_found(path: str, segment: int, message: str) -> PathLookup:
    return PathLookup(
        found=False,
        error=PathError(PathErrorKind.NOT_FOUND, path, message, segment),
    )


def _wrong_shape(path: str, segment: int, message: str) -> PathLookup:
    return PathLookup(
        found=False,
        error=PathError(PathErrorKind.WRONG_SHAPE, path, message, segment),
    )


def _assoc(node: Any, segments: list[Segment], value: Any, path: str) -> Any:
    """Copy-on-write association along *segments* (spine copy only)."""
    if not segments:
        return value

    head, rest = segments[0], segments[1:]
    match head:
        case Property(name):
            base = node if isinstance(node, dict) else {}
            updated = dict(base)
            updated[name] = _assoc(base.get(name), rest, value, path)
            return updated
        case ArrayIndex(index):
            if not isinstance(node, list):
                msg = f"Cannot index [{index}] into {_kind(node)} in path {path!r}"
                raise InvalidPathError(msg, detail={"path": path})
            if index >= len(node):
                msg = f"Index {index} out of range (length {len(node)}) in path {path!r}"
                raise InvalidPathError(msg, detail={"path": path})
            items = list(node)
            items[index] = _assoc(node[index], rest, value, path)
            return items
        case _:
            msg = f"Projection '[]' cannot be written to in path {path!r}"
            raise InvalidPathError(msg, detail={"path": path})
