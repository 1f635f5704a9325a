"""Schema: read-only view over a JSON-Schema-like tree with x- annotations.

Recognised extension keys (on any node reachable through ``properties``):

- ``x-frontmatter-part``: ``true`` or a frontmatter key name; marks where
  per-document payloads are inserted.
- ``x-flatten-arrays``: frontmatter key whose array value is deep-flattened.
- ``x-jmespath-filter``: JMESPath expression applied to the property value.
- ``x-derived-from`` / ``x-derived-unique``: derive this property from a
  source path in the aggregated structure.
- ``x-derived``: list of ``{sourcePath, targetField, unique}`` declarations,
  ``targetField`` relative to the declaring node.
- ``x-template``: template path, relative to the schema file.

Only ``properties`` chains are walked; ``items`` sub-schemas describe
per-document shape and carry no placement annotations.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

FRONTMATTER_PART = "x-frontmatter-part"
FLATTEN_ARRAYS = "x-flatten-arrays"
JMESPATH_FILTER = "x-jmespath-filter"
DERIVED_FROM = "x-derived-from"
DERIVED_UNIQUE = "x-derived-unique"
DERIVED = "x-derived"
TEMPLATE = "x-template"


@dataclass(frozen=True)
class FlattenDirective:
    schema_path: str
    key: str


@dataclass(frozen=True)
class FilterDirective:
    path: str
    expression: str


@dataclass(frozen=True)
class RuleDeclaration:
    """A raw derivation declaration exactly as found in the schema."""

    source_path: Any
    target_field: Any
    unique: Any = False
    origin: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourcePath": self.source_path,
            "targetField": self.target_field,
            "unique": self.unique,
            "origin": self.origin,
        }


@dataclass(frozen=True)
class DerivationRule:
    """Validated derivation rule.

    INVARIANT: ``source_path`` must resolve to an array (directly or via a
    projection) for the rule to contribute; anything else is skipped.
    """

    source_path: str
    target_field: str
    unique: bool = False


@dataclass(frozen=True)
class Schema:
    """Immutable schema wrapper.  Loaded once per run."""

    raw: Mapping[str, Any]
    path: Path | None = None
    _nodes: tuple[tuple[str, Mapping[str, Any]], ...] = field(
        default=(), init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "_nodes", tuple(_walk_properties(self.raw, "")))

    # -- basic accessors ----------------------------------------------------

    @property
    def properties(self) -> Mapping[str, Any]:
        props = self.raw.get("properties")
        return props if isinstance(props, Mapping) else {}

    @property
    def required(self) -> list[str]:
        req = self.raw.get("required")
        if not isinstance(req, list):
            return []
        return [str(r) for r in req]

    @property
    def template(self) -> str | None:
        value = self.raw.get(TEMPLATE)
        return value if isinstance(value, str) and value else None

    def resolve_template_path(self) -> Path | None:
        """``x-template`` resolved against the schema file's directory."""
        template = self.template
        if template is None:
            return None
        candidate = Path(template)
        if candidate.is_absolute() or self.path is None:
            return candidate
        return self.path.parent / candidate

    def iter_properties(self) -> Iterator[tuple[str, Mapping[str, Any]]]:
        """Yield ``(dotted_path, node)`` for every property at any depth."""
        yield from self._nodes

    # -- annotations --------------------------------------------------------

    def frontmatter_parts(self) -> list[tuple[str, Any]]:
        """``(path, annotation_value)`` for every ``x-frontmatter-part``."""
        parts: list[tuple[str, Any]] = []
        for path, node in self._nodes:
            value = node.get(FRONTMATTER_PART)
            if value is True or (isinstance(value, str) and value):
                parts.append((path, value))
        return parts

    def document_required(self) -> list[str]:
        """Keys every single document must carry.

        With insertion points, top-level ``required`` describes the
        aggregated output; each document is an item of a ``true`` part, so
        the part's ``items.required`` applies.  Redirect parts take one key
        per document and impose nothing.  Without insertion points the
        documents are merged into the root and top-level ``required`` is used.
        """
        nodes = dict(self._nodes)
        parts = self.frontmatter_parts()
        if not parts:
            return self.required
        keys: list[str] = []
        for path, value in parts:
            items = nodes[path].get("items")
            if value is not True or not isinstance(items, Mapping):
                continue
            req = items.get("required")
            for key in req if isinstance(req, list) else []:
                if str(key) not in keys:
                    keys.append(str(key))
        return keys

    def flatten_directives(self) -> list[FlattenDirective]:
        directives: list[FlattenDirective] = []
        for path, node in self._nodes:
            key = node.get(FLATTEN_ARRAYS)
            if isinstance(key, str) and key:
                directives.append(FlattenDirective(schema_path=path, key=key))
        return directives

    def filter_directives(self) -> list[FilterDirective]:
        directives: list[FilterDirective] = []
        for path, node in self._nodes:
            expression = node.get(JMESPATH_FILTER)
            if isinstance(expression, str):
                directives.append(FilterDirective(path=path, expression=expression))
        return directives

    def rule_declarations(self) -> list[RuleDeclaration]:
        """All derivation declarations, in schema order."""
        declarations: list[RuleDeclaration] = []
        declarations.extend(_derived_list(self.raw, ""))
        for path, node in self._nodes:
            if DERIVED_FROM in node:
                declarations.append(
                    RuleDeclaration(
                        source_path=node[DERIVED_FROM],
                        target_field=path,
                        unique=node.get(DERIVED_UNIQUE, False),
                        origin=f"{path}.{DERIVED_FROM}",
                    )
                )
            declarations.extend(_derived_list(node, path))
        return declarations

    def defaults(self) -> list[tuple[str, Any]]:
        """``(path, default)`` for every property declaring a ``default``."""
        return [(path, node["default"]) for path, node in self._nodes if "default" in node]


def _walk_properties(node: Mapping[str, Any], prefix: str) -> Iterator[tuple[str, Mapping[str, Any]]]:
    props = node.get("properties")
    if not isinstance(props, Mapping):
        return
    for name, child in props.items():
        if not isinstance(child, Mapping):
            continue
        path = f"{prefix}.{name}" if prefix else str(name)
        yield path, child
        yield from _walk_properties(child, path)


def _derived_list(node: Mapping[str, Any], prefix: str) -> list[RuleDeclaration]:
    raw = node.get(DERIVED)
    if raw is None:
        return []
    entries = raw if isinstance(raw, list) else [raw]
    origin = f"{prefix}.{DERIVED}" if prefix else DERIVED
    declarations: list[RuleDeclaration] = []
    for position, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            declarations.append(
                RuleDeclaration(source_path=None, target_field=None, origin=f"{origin}[{position}]")
            )
            continue
        target = entry.get("targetField")
        if isinstance(target, str) and target and prefix:
            target = f"{prefix}.{target}"
        declarations.append(
            RuleDeclaration(
                source_path=entry.get("sourcePath"),
                target_field=target,
                unique=entry.get("unique", False),
                origin=f"{origin}[{position}]",
            )
        )
    return declarations
