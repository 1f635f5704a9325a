"""DerivationRuleEngine: cross-document summary fields.

A rule reads the array at ``source_path`` inside the resolved structure,
projects each element's terminal property into a flat list, optionally
de-duplicates it (first-seen order), and writes the list at
``target_field``.

Source paths may mark projections explicitly (``commands[].c1``) or
implicitly: a property segment applied to an array maps over its
elements.  A leaf that is itself an array is spread into the result.

INVARIANT: Rules are additive.  A source that is missing, or that never
passes through an array, contributes nothing and creates no key.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, NoReturn

from fm2schema.domain.errors import InvalidPathError, RuleConversionFailed
from fm2schema.domain.path_model import (
    ArrayIndex,
    PathModel,
    Projection,
    Property,
    Segment,
    parse_path,
)
from fm2schema.domain.schema import DerivationRule, RuleDeclaration

logger = logging.getLogger(__name__)

STAGE = "derivation"


@dataclass(frozen=True)
class RuleFailure:
    declaration: RuleDeclaration
    reason: str


@dataclass(frozen=True)
class RuleConversionReport:
    """Outcome of converting raw declarations: partial success is valid."""

    succeeded: tuple[DerivationRule, ...] = ()
    failed: tuple[RuleFailure, ...] = ()

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def warnings(self) -> list[str]:
        return [
            f"Derivation rule {f.declaration.origin or '?'} skipped: {f.reason}"
            for f in self.failed
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": [
                {"sourcePath": r.source_path, "targetField": r.target_field, "unique": r.unique}
                for r in self.succeeded
            ],
            "failed": [
                {**f.declaration.to_dict(), "reason": f.reason} for f in self.failed
            ],
        }


@dataclass
class _Walk:
    values: list[Any] = field(default_factory=list)
    through_array: bool = False


class DerivationRuleEngine:
    """Converts declarations into rules and applies them to a structure."""

    # -- conversion ---------------------------------------------------------

    def convert(self, declaration: RuleDeclaration) -> DerivationRule:
        """Validate one declaration.

        Raises:
            RuleConversionFailed: Missing or malformed fields.
        """
        source = declaration.source_path
        target = declaration.target_field
        unique = declaration.unique

        if not isinstance(source, str) or not source.strip():
            self._reject(declaration, "sourcePath must be a non-empty string")
        if not isinstance(target, str) or not target.strip():
            self._reject(declaration, "targetField must be a non-empty string")
        if not isinstance(unique, bool):
            self._reject(declaration, f"unique must be a boolean, got {unique!r}")

        try:
            parse_path(source, allow_projection=True)
        except InvalidPathError as exc:
            self._reject(declaration, f"invalid sourcePath: {exc.message}")
        try:
            parse_path(target)
        except InvalidPathError as exc:
            self._reject(declaration, f"invalid targetField: {exc.message}")

        return DerivationRule(source_path=source, target_field=target, unique=unique)

    def convert_rules(self, declarations: Sequence[RuleDeclaration]) -> RuleConversionReport:
        """Convert every declaration; failures are reported, never raised."""
        succeeded: list[DerivationRule] = []
        failed: list[RuleFailure] = []
        for declaration in declarations:
            try:
                succeeded.append(self.convert(declaration))
            except RuleConversionFailed as exc:
                logger.warning("Rule %s rejected: %s", declaration.origin, exc.message)
                failed.append(RuleFailure(declaration=declaration, reason=exc.message))
        return RuleConversionReport(succeeded=tuple(succeeded), failed=tuple(failed))

    @staticmethod
    def _reject(declaration: RuleDeclaration, reason: str) -> NoReturn:
        raise RuleConversionFailed(
            reason, stage=STAGE, detail={"rule": declaration.to_dict()}
        )

    # -- application --------------------------------------------------------

    def derive(self, base: PathModel, rule: DerivationRule) -> list[Any] | None:
        """Values *rule* would write, or None when the source does not apply."""
        segments = parse_path(rule.source_path, allow_projection=True)
        walk = _Walk()
        if not _collect(base.data, segments, walk) or not walk.through_array:
            return None
        if rule.unique:
            return unique_in_order(walk.values)
        return walk.values

    def apply(self, base: PathModel, rules: Sequence[DerivationRule]) -> PathModel:
        """Apply *rules* in order; each sees the output of the previous one.

        Raises:
            InvalidPathError: A target field cannot be written (e.g. it
                indexes into a non-array).
        """
        result = base
        for rule in rules:
            values = self.derive(result, rule)
            if values is None:
                logger.debug("Rule %s -> %s skipped: no array source", rule.source_path, rule.target_field)
                continue
            try:
                result = result.set(rule.target_field, values)
            except InvalidPathError as exc:
                msg = f"Cannot write derived field {rule.target_field!r}: {exc.message}"
                raise InvalidPathError(
                    msg,
                    stage=STAGE,
                    detail={"sourcePath": rule.source_path, "targetField": rule.target_field},
                ) from exc
            logger.debug("Derived %s (%d values)", rule.target_field, len(values))
        return result


def unique_in_order(values: Sequence[Any]) -> list[Any]:
    """Drop repeats, keeping the first occurrence.

    Examples:
        >>> unique_in_order(["a", "b", "a"])
        ['a', 'b']
        >>> unique_in_order([{"k": 1}, {"k": 1}, 1])
        [{'k': 1}, 1]
    """
    seen: set[str] = set()
    result: list[Any] = []
    for value in values:
        key = json.dumps(value, sort_keys=True)
        if key in seen:
            continue
        seen.add(key)
        result.append(value)
    return result


def _collect(node: Any, segments: list[Segment], walk: _Walk) -> bool:
    """Walk *segments* from *node*, appending terminal values to *walk*.

    Returns False when the path does not resolve at all.
    """
    match segments:
        case []:
            if isinstance(node, list):
                walk.through_array = True
                walk.values.extend(node)
            else:
                walk.values.append(node)
            return True
        case [Projection(), *rest]:
            if not isinstance(node, list):
                return False
            return _spread(node, rest, walk)
        case [Property(), *_] if isinstance(node, list):
            return _spread(node, segments, walk)
        case [Property(name), *rest]:
            if not isinstance(node, dict) or name not in node:
                return False
            return _collect(node[name], rest, walk)
        case [ArrayIndex(index), *rest]:
            if not isinstance(node, list) or index >= len(node):
                return False
            return _collect(node[index], rest, walk)
    return False


def _spread(items: list[Any], rest: list[Segment], walk: _Walk) -> bool:
    walk.through_array = True
    for item in items:
        _collect(item, rest, walk)
    return True
