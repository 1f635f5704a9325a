"""Phase1DirectiveProcessor: per-document schema directives.

Runs strictly before any cross-document step.  Two directives, always
in this order because filters may assume flattened input:

1. ``x-flatten-arrays`` : Deep-flatten the named frontmatter key.
2. ``x-jmespath-filter``: Replace the annotated property's value with
   the result of a JMESPath expression.

A document without frontmatter, or a run without a schema, passes
through untouched.  Filter failures are fatal for the document.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import jmespath
from jmespath.exceptions import JMESPathError

from fm2schema.domain.errors import FilterExpressionFailed

if TYPE_CHECKING:
    from fm2schema.domain.document import Document
    from fm2schema.domain.path_model import PathModel
    from fm2schema.domain.schema import Schema

logger = logging.getLogger(__name__)

STAGE = "directives"


def flatten_deep(values: list[Any]) -> list[Any]:
    """Collapse arbitrarily nested lists into a single level.

    Examples:
        >>> flatten_deep([["a", ["b"]], "c", [[["d"]]]])
        ['a', 'b', 'c', 'd']
        >>> flatten_deep([[], []])
        []
    """
    flat: list[Any] = []
    stack: list[Any] = [iter(values)]
    while stack:
        for item in stack[-1]:
            if isinstance(item, list):
                stack.append(iter(item))
                break
            flat.append(item)
        else:
            stack.pop()
    return flat


class Phase1DirectiveProcessor:
    """Apply document-local directives declared in the schema."""

    def process(self, document: Document, schema: Schema | None) -> Document:
        """Flatten then filter one document's frontmatter.

        Returns the same Document instance when nothing changed.

        Raises:
            FilterExpressionFailed: A filter expression is malformed or
                fails to evaluate.
        """
        if schema is None or document.frontmatter is None:
            return document

        data = self.flatten_arrays(document.frontmatter, schema)
        try:
            data = self.apply_filter_expressions(data, schema)
        except FilterExpressionFailed as exc:
            exc.detail.setdefault("document", str(document.path))
            raise
        return document.with_frontmatter(data)

    def flatten_arrays(self, data: PathModel, schema: Schema) -> PathModel:
        """Deep-flatten every key named by an ``x-flatten-arrays`` directive.

        Non-array and missing values are left alone.  If no value changed
        the original instance is returned.
        """
        result = data
        for directive in schema.flatten_directives():
            lookup = result.lookup(directive.key)
            if not lookup.found or not isinstance(lookup.value, list):
                continue
            flattened = flatten_deep(lookup.value)
            if flattened == lookup.value:
                continue
            logger.debug(
                "Flattened %s (%d -> %d items)", directive.key, len(lookup.value), len(flattened)
            )
            result = result.set(directive.key, flattened)
        return result

    def apply_filter_expressions(self, data: PathModel, schema: Schema) -> PathModel:
        """Evaluate every ``x-jmespath-filter`` against its property's value.

        Properties missing from the document are skipped.  A ``None``
        result leaves the original value in place.

        Raises:
            FilterExpressionFailed: Compile or evaluation error.
        """
        result = data
        for directive in schema.filter_directives():
            lookup = result.lookup(directive.path)
            if not lookup.found:
                continue
            try:
                compiled = jmespath.compile(directive.expression)
                filtered = compiled.search(lookup.value)
            except (JMESPathError, TypeError, ValueError) as exc:
                msg = (
                    f"Filter expression {directive.expression!r} failed at "
                    f"{directive.path!r}: {exc}"
                )
                raise FilterExpressionFailed(
                    msg,
                    stage=STAGE,
                    detail={"path": directive.path, "expression": directive.expression},
                ) from exc
            if filtered is None:
                continue
            result = result.set(directive.path, filtered)
        return result
