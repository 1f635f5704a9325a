"""Error taxonomy for the aggregation engine.

Every failure raised inside the engine is an :class:`Fm2SchemaError`
carrying a machine-readable :class:`ErrorCode`, the pipeline stage it
came from, and a free-form ``detail`` payload.  Services convert these
into ``ServiceError`` values at their boundary; nothing below the
service layer lets a bare exception escape.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Stable error codes surfaced in ``ServiceError.code``."""

    INVALID_PATH = "INVALID_PATH"
    SCHEMA_ANNOTATION_MISSING = "SCHEMA_ANNOTATION_MISSING"
    EMPTY_SOURCE_SET = "EMPTY_SOURCE_SET"
    INCOMPATIBLE_STRATEGY = "INCOMPATIBLE_STRATEGY"
    RULE_CONVERSION_FAILED = "RULE_CONVERSION_FAILED"
    FILTER_EXPRESSION_FAILED = "FILTER_EXPRESSION_FAILED"
    STRUCTURE_SYNTHESIS_FAILED = "STRUCTURE_SYNTHESIS_FAILED"
    MEMORY_BOUNDS_EXCEEDED = "MEMORY_BOUNDS_EXCEEDED"
    AGGREGATION_FAILED = "AGGREGATION_FAILED"
    SCHEMA_LOAD_FAILED = "SCHEMA_LOAD_FAILED"
    DOCUMENT_LOAD_FAILED = "DOCUMENT_LOAD_FAILED"
    DOCUMENT_VALIDATION_FAILED = "DOCUMENT_VALIDATION_FAILED"
    TEMPLATE_RENDER_FAILED = "TEMPLATE_RENDER_FAILED"
    OUTPUT_WRITE_FAILED = "OUTPUT_WRITE_FAILED"
    NO_INPUT_FILES = "NO_INPUT_FILES"
    MISSING_TEMPLATE = "MISSING_TEMPLATE"


class Fm2SchemaError(Exception):
    """Base class for all typed engine failures."""

    code: ErrorCode = ErrorCode.AGGREGATION_FAILED

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.detail: dict[str, Any] = dict(detail or {})

    def to_detail(self) -> dict[str, Any]:
        """Detail payload with the stage folded in (for ``ServiceError.detail``)."""
        payload = dict(self.detail)
        if self.stage is not None:
            payload.setdefault("stage", self.stage)
        return payload

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!s}, message={self.message!r})"


class InvalidPathError(Fm2SchemaError):
    code = ErrorCode.INVALID_PATH


class SchemaAnnotationMissing(Fm2SchemaError):
    """No ``x-frontmatter-part`` insertion point exists (recoverable)."""

    code = ErrorCode.SCHEMA_ANNOTATION_MISSING


class EmptySourceSet(Fm2SchemaError):
    code = ErrorCode.EMPTY_SOURCE_SET


class IncompatibleStrategy(Fm2SchemaError):
    code = ErrorCode.INCOMPATIBLE_STRATEGY


class RuleConversionFailed(Fm2SchemaError):
    code = ErrorCode.RULE_CONVERSION_FAILED


class FilterExpressionFailed(Fm2SchemaError):
    code = ErrorCode.FILTER_EXPRESSION_FAILED


class StructureSynthesisFailed(Fm2SchemaError):
    code = ErrorCode.STRUCTURE_SYNTHESIS_FAILED


class MemoryBoundsExceeded(Fm2SchemaError):
    code = ErrorCode.MEMORY_BOUNDS_EXCEEDED


class AggregationFailed(Fm2SchemaError):
    code = ErrorCode.AGGREGATION_FAILED


class SchemaLoadError(Fm2SchemaError):
    code = ErrorCode.SCHEMA_LOAD_FAILED


class DocumentLoadError(Fm2SchemaError):
    code = ErrorCode.DOCUMENT_LOAD_FAILED


class DocumentValidationError(Fm2SchemaError):
    code = ErrorCode.DOCUMENT_VALIDATION_FAILED


class TemplateRenderError(Fm2SchemaError):
    code = ErrorCode.TEMPLATE_RENDER_FAILED


class OutputWriteError(Fm2SchemaError):
    code = ErrorCode.OUTPUT_WRITE_FAILED


class NoInputFilesError(Fm2SchemaError):
    code = ErrorCode.NO_INPUT_FILES


class MissingTemplateError(Fm2SchemaError):
    code = ErrorCode.MISSING_TEMPLATE
