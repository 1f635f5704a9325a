"""PipelineService: the two user-facing operations.

- ``process``: schema -> documents -> aggregation -> template -> output file
- ``inspect``: report what a schema asks the engine to do

Engine errors are caught here and returned as failed ServiceResults.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from fm2schema.config.settings import Fm2Settings
from fm2schema.domain.errors import (
    AggregationFailed,
    Fm2SchemaError,
    MissingTemplateError,
    NoInputFilesError,
    OutputWriteError,
)
from fm2schema.domain.schema import Schema
from fm2schema.infrastructure.filesystem import LocalFileSystem, resolve_inputs
from fm2schema.infrastructure.loader import DocumentLoader, load_schema
from fm2schema.infrastructure.templates import output_format_for, render_template
from fm2schema.services.derivation import DerivationRuleEngine
from fm2schema.services.orchestrator import AggregationOrchestrator, AggregationOutcome
from fm2schema.services.processing import DocumentProcessor, MemoryMonitor
from fm2schema.services.resolver import SchemaPathResolver
from fm2schema.services.result import ServiceResult
from fm2schema.services.strategies import ConflictResolution, StrategyConfig, StrategyKind
from fm2schema.services.telemetry import trace_span, traced

logger = logging.getLogger(__name__)


class ProcessRequest(BaseModel):
    """One ``process`` invocation.  ``None`` fields fall back to settings."""

    model_config = {"frozen": True}

    schema_path: Path
    output_path: Path
    inputs: list[str] = Field(default_factory=list)
    template_path: Path | None = None
    strategy: StrategyKind | None = None
    conflict_resolution: ConflictResolution | None = None
    parallel: bool | None = None
    max_workers: int | None = None
    memory_limit_mb: int | None = None


def _pick[T](override: T | None, default: T) -> T:
    return default if override is None else override


def processing_method(rule_count: int) -> str:
    return "with-derivation-rules" if rule_count else "without-derivation-rules"


class PipelineService:
    """Runs the aggregation pipeline against the local filesystem."""

    def __init__(
        self,
        settings: Fm2Settings | None = None,
        *,
        fs: LocalFileSystem | None = None,
        memory_probe: Callable[[], int] | None = None,
    ) -> None:
        self._settings = settings or Fm2Settings()
        self._fs = fs or LocalFileSystem()
        self._memory_probe = memory_probe
        self._loader = DocumentLoader(self._fs)

    # ------------------------------------------------------------------
    # process
    # ------------------------------------------------------------------

    @traced
    def process(self, request: ProcessRequest) -> ServiceResult:
        """Aggregate the inputs and write the rendered output."""
        op = "process"
        start = time.perf_counter()
        warnings: list[str] = []
        try:
            with trace_span("load_schema"):
                schema = load_schema(request.schema_path, self._fs)
            template_path = self._template_for(request, schema)

            with trace_span("discover") as span:
                paths = self._discover(request.inputs)
                if span:
                    span.annotate("files", len(paths))

            processor = self._processor(request)
            with trace_span("load_documents"):
                loaded = processor.load_documents(paths, schema)
            warnings.extend(loaded.warnings())

            outcome = AggregationOrchestrator(processor).run(
                schema,
                loaded.documents,
                strategy=_pick(request.strategy, self._settings.aggregation.strategy),
                config=self._strategy_config(request),
            )
            warnings.extend(outcome.warnings())
            result = outcome.result
            if result is None:
                error = outcome.error or AggregationFailed("Aggregation produced no result")
                return ServiceResult.failure(op, error, warnings=warnings)

            output_format = output_format_for(request.output_path)
            with trace_span("render"):
                text = render_template(
                    template_path,
                    result.data,
                    output_format,
                    indent=self._settings.output.indent,
                    fs=self._fs,
                )
            with trace_span("write"):
                self._write(request.output_path, text)
        except Fm2SchemaError as exc:
            return ServiceResult.failure(op, exc, warnings=warnings)

        elapsed = round((time.perf_counter() - start) * 1000, 3)
        logger.info("Wrote %s from %d document(s) in %.1fms", request.output_path, len(paths), elapsed)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "schema_path": str(request.schema_path),
                "template_path": str(template_path),
                "input_paths": [str(p) for p in paths],
                "output_path": str(request.output_path),
                "output_format": output_format.value,
                "processed_document_count": len(loaded.documents),
                "execution_time_ms": elapsed,
                "strategy": result.strategy_name,
                "stages": [s.value for s in outcome.history],
                "statistics": self._statistics(schema, outcome),
            },
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # inspect
    # ------------------------------------------------------------------

    @traced
    def inspect(self, schema_path: Path, inputs: Sequence[str] = ()) -> ServiceResult:
        """Describe the schema's directives; count documents if *inputs* given."""
        op = "inspect"
        warnings: list[str] = []
        try:
            with trace_span("load_schema"):
                schema = load_schema(schema_path, self._fs)
            resolver = SchemaPathResolver()
            points = resolver.find_insertion_points(schema)
            report = DerivationRuleEngine().convert_rules(schema.rule_declarations())
            warnings.extend(report.warnings())

            data_count: int | None = None
            if inputs:
                with trace_span("load_documents"):
                    paths = self._discover(inputs)
                    loaded = self._processor(None).load_documents(paths, schema)
                warnings.extend(loaded.warnings())
                data_count = sum(1 for d in loaded.documents if d.has_frontmatter)
        except Fm2SchemaError as exc:
            return ServiceResult.failure(op, exc, warnings=warnings)

        template = schema.resolve_template_path()
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "schema_path": str(schema_path),
                "template_path": str(template) if template else None,
                "insertion_points": [
                    {"path": p.path, "source_key": p.source_key, "nested": p.nested}
                    for p in points
                ],
                "has_nested_paths": resolver.has_nested_paths(points),
                "flatten_directives": [
                    {"property": d.schema_path, "key": d.key} for d in schema.flatten_directives()
                ],
                "filter_directives": [
                    {"property": d.path, "expression": d.expression}
                    for d in schema.filter_directives()
                ],
                "derivation_rules": report.to_dict()["succeeded"],
                "rule_failures": report.to_dict()["failed"],
                "defaults": [{"path": path, "default": value} for path, value in schema.defaults()],
                "statistics": {
                    "data_count": data_count,
                    "rule_count": len(report.succeeded),
                    "has_frontmatter_part": bool(points),
                    "processing_method": processing_method(len(report.succeeded)),
                },
            },
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _template_for(self, request: ProcessRequest, schema: Schema) -> Path:
        template = request.template_path or schema.resolve_template_path()
        if template is None:
            msg = "No template given and the schema declares no x-template"
            raise MissingTemplateError(msg, stage="schema", detail={"schema": str(schema.path)})
        if not self._fs.exists(template):
            msg = f"Template not found: {template}"
            raise MissingTemplateError(msg, stage="schema", detail={"template": str(template)})
        return template

    def _discover(self, inputs: Sequence[str]) -> list[Path]:
        paths = resolve_inputs(
            inputs,
            extensions=self._settings.input.extensions,
            skip_dirs=self._settings.input.skip_dirs,
            fs=self._fs,
        )
        if not paths:
            msg = f"No input files matched: {', '.join(inputs) or '(none given)'}"
            raise NoInputFilesError(msg, stage="discover", detail={"inputs": list(inputs)})
        return paths

    def _processor(self, request: ProcessRequest | None) -> DocumentProcessor:
        cfg = self._settings.processing
        limit = _pick(request.memory_limit_mb if request else None, cfg.memory_limit_mb)
        return DocumentProcessor(
            self._loader,
            parallel=_pick(request.parallel if request else None, cfg.parallel),
            max_workers=_pick(request.max_workers if request else None, cfg.max_workers),
            monitor=MemoryMonitor(limit, probe=self._memory_probe),
        )

    def _strategy_config(self, request: ProcessRequest) -> StrategyConfig:
        config = self._settings.aggregation.strategy_config()
        if request.conflict_resolution is not None:
            config = config.model_copy(update={"conflict_resolution": request.conflict_resolution})
        return config

    def _write(self, path: Path, text: str) -> None:
        try:
            self._fs.write_text(path, text)
        except OSError as exc:
            msg = f"Cannot write {path}: {exc}"
            raise OutputWriteError(msg, stage="write", detail={"path": str(path)}) from exc

    @staticmethod
    def _statistics(schema: Schema, outcome: AggregationOutcome) -> dict[str, Any]:
        rule_count = len(outcome.rule_report.succeeded)
        return {
            "data_count": outcome.result.source_count if outcome.result else 0,
            "rule_count": rule_count,
            "has_frontmatter_part": bool(schema.frontmatter_parts()),
            "processing_method": processing_method(rule_count),
        }
