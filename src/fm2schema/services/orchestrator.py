"""AggregationOrchestrator: sequences the engine stages for one run.

::

    SCHEMA_RESOLVED -> DIRECTIVES_APPLIED -> STRUCTURE_SYNTHESIZED
        -> RULES_APPLIED -> POPULATED -> DONE

Any non-recoverable failure moves straight to ``FAILED`` and the
remaining stages are skipped.  There is no retry state.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from fm2schema.domain.errors import Fm2SchemaError, SchemaAnnotationMissing
from fm2schema.domain.path_model import PathModel
from fm2schema.services.derivation import DerivationRuleEngine, RuleConversionReport
from fm2schema.services.processing import DocumentFailure, DocumentProcessor
from fm2schema.services.resolver import SchemaPathResolver
from fm2schema.services.strategies import (
    AggregationResult,
    StrategyConfig,
    StrategyKind,
    create_strategy,
)
from fm2schema.services.telemetry import trace_span

if TYPE_CHECKING:
    from fm2schema.domain.document import Document
    from fm2schema.domain.schema import Schema

logger = logging.getLogger(__name__)


class AggregationStage(StrEnum):
    PENDING = "pending"
    SCHEMA_RESOLVED = "schema_resolved"
    DIRECTIVES_APPLIED = "directives_applied"
    STRUCTURE_SYNTHESIZED = "structure_synthesized"
    RULES_APPLIED = "rules_applied"
    POPULATED = "populated"
    DONE = "done"
    FAILED = "failed"


# Stages a successful run passes through, in order.
_SEQUENCE = (
    AggregationStage.PENDING,
    AggregationStage.SCHEMA_RESOLVED,
    AggregationStage.DIRECTIVES_APPLIED,
    AggregationStage.STRUCTURE_SYNTHESIZED,
    AggregationStage.RULES_APPLIED,
    AggregationStage.POPULATED,
    AggregationStage.DONE,
)


@dataclass
class AggregationOutcome:
    """Terminal state of a run: a result, or the error that stopped it."""

    stage: AggregationStage = AggregationStage.PENDING
    result: AggregationResult | None = None
    error: Fm2SchemaError | None = None
    failed_stage: AggregationStage | None = None
    rule_report: RuleConversionReport = field(default_factory=RuleConversionReport)
    document_failures: list[DocumentFailure] = field(default_factory=list)
    history: list[AggregationStage] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.stage is AggregationStage.DONE

    def advance(self, stage: AggregationStage) -> None:
        self.stage = stage
        self.history.append(stage)

    def fail(self, exc: Fm2SchemaError) -> AggregationOutcome:
        """Record *exc* against the stage that was being attempted."""
        self.failed_stage = _SEQUENCE[_SEQUENCE.index(self.stage) + 1]
        self.error = exc
        self.advance(AggregationStage.FAILED)
        return self

    def warnings(self) -> list[str]:
        return [f"Skipped {f}" for f in self.document_failures] + self.rule_report.warnings()


class AggregationOrchestrator:
    """Runs directives, structure synthesis, derivation and population."""

    def __init__(
        self,
        processor: DocumentProcessor,
        *,
        resolver: SchemaPathResolver | None = None,
        engine: DerivationRuleEngine | None = None,
    ) -> None:
        self._processor = processor
        self._resolver = resolver or SchemaPathResolver()
        self._engine = engine or DerivationRuleEngine()

    def run(
        self,
        schema: Schema,
        documents: Sequence[Document],
        *,
        strategy: StrategyKind | None = None,
        config: StrategyConfig | None = None,
    ) -> AggregationOutcome:
        """Aggregate *documents* under *schema*.

        With *strategy* set the documents are combined by that strategy
        instead of schema placement.  Never raises for engine errors;
        inspect ``outcome.error``.
        """
        config = config or StrategyConfig()
        outcome = AggregationOutcome()
        start = time.perf_counter()

        try:
            with trace_span("schema_resolved"):
                rules = self._engine.convert_rules(schema.rule_declarations())
                outcome.rule_report = rules
            outcome.advance(AggregationStage.SCHEMA_RESOLVED)

            with trace_span("directives_applied") as span:
                report = self._processor.apply_directives(documents, schema)
                outcome.document_failures.extend(report.failures)
                if span:
                    span.annotate("documents", len(report.documents))
            outcome.advance(AggregationStage.DIRECTIVES_APPLIED)

            with trace_span("structure_synthesized"):
                payloads = [
                    doc.frontmatter.data
                    for doc in report.documents
                    if doc.frontmatter is not None
                ]
                data, strategy_name = self._synthesize(schema, payloads, strategy, config)
            outcome.advance(AggregationStage.STRUCTURE_SYNTHESIZED)

            with trace_span("rules_applied") as span:
                data = self._engine.apply(data, rules.succeeded)
                if span:
                    span.annotate("rules", len(rules.succeeded))
            outcome.advance(AggregationStage.RULES_APPLIED)

            with trace_span("populated"):
                data = populate_defaults(data, schema)
            outcome.advance(AggregationStage.POPULATED)
        except Fm2SchemaError as exc:
            outcome.fail(exc)
            logger.warning("Aggregation failed at %s: %s", outcome.failed_stage, exc.message)
            return outcome

        outcome.result = AggregationResult(
            data=data,
            source_count=len(payloads),
            strategy_name=strategy_name,
            execution_time_ms=round((time.perf_counter() - start) * 1000, 3),
        )
        outcome.advance(AggregationStage.DONE)
        return outcome

    def _synthesize(
        self,
        schema: Schema,
        payloads: list[Any],
        strategy: StrategyKind | None,
        config: StrategyConfig,
    ) -> tuple[PathModel, str]:
        if strategy is not None:
            chosen = create_strategy(strategy, config)
            return chosen.combine(payloads), chosen.kind.value

        try:
            return self._resolver.resolve(schema, payloads), "schema"
        except SchemaAnnotationMissing:
            logger.info("No x-frontmatter-part in schema; falling back to merge")

        if not payloads:
            return PathModel(), StrategyKind.MERGE.value
        merge = create_strategy(StrategyKind.MERGE, config)
        return merge.combine(payloads), merge.kind.value


def populate_defaults(data: PathModel, schema: Schema) -> PathModel:
    """Write each property ``default`` that is absent from *data*.

    Defaults are only placed through objects; a path whose parent is an
    array or scalar in *data* is left alone.
    """
    result = data
    for path, default in schema.defaults():
        if result.has(path) or not _object_spine(result, path):
            continue
        result = result.set(path, default)
    return result


def _object_spine(data: PathModel, path: str) -> bool:
    parts = path.split(".")
    for depth in range(1, len(parts)):
        lookup = data.lookup(".".join(parts[:depth]))
        if not lookup.found:
            return True
        if not isinstance(lookup.value, dict):
            return False
    return True
