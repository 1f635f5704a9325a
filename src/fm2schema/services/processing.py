"""Per-document work: loading and Phase 1 directives, batched.

Documents run sequentially, or in fixed-size batches of
``ceil(count / max_workers)`` on a ThreadPoolExecutor.  Each batch's
results are appended to the shared buffer only after the whole batch
has completed, so the next batch never overlaps a previous one.

The :class:`MemoryMonitor` is consulted after every batch (parallel) or
every file (sequential).  Exceeding the bound aborts the run.
"""

from __future__ import annotations

import logging
import math
import os
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import psutil

from fm2schema.domain.errors import AggregationFailed, Fm2SchemaError, MemoryBoundsExceeded
from fm2schema.services.directives import Phase1DirectiveProcessor

if TYPE_CHECKING:
    from fm2schema.domain.document import Document
    from fm2schema.domain.schema import Schema
    from fm2schema.infrastructure.loader import DocumentLoader

logger = logging.getLogger(__name__)

_MB = 1024 * 1024


# ---------------------------------------------------------------------------
# Memory bounds
# ---------------------------------------------------------------------------


def _resident_bytes() -> int:
    return psutil.Process(os.getpid()).memory_info().rss


class MemoryMonitor:
    """Hard stop on runaway memory growth.

    ``limit_mb=0`` disables the check.  *probe* returns the current usage
    in bytes; the default reads the process's resident set size, so
    everything still held from earlier stages (the loaded document
    buffer included) counts against the limit.
    """

    def __init__(self, limit_mb: int = 1024, *, probe: Callable[[], int] | None = None) -> None:
        self.limit_mb = limit_mb
        self._probe = probe or _resident_bytes
        self.peak_bytes = 0
        self.checks = 0

    @property
    def enabled(self) -> bool:
        return self.limit_mb > 0

    def check(self, *, stage: str, processed: int) -> None:
        """Raise MemoryBoundsExceeded if usage is above the limit."""
        if not self.enabled:
            return
        self.checks += 1
        used = self._probe()
        self.peak_bytes = max(self.peak_bytes, used)
        limit = self.limit_mb * _MB
        if used > limit:
            msg = (
                f"Memory usage {used / _MB:.1f}MB exceeds limit {self.limit_mb}MB "
                f"after {processed} document(s)"
            )
            raise MemoryBoundsExceeded(
                msg,
                stage=stage,
                detail={"used_bytes": used, "limit_mb": self.limit_mb, "processed": processed},
            )


# ---------------------------------------------------------------------------
# Batch processing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DocumentFailure:
    path: str
    code: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass
class ProcessingReport:
    """Documents that made it through a step, plus the ones that did not."""

    documents: list[Document] = field(default_factory=list)
    failures: list[DocumentFailure] = field(default_factory=list)
    batches: int = 0

    def warnings(self) -> list[str]:
        return [f"Skipped {f}" for f in self.failures]


def batch_size(count: int, workers: int) -> int:
    """``ceil(count / workers)``, at least 1."""
    if count <= 0:
        return 1
    return max(1, math.ceil(count / max(1, workers)))


class DocumentProcessor:
    """Runs document loading and Phase 1 directives over many files."""

    def __init__(
        self,
        loader: DocumentLoader,
        *,
        directives: Phase1DirectiveProcessor | None = None,
        parallel: bool = False,
        max_workers: int = 4,
        monitor: MemoryMonitor | None = None,
    ) -> None:
        self._loader = loader
        self._directives = directives or Phase1DirectiveProcessor()
        self.parallel = parallel
        self.max_workers = max(1, max_workers)
        self.monitor = monitor or MemoryMonitor(0)

    def load_documents(self, paths: Sequence[Path], schema: Schema | None = None) -> ProcessingReport:
        """Load every path; per-file failures are collected."""
        return self._run(
            list(paths),
            lambda path: self._loader.load(path, schema),
            key=str,
            stage="load",
        )

    def apply_directives(self, documents: Sequence[Document], schema: Schema | None) -> ProcessingReport:
        """Run Phase 1 directives on every document."""
        return self._run(
            list(documents),
            lambda doc: self._directives.process(doc, schema),
            key=lambda doc: str(doc.path),
            stage="directives",
        )

    def _run[T](
        self,
        items: list[T],
        work: Callable[[T], Document],
        *,
        key: Callable[[T], str],
        stage: str,
    ) -> ProcessingReport:
        report = ProcessingReport()
        if not items:
            return report

        single = len(items) == 1
        if self.parallel and not single:
            self._run_parallel(items, work, key, stage, report)
        else:
            self._run_sequential(items, work, key, stage, report, fail_fast=single)

        if not report.documents:
            msg = f"All {len(items)} document(s) failed during {stage}"
            raise AggregationFailed(
                msg,
                stage=stage,
                detail={"failures": [str(f) for f in report.failures]},
            )
        logger.info(
            "%s: %d ok, %d failed, %d batch(es)",
            stage,
            len(report.documents),
            len(report.failures),
            report.batches,
        )
        return report

    def _run_sequential[T](
        self,
        items: list[T],
        work: Callable[[T], Document],
        key: Callable[[T], str],
        stage: str,
        report: ProcessingReport,
        *,
        fail_fast: bool,
    ) -> None:
        for item in items:
            try:
                report.documents.append(work(item))
            except Fm2SchemaError as exc:
                if fail_fast:
                    raise
                report.failures.append(_failure(key(item), exc))
            report.batches += 1
            self.monitor.check(stage=stage, processed=len(report.documents) + len(report.failures))

    def _run_parallel[T](
        self,
        items: list[T],
        work: Callable[[T], Document],
        key: Callable[[T], str],
        stage: str,
        report: ProcessingReport,
    ) -> None:
        size = batch_size(len(items), self.max_workers)
        logger.debug("%s: %d item(s) in batches of %d", stage, len(items), size)
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            for offset in range(0, len(items), size):
                batch = items[offset : offset + size]
                futures: list[tuple[T, Future[Document]]] = [
                    (item, executor.submit(work, item)) for item in batch
                ]
                completed: list[Document] = []
                for item, future in futures:
                    try:
                        completed.append(future.result())
                    except Fm2SchemaError as exc:
                        report.failures.append(_failure(key(item), exc))
                # flush
                report.documents.extend(completed)
                report.batches += 1
                self.monitor.check(
                    stage=stage, processed=len(report.documents) + len(report.failures)
                )


def _failure(key: str, exc: Fm2SchemaError) -> DocumentFailure:
    logger.warning("Document %s failed: %s", key, exc.message)
    return DocumentFailure(path=key, code=str(exc.code), message=exc.message)
