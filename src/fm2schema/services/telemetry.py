"""Span timing for pipeline stages, via @traced and trace_span.

Off unless ``--verbose`` is given.  A ``@traced`` operation opens a root
span; each ``trace_span`` inside it hangs a child off whatever span is
active, and the finished tree lands in ``ServiceResult.meta["telemetry"]``.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable, Generator, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

import structlog

from fm2schema.services.result import ServiceResult

_enabled: ContextVar[bool] = ContextVar("fm2schema_telemetry", default=False)
_current_span: ContextVar[Span | None] = ContextVar("fm2schema_span", default=None)

log = structlog.get_logger("fm2schema.telemetry")


@dataclass
class Span:
    name: str
    parent: Span | None = None
    children: list[Span] = field(default_factory=list)
    started: float = field(default_factory=time.perf_counter)
    end_time: float | None = None
    annotations: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float:
        return 0.0 if self.end_time is None else (self.end_time - self.started) * 1000

    def child(self, name: str) -> Span:
        span = Span(name=name, parent=self)
        self.children.append(span)
        return span

    def end(self) -> None:
        self.end_time = time.perf_counter()

    def annotate(self, key: str, value: Any) -> None:
        self.annotations[key] = value

    def to_dict(self) -> dict[str, Any]:
        node: dict[str, Any] = {"name": self.name, "duration_ms": round(self.duration_ms, 2)}
        if self.annotations:
            node["annotations"] = dict(self.annotations)
        if self.children:
            node["children"] = [child.to_dict() for child in self.children]
        return node


@contextmanager
def _activate(span: Span) -> Iterator[Span]:
    token = _current_span.set(span)
    try:
        yield span
    finally:
        span.end()
        _current_span.reset(token)


@contextmanager
def trace_span(name: str) -> Generator[Span | None]:
    """Time one stage under the active span; yields None when nothing is being traced."""
    parent = get_current_span()
    if parent is None:
        yield None
        return
    with _activate(parent.child(name)) as span:
        yield span


def _with_tree(result: ServiceResult, span: Span) -> ServiceResult:
    meta = dict(result.meta or {})
    meta["telemetry"] = span.to_dict()
    return result.model_copy(update={"meta": meta})


def traced[**P, R](func: Callable[P, R]) -> Callable[P, R]:
    """Run *func* under a root span and attach the tree to a returned ServiceResult."""

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        if not _enabled.get():
            return func(*args, **kwargs)

        root = Span(name=func.__qualname__)
        ok = False
        try:
            with _activate(root):
                result = func(*args, **kwargs)
            ok = result.ok if isinstance(result, ServiceResult) else True
        finally:
            log.debug(
                "span.complete",
                span_name=root.name,
                duration_ms=round(root.duration_ms, 2),
                ok=ok,
                stages=[c.name for c in root.children],
            )
        if isinstance(result, ServiceResult):
            return _with_tree(result, root)  # type: ignore[return-value]
        return result

    return wrapper


def enable_telemetry() -> None:
    _enabled.set(True)


def disable_telemetry() -> None:
    _enabled.set(False)


def get_current_span() -> Span | None:
    return _current_span.get() if _enabled.get() else None
