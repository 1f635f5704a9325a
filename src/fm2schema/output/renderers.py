"""Rich views of process and inspect results.

Renderers are dispatched by ``result.op`` in :func:`render_result`;
unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from fm2schema.output.console import create_console, get_output

if TYPE_CHECKING:
    from rich.console import Console

    from fm2schema.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich."""
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Minimal output for ``--quiet``: the one value a script needs."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op}: {msg}"
    if result.op == "process":
        return str(result.data.get("output_path", ""))
    if result.op == "inspect":
        return "\n".join(p["path"] for p in result.data.get("insertion_points", []))
    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    console.print(Text("OK", style="fm2.ok"), Text(f"  {result.op}", style="fm2.op"))


def _field(console: Console, key: str, value: Any) -> None:
    style = "fm2.path" if key.endswith("_path") else ""
    console.print(Text.assemble((f"  {key}: ", "fm2.key"), (str(value), style)))


def _span_style(duration_ms: float) -> str:
    if duration_ms > 1000:
        return "bold red"
    return "yellow" if duration_ms > 100 else "dim"


def _span_label(span: dict[str, Any]) -> Text:
    duration = span.get("duration_ms", 0.0)
    label = Text.assemble((f"{duration:>8.2f}ms", _span_style(duration)), "  ", span.get("name", "?"))
    if annotations := span.get("annotations"):
        label.append("  (" + ", ".join(f"{k}={v}" for k, v in annotations.items()) + ")")
    return label


def _add_spans(branch: Tree, span: dict[str, Any]) -> None:
    node = branch.add(_span_label(span))
    for child in span.get("children", []):
        _add_spans(node, child)


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Verbose-only meta block; the telemetry entry becomes a span tree."""
    if not result.meta:
        return
    tree = Tree(Text("meta", style="dim"), guide_style="dim")
    for key, value in result.meta.items():
        if key == "telemetry":
            _add_spans(tree, value)
        else:
            tree.add(Text(f"{key}: {value}"))
    console.print()
    console.print(tree)


def _render_warnings(console: Console, result: ServiceResult) -> None:
    if result.warnings:
        console.print(Text(f"  warnings: {len(result.warnings)}", style="fm2.warning"))


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    headline = Text.assemble(("ERROR", "fm2.error"), (f"  {result.op}", "fm2.op"))
    if err is None:
        headline.append("  Unknown error")
    else:
        headline.append(f" [{err.code}]", style="fm2.op")
        headline.append(f"  {err.message}")
    console.print(headline)
    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for key, value in err.detail.items():
            _field(console, f"  {key}", value)
    for warning in result.warnings:
        console.print(Text(f"  warning: {warning}", style="fm2.warning"))


# ── Operation renderers ───────────────────────────────────────────────


def _render_process(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    for key in ("output_path", "output_format", "template_path", "strategy"):
        if key in d:
            _field(console, key, d[key])
    _field(console, "documents", d.get("processed_document_count", 0))
    _field(console, "time", f"{d.get('execution_time_ms', 0.0):.1f}ms")
    _render_warnings(console, result)

    if verbose:
        stats = d.get("statistics") or {}
        for key, value in stats.items():
            _field(console, key, value)
        if d.get("stages"):
            _field(console, "stages", " -> ".join(d["stages"]))
        inputs = d.get("input_paths", [])
        if inputs:
            console.print(Text("  inputs:", style="fm2.key"))
            for path in inputs:
                console.print(Text(f"    {path}", style="fm2.path"))
        _render_meta(console, result)


def _render_inspect(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    _field(console, "schema_path", d.get("schema_path"))
    if d.get("template_path"):
        _field(console, "template_path", d["template_path"])

    points = d.get("insertion_points", [])
    if points:
        table = Table(title="Insertion points", show_header=True, pad_edge=False, expand=False)
        table.add_column("Path", style="fm2.path", no_wrap=True)
        table.add_column("Source key")
        table.add_column("Nested", justify="center")
        for point in points:
            nested = Text("yes", style="fm2.nested") if point["nested"] else Text("no")
            table.add_row(point["path"], point.get("source_key") or "", nested)
        console.print(table)
    else:
        console.print(Text("  no x-frontmatter-part: documents will be merged", style="fm2.warning"))

    directives = [
        (f"flatten {x['key']}", x["property"]) for x in d.get("flatten_directives", [])
    ] + [(f"filter {x['expression']}", x["property"]) for x in d.get("filter_directives", [])]
    if directives:
        table = Table(title="Directives", show_header=True, pad_edge=False, expand=False)
        table.add_column("Property", style="fm2.path")
        table.add_column("Directive")
        for directive, prop in directives:
            table.add_row(prop, directive)
        console.print(table)

    rules = d.get("derivation_rules", [])
    if rules:
        table = Table(title="Derivation rules", show_header=True, pad_edge=False, expand=False)
        table.add_column("Source", style="fm2.path")
        table.add_column("Target", style="fm2.path")
        table.add_column("Unique", justify="center")
        for rule in rules:
            table.add_row(rule["sourcePath"], rule["targetField"], "yes" if rule["unique"] else "")
        console.print(table)

    for failure in d.get("rule_failures", []):
        console.print(
            Text(f"  rule {failure.get('origin', '?')} rejected: {failure['reason']}", style="fm2.error")
        )

    if verbose:
        for item in d.get("defaults", []):
            _field(console, f"default {item['path']}", item["default"])
        for key, value in (d.get("statistics") or {}).items():
            _field(console, key, value)
        _render_meta(console, result)


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    if verbose:
        _render_meta(console, result)


_OP_RENDERERS: dict[str, Callable[..., None]] = {
    "process": _render_process,
    "inspect": _render_inspect,
}
