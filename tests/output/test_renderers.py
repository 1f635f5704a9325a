"""Tests for the Rich renderers and the StringIO console."""

from io import StringIO
from pathlib import Path

import pytest
from rich.console import Console

from fm2schema.output.console import create_console, get_output
from fm2schema.output.renderers import render_quiet, render_result
from fm2schema.services.result import ServiceError, ServiceResult

PROCESS = ServiceResult(
    ok=True,
    op="process",
    data={
        "output_path": "out.json",
        "output_format": "json",
        "template_path": "template.json",
        "input_paths": ["docs/a.md", "docs/b.md"],
        "processed_document_count": 2,
        "execution_time_ms": 12.345,
        "strategy": "schema",
        "stages": ["schema_resolved", "done"],
        "statistics": {"data_count": 2, "rule_count": 1},
    },
    warnings=["Skipped docs/c.md: bad"],
)

INSPECT = ServiceResult(
    ok=True,
    op="inspect",
    data={
        "schema_path": "schema.json",
        "template_path": "template.json",
        "insertion_points": [
            {"path": "tools.commands", "source_key": None, "nested": True},
            {"path": "all", "source_key": "commands", "nested": False},
        ],
        "flatten_directives": [{"property": "tags", "key": "tags"}],
        "filter_directives": [{"property": "cmds", "expression": "[?enabled]"}],
        "derivation_rules": [{"sourcePath": "tools.commands[].c1", "targetField": "configs", "unique": True}],
        "rule_failures": [{"origin": "x-derived[1]", "reason": "sourcePath must be a non-empty string"}],
        "defaults": [{"path": "version", "default": "1.0.0"}],
        "statistics": {"data_count": None, "rule_count": 1},
    },
)


class TestConsole:
    def test_renders_to_buffer(self) -> None:
        console = create_console()
        console.print("hello")
        assert get_output(console) == "hello\n"

    def test_get_output_requires_buffer(self, tmp_path: Path) -> None:
        with (tmp_path / "out.txt").open("w", encoding="utf-8") as handle:
            with pytest.raises(TypeError):
                get_output(Console(file=handle))


class TestRenderProcess:
    def test_summary(self) -> None:
        output = render_result(PROCESS)
        assert "OK" in output
        assert "out.json" in output
        assert "documents: 2" in output
        assert "12.3ms" in output
        assert "warnings: 1" in output
        assert "docs/a.md" not in output

    def test_verbose_lists_inputs_and_stages(self) -> None:
        output = render_result(PROCESS, verbose=True)
        assert "docs/a.md" in output
        assert "schema_resolved -> done" in output
        assert "rule_count: 1" in output

    def test_verbose_telemetry_tree(self) -> None:
        traced = PROCESS.model_copy(
            update={
                "meta": {
                    "telemetry": {
                        "name": "PipelineService.process",
                        "duration_ms": 5.0,
                        "children": [{"name": "render", "duration_ms": 1.0, "annotations": {"files": 2}}],
                    }
                }
            }
        )
        output = render_result(traced, verbose=True)
        assert "PipelineService.process" in output
        assert "render  (files=2)" in output


class TestRenderInspect:
    def test_tables(self) -> None:
        output = render_result(INSPECT)
        assert "Insertion points" in output
        assert "tools.commands" in output
        assert "commands" in output
        assert "flatten tags" in output
        assert "filter [?enabled]" in output
        assert "Derivation rules" in output
        assert "rule x-derived[1] rejected" in output
        assert "default version" not in output

    def test_verbose_defaults(self) -> None:
        assert "default version: 1.0.0" in render_result(INSPECT, verbose=True)

    def test_no_insertion_points_mentions_merge(self) -> None:
        bare = ServiceResult(ok=True, op="inspect", data={"schema_path": "s.json"})
        assert "merged" in render_result(bare)


class TestRenderError:
    def test_error_line(self) -> None:
        result = ServiceResult(
            ok=False,
            op="process",
            error=ServiceError(code="NO_INPUT_FILES", message="nothing matched", detail={"stage": "discover"}),
            warnings=["w1"],
        )
        output = render_result(result)
        assert "ERROR" in output
        assert "[NO_INPUT_FILES]" in output
        assert "nothing matched" in output
        assert "warning: w1" in output
        assert "stage: discover" not in output
        assert "stage: discover" in render_result(result, verbose=True)


class TestRenderGeneric:
    def test_unknown_op(self) -> None:
        output = render_result(ServiceResult(ok=True, op="other", data={"k": "v"}))
        assert "other" in output
        assert "k: v" in output


class TestRenderQuiet:
    def test_process(self) -> None:
        assert render_quiet(PROCESS) == "out.json"

    def test_inspect(self) -> None:
        assert render_quiet(INSPECT) == "tools.commands\nall"

    def test_other(self) -> None:
        assert render_quiet(ServiceResult(ok=True, op="other")) == "OK: other"

    def test_stringio_output_is_plain(self) -> None:
        console = create_console()
        assert isinstance(console.file, StringIO)
