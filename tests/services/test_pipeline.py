"""Tests for PipelineService.process and PipelineService.inspect."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from ruamel.yaml import YAML

from fm2schema.config.settings import Fm2Settings
from fm2schema.services.pipeline import PipelineService, ProcessRequest, processing_method
from fm2schema.services.telemetry import disable_telemetry, enable_telemetry


def _request(workspace: Path, output: str = "out.json", **overrides: object) -> ProcessRequest:
    fields: dict[str, object] = {
        "schema_path": workspace / "schema.json",
        "output_path": workspace / output,
        "inputs": [str(workspace / "docs")],
    }
    fields.update(overrides)
    return ProcessRequest(**fields)  # type: ignore[arg-type]


class TestProcess:
    def test_writes_rendered_output(self, workspace: Path) -> None:
        result = PipelineService().process(_request(workspace))
        assert result.ok, result.error
        written = json.loads((workspace / "out.json").read_text(encoding="utf-8"))
        assert written["version"] == "1.0.0"
        assert written["tools"]["availableConfigs"] == ["git", "spec"]
        assert [c["c1"] for c in written["tools"]["commands"]] == ["git", "spec", "git"]
        assert written["summary"] == '["git", "spec"] configs'

    def test_result_data(self, workspace: Path) -> None:
        result = PipelineService().process(_request(workspace))
        assert result.op == "process"
        assert result.data["processed_document_count"] == 3
        assert result.data["output_format"] == "json"
        assert result.data["strategy"] == "schema"
        assert result.data["stages"][-1] == "done"
        assert result.data["statistics"] == {
            "data_count": 3,
            "rule_count": 1,
            "has_frontmatter_part": True,
            "processing_method": "with-derivation-rules",
        }

    def test_yaml_output(self, workspace: Path) -> None:
        result = PipelineService().process(_request(workspace, "out.yaml"))
        assert result.data["output_format"] == "yaml"
        loaded = YAML(typ="safe", pure=True).load((workspace / "out.yaml").read_text(encoding="utf-8"))
        assert loaded["tools"]["availableConfigs"] == ["git", "spec"]

    def test_registry_schema_top_level_required_describes_output(self, workspace: Path) -> None:
        schema = json.loads((workspace / "schema.json").read_text(encoding="utf-8"))
        schema["required"] = ["version", "description", "tools"]
        schema["properties"]["tools"]["properties"]["commands"]["items"]["required"] = ["c1", "c2"]
        (workspace / "schema.json").write_text(json.dumps(schema), encoding="utf-8")
        result = PipelineService().process(_request(workspace))
        assert result.ok, result.error
        assert result.data["processed_document_count"] == 3

    def test_output_parent_created(self, workspace: Path) -> None:
        result = PipelineService().process(_request(workspace, "build/nested/out.json"))
        assert result.ok
        assert (workspace / "build" / "nested" / "out.json").is_file()

    def test_parallel_matches_sequential(self, workspace: Path) -> None:
        PipelineService().process(_request(workspace, "seq.json", parallel=False))
        PipelineService().process(_request(workspace, "par.json", parallel=True, max_workers=2))
        assert (workspace / "seq.json").read_text(encoding="utf-8") == (
            workspace / "par.json"
        ).read_text(encoding="utf-8")

    def test_explicit_template_overrides_schema(self, workspace: Path) -> None:
        (workspace / "alt.json").write_text('{"configs": "{tools.availableConfigs}"}', encoding="utf-8")
        result = PipelineService().process(_request(workspace, template_path=workspace / "alt.json"))
        assert result.ok
        assert json.loads((workspace / "out.json").read_text(encoding="utf-8")) == {
            "configs": ["git", "spec"]
        }

    def test_jinja_template(self, workspace: Path) -> None:
        (workspace / "out.j2").write_text(
            "{% for c in tools.availableConfigs %}- {{ c }}\n{% endfor %}", encoding="utf-8"
        )
        result = PipelineService().process(
            _request(workspace, "out.txt", template_path=workspace / "out.j2")
        )
        assert result.ok
        assert (workspace / "out.txt").read_text(encoding="utf-8") == "- git\n- spec\n"

    def test_array_strategy(self, workspace: Path) -> None:
        (workspace / "raw.json").write_text('{"all": "{documents}"}', encoding="utf-8")
        result = PipelineService().process(
            _request(workspace, template_path=workspace / "raw.json", strategy="array")
        )
        assert result.data["strategy"] == "array"
        written = json.loads((workspace / "out.json").read_text(encoding="utf-8"))
        assert len(written["all"]) == 3

    def test_settings_strategy_used_when_request_silent(self, workspace: Path) -> None:
        settings = Fm2Settings(aggregation={"strategy": "merge"})  # type: ignore[arg-type]
        result = PipelineService(settings).process(_request(workspace))
        assert result.data["strategy"] == "merge"

    def test_skipped_document_is_warning(self, workspace: Path) -> None:
        (workspace / "docs" / "broken.md").write_text("---\n[oops\n---\n", encoding="utf-8")
        result = PipelineService().process(_request(workspace))
        assert result.ok
        assert result.data["processed_document_count"] == 3
        assert any("broken.md" in w for w in result.warnings)


class TestProcessFailures:
    def test_missing_schema(self, tmp_path: Path) -> None:
        result = PipelineService().process(
            ProcessRequest(schema_path=tmp_path / "nope.json", output_path=tmp_path / "o.json")
        )
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "SCHEMA_LOAD_FAILED"
        assert result.error.detail["stage"] == "schema"

    def test_no_template(self, workspace: Path) -> None:
        (workspace / "bare.json").write_text('{"properties": {}}', encoding="utf-8")
        result = PipelineService().process(_request(workspace, schema_path=workspace / "bare.json"))
        assert result.error is not None
        assert result.error.code == "MISSING_TEMPLATE"

    def test_template_file_missing(self, workspace: Path) -> None:
        result = PipelineService().process(
            _request(workspace, template_path=workspace / "gone.json")
        )
        assert result.error is not None
        assert result.error.code == "MISSING_TEMPLATE"

    def test_no_inputs_matched(self, workspace: Path) -> None:
        result = PipelineService().process(_request(workspace, inputs=[str(workspace / "*.txt")]))
        assert result.error is not None
        assert result.error.code == "NO_INPUT_FILES"
        assert not (workspace / "out.json").exists()

    def test_memory_bound_aborts_without_output(self, workspace: Path) -> None:
        service = PipelineService(memory_probe=lambda: 10 * 1024 * 1024)
        result = service.process(_request(workspace, memory_limit_mb=1))
        assert result.error is not None
        assert result.error.code == "MEMORY_BOUNDS_EXCEEDED"
        assert not (workspace / "out.json").exists()

    def test_required_field_missing(self, workspace: Path) -> None:
        schema = json.loads((workspace / "schema.json").read_text(encoding="utf-8"))
        schema["properties"]["tools"]["properties"]["commands"]["items"]["required"] = ["owner"]
        (workspace / "schema.json").write_text(json.dumps(schema), encoding="utf-8")
        result = PipelineService().process(_request(workspace))
        assert result.error is not None
        assert result.error.code == "AGGREGATION_FAILED"
        assert len(result.error.detail["failures"]) == 3

    def test_output_write_error(self, workspace: Path) -> None:
        (workspace / "blocker").write_text("file, not a dir", encoding="utf-8")
        result = PipelineService().process(_request(workspace, "blocker/out.json"))
        assert result.error is not None
        assert result.error.code == "OUTPUT_WRITE_FAILED"


class TestInspect:
    def test_reports_directives(self, workspace: Path) -> None:
        result = PipelineService().inspect(workspace / "schema.json")
        assert result.ok
        assert result.data["insertion_points"] == [
            {"path": "tools.commands", "source_key": None, "nested": True}
        ]
        assert result.data["has_nested_paths"] is True
        assert result.data["derivation_rules"] == [
            {"sourcePath": "tools.commands[].c1", "targetField": "tools.availableConfigs", "unique": True}
        ]
        assert result.data["defaults"] == [{"path": "version", "default": "1.0.0"}]
        assert result.data["template_path"] == str(workspace / "template.json")
        assert result.data["statistics"]["data_count"] is None

    def test_counts_inputs(self, workspace: Path) -> None:
        result = PipelineService().inspect(workspace / "schema.json", [str(workspace / "docs")])
        assert result.data["statistics"]["data_count"] == 3

    def test_rule_failures_listed(self, tmp_path: Path) -> None:
        schema = {"properties": {}, "x-derived": [{"sourcePath": "", "targetField": "t"}]}
        (tmp_path / "s.json").write_text(json.dumps(schema), encoding="utf-8")
        result = PipelineService().inspect(tmp_path / "s.json")
        assert result.ok
        assert len(result.data["rule_failures"]) == 1
        assert result.data["statistics"]["processing_method"] == "without-derivation-rules"
        assert result.warnings

    def test_bad_schema(self, tmp_path: Path) -> None:
        (tmp_path / "s.yaml").write_text("- not\n- a mapping\n", encoding="utf-8")
        result = PipelineService().inspect(tmp_path / "s.yaml")
        assert result.error is not None
        assert result.error.code == "SCHEMA_LOAD_FAILED"


class TestTelemetry:
    def test_process_spans(self, workspace: Path) -> None:
        enable_telemetry()
        try:
            result = PipelineService().process(_request(workspace))
        finally:
            disable_telemetry()
        assert result.meta is not None
        names = [c["name"] for c in result.meta["telemetry"]["children"]]
        assert names[:3] == ["load_schema", "discover", "load_documents"]
        assert "render" in names
        assert "write" in names


@pytest.mark.parametrize(("count", "method"), [(0, "without-derivation-rules"), (2, "with-derivation-rules")])
def test_processing_method(count: int, method: str) -> None:
    assert processing_method(count) == method
