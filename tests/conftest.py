"""Shared pytest fixtures for fm2schema tests."""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path

import pytest
from click.testing import CliRunner

from fm2schema.services.telemetry import disable_telemetry

SCHEMA = {
    "type": "object",
    "x-template": "template.json",
    "properties": {
        "version": {"type": "string", "default": "1.0.0"},
        "tools": {
            "type": "object",
            "properties": {
                "commands": {
                    "type": "array",
                    "x-frontmatter-part": True,
                    "items": {"type": "object"},
                },
                "availableConfigs": {
                    "type": "array",
                    "x-derived-from": "tools.commands[].c1",
                    "x-derived-unique": True,
                },
            },
        },
    },
}

TEMPLATE = {
    "version": "{version}",
    "tools": {
        "availableConfigs": "{tools.availableConfigs}",
        "commands": "{tools.commands}",
    },
    "summary": "{tools.availableConfigs} configs",
}


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep host FM2SCHEMA_* variables, telemetry and log handlers out of every test."""
    import logging
    import os

    for name in list(os.environ):
        if name.startswith("FM2SCHEMA_"):
            monkeypatch.delenv(name, raising=False)
    root = logging.getLogger()
    handlers = root.handlers[:]
    yield
    disable_telemetry()
    root.handlers = handlers


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


def write_doc(path: Path, frontmatter: str, body: str = "Body text.\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"---\n{frontmatter}\n---\n{body}", encoding="utf-8")
    return path


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Schema, template and three command documents under *tmp_path*.

    Layout::

        schema.json      nested x-frontmatter-part at tools.commands
        template.json    placeholders for version, commands, configs
        docs/a.md        c1: git
        docs/b.md        c1: spec
        docs/c.md        c1: git
    """
    (tmp_path / "schema.json").write_text(json.dumps(SCHEMA), encoding="utf-8")
    (tmp_path / "template.json").write_text(json.dumps(TEMPLATE), encoding="utf-8")
    write_doc(tmp_path / "docs" / "a.md", "c1: git\nc2: merge\ntitle: Merge branches")
    write_doc(tmp_path / "docs" / "b.md", "c1: spec\nc2: analyze\ntitle: Analyze spec")
    write_doc(tmp_path / "docs" / "c.md", "c1: git\nc2: commit\ntitle: Commit")
    return tmp_path
