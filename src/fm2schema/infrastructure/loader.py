"""Document and schema loading.

Splits a Markdown file into its ``---`` delimited YAML frontmatter and
body, parses the YAML with ruamel.yaml's safe loader, and normalises the
result to plain JSON values (dates become ISO strings).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from fm2schema.domain.document import Document
from fm2schema.domain.errors import DocumentLoadError, DocumentValidationError, SchemaLoadError
from fm2schema.domain.path_model import PathModel, to_json_value
from fm2schema.domain.schema import Schema
from fm2schema.infrastructure.filesystem import LocalFileSystem

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

_FRONTMATTER_DELIMITER = "---"


def _new_yaml() -> YAML:
    """Fresh safe parser per call; ruamel's YAML object is stateful."""
    return YAML(typ="safe", pure=True)


def split_frontmatter(content: str) -> tuple[str | None, str]:
    """Split *content* into ``(yaml_block, body)``.

    The file must start with ``---``; the next ``---`` line closes the
    block.  Handles both ``\\n`` and ``\\r\\n`` line endings.  Returns
    ``(None, content)`` when there is no complete frontmatter block.
    """
    normalized = content.replace("\r\n", "\n")
    lines = normalized.split("\n")
    if not lines or lines[0].strip() != _FRONTMATTER_DELIMITER:
        return None, content

    end_idx: int | None = None
    for i, line in enumerate(lines[1:], start=1):
        if line.strip() == _FRONTMATTER_DELIMITER:
            end_idx = i
            break

    if end_idx is None:
        return None, content

    yaml_block = "\n".join(lines[1:end_idx])
    body = "\n".join(lines[end_idx + 1 :])
    if body.startswith("\n"):
        body = body[1:]
    return yaml_block, body


def parse_yaml_mapping(text: str) -> dict[str, Any]:
    """Parse *text* as YAML that must be a mapping (empty text is ``{}``).

    Raises:
        ValueError: The text is not valid YAML or not a mapping.
    """
    try:
        loaded = _new_yaml().load(text)
    except YAMLError as exc:
        msg = f"Invalid YAML: {exc}"
        raise ValueError(msg) from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        msg = f"Expected a mapping, got {type(loaded).__name__}"
        raise ValueError(msg)
    return to_json_value(loaded)  # type: ignore[return-value]


class DocumentLoader:
    """Turns a Markdown file into a :class:`Document`."""

    def __init__(self, fs: LocalFileSystem | None = None) -> None:
        self._fs = fs or LocalFileSystem()

    def load(self, path: Path, schema: Schema | None = None) -> Document:
        """Read and parse *path*; with a *schema*, check its required keys.

        Raises:
            DocumentLoadError: Unreadable file or malformed frontmatter.
            DocumentValidationError: A key listed in ``required`` is missing.
        """
        try:
            content = self._fs.read_text(path)
        except (OSError, UnicodeDecodeError) as exc:
            msg = f"Cannot read {path}: {exc}"
            raise DocumentLoadError(msg, stage="load", detail={"path": str(path)}) from exc

        block, body = split_frontmatter(content)
        frontmatter: PathModel | None = None
        if block is not None:
            try:
                frontmatter = PathModel(parse_yaml_mapping(block))
            except (ValueError, TypeError) as exc:
                msg = f"Malformed frontmatter in {path}: {exc}"
                raise DocumentLoadError(msg, stage="load", detail={"path": str(path)}) from exc

        document = Document(path=Path(path), raw_content=content, frontmatter=frontmatter, body=body)
        if schema is not None:
            check_required(document, schema)
        return document


def check_required(document: Document, schema: Schema) -> None:
    """Minimal validation: every key from :meth:`Schema.document_required` is present.

    Documents without frontmatter are not checked.
    """
    required = schema.document_required()
    if document.frontmatter is None or not required:
        return
    missing = [key for key in required if key not in document.frontmatter.data]
    if missing:
        msg = f"{document.path} is missing required field(s): {', '.join(missing)}"
        raise DocumentValidationError(
            msg, stage="load", detail={"path": str(document.path), "missing": missing}
        )


def load_schema(path: Path, fs: LocalFileSystem | None = None) -> Schema:
    """Load a JSON (``.json``) or YAML schema file.

    Raises:
        SchemaLoadError: Unreadable, unparsable, or not a mapping.
    """
    fs = fs or LocalFileSystem()
    path = Path(path)
    try:
        text = fs.read_text(path)
    except (OSError, UnicodeDecodeError) as exc:
        msg = f"Cannot read schema {path}: {exc}"
        raise SchemaLoadError(msg, stage="schema", detail={"path": str(path)}) from exc

    raw: Mapping[str, Any] | Any
    try:
        if path.suffix.lower() == ".json":
            raw = json.loads(text)
        else:
            raw = parse_yaml_mapping(text)
    except (ValueError, TypeError) as exc:
        msg = f"Cannot parse schema {path}: {exc}"
        raise SchemaLoadError(msg, stage="schema", detail={"path": str(path)}) from exc

    if not isinstance(raw, dict):
        msg = f"Schema {path} must be an object, got {type(raw).__name__}"
        raise SchemaLoadError(msg, stage="schema", detail={"path": str(path)})

    logger.debug("Loaded schema %s", path)
    return Schema(raw=raw, path=path)
