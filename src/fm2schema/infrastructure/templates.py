"""Template rendering and output serialisation.

Two template kinds:

- Structured templates (``.json``, ``.yaml``, ``.yml``): parsed, then
  every string value is scanned for ``{dotted.path}`` placeholders.  A
  string that is exactly one placeholder becomes the structured value;
  embedded placeholders are interpolated as text; unresolved ones stay
  verbatim.  The result is dumped in the output format.
- Jinja2 templates (``.j2``, ``.jinja``): rendered with the aggregated
  mapping as context and written as-is.
"""

from __future__ import annotations

import json
import re
from enum import StrEnum
from io import StringIO
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError
from ruamel.yaml import YAML

from fm2schema.domain.errors import MissingTemplateError, TemplateRenderError
from fm2schema.domain.path_model import PathModel
from fm2schema.infrastructure.filesystem import LocalFileSystem
from fm2schema.infrastructure.loader import parse_yaml_mapping

JINJA_SUFFIXES = frozenset({".j2", ".jinja"})

_PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_$][\w$\[\]-]*(?:\.[\w$\[\]-]+)*)\}")


class OutputFormat(StrEnum):
    JSON = "json"
    YAML = "yaml"


def output_format_for(path: Path) -> OutputFormat:
    """``.yaml``/``.yml`` is YAML; anything else is JSON."""
    if Path(path).suffix.lower() in (".yaml", ".yml"):
        return OutputFormat.YAML
    return OutputFormat.JSON


def _new_yaml() -> YAML:
    y = YAML()
    y.default_flow_style = False
    y.allow_unicode = True
    return y


def dump(data: Any, output_format: OutputFormat, *, indent: int = 2) -> str:
    """Serialise *data* as JSON or block-style YAML."""
    if output_format is OutputFormat.YAML:
        buf = StringIO()
        _new_yaml().dump(data, buf)
        return buf.getvalue()
    return json.dumps(data, indent=indent, ensure_ascii=False) + "\n"


# ---------------------------------------------------------------------------
# Placeholder substitution
# ---------------------------------------------------------------------------


def substitute(node: Any, data: PathModel) -> Any:
    """Replace ``{path}`` placeholders throughout a parsed template."""
    match node:
        case str():
            return _substitute_string(node, data)
        case dict():
            return {key: substitute(value, data) for key, value in node.items()}
        case list():
            return [substitute(item, data) for item in node]
        case _:
            return node


def _substitute_string(text: str, data: PathModel) -> Any:
    whole = _PLACEHOLDER_RE.fullmatch(text)
    if whole:
        lookup = data.lookup(whole.group(1))
        return lookup.value if lookup.found else text

    def replace(match: re.Match[str]) -> str:
        lookup = data.lookup(match.group(1))
        if not lookup.found:
            return match.group(0)
        value = lookup.value
        if isinstance(value, str):
            return value
        return json.dumps(value, ensure_ascii=False)

    return _PLACEHOLDER_RE.sub(replace, text)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def build_template_environment(template_dir: Path) -> Environment:
    """Jinja2 environment rooted at the template's directory."""
    env = Environment(
        loader=FileSystemLoader(str(template_dir)),
        keep_trailing_newline=True,
        undefined=StrictUndefined,
        autoescape=False,
    )
    env.filters["to_yaml"] = lambda value: dump(value, OutputFormat.YAML)
    return env


def render_template(
    template_path: Path,
    data: PathModel,
    output_format: OutputFormat,
    *,
    indent: int = 2,
    fs: LocalFileSystem | None = None,
) -> str:
    """Render *data* through the template at *template_path*.

    Raises:
        MissingTemplateError: The template file does not exist.
        TemplateRenderError: The template cannot be parsed or rendered.
    """
    fs = fs or LocalFileSystem()
    template_path = Path(template_path)
    if not fs.exists(template_path):
        msg = f"Template not found: {template_path}"
        raise MissingTemplateError(msg, stage="render", detail={"template": str(template_path)})

    if template_path.suffix.lower() in JINJA_SUFFIXES:
        env = build_template_environment(template_path.parent)
        try:
            return env.get_template(template_path.name).render(**data.to_dict())
        except TemplateError as exc:
            msg = f"Cannot render {template_path}: {exc}"
            raise TemplateRenderError(msg, stage="render", detail={"template": str(template_path)}) from exc

    try:
        text = fs.read_text(template_path)
    except (OSError, UnicodeDecodeError) as exc:
        msg = f"Cannot read template {template_path}: {exc}"
        raise TemplateRenderError(msg, stage="render", detail={"template": str(template_path)}) from exc
    try:
        if template_path.suffix.lower() == ".json":
            parsed = json.loads(text)
        else:
            parsed = parse_yaml_mapping(text)
    except (ValueError, TypeError) as exc:
        msg = f"Cannot parse template {template_path}: {exc}"
        raise TemplateRenderError(msg, stage="render", detail={"template": str(template_path)}) from exc

    return dump(substitute(parsed, data), output_format, indent=indent)
