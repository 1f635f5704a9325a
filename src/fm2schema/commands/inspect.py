"""Command: show what a schema tells the engine to do."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from fm2schema.commands._base import Fm2Command

if TYPE_CHECKING:
    from fm2schema.commands._context import AppContext


@click.command(
    cls=Fm2Command,
    examples="""\
  fm2schema inspect schema.json
  fm2schema inspect schema.json docs/
  fm2schema --json inspect schema.yaml""",
)
@click.argument("schema", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("inputs", nargs=-1)
@click.pass_obj
def inspect(app: AppContext, schema: Path, inputs: tuple[str, ...]) -> None:
    """List insertion points, directives, derivation rules and defaults.

    With INPUTS, also count the documents that carry frontmatter.
    """
    app.emit(app.pipeline.inspect(schema, list(inputs)))
