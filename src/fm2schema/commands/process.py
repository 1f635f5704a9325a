"""Command: run the full aggregation pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from fm2schema.commands._base import Fm2Command
from fm2schema.services.strategies import ConflictResolution, StrategyKind

if TYPE_CHECKING:
    from fm2schema.commands._context import AppContext


@click.command(
    cls=Fm2Command,
    examples="""\
  fm2schema process schema.json registry.json docs/
  fm2schema process schema.json registry.yaml "docs/**/*.md" --template registry.yaml
  fm2schema process schema.json out.json a.md b.md --strategy merge --conflict array-combine
  fm2schema process schema.json out.json docs/ --parallel --workers 8 --memory-limit 512""",
)
@click.argument("schema", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.argument("inputs", nargs=-1, required=True)
@click.option(
    "-t",
    "--template",
    "template",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Template file (defaults to the schema's x-template).",
)
@click.option(
    "--strategy",
    type=click.Choice([k.value for k in StrategyKind]),
    default=None,
    help="Combine documents with this strategy instead of schema placement.",
)
@click.option(
    "--conflict",
    type=click.Choice([c.value for c in ConflictResolution]),
    default=None,
    help="Conflict policy for the merge strategy.",
)
@click.option(
    "--parallel/--sequential",
    default=None,
    help="Process documents in parallel batches.",
)
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Parallel worker count.")
@click.option(
    "--memory-limit",
    "memory_limit",
    type=click.IntRange(min=0),
    default=None,
    help="Abort above this many MB (0 disables).",
)
@click.pass_obj
def process(
    app: AppContext,
    schema: Path,
    output: Path,
    inputs: tuple[str, ...],
    template: Path | None,
    strategy: str | None,
    conflict: str | None,
    parallel: bool | None,
    workers: int | None,
    memory_limit: int | None,
) -> None:
    """Aggregate frontmatter from INPUTS into OUTPUT according to SCHEMA.

    INPUTS may be files, directories (searched recursively) or glob
    patterns.  The output format follows OUTPUT's extension.
    """
    from fm2schema.services.pipeline import ProcessRequest

    request = ProcessRequest(
        schema_path=schema,
        output_path=output,
        inputs=list(inputs),
        template_path=template,
        strategy=StrategyKind(strategy) if strategy else None,
        conflict_resolution=ConflictResolution(conflict) if conflict else None,
        parallel=parallel,
        max_workers=workers,
        memory_limit_mb=memory_limit,
    )
    app.emit(app.pipeline.process(request))
