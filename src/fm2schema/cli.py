"""Root CLI group for fm2schema with global flags and command registration."""

from __future__ import annotations

import click

from fm2schema import __version__
from fm2schema.commands import register_commands
from fm2schema.commands._base import Fm2Group
from fm2schema.commands._context import AppContext
from fm2schema.config.settings import Fm2Settings


@click.group(
    cls=Fm2Group,
    invoke_without_command=True,
    examples="""\
  fm2schema process schema.json out.json docs/
  fm2schema inspect schema.json
  fm2schema --json -v process schema.json out.yaml 'docs/*.md'""",
)
@click.version_option(version=__version__, prog_name="fm2schema")
@click.option("--json", "json_output", is_flag=True, help="Print results as JSON.")
@click.option("-q", "--quiet", is_flag=True, help="Print only the essential value.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logs, stage timings and full detail.")
@click.option("--log-json", is_flag=True, help="Emit stderr logs as JSON lines.")
@click.option(
    "-c",
    "--config",
    "config_path",
    default=None,
    help="Use this fm2schema.toml instead of searching for one.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
) -> None:
    """fm2schema: Aggregate Markdown frontmatter into schema-shaped output."""
    settings = Fm2Settings.from_cli(
        config_path=config_path,
        json_output=json_output,
        quiet=quiet,
        verbose=verbose,
        log_json=log_json,
    )
    ctx.obj = AppContext(settings)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
