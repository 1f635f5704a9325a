"""AppContext: shared Click context for all commands.

Created once by the root group and handed to subcommands via
``@click.pass_obj``.  Owns logging setup, the lazily-built pipeline
service, and result emission (stdout/stderr routing and exit codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from fm2schema.config.logging import configure_logging
from fm2schema.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from fm2schema.config.settings import Fm2Settings
    from fm2schema.services.pipeline import PipelineService
    from fm2schema.services.result import ServiceResult


class AppContext:
    """Per-invocation state shared by every subcommand."""

    def __init__(self, settings: Fm2Settings) -> None:
        self.settings = settings
        self._pipeline: PipelineService | None = None

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

        if settings.verbose:
            from fm2schema.services.telemetry import enable_telemetry

            enable_telemetry()

    @property
    def pipeline(self) -> PipelineService:
        """The pipeline service (created on first access)."""
        if self._pipeline is None:
            from fm2schema.services.pipeline import PipelineService

            self._pipeline = PipelineService(self.settings)
        return self._pipeline

    def emit(self, result: ServiceResult) -> None:
        """Print *result*; failures go to stderr and exit 1.

        In human mode, warnings of a successful result go to stderr so
        they never pollute piped output.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            if not settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)
