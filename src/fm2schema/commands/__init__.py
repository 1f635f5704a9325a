"""Subcommand modules for fm2schema.

register_commands() imports lazily so ``fm2schema --help`` never pulls
in the engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Attach the standalone commands to the root group."""
    from fm2schema.commands.inspect import inspect
    from fm2schema.commands.process import process

    cli.add_command(process)
    cli.add_command(inspect)
