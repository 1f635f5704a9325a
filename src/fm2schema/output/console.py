"""Rich Console factory and theme for fm2schema output.

Consoles render into a StringIO buffer so formatters keep returning
strings.  In non-TTY environments (tests, pipes) Rich drops color codes.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

FM2_THEME = Theme(
    {
        "fm2.ok": "bold green",
        "fm2.error": "bold red",
        "fm2.warning": "bold yellow",
        "fm2.op": "bold cyan",
        "fm2.key": "dim",
        "fm2.path": "blue",
        "fm2.nested": "magenta",
        "fm2.count": "bold",
    }
)


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer."""
    return Console(
        file=StringIO(),
        theme=FM2_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Rendered text of a StringIO-backed Console."""
    buffer = console.file
    if not isinstance(buffer, StringIO):
        msg = "Console is not backed by a StringIO buffer"
        raise TypeError(msg)
    return buffer.getvalue()
