"""Rich consoles that render into a string.

The table sink and the stderr error renderer both draw with Rich but choose
for themselves where the text goes, so every console here writes to an
in-memory buffer.  Rich leaves out ANSI codes when it detects no terminal.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

CMDLAYERS_THEME = Theme(
    {
        "cl.error": "bold red",
        "cl.code": "bold cyan",
        "cl.key": "dim",
        "cl.header": "bold",
    }
)

DEFAULT_WIDTH = 120


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Buffer-backed console using the cmdlayers theme.

    A fixed *width* keeps table output independent of the terminal the
    command happens to run in.
    """
    return Console(
        file=StringIO(),
        theme=CMDLAYERS_THEME,
        no_color=no_color,
        highlight=False,
        width=width or DEFAULT_WIDTH,
    )


def get_output(console: Console) -> str:
    """Text rendered so far by a console from :func:`create_console`."""
    buffer = console.file
    if not isinstance(buffer, StringIO):
        raise TypeError("console does not render to an in-memory buffer")
    return buffer.getvalue()
