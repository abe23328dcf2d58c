"""Rich rendering of framework errors for stderr."""

from __future__ import annotations

from rich.text import Text

from cmdlayers.errors import CmdLayersError
from cmdlayers.output.console import create_console, get_output


def render_error(error: CmdLayersError, *, verbose: bool = False) -> str:
    """Render *error* as ``ERROR  CODE — message`` plus detail lines when verbose.

    Returns plain text (no ANSI) when Rich detects no terminal, which is the
    case inside Click's CliRunner and piped output.
    """
    console = create_console()
    label = Text("ERROR", style="cl.error")
    code = Text(f"  {error.code}", style="cl.code")
    message = Text(error.message)
    console.print(label, code, Text(" — "), message, sep="", end="", soft_wrap=True)
    console.print()

    if verbose and error.detail:
        console.print(Text("  detail:", style="cl.key"))
        for key, value in error.detail.items():
            console.print(Text(f"    {key}: {value}"), soft_wrap=True)
    return get_output(console).rstrip("\n")
