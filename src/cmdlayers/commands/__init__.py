"""Row commands bundled with the ``cmdlayers`` CLI.

Provides register_commands(), which builds the command descriptions with the
process-wide type registry and attaches their click commands to the root
group.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click

    from cmdlayers.parameters.types import TypeRegistry


def register_commands(cli: click.Group, registry: TypeRegistry) -> None:
    """Register the json, yaml and csv reader commands on *cli*."""
    from cmdlayers.commands._base import layered_command
    from cmdlayers.commands.readers import EXAMPLES, build_readers
    from cmdlayers.processing.layers import output_layers

    output = output_layers(registry)
    for description in build_readers(registry, output):
        cli.add_command(layered_command(description, examples=EXAMPLES.get(description.name)))
