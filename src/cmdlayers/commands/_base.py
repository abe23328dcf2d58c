"""Click command classes for layered commands.

:func:`layered_command` turns a
:class:`~cmdlayers.commands.kinds.CommandDescription` into a click command
whose options are generated from the description's layers.  Commands and the
root group can carry usage examples, printed by ``--examples`` so that
``--help`` stays about flags.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import click

from cmdlayers.parameters.click_bridge import layer_params

if TYPE_CHECKING:
    from cmdlayers.commands._context import AppContext
    from cmdlayers.commands.kinds import CommandDescription


def examples_option(examples: str) -> click.Option:
    """Eager ``--examples`` flag that prints *examples* and exits."""

    def show(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
        if value:
            click.echo(f"Examples for '{ctx.command_path}':\n")
            click.echo(examples)
            ctx.exit(0)

    return click.Option(
        ["--examples"],
        is_flag=True,
        expose_value=False,
        is_eager=True,
        callback=show,
        help="Show usage examples and exit.",
    )


class CmdCommand(click.Command):
    """Command whose usage examples sit behind ``--examples``."""

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = examples
        if examples:
            self.params.append(examples_option(examples))


class CmdGroup(click.Group):
    """Root group; subcommands default to :class:`CmdCommand`."""

    command_class = CmdCommand

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = examples
        if examples:
            self.params.append(examples_option(examples))


def layered_command(description: CommandDescription, *, examples: str | None = None) -> CmdCommand:
    """Build the click command for *description*.

    Every layer definition becomes an option or argument; the callback hands
    the invocation to :meth:`AppContext.run`, which resolves the layers and
    dispatches on the command kind.
    """

    @click.pass_context
    def callback(ctx: click.Context, print_parameters: bool = False, **_values: Any) -> None:
        app: AppContext = ctx.obj
        app.run(description, ctx, print_parameters=print_parameters)

    params = layer_params(description.all_layers)
    params.append(
        click.Option(
            ["--print-parameters"],
            is_flag=True,
            help="Print every resolved parameter with its source and exit.",
        )
    )
    return CmdCommand(
        description.name,
        callback=callback,
        params=params,
        help=description.short,
        examples=examples,
    )
