"""Root CLI group for cmdlayers with global flags and command registration."""

from __future__ import annotations

import click

from cmdlayers import __version__
from cmdlayers.commands import register_commands
from cmdlayers.commands._base import CmdGroup
from cmdlayers.commands._context import AppContext
from cmdlayers.config.settings import AppSettings
from cmdlayers.parameters.types import TypeRegistry

REGISTRY = TypeRegistry.default()

_CLI_EXAMPLES = """\
  cmdlayers json users.json -o yaml
  cmdlayers csv sales.csv --infer-types --sort-by -amount --limit 10
  cmdlayers --config ./cmdlayers.toml yaml hosts.yaml --print-parameters
  CMDLAYERS_OUTPUT=jsonl cmdlayers json events.json"""


@click.group(cls=CmdGroup, invoke_without_command=True, examples=_CLI_EXAMPLES)
@click.version_option(version=__version__, prog_name="cmdlayers")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging and error detail.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option(
    "-c",
    "--config",
    "config_path",
    default=None,
    envvar="CMDLAYERS_CONFIG",
    help="Config file path (default: cmdlayers.toml found walking up).",
)
@click.option("--env-prefix", default=None, help="Prefix of parameter environment variables.")
@click.option(
    "--warn-buffered",
    is_flag=True,
    help="Warn when the output format holds every row in memory.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
    env_prefix: str | None,
    warn_buffered: bool,
) -> None:
    """cmdlayers — print structured files through a configurable row pipeline."""
    settings = AppSettings.from_cli(
        config_path=config_path,
        verbose=verbose or None,
        log_json=log_json or None,
        env_prefix=env_prefix,
        warn_buffered=warn_buffered or None,
    )
    ctx.obj = AppContext(settings, REGISTRY)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli, REGISTRY)
