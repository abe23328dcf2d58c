"""AppContext — shared Click context for all commands.

Created once by the root CLI group and stored on ``ctx.obj``.  Holds the
application settings and the type registry, assembles the value sources for
an invocation and centralizes error reporting (stderr + exit codes).
"""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import click

from cmdlayers.config.logging import bind_invocation, clear_invocation, configure_logging
from cmdlayers.errors import CancellationError, CmdLayersError
from cmdlayers.output.errors import render_error
from cmdlayers.parameters.click_bridge import arguments_from_click
from cmdlayers.parameters.resolution import ResolutionEngine
from cmdlayers.parameters.sources import ValueSource, standard_sources
from cmdlayers.processing.layers import build_pipeline, output_layers
from cmdlayers.processing.pipeline import CancellationToken, RowPipeline

if TYPE_CHECKING:
    from cmdlayers.commands.kinds import CommandDescription
    from cmdlayers.config.settings import AppSettings
    from cmdlayers.parameters.layers import ParameterLayer
    from cmdlayers.parameters.types import TypeRegistry

logger = logging.getLogger(__name__)

EXIT_CANCELLED = 130


@contextmanager
def _cancel_on_interrupt(token: CancellationToken) -> Iterator[None]:
    """Turn SIGINT into a pipeline cancellation while the block runs.

    The pipeline notices cancellation between rows.  A second SIGINT raises
    KeyboardInterrupt for producers blocked on input.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def interrupt(_signum: int, _frame: object) -> None:
        if token.cancelled:
            raise KeyboardInterrupt
        token.cancel()

    previous = signal.signal(signal.SIGINT, interrupt)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


class AppContext:
    """Shared context flowing through Click's command hierarchy."""

    def __init__(self, settings: AppSettings, registry: TypeRegistry) -> None:
        self.settings = settings
        self.registry = registry
        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

    def sources(
        self,
        ctx: click.Context,
        layers: tuple[ParameterLayer, ...],
    ) -> list[ValueSource]:
        """Defaults, config file, environment and the command line, in rank order."""
        config_path = self.settings.config_path
        return standard_sources(
            arguments=arguments_from_click(ctx, layers),
            env_prefix=self.settings.env_prefix,
            config_files=[config_path] if config_path else [],
        )

    def run(
        self,
        description: CommandDescription,
        ctx: click.Context,
        *,
        print_parameters: bool = False,
    ) -> None:
        """Resolve and execute *description*, reporting framework errors."""
        from cmdlayers.commands.kinds import execute, parameter_rows

        stream = click.get_text_stream("stdout")
        token = CancellationToken()
        sources = self.sources(ctx, description.all_layers)
        started: list[RowPipeline] = []

        def on_pipeline(pipeline: RowPipeline) -> None:
            started.append(pipeline)
            self._check_buffering(pipeline)

        bind_invocation(command=description.name)
        try:
            with _cancel_on_interrupt(token):
                if print_parameters:
                    output = description.output or output_layers(self.registry)
                    layers = description.all_layers
                    if description.output is None:
                        layers = (*layers, *output.layers)
                    parsed = ResolutionEngine(self.registry).resolve(layers, sources)
                    with build_pipeline(parsed, output, stream, cancellation=token) as pipeline:
                        for row in parameter_rows(parsed):
                            pipeline.add_row(row)
                    return
                execute(
                    description,
                    registry=self.registry,
                    sources=sources,
                    stream=stream,
                    cancellation=token,
                    on_pipeline=on_pipeline,
                )
        except CancellationError as exc:
            self.fail(exc, exit_code=EXIT_CANCELLED)
        except KeyboardInterrupt:
            received = started[0].rows_received if started else 0
            self.fail(CancellationError(rows_received=received), exit_code=EXIT_CANCELLED)
        except CmdLayersError as exc:
            self.fail(exc)
        finally:
            clear_invocation()

    def _check_buffering(self, pipeline: RowPipeline) -> None:
        bind_invocation(format=pipeline.sink.format)
        if pipeline.buffers_stream and self.settings.warn_buffered:
            logger.warning(
                "Output format %s buffers every row before writing; "
                "memory use grows with the result size",
                pipeline.sink.format,
            )

    def fail(self, error: CmdLayersError, *, exit_code: int = 1) -> None:
        """Write *error* to stderr and exit with *exit_code*."""
        click.echo(render_error(error, verbose=self.settings.verbose), err=True)
        raise SystemExit(exit_code)
