"""Command kinds and the runner that resolves layers, then dispatches on kind.

A command is one of three kinds, fixed when it is described:

* ``direct`` — ``run(parsed)``; produces its own side effects.
* ``writer`` — ``run(parsed, stream)``; writes free-form text to the stream.
* ``rows``   — ``run(parsed, emitter)``; emits rows into a pipeline built
  from the built-in ``output`` and ``rows`` layers.

Resolution always completes before ``run`` is called, so a bad parameter
never produces partial output.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TextIO

from pydantic import SecretStr

from cmdlayers.errors import DefinitionError
from cmdlayers.parameters.layers import ParameterLayer, check_unique_slugs
from cmdlayers.parameters.resolution import ParsedLayers, ResolutionEngine
from cmdlayers.parameters.sources import ValueSource
from cmdlayers.parameters.types import FileData, TypeRegistry
from cmdlayers.processing.layers import OutputLayers, build_pipeline
from cmdlayers.processing.pipeline import CancellationToken, RowPipeline
from cmdlayers.rows.row import Row

logger = logging.getLogger(__name__)


class CommandKind(StrEnum):
    DIRECT = "direct"
    WRITER = "writer"
    ROWS = "rows"


@dataclass(frozen=True)
class CommandDescription:
    """Name, layers and implementation of one command.

    Row commands must carry the built-in :class:`OutputLayers`; they are
    appended to the command's own layers.
    """

    name: str
    kind: CommandKind
    run: Callable[..., Any]
    layers: tuple[ParameterLayer, ...] = ()
    short: str = ""
    output: OutputLayers | None = None

    def __post_init__(self) -> None:
        if self.kind is CommandKind.ROWS and self.output is None:
            raise DefinitionError(f"Row command '{self.name}' needs output layers")
        if self.kind is not CommandKind.ROWS and self.output is not None:
            raise DefinitionError(f"Only row commands take output layers ('{self.name}')")
        check_unique_slugs(self.all_layers)

    @property
    def all_layers(self) -> tuple[ParameterLayer, ...]:
        extra = self.output.layers if self.output is not None else ()
        return (*self.layers, *extra)


def execute(
    command: CommandDescription,
    *,
    registry: TypeRegistry,
    sources: Iterable[ValueSource],
    stream: TextIO,
    cancellation: CancellationToken | None = None,
    on_pipeline: Callable[[RowPipeline], None] | None = None,
) -> ParsedLayers:
    """Resolve *command*'s layers from *sources* and run it.

    Args:
        on_pipeline: Called with the configured pipeline before any row is
            produced (row commands only), e.g. to warn about buffering.

    Returns:
        The parsed layers the command ran with.
    """
    parsed = ResolutionEngine(registry).resolve(command.all_layers, sources)
    logger.debug("Running %s command %s", command.kind, command.name)

    match command.kind:
        case CommandKind.DIRECT:
            command.run(parsed)
        case CommandKind.WRITER:
            command.run(parsed, stream)
        case CommandKind.ROWS:
            assert command.output is not None
            pipeline = build_pipeline(parsed, command.output, stream, cancellation=cancellation)
            if on_pipeline is not None:
                on_pipeline(pipeline)
            with pipeline:
                command.run(parsed, pipeline.emitter())
    return parsed


def _display(value: Any) -> Any:
    if isinstance(value, SecretStr):
        return "********" if value.get_secret_value() else ""
    if isinstance(value, FileData):
        return str(value.path)
    if isinstance(value, list):
        return [_display(item) for item in value]
    return value


def parameter_rows(parsed: ParsedLayers) -> Iterator[Row]:
    """One row per resolved parameter: layer, parameter, value, source."""
    for slug, layer in parsed.items():
        for name in layer:
            yield Row(
                [
                    ("layer", slug),
                    ("parameter", name),
                    ("value", _display(layer[name])),
                    ("source", layer.source_of(name)),
                ]
            )
