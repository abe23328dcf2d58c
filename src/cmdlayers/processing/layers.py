"""Built-in ``output`` and ``rows`` layers and the pipeline factory.

Row commands declare these two layers next to their own; after resolution,
:func:`build_pipeline` turns the parsed values into a configured
:class:`RowPipeline`.  Stage order is fixed: filter, sort, limit/offset,
exclude, select, rename.  Filtering and sorting therefore see every field,
including the ones later dropped from the output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TextIO

from cmdlayers.errors import ParameterValidationError
from cmdlayers.parameters.definitions import ParameterDefinition
from cmdlayers.parameters.layers import LayerBinding, ParameterLayer
from cmdlayers.parameters.resolution import ParsedLayers
from cmdlayers.parameters.types import FileData, ParameterType, TypeRegistry
from cmdlayers.processing.expressions import ExpressionError
from cmdlayers.processing.pipeline import CancellationToken, RowPipeline
from cmdlayers.processing.sinks import SINKS, TABLE_STYLES, Sink, create_sink
from cmdlayers.processing.stages import (
    ExcludeColumns,
    FilterStage,
    LimitStage,
    RenameColumns,
    SelectColumns,
    SortStage,
    Stage,
)

OUTPUT_LAYER = "output"
ROWS_LAYER = "rows"


@dataclass(frozen=True)
class OutputSettings:
    format: str = "table"
    table_style: str = "rounded"
    max_column_width: int = 0
    table_width: int = 120
    template: str = ""
    template_file: FileData | None = None
    csv_separator: str = ","
    with_headers: bool = True
    flatten_separator: str = "."


@dataclass(frozen=True)
class RowSettings:
    fields: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    filter: str = ""
    rename: dict[str, str] = field(default_factory=dict)
    sort_by: list[str] = field(default_factory=list)
    limit: int = 0
    offset: int = 0


@dataclass(frozen=True)
class OutputLayers:
    """The two built-in layers and their bindings."""

    output: ParameterLayer
    rows: ParameterLayer
    output_binding: LayerBinding[OutputSettings]
    rows_binding: LayerBinding[RowSettings]

    @property
    def layers(self) -> tuple[ParameterLayer, ParameterLayer]:
        return (self.output, self.rows)


def output_layers(registry: TypeRegistry) -> OutputLayers:
    """Build the ``output`` and ``rows`` layers with *registry*."""
    output = ParameterLayer(
        OUTPUT_LAYER,
        [
            ParameterDefinition(
                name="output",
                type=ParameterType.CHOICE,
                choices=tuple(SINKS),
                default="table",
                short_flag="o",
                help="Output format.",
            ),
            ParameterDefinition(
                name="table-style",
                type=ParameterType.CHOICE,
                choices=tuple(TABLE_STYLES),
                default="rounded",
                help="Border style for table output.",
            ),
            ParameterDefinition(
                name="max-column-width",
                type=ParameterType.INTEGER,
                minimum=0,
                help="Truncate table cells wider than this (0 = no limit).",
            ),
            ParameterDefinition(
                name="table-width",
                type=ParameterType.INTEGER,
                default=120,
                minimum=20,
                help="Total width available to table output.",
            ),
            ParameterDefinition(
                name="template",
                type=ParameterType.STRING,
                help="Jinja2 template rendered per row (with --output template).",
            ),
            ParameterDefinition(
                name="template-file",
                type=ParameterType.FILE,
                help="File holding the per-row template.",
            ),
            ParameterDefinition(
                name="csv-separator",
                type=ParameterType.STRING,
                default=",",
                help="Field separator for csv output.",
            ),
            ParameterDefinition(
                name="with-headers",
                type=ParameterType.BOOL,
                default=True,
                help="Write a header line in csv/tsv output.",
            ),
            ParameterDefinition(
                name="flatten-separator",
                type=ParameterType.STRING,
                default=".",
                help="Joins nested keys into csv column names.",
            ),
        ],
        registry,
        name="Output formatting",
    )
    rows = ParameterLayer(
        ROWS_LAYER,
        [
            ParameterDefinition(
                name="fields",
                type=ParameterType.STRING_LIST,
                short_flag="f",
                help="Fields to output, in order.",
            ),
            ParameterDefinition(
                name="exclude",
                type=ParameterType.STRING_LIST,
                help="Fields to drop from the output.",
            ),
            ParameterDefinition(
                name="filter",
                type=ParameterType.STRING,
                help="Keep rows matching this expression (e.g. 'n > 2').",
            ),
            ParameterDefinition(
                name="rename",
                type=ParameterType.KEY_VALUE,
                help="Rename fields, as old:new pairs.",
            ),
            ParameterDefinition(
                name="sort-by",
                type=ParameterType.STRING_LIST,
                help="Sort by these fields; prefix with '-' for descending.",
            ),
            ParameterDefinition(
                name="limit",
                type=ParameterType.INTEGER,
                minimum=0,
                help="Output at most this many rows (0 = no limit).",
            ),
            ParameterDefinition(
                name="offset",
                type=ParameterType.INTEGER,
                minimum=0,
                default=0,
                help="Skip this many rows first.",
            ),
        ],
        registry,
        name="Row selection",
    )
    return OutputLayers(
        output=output,
        rows=rows,
        output_binding=output.bind(
            OutputSettings,
            format="output",
            table_style="table-style",
            max_column_width="max-column-width",
            table_width="table-width",
            template="template",
            template_file="template-file",
            csv_separator="csv-separator",
            with_headers="with-headers",
            flatten_separator="flatten-separator",
        ),
        rows_binding=rows.bind(
            RowSettings,
            fields="fields",
            exclude="exclude",
            filter="filter",
            rename="rename",
            sort_by="sort-by",
            limit="limit",
            offset="offset",
        ),
    )


def build_stages(settings: RowSettings) -> list[Stage]:
    stages: list[Stage] = []
    if settings.filter:
        try:
            stages.append(FilterStage(settings.filter))
        except ExpressionError as exc:
            raise ParameterValidationError(
                layer=ROWS_LAYER, parameter="filter", reason=str(exc)
            ) from exc
    if settings.sort_by:
        stages.append(SortStage(settings.sort_by))
    if settings.limit or settings.offset:
        stages.append(LimitStage(settings.limit or None, settings.offset))
    if settings.exclude:
        stages.append(ExcludeColumns(settings.exclude))
    if settings.fields:
        stages.append(SelectColumns(settings.fields))
    if settings.rename:
        stages.append(RenameColumns(settings.rename))
    return stages


def build_sink(output: OutputSettings, rows: RowSettings, stream: TextIO) -> Sink:
    match output.format:
        case "table":
            return create_sink(
                "table",
                stream,
                style=output.table_style,
                max_column_width=output.max_column_width,
                width=output.table_width,
            )
        case "csv" | "tsv":
            columns = [rows.rename.get(name, name) for name in rows.fields] or None
            options = {
                "columns": columns,
                "with_headers": output.with_headers,
                "flatten_separator": output.flatten_separator,
            }
            if output.format == "csv":
                if len(output.csv_separator) != 1:
                    raise ParameterValidationError(
                        layer=OUTPUT_LAYER,
                        parameter="csv-separator",
                        reason="must be a single character",
                    )
                options["delimiter"] = output.csv_separator
            return create_sink(output.format, stream, **options)
        case "template":
            if output.template_file is not None:
                return create_sink("template", stream, template=output.template_file.content)
            if output.template:
                return create_sink("template", stream, template=output.template)
            raise ParameterValidationError(
                layer=OUTPUT_LAYER,
                parameter="template",
                reason="template output needs --template or --template-file",
            )
        case _:
            return create_sink(output.format, stream)


def build_pipeline(
    parsed: ParsedLayers,
    layers: OutputLayers,
    stream: TextIO,
    *,
    cancellation: CancellationToken | None = None,
) -> RowPipeline:
    """Configure a pipeline from the parsed ``output`` and ``rows`` layers."""
    output = parsed.project(layers.output_binding)
    rows = parsed.project(layers.rows_binding)
    return RowPipeline(
        build_sink(output, rows, stream),
        build_stages(rows),
        cancellation=cancellation,
    )
