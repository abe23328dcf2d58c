"""Row processing pipeline: stages, sinks and the pipeline state machine."""

from __future__ import annotations

from cmdlayers.processing.pipeline import (
    CancellationToken,
    PipelineState,
    RowEmitter,
    RowPipeline,
)
from cmdlayers.processing.sinks import (
    CsvSink,
    JsonLinesSink,
    JsonSink,
    Sink,
    TableSink,
    TemplateSink,
    TsvSink,
    YamlSink,
    create_sink,
)
from cmdlayers.processing.stages import (
    ExcludeColumns,
    FilterStage,
    LimitStage,
    RenameColumns,
    SelectColumns,
    SortKey,
    SortStage,
    Stage,
)

__all__ = [
    "CancellationToken",
    "CsvSink",
    "ExcludeColumns",
    "FilterStage",
    "JsonLinesSink",
    "JsonSink",
    "LimitStage",
    "PipelineState",
    "RenameColumns",
    "RowEmitter",
    "RowPipeline",
    "SelectColumns",
    "Sink",
    "SortKey",
    "SortStage",
    "Stage",
    "TableSink",
    "TemplateSink",
    "TsvSink",
    "YamlSink",
    "create_sink",
]
