"""Output sinks — the formatting end of the row pipeline.

Whether a sink buffers the whole stream is part of its contract
(:attr:`Sink.buffers_stream`), not an implementation detail: buffered sinks
compose their entire output at :meth:`Sink.close` and write it in one go, so
a cancelled or failed run leaves no partial output behind.  Streaming sinks
write each row as it arrives.

=========  ==========  =============================================
format     buffered    output
=========  ==========  =============================================
table      yes         Rich table, aligned columns, ellipsis truncation
json       yes         one indented JSON array
yaml       yes         one YAML sequence
jsonl      no          one JSON object per line
csv / tsv  unless      delimited; nested maps flattened
           columns
           declared
template   no          Jinja2 template rendered once per row
=========  ==========  =============================================
"""

from __future__ import annotations

import csv
import json
from collections.abc import Callable, Sequence
from io import StringIO
from pathlib import Path
from typing import Any, ClassVar, TextIO

from jinja2 import FileSystemLoader, TemplateNotFound
from jinja2.sandbox import SandboxedEnvironment
from rich import box
from rich.table import Table
from rich.text import Text
from ruamel.yaml import YAML

from cmdlayers.errors import PipelineStateError, RowFormatError, SinkWriteError
from cmdlayers.output.console import create_console, get_output
from cmdlayers.rows.row import Row
from cmdlayers.rows.values import ValueKind, json_default, kind_of, to_text


class Sink:
    """Base class: writes formatted rows to a sequential text stream."""

    format: ClassVar[str] = ""
    buffered: ClassVar[bool] = False

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self._closed = False

    @property
    def buffers_stream(self) -> bool:
        """True when the sink must see every row before writing anything."""
        return self.buffered

    @property
    def closed(self) -> bool:
        return self._closed

    def write_row(self, row: Row, index: int) -> None:
        if self._closed:
            raise PipelineStateError(f"{self.format} sink is closed")
        self._write_row(row, index)

    def _write_row(self, row: Row, index: int) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Flush pending output and release the sink.  Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._finish()
        self._flush()

    def _finish(self) -> None:
        """Write whatever the format emits at end of stream."""

    def discard(self) -> None:
        """Drop buffered output without writing it and release the sink."""
        self._closed = True

    def _write(self, text: str) -> None:
        if not text:
            return
        try:
            self._stream.write(text)
        except (OSError, ValueError) as exc:
            raise SinkWriteError(f"Cannot write {self.format} output: {exc}") from exc

    def _flush(self) -> None:
        try:
            self._stream.flush()
        except (OSError, ValueError) as exc:
            raise SinkWriteError(f"Cannot flush {self.format} output: {exc}") from exc


class BufferedSink(Sink):
    """Collects rows and renders them all at close."""

    buffered = True

    def __init__(self, stream: TextIO) -> None:
        super().__init__(stream)
        self._rows: list[Row] = []

    def _write_row(self, row: Row, index: int) -> None:
        self._rows.append(row)

    def _finish(self) -> None:
        rows, self._rows = self._rows, []
        self._write(self.render(rows))

    def discard(self) -> None:
        self._rows = []
        super().discard()

    def render(self, rows: Sequence[Row]) -> str:
        raise NotImplementedError


def column_union(rows: Sequence[Row]) -> list[str]:
    """All field names across *rows*, in first-seen order."""
    return list(dict.fromkeys(name for row in rows for name in row))


# ── Table ────────────────────────────────────────────────────────────

TABLE_STYLES: dict[str, box.Box | None] = {
    "rounded": box.ROUNDED,
    "ascii": box.ASCII,
    "markdown": box.MARKDOWN,
    "simple": box.SIMPLE,
    "plain": None,
}


class TableSink(BufferedSink):
    """Human-readable table with aligned columns.

    Wide values are cut with an ellipsis at *max_column_width* (and when the
    table exceeds *width*); nested values are shown as compact JSON.
    """

    format = "table"

    def __init__(
        self,
        stream: TextIO,
        *,
        style: str = "rounded",
        max_column_width: int | None = None,
        width: int | None = None,
    ) -> None:
        super().__init__(stream)
        if style not in TABLE_STYLES:
            msg = f"Unknown table style {style!r} (use {', '.join(TABLE_STYLES)})"
            raise ValueError(msg)
        self.style = style
        self.max_column_width = max_column_width or None
        self.width = width

    def render(self, rows: Sequence[Row]) -> str:
        if not rows:
            return ""
        columns = column_union(rows)
        table = Table(
            box=TABLE_STYLES[self.style],
            show_header=True,
            show_edge=self.style != "plain",
            pad_edge=self.style != "plain",
            header_style="cl.header",
        )
        for column in columns:
            table.add_column(
                Text(column),
                overflow="ellipsis",
                no_wrap=True,
                max_width=self.max_column_width,
            )
        for row in rows:
            table.add_row(*(Text(to_text(row.get(column))) for column in columns))

        console = create_console(no_color=True, width=self.width)
        console.print(table)
        return get_output(console)


# ── Structured ───────────────────────────────────────────────────────


def _json_line(row: Row) -> str:
    return json.dumps(row.to_dict(), default=json_default, ensure_ascii=False)


class JsonLinesSink(Sink):
    """One self-describing JSON object per line."""

    format = "jsonl"

    def _write_row(self, row: Row, index: int) -> None:
        self._write(_json_line(row) + "\n")


class JsonSink(BufferedSink):
    """A single JSON array holding every row."""

    format = "json"

    def __init__(self, stream: TextIO, *, indent: int | None = 2) -> None:
        super().__init__(stream)
        self.indent = indent

    def render(self, rows: Sequence[Row]) -> str:
        payload = [row.to_dict() for row in rows]
        text = json.dumps(payload, indent=self.indent, default=json_default, ensure_ascii=False)
        return text + "\n"


class YamlSink(BufferedSink):
    """A single YAML sequence holding every row."""

    format = "yaml"

    def render(self, rows: Sequence[Row]) -> str:
        yaml = YAML(typ="safe", pure=True)
        yaml.default_flow_style = False
        buf = StringIO()
        yaml.dump([row.to_dict() for row in rows], buf)
        return buf.getvalue()


# ── Delimited ────────────────────────────────────────────────────────


class CsvSink(Sink):
    """Delimited output with nested maps flattened into dotted columns.

    With *columns* declared the sink streams and drops unknown fields;
    otherwise it buffers to compute one column set across all rows.
    Lists of scalars are joined with *list_separator*; lists holding lists
    or maps cannot be represented and raise :class:`RowFormatError`.
    """

    format = "csv"

    def __init__(
        self,
        stream: TextIO,
        *,
        delimiter: str = ",",
        columns: Sequence[str] | None = None,
        with_headers: bool = True,
        flatten_separator: str = ".",
        list_separator: str = ",",
    ) -> None:
        super().__init__(stream)
        if len(delimiter) != 1:
            raise ValueError("CSV delimiter must be a single character")
        self.delimiter = delimiter
        self.columns = list(columns) if columns else None
        self.with_headers = with_headers
        self.flatten_separator = flatten_separator
        self.list_separator = list_separator
        self._pending: list[dict[str, str]] = []
        self._header_written = False

    @property
    def buffers_stream(self) -> bool:
        return self.columns is None

    def flatten(self, row: Row) -> dict[str, str]:
        flat: dict[str, str] = {}
        for name, value in row.items():
            self._flatten_into(flat, name, value)
        return flat

    def _flatten_into(self, flat: dict[str, str], key: str, value: Any) -> None:
        match kind_of(value):
            case ValueKind.MAP if value:
                for sub_key, item in value.items():
                    self._flatten_into(flat, f"{key}{self.flatten_separator}{sub_key}", item)
                return
            case ValueKind.LIST:
                if any(kind_of(item) in (ValueKind.LIST, ValueKind.MAP) for item in value):
                    raise RowFormatError(
                        f"Field '{key}' holds a list of lists or maps, "
                        f"which {self.format} output cannot represent",
                        field=key,
                    )
                text = self.list_separator.join(to_text(item) for item in value)
            case ValueKind.MAP:
                text = ""
            case _:
                text = to_text(value)
        if key in flat:
            raise RowFormatError(f"Flattened column '{key}' appears twice", field=key)
        flat[key] = text

    def _encode(self, records: Sequence[Sequence[str]]) -> str:
        buf = StringIO()
        writer = csv.writer(buf, delimiter=self.delimiter, lineterminator="\n")
        writer.writerows(records)
        return buf.getvalue()

    def _write_header(self, columns: Sequence[str]) -> None:
        if self.with_headers and not self._header_written:
            self._write(self._encode([columns]))
        self._header_written = True

    def _write_row(self, row: Row, index: int) -> None:
        flat = self.flatten(row)
        if self.columns is None:
            self._pending.append(flat)
            return
        self._write_header(self.columns)
        self._write(self._encode([[flat.get(column, "") for column in self.columns]]))

    def _finish(self) -> None:
        if self.columns is not None:
            self._write_header(self.columns)
            return
        pending, self._pending = self._pending, []
        if not pending:
            return
        columns = list(dict.fromkeys(name for flat in pending for name in flat))
        records: list[list[str]] = [columns] if self.with_headers else []
        records.extend([flat.get(column, "") for column in columns] for flat in pending)
        self._write(self._encode(records))

    def discard(self) -> None:
        self._pending = []
        super().discard()


class TsvSink(CsvSink):
    format = "tsv"

    def __init__(self, stream: TextIO, **options: Any) -> None:
        options.setdefault("delimiter", "\t")
        super().__init__(stream, **options)


# ── Template ─────────────────────────────────────────────────────────


class TemplateSink(Sink):
    """Render a Jinja2 template once per row.

    Every field with an identifier-safe name is a template variable; all
    fields are also available as ``row`` and the row position as ``index``.
    """

    format = "template"

    def __init__(
        self,
        stream: TextIO,
        *,
        template: str | None = None,
        template_file: str | Path | None = None,
        separator: str = "\n",
    ) -> None:
        super().__init__(stream)
        if (template is None) == (template_file is None):
            raise ValueError("TemplateSink needs exactly one of template or template_file")
        if template_file is not None:
            path = Path(template_file)
            env = SandboxedEnvironment(
                loader=FileSystemLoader(str(path.parent)), keep_trailing_newline=True
            )
            try:
                self._template = env.get_template(path.name)
            except TemplateNotFound:
                raise ValueError(f"Template file {path} not found") from None
        else:
            env = SandboxedEnvironment(keep_trailing_newline=True)
            self._template = env.from_string(template or "")
        self.separator = separator

    def _write_row(self, row: Row, index: int) -> None:
        plain = row.to_dict()
        context = {name: value for name, value in plain.items() if name.isidentifier()}
        try:
            text = self._template.render({**context, "row": plain, "index": index})
        except Exception as exc:
            raise RowFormatError(f"Template failed: {exc}", row_index=index) from exc
        self._write(text + self.separator)


SINKS: dict[str, Callable[..., Sink]] = {
    "table": TableSink,
    "json": JsonSink,
    "jsonl": JsonLinesSink,
    "yaml": YamlSink,
    "csv": CsvSink,
    "tsv": TsvSink,
    "template": TemplateSink,
}


def create_sink(format_name: str, stream: TextIO, **options: Any) -> Sink:
    """Instantiate the sink registered under *format_name*."""
    try:
        factory = SINKS[format_name]
    except KeyError:
        msg = f"Unknown output format {format_name!r} (use {', '.join(SINKS)})"
        raise ValueError(msg) from None
    return factory(stream, **options)
