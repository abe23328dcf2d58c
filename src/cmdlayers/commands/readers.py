"""Row commands that read structured files: json, yaml, csv.

Each reader yields plain mappings; the command feeds them to the pipeline
and stops as soon as the pipeline reports it needs no more rows.
"""

from __future__ import annotations

import csv
import json
import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import closing
from typing import Any, TextIO

import click
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from cmdlayers.commands.kinds import CommandDescription, CommandKind
from cmdlayers.parameters.definitions import ParameterDefinition
from cmdlayers.parameters.layers import ParameterLayer
from cmdlayers.parameters.resolution import ParsedLayers
from cmdlayers.parameters.types import ParameterType, TypeRegistry
from cmdlayers.processing.layers import OutputLayers
from cmdlayers.processing.pipeline import RowEmitter

logger = logging.getLogger(__name__)

INPUT_LAYER = "input"

# one character, or the two-character escape \t
DELIMITER_PATTERN = r".|\\t"

JSON_EXAMPLES = """\
  cmdlayers json users.json
  cmdlayers json events.jsonl --filter "status == 'failed'" -o jsonl
  cat users.json | cmdlayers json - -f name -f email -o csv
  cmdlayers json users.json --sort-by -age --limit 5"""

YAML_EXAMPLES = """\
  cmdlayers yaml hosts.yaml
  cmdlayers yaml hosts.yaml --exclude password -o json
  cmdlayers yaml hosts.yaml -o template --template "{{ name }} {{ address }}\""""

CSV_EXAMPLES = """\
  cmdlayers csv sales.csv --infer-types --filter "amount > 100"
  cmdlayers csv data.tsv --delimiter "\\t" -o json
  cmdlayers csv sales.csv --rename amount:total -o yaml"""


# ── Parsing ──────────────────────────────────────────────────────────


def _as_record(item: Any) -> dict[str, Any]:
    if isinstance(item, Mapping):
        return {str(key): value for key, value in item.items()}
    return {"value": item}


def _json_lines(numbered: Iterator[tuple[int, str]]) -> Iterator[dict[str, Any]]:
    for number, line in numbered:
        if not line.strip():
            continue
        try:
            item = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ValueError(f"line {number}: {exc.msg}") from None
        yield _as_record(item)


def json_records(lines: Iterable[str]) -> Iterator[dict[str, Any]]:
    """Records from a JSON array, a single JSON object, or JSON lines.

    JSON lines are parsed as they are read, so a consumer that stops early
    leaves the rest of the input unread.  A document that starts with ``[``
    or spans several lines is read and parsed whole.

    Raises:
        ValueError: The text is neither a JSON document nor JSON lines.
    """
    numbered = enumerate(lines, start=1)
    for start, first in numbered:
        if first.strip():
            break
    else:
        return

    if not first.lstrip().startswith("["):
        try:
            item = json.loads(first)
        except json.JSONDecodeError:
            pass
        else:
            yield _as_record(item)
            yield from _json_lines(numbered)
            return

    text = first + "".join(line for _, line in numbered)
    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"line {start + exc.lineno - 1}: {exc.msg}") from None
    if isinstance(document, list):
        yield from (_as_record(item) for item in document)
    else:
        yield _as_record(document)


def yaml_records(stream: str | TextIO) -> Iterator[dict[str, Any]]:
    """Records from every document of a YAML stream.

    A document holding a sequence yields one record per item; a mapping
    yields one record.  Empty documents are skipped.
    """
    yaml = YAML(typ="safe")
    try:
        for document in yaml.load_all(stream):
            if document is None:
                continue
            if isinstance(document, list):
                yield from (_as_record(item) for item in document)
            else:
                yield _as_record(document)
    except YAMLError as exc:
        raise ValueError(str(exc)) from None


def infer_value(text: str) -> Any:
    """Best-effort conversion of a CSV cell: empty → None, then int, float."""
    if text == "":
        return None
    for convert in (int, float):
        try:
            return convert(text)
        except ValueError:
            continue
    return text


def csv_records(
    lines: Iterable[str], *, delimiter: str = ",", infer_types: bool = False
) -> Iterator[dict[str, Any]]:
    """Records from delimited lines with a header line, read one row at a time."""
    reader = csv.DictReader(lines, delimiter=delimiter)
    try:
        for record in reader:
            extra = record.pop(None, None)  # type: ignore[call-overload]
            if extra:
                raise ValueError(f"line {reader.line_num}: more fields than headers")
            if infer_types:
                yield {key: infer_value(value or "") for key, value in record.items()}
            else:
                yield {key: value or "" for key, value in record.items()}
    except csv.Error as exc:
        raise ValueError(f"line {reader.line_num}: {exc}") from None


# ── Commands ─────────────────────────────────────────────────────────


def _read_records(
    path: str, parse: Callable[[TextIO], Iterable[Mapping[str, Any]]]
) -> Iterator[Mapping[str, Any]]:
    """Records parsed from *path* ('-' for stdin), with read failures as FileError."""
    try:
        with click.open_file(path, encoding="utf-8") as handle:
            yield from parse(handle)
    except OSError as exc:
        raise click.FileError(path, hint=exc.strerror or str(exc)) from exc
    except UnicodeDecodeError as exc:
        raise click.FileError(path, hint="not valid UTF-8 text") from exc
    except ValueError as exc:
        raise click.FileError(path, hint=str(exc)) from exc


def emit_records(
    emitter: RowEmitter,
    paths: Iterable[str],
    parse: Callable[[TextIO], Iterable[Mapping[str, Any]]],
) -> int:
    """Feed the records of every file in *paths* to *emitter*.

    Reading stops as soon as the pipeline needs no more rows.

    Returns:
        The number of rows handed to the pipeline.
    """
    count = 0
    for path in paths:
        logger.debug("Reading %s", path)
        with closing(_read_records(path, parse)) as records:
            for record in records:
                count += 1
                if not emitter.add_row(record):
                    logger.debug("Pipeline needs no more rows after %d", count)
                    return count
    return count


def _files_definition() -> ParameterDefinition:
    return ParameterDefinition(
        name="files",
        type=ParameterType.STRING_LIST,
        required=True,
        argument=True,
        from_env=False,
        help="Input files ('-' reads stdin).",
    )


def build_readers(registry: TypeRegistry, output: OutputLayers) -> list[CommandDescription]:
    """The json, yaml and csv row commands sharing *output*."""
    plain_input = ParameterLayer(INPUT_LAYER, [_files_definition()], registry, name="Input")
    csv_input = ParameterLayer(
        INPUT_LAYER,
        [
            _files_definition(),
            ParameterDefinition(
                name="delimiter",
                type=ParameterType.STRING,
                default=",",
                pattern=DELIMITER_PATTERN,
                help="Input field delimiter, one character (\\t for tabs).",
            ),
            ParameterDefinition(
                name="infer-types",
                type=ParameterType.BOOL,
                default=False,
                help="Convert numeric cells to numbers and empty cells to null.",
            ),
        ],
        registry,
        name="Input",
    )

    def run_json(parsed: ParsedLayers, emitter: RowEmitter) -> None:
        emit_records(emitter, parsed.value(INPUT_LAYER, "files"), json_records)

    def run_yaml(parsed: ParsedLayers, emitter: RowEmitter) -> None:
        emit_records(emitter, parsed.value(INPUT_LAYER, "files"), yaml_records)

    def run_csv(parsed: ParsedLayers, emitter: RowEmitter) -> None:
        layer = parsed[INPUT_LAYER]
        delimiter = layer["delimiter"].replace("\\t", "\t")
        infer_types = layer["infer-types"]

        def parse(handle: TextIO) -> Iterator[dict[str, Any]]:
            return csv_records(handle, delimiter=delimiter, infer_types=infer_types)

        emit_records(emitter, layer["files"], parse)

    return [
        CommandDescription(
            "json",
            CommandKind.ROWS,
            run_json,
            layers=(plain_input,),
            short="Read JSON (array, object or JSON lines) and print it as rows.",
            output=output,
        ),
        CommandDescription(
            "yaml",
            CommandKind.ROWS,
            run_yaml,
            layers=(plain_input,),
            short="Read YAML documents and print them as rows.",
            output=output,
        ),
        CommandDescription(
            "csv",
            CommandKind.ROWS,
            run_csv,
            layers=(csv_input,),
            short="Read delimited text with a header line and print it as rows.",
            output=output,
        ),
    ]


EXAMPLES = {"json": JSON_EXAMPLES, "yaml": YAML_EXAMPLES, "csv": CSV_EXAMPLES}
