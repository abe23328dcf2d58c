"""Tests for the json/yaml/csv record readers."""

from __future__ import annotations

from io import BytesIO, StringIO, TextIOWrapper
from pathlib import Path

import click
import pytest

from cmdlayers.commands.readers import (
    csv_records,
    emit_records,
    infer_value,
    json_records,
    yaml_records,
)
from cmdlayers.processing.pipeline import RowPipeline
from cmdlayers.processing.sinks import JsonLinesSink
from cmdlayers.processing.stages import LimitStage
from tests.conftest import write_file


class CountingLines:
    """Iterable of lines that counts how many were pulled."""

    def __init__(self, lines: list[str]) -> None:
        self._lines = iter(lines)
        self.count = 0

    def __iter__(self) -> CountingLines:
        return self

    def __next__(self) -> str:
        line = next(self._lines)
        self.count += 1
        return line


class TestJsonRecords:
    def test_array(self) -> None:
        assert list(json_records(StringIO('[{"a": 1}, {"a": 2}]'))) == [{"a": 1}, {"a": 2}]

    def test_single_object(self) -> None:
        assert list(json_records(StringIO('{"a": 1}'))) == [{"a": 1}]

    def test_scalars_are_wrapped(self) -> None:
        assert list(json_records(StringIO("[1, \"x\"]"))) == [{"value": 1}, {"value": "x"}]

    def test_json_lines(self) -> None:
        assert list(json_records(StringIO('{"a": 1}\n\n{"b": 2}\n'))) == [{"a": 1}, {"b": 2}]

    def test_empty(self) -> None:
        assert list(json_records(StringIO("  \n"))) == []

    def test_bad_line_reports_number(self) -> None:
        with pytest.raises(ValueError, match="line 2"):
            list(json_records(StringIO('{"a": 1}\n{oops}\n')))

    def test_object_spanning_lines(self) -> None:
        text = '\n{\n  "a": 1,\n  "b": [1, 2]\n}\n'
        assert list(json_records(StringIO(text))) == [{"a": 1, "b": [1, 2]}]

    def test_bad_document_reports_line(self) -> None:
        with pytest.raises(ValueError, match="line 4"):
            list(json_records(StringIO('\n[\n  {"a": 1},\n  {oops}\n]\n')))

    def test_json_lines_read_lazily(self) -> None:
        pulled = CountingLines([f'{{"n": {n}}}\n' for n in range(100)])
        records = json_records(pulled)
        assert next(records) == {"n": 0}
        assert next(records) == {"n": 1}
        assert pulled.count == 2


class TestYamlRecords:
    def test_documents_and_sequences(self) -> None:
        text = "a: 1\n---\n- a: 2\n- a: 3\n---\n"
        assert list(yaml_records(StringIO(text))) == [{"a": 1}, {"a": 2}, {"a": 3}]

    def test_nested_values_kept(self) -> None:
        assert list(yaml_records(StringIO("a: {b: [1, 2]}\n"))) == [{"a": {"b": [1, 2]}}]

    def test_invalid(self) -> None:
        with pytest.raises(ValueError):
            list(yaml_records(StringIO("a: [1, 2\n")))


class TestCsvRecords:
    def test_strings_by_default(self) -> None:
        assert list(csv_records(StringIO("a,b\n1,\n"))) == [{"a": "1", "b": ""}]

    def test_infer_types(self) -> None:
        rows = list(csv_records(StringIO("a,b,c\n1,2.5,x\n,,\n"), infer_types=True))
        assert rows == [{"a": 1, "b": 2.5, "c": "x"}, {"a": None, "b": None, "c": None}]

    def test_short_lines_padded(self) -> None:
        assert list(csv_records(StringIO("a,b\n1\n"))) == [{"a": "1", "b": ""}]

    def test_too_many_fields(self) -> None:
        with pytest.raises(ValueError, match="more fields than headers"):
            list(csv_records(StringIO("a\n1,2\n")))

    def test_delimiter(self) -> None:
        rows = list(csv_records(StringIO("a\tb\n1\t2\n"), delimiter="\t"))
        assert rows == [{"a": "1", "b": "2"}]

    def test_reads_lazily(self) -> None:
        pulled = CountingLines(["a\n", *(f"{n}\n" for n in range(100))])
        records = csv_records(pulled)
        assert next(records) == {"a": "0"}
        assert pulled.count == 2


@pytest.mark.parametrize(
    ("text", "expected"),
    [("", None), ("7", 7), ("-3", -3), ("1.5", 1.5), ("1e3", 1000.0), ("abc", "abc")],
)
def test_infer_value(text: str, expected: object) -> None:
    assert infer_value(text) == expected


class TestEmitRecords:
    def test_stops_when_pipeline_is_done(self, tmp_path: Path) -> None:
        path = write_file(tmp_path, "rows.json", "[" + ",".join('{"n": %d}' % i for i in range(10)) + "]")
        stream = StringIO()
        pipeline = RowPipeline(JsonLinesSink(stream), [LimitStage(3)])
        count = emit_records(pipeline.emitter(), [str(path)], json_records)
        pipeline.close()
        assert count == 3
        assert len(stream.getvalue().splitlines()) == 3

    def test_several_files(self, tmp_path: Path) -> None:
        first = write_file(tmp_path, "a.json", '{"n": 1}')
        second = write_file(tmp_path, "b.json", '[{"n": 2}, {"n": 3}]')
        pipeline = RowPipeline(JsonLinesSink(StringIO()))
        assert emit_records(pipeline.emitter(), [str(first), str(second)], json_records) == 3

    def test_parse_error_names_file(self, tmp_path: Path) -> None:
        path = write_file(tmp_path, "bad.json", "{nope")
        pipeline = RowPipeline(JsonLinesSink(StringIO()))
        with pytest.raises(click.FileError) as exc_info:
            emit_records(pipeline.emitter(), [str(path)], json_records)
        assert exc_info.value.ui_filename.endswith("bad.json")

    def test_missing_file(self, tmp_path: Path) -> None:
        pipeline = RowPipeline(JsonLinesSink(StringIO()))
        with pytest.raises(click.FileError):
            emit_records(pipeline.emitter(), [str(tmp_path / "none.json")], json_records)

    def test_stdin_only_read_until_limit(self, monkeypatch: pytest.MonkeyPatch) -> None:
        data = "".join(f'{{"n": {n}}}\n' for n in range(5000)).encode()
        raw = BytesIO(data)
        monkeypatch.setattr("sys.stdin", TextIOWrapper(raw, encoding="utf-8"))
        pipeline = RowPipeline(JsonLinesSink(StringIO()), [LimitStage(1)])
        assert emit_records(pipeline.emitter(), ["-"], json_records) == 1
        assert raw.tell() < len(data)

    def test_invalid_utf8(self, tmp_path: Path) -> None:
        path = tmp_path / "latin.csv"
        path.write_bytes(b"a\n\xe9t\xe9\n")
        pipeline = RowPipeline(JsonLinesSink(StringIO()))
        with pytest.raises(click.FileError, match="UTF-8"):
            emit_records(pipeline.emitter(), [str(path)], csv_records)
