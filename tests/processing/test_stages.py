"""Tests for row stages and filter expressions."""

from __future__ import annotations

from datetime import date

import pytest

from cmdlayers.errors import RowFormatError
from cmdlayers.processing.expressions import ExpressionError, RowPredicate
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
from cmdlayers.rows.row import Row


def _run(stage: Stage, rows: list[dict[str, object]]) -> list[dict[str, object]]:
    out = [r for row in rows for r in stage.process(Row(row))]
    out.extend(stage.finish())
    return [r.to_dict() for r in out]


class TestRowPredicate:
    def test_comparisons_and_membership(self) -> None:
        predicate = RowPredicate('n > 2 and status in ["open", "blocked"]')
        assert predicate(Row({"n": 3, "status": "open"}))
        assert not predicate(Row({"n": 3, "status": "done"}))
        assert not predicate(Row({"n": 1, "status": "open"}))

    def test_row_access_for_non_identifier_fields(self) -> None:
        predicate = RowPredicate('row["due-date"] is not none')
        assert predicate(Row({"due-date": "2024-01-01"}))
        assert not predicate(Row({"due-date": None}))

    def test_missing_field_does_not_match(self) -> None:
        assert not RowPredicate("n > 2")(Row({"m": 5}))

    def test_incomparable_types_do_not_match(self) -> None:
        assert not RowPredicate("n > 2")(Row({"n": "text"}))

    def test_arithmetic_errors_do_not_match(self) -> None:
        predicate = RowPredicate("10 / n > 1")
        assert not predicate(Row({"n": 0}))
        assert predicate(Row({"n": 5}))

    def test_syntax_error(self) -> None:
        with pytest.raises(ExpressionError, match="Invalid filter expression"):
            RowPredicate("n >")

    def test_sandboxed(self) -> None:
        predicate = RowPredicate("row.__class__")
        assert not predicate(Row({"n": 1}))


class TestColumnStages:
    def test_filter_with_callable(self) -> None:
        stage = FilterStage(lambda row: row["n"] % 2 == 0)
        assert _run(stage, [{"n": 1}, {"n": 2}]) == [{"n": 2}]

    def test_filter_with_expression(self) -> None:
        assert _run(FilterStage("n >= 2"), [{"n": 1}, {"n": 2}, {"n": 3}]) == [
            {"n": 2},
            {"n": 3},
        ]

    def test_select_orders_and_fills(self) -> None:
        assert _run(SelectColumns(["b", "zz"]), [{"a": 1, "b": 2}]) == [{"b": 2, "zz": None}]

    def test_exclude(self) -> None:
        assert _run(ExcludeColumns(["a"]), [{"a": 1, "b": 2}]) == [{"b": 2}]

    def test_rename(self) -> None:
        assert _run(RenameColumns({"a": "x"}), [{"a": 1}]) == [{"x": 1}]

    def test_rename_collision(self) -> None:
        with pytest.raises(RowFormatError):
            _run(RenameColumns({"a": "b"}), [{"a": 1, "b": 2}])

    def test_streaming_stages_do_not_buffer(self) -> None:
        assert not FilterStage("true").buffers
        assert not LimitStage(1).buffers
        assert SortStage(["a"]).buffers


class TestSortStage:
    def test_sort_key_parse(self) -> None:
        assert SortKey.parse("-age") == SortKey("age", descending=True)
        assert SortKey.parse("+age") == SortKey("age")
        assert SortKey.parse(" name ") == SortKey("name")

    def test_stable(self) -> None:
        rows = [{"k": 1, "id": "a"}, {"k": 0, "id": "b"}, {"k": 1, "id": "c"}, {"k": 0, "id": "d"}]
        result = _run(SortStage(["k"]), rows)
        assert [r["id"] for r in result] == ["b", "d", "a", "c"]

    def test_multi_key_descending(self) -> None:
        rows = [
            {"team": "x", "score": 1},
            {"team": "y", "score": 5},
            {"team": "x", "score": 3},
        ]
        result = _run(SortStage(["team", "-score"]), rows)
        assert [(r["team"], r["score"]) for r in result] == [("x", 3), ("x", 1), ("y", 5)]

    def test_none_sorts_last_ascending(self) -> None:
        rows = [{"v": None}, {"v": 2}, {}, {"v": 1}]
        result = _run(SortStage(["v"]), rows)
        assert [r.get("v") for r in result] == [1, 2, None, None]

    def test_mixed_kinds(self) -> None:
        rows = [{"v": "b"}, {"v": date(2024, 1, 1)}, {"v": 3}, {"v": "a"}]
        result = _run(SortStage(["v"]), rows)
        assert [r["v"] for r in result] == [3, date(2024, 1, 1), "a", "b"]

    def test_reset_drops_rows(self) -> None:
        stage = SortStage(["v"])
        list(stage.process(Row({"v": 1})))
        stage.reset()
        assert list(stage.finish()) == []

    def test_needs_keys(self) -> None:
        with pytest.raises(ValueError):
            SortStage([])


class TestLimitStage:
    def test_limit_keeps_first_rows_in_order(self) -> None:
        rows = [{"n": i} for i in range(1, 6)]
        assert _run(LimitStage(2), rows) == [{"n": 1}, {"n": 2}]

    def test_offset(self) -> None:
        rows = [{"n": i} for i in range(1, 6)]
        assert _run(LimitStage(2, offset=1), rows) == [{"n": 2}, {"n": 3}]
        assert _run(LimitStage(None, offset=3), rows) == [{"n": 4}, {"n": 5}]

    def test_exhausted(self) -> None:
        stage = LimitStage(1)
        assert not stage.exhausted
        list(stage.process(Row({"n": 1})))
        assert stage.exhausted

    def test_negative(self) -> None:
        with pytest.raises(ValueError):
            LimitStage(-1)
        with pytest.raises(ValueError):
            LimitStage(1, offset=-1)
