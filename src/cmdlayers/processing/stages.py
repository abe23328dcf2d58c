"""Row transformation stages.

A stage receives rows one at a time through :meth:`Stage.process` and yields
zero or more rows for the next stage.  Streaming stages keep O(1) state per
row.  Buffering stages (``buffers = True``) hold rows back and release them
from :meth:`Stage.finish` when the pipeline closes.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar

from cmdlayers.processing.expressions import RowPredicate
from cmdlayers.rows.row import Row
from cmdlayers.rows.values import ValueKind, json_default, kind_of, thaw


class Stage:
    """Base class for pipeline stages."""

    buffers: ClassVar[bool] = False

    def process(self, row: Row) -> Iterable[Row]:
        raise NotImplementedError

    def finish(self) -> Iterable[Row]:
        """Release held rows when the stream ends."""
        return ()

    def reset(self) -> None:
        """Drop any held rows (used on cancellation and failure)."""

    @property
    def exhausted(self) -> bool:
        """True once the stage will never pass another row downstream."""
        return False


class FilterStage(Stage):
    """Drop rows for which *predicate* is false.

    *predicate* is either an expression string (see
    :mod:`cmdlayers.processing.expressions`) or a callable taking a row.
    """

    def __init__(self, predicate: str | Callable[[Row], bool]) -> None:
        self.predicate: Callable[[Row], bool] = (
            RowPredicate(predicate) if isinstance(predicate, str) else predicate
        )

    def process(self, row: Row) -> Iterable[Row]:
        if self.predicate(row):
            yield row


class SelectColumns(Stage):
    """Project rows onto *names* in the given order."""

    def __init__(self, names: Sequence[str]) -> None:
        self.names = tuple(names)

    def process(self, row: Row) -> Iterable[Row]:
        yield row.select(self.names)


class ExcludeColumns(Stage):
    def __init__(self, names: Iterable[str]) -> None:
        self.names = frozenset(names)

    def process(self, row: Row) -> Iterable[Row]:
        yield row.without(self.names)


class RenameColumns(Stage):
    def __init__(self, mapping: Mapping[str, str]) -> None:
        self.mapping = dict(mapping)

    def process(self, row: Row) -> Iterable[Row]:
        yield row.renamed(self.mapping)


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False

    @classmethod
    def parse(cls, text: str) -> SortKey:
        """``name`` sorts ascending, ``-name`` descending (``+name`` also ascending)."""
        text = text.strip()
        if text.startswith("-"):
            return cls(text[1:], descending=True)
        return cls(text.removeprefix("+"))


# Rank keeps mixed-kind columns comparable: numbers, then dates, then text,
# then containers; None always sorts last in ascending order.
def _order_key(value: Any) -> tuple[Any, ...]:
    match kind_of(value):
        case ValueKind.NULL:
            return (4,)
        case ValueKind.BOOL | ValueKind.INT | ValueKind.FLOAT:
            return (0, value)
        case ValueKind.DATETIME:
            return (1, value.isoformat())
        case ValueKind.DATE:
            return (1, datetime.combine(value, datetime.min.time()).isoformat())
        case ValueKind.STRING:
            return (2, value)
        case ValueKind.LIST | ValueKind.MAP:
            return (3, json.dumps(thaw(value), default=json_default, sort_keys=True))


class SortStage(Stage):
    """Stable multi-key sort; holds every row until the stream ends."""

    buffers = True

    def __init__(self, keys: Sequence[SortKey | str]) -> None:
        self.keys = tuple(SortKey.parse(k) if isinstance(k, str) else k for k in keys)
        if not self.keys:
            raise ValueError("SortStage needs at least one sort key")
        self._rows: list[Row] = []

    def process(self, row: Row) -> Iterable[Row]:
        self._rows.append(row)
        return ()

    def finish(self) -> Iterable[Row]:
        rows, self._rows = self._rows, []
        # successive stable sorts, least significant key first
        for key in reversed(self.keys):
            rows.sort(key=lambda r, f=key.field: _order_key(r.get(f)), reverse=key.descending)
        return rows

    def reset(self) -> None:
        self._rows = []


class LimitStage(Stage):
    """Skip *offset* rows, then pass at most *limit* rows (``None`` = no limit)."""

    def __init__(self, limit: int | None = None, offset: int = 0) -> None:
        if limit is not None and limit < 0:
            raise ValueError("limit must not be negative")
        if offset < 0:
            raise ValueError("offset must not be negative")
        self.limit = limit
        self.offset = offset
        self._seen = 0
        self._passed = 0

    def process(self, row: Row) -> Iterable[Row]:
        self._seen += 1
        if self._seen <= self.offset or self.exhausted:
            return ()
        self._passed += 1
        return (row,)

    @property
    def exhausted(self) -> bool:
        return self.limit is not None and self._passed >= self.limit
