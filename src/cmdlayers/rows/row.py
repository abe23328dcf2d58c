"""Row — one immutable, ordered structured record."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from cmdlayers.errors import RowFormatError
from cmdlayers.rows.values import UnsupportedValueError, freeze, thaw

RowLike = Mapping[str, Any] | Iterable[tuple[str, Any]]


class Row(Mapping[str, Any]):
    """Ordered ``(field, value)`` pairs with unique field names.

    Values are frozen on construction (see :mod:`cmdlayers.rows.values`), so a
    row handed to the pipeline cannot be changed afterwards.

    Raises:
        RowFormatError: Duplicate field name or a value outside the variant.
    """

    __slots__ = ("_values",)

    def __init__(self, fields: RowLike = ()) -> None:
        pairs = fields.items() if isinstance(fields, Mapping) else fields
        values: dict[str, Any] = {}
        for name, value in pairs:
            if not isinstance(name, str):
                raise RowFormatError(f"Field names must be strings, got {name!r}", field=str(name))
            if name in values:
                raise RowFormatError(f"Duplicate field '{name}'", field=name)
            try:
                values[name] = freeze(value, name)
            except UnsupportedValueError as exc:
                raise RowFormatError(str(exc), field=name) from exc
        self._values = values

    @classmethod
    def coerce(cls, row: Row | RowLike) -> Row:
        return row if isinstance(row, Row) else cls(row)

    @classmethod
    def _trusted(cls, values: dict[str, Any]) -> Row:
        # values are already frozen and unique
        row = cls.__new__(cls)
        row._values = values
        return row

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v!r}" for k, v in self._values.items())
        return f"Row({inner})"

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(self._values)

    def select(self, names: Iterable[str]) -> Row:
        """Project onto *names* in that order; unknown names yield ``None``."""
        return Row._trusted({name: self._values.get(name) for name in dict.fromkeys(names)})

    def without(self, names: Iterable[str]) -> Row:
        dropped = set(names)
        return Row._trusted({k: v for k, v in self._values.items() if k not in dropped})

    def renamed(self, mapping: Mapping[str, str]) -> Row:
        """Rename fields; a rename onto an existing name is a format error."""
        values: dict[str, Any] = {}
        for name, value in self._values.items():
            new_name = mapping.get(name, name)
            if new_name in values:
                raise RowFormatError(f"Rename produces duplicate field '{new_name}'", field=name)
            values[new_name] = value
        return Row._trusted(values)

    def to_dict(self) -> dict[str, Any]:
        """Plain ``dict`` with nested lists and dicts."""
        return {name: thaw(value) for name, value in self._values.items()}
