"""Closed value variant for row fields.

A row value is one of: ``None``, ``bool``, ``int``, ``float``, ``str``,
``date``, ``datetime``, a tuple of values, or a read-only mapping of string
keys to values.  :func:`freeze` converts plain Python data into that form
(lists become tuples, dicts become ``MappingProxyType``) and rejects anything
else; :func:`kind_of` classifies a frozen value so renderers can ``match`` on
:class:`ValueKind` exhaustively.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import date, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Any


class ValueKind(StrEnum):
    NULL = "null"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STRING = "string"
    DATE = "date"
    DATETIME = "datetime"
    LIST = "list"
    MAP = "map"


class UnsupportedValueError(TypeError):
    """Raised by :func:`freeze` for values outside the variant."""

    def __init__(self, value: Any, path: str) -> None:
        super().__init__(f"unsupported value of type {type(value).__name__} at {path}")
        self.path = path


def kind_of(value: Any) -> ValueKind:
    # order matters: bool before int, datetime before date
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, int):
        return ValueKind.INT
    if isinstance(value, float):
        return ValueKind.FLOAT
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, datetime):
        return ValueKind.DATETIME
    if isinstance(value, date):
        return ValueKind.DATE
    if isinstance(value, tuple):
        return ValueKind.LIST
    if isinstance(value, Mapping):
        return ValueKind.MAP
    raise UnsupportedValueError(value, "value")


def freeze(value: Any, path: str = "value") -> Any:
    """Convert *value* into the closed variant, recursively."""
    if value is None or isinstance(value, (bool, int, float, str, date)):
        return value
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item, f"{path}[{i}]") for i, item in enumerate(value))
    if isinstance(value, Mapping):
        frozen: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise UnsupportedValueError(key, f"{path} key")
            frozen[key] = freeze(item, f"{path}.{key}")
        return MappingProxyType(frozen)
    raise UnsupportedValueError(value, path)


def thaw(value: Any) -> Any:
    """Convert a frozen value back to plain lists and dicts."""
    match kind_of(value):
        case ValueKind.LIST:
            return [thaw(item) for item in value]
        case ValueKind.MAP:
            return {key: thaw(item) for key, item in value.items()}
        case _:
            return value


def json_default(value: Any) -> Any:
    """``json.dumps`` hook for dates and frozen containers."""
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return dict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_text(value: Any) -> str:
    """Single-line display form of a value."""
    match kind_of(value):
        case ValueKind.NULL:
            return ""
        case ValueKind.BOOL:
            return "true" if value else "false"
        case ValueKind.INT | ValueKind.FLOAT | ValueKind.STRING:
            return str(value)
        case ValueKind.DATE | ValueKind.DATETIME:
            return value.isoformat()
        case ValueKind.LIST | ValueKind.MAP:
            return json.dumps(thaw(value), default=json_default, separators=(",", ":"))
