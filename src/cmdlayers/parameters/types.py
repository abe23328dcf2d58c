"""Parameter value kinds and the registry of their parse/validate/zero rules.

The set of kinds is closed. A :class:`TypeRegistry` maps every kind to a
:class:`TypeHandler`; one registry is built at process start (usually via
:meth:`TypeRegistry.default`) and passed to layer construction and to the
resolution engine.

Parsers accept strings (CLI, environment), sequences of strings (repeated CLI
flags) or already-typed values (config files, defaults, overrides).  They raise
``ValueError`` with a short reason on bad input and never return a partial
value.  Validators receive the parsed value and the owning definition.
"""

from __future__ import annotations

import os
import re
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import SecretStr

if TYPE_CHECKING:
    from cmdlayers.parameters.definitions import ParameterDefinition


class ParameterType(StrEnum):
    """Closed set of parameter value kinds."""

    STRING = "string"
    SECRET = "secret"
    INTEGER = "integer"
    FLOAT = "float"
    BOOL = "bool"
    DATE = "date"
    STRING_LIST = "string-list"
    INTEGER_LIST = "integer-list"
    FLOAT_LIST = "float-list"
    CHOICE = "choice"
    CHOICE_LIST = "choice-list"
    FILE = "file"
    FILE_LIST = "file-list"
    STRING_FROM_FILE = "string-from-file"
    STRING_LIST_FROM_FILE = "string-list-from-file"
    KEY_VALUE = "key-value"

    @property
    def is_list(self) -> bool:
        return self in _LIST_KINDS

    @property
    def gathers_repeated(self) -> bool:
        """Whether repeated CLI occurrences are collected into one value."""
        return self in _LIST_KINDS or self is ParameterType.KEY_VALUE

    @property
    def is_numeric(self) -> bool:
        return self in _NUMERIC_KINDS

    @property
    def is_choice(self) -> bool:
        return self in (ParameterType.CHOICE, ParameterType.CHOICE_LIST)

    @property
    def is_file(self) -> bool:
        return self in (ParameterType.FILE, ParameterType.FILE_LIST)

    @property
    def reads_file(self) -> bool:
        """Whether parsing a value reads the file it names."""
        return self in _FILE_READING_KINDS


_LIST_KINDS = frozenset(
    {
        ParameterType.STRING_LIST,
        ParameterType.INTEGER_LIST,
        ParameterType.FLOAT_LIST,
        ParameterType.CHOICE_LIST,
        ParameterType.FILE_LIST,
        ParameterType.STRING_LIST_FROM_FILE,
    }
)

_NUMERIC_KINDS = frozenset(
    {
        ParameterType.INTEGER,
        ParameterType.FLOAT,
        ParameterType.INTEGER_LIST,
        ParameterType.FLOAT_LIST,
    }
)

_FILE_READING_KINDS = frozenset(
    {
        ParameterType.FILE,
        ParameterType.FILE_LIST,
        ParameterType.STRING_FROM_FILE,
        ParameterType.STRING_LIST_FROM_FILE,
    }
)


@dataclass(frozen=True)
class FileData:
    """Contents of a file-backed parameter."""

    path: Path
    content: str

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def size(self) -> int:
        return len(self.content.encode("utf-8"))


Parser = Callable[[Any], Any]
Validator = Callable[[Any, "ParameterDefinition"], None]


@dataclass(frozen=True)
class TypeHandler:
    """Parse, validate and zero-value rules for one kind."""

    parse: Parser
    zero: Callable[[], Any]
    validate: Validator | None = None


# ── Parsers ──────────────────────────────────────────────────────────

_TRUE = frozenset({"true", "yes", "on", "1", "y", "t"})
_FALSE = frozenset({"false", "no", "off", "0", "n", "f"})


def _type_name(raw: Any) -> str:
    return type(raw).__name__


def parse_string(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return str(raw)
    raise ValueError(f"expected a string, got {_type_name(raw)}")


def parse_secret(raw: Any) -> SecretStr:
    if isinstance(raw, SecretStr):
        return raw
    return SecretStr(parse_string(raw))


def parse_integer(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValueError("expected an integer, got bool")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        if raw.is_integer():
            return int(raw)
        raise ValueError("not an integral number")
    if isinstance(raw, str):
        try:
            return int(raw.strip(), 10)
        except ValueError:
            raise ValueError("not an integer") from None
    raise ValueError(f"expected an integer, got {_type_name(raw)}")


def parse_float(raw: Any) -> float:
    if isinstance(raw, bool):
        raise ValueError("expected a number, got bool")
    if isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, str):
        try:
            return float(raw.strip())
        except ValueError:
            raise ValueError("not a number") from None
    raise ValueError(f"expected a number, got {_type_name(raw)}")


def parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ValueError("not a boolean (use true/false, yes/no, on/off, 1/0)")
    raise ValueError(f"expected a boolean, got {_type_name(raw)}")


def parse_date(raw: Any) -> date:
    # datetime is a date subclass; both pass through unchanged
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        raise ValueError(f"expected an ISO date, got {_type_name(raw)}")
    text = raw.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise ValueError("not an ISO 8601 date or datetime") from None


class WholeItems(tuple):
    """Items that are already separated; list parsers never split them on commas."""


def split_items(raw: Any) -> list[Any]:
    """Split *raw* into list items; strings split on commas."""
    if isinstance(raw, WholeItems):
        return list(raw)
    if isinstance(raw, str):
        return [part.strip() for part in raw.split(",") if part.strip()]
    if isinstance(raw, Mapping) or not isinstance(raw, Sequence):
        raise ValueError(f"expected a list, got {_type_name(raw)}")
    items: list[Any] = []
    for item in raw:
        if isinstance(item, str):
            items.extend(split_items(item))
        else:
            items.append(item)
    return items


def list_of(element: Parser) -> Parser:
    """Build a list parser applying *element* to every item."""

    def parse(raw: Any) -> list[Any]:
        parsed: list[Any] = []
        for position, item in enumerate(split_items(raw)):
            try:
                parsed.append(element(item))
            except ValueError as exc:
                raise ValueError(f"item {position} ({item!r}): {exc}") from None
        return parsed

    return parse


def _as_path(raw: Any) -> Path:
    if isinstance(raw, Path):
        return raw
    if isinstance(raw, (str, os.PathLike)) and str(raw):
        return Path(raw).expanduser()
    raise ValueError(f"expected a file path, got {_type_name(raw)}")


def _read_text(path: Path) -> str:
    if str(path) == "-":
        return sys.stdin.read()
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"cannot read {path}: {exc.strerror or exc}") from None
    except UnicodeDecodeError:
        raise ValueError(f"{path} is not valid UTF-8 text") from None


def check_paths(kind: ParameterType, raw: Any) -> None:
    """Check that *raw* names the file(s) a *kind* value reads, without reading them."""
    if kind.is_list:
        for item in split_items(raw):
            if not isinstance(item, FileData):
                _as_path(item)
    elif not isinstance(raw, FileData):
        _as_path(raw)


def parse_file(raw: Any) -> FileData:
    if isinstance(raw, FileData):
        return raw
    path = _as_path(raw)
    return FileData(path=path, content=_read_text(path))


def parse_string_from_file(raw: Any) -> str:
    return _read_text(_as_path(raw))


def parse_string_list_from_file(raw: Any) -> list[str]:
    if isinstance(raw, Sequence) and not isinstance(raw, str):
        lines: list[str] = []
        for item in raw:
            lines.extend(parse_string_list_from_file(item))
        return lines
    text = _read_text(_as_path(raw))
    return [line for line in (ln.rstrip("\r") for ln in text.split("\n")) if line.strip()]


def parse_key_value(raw: Any) -> dict[str, str]:
    if isinstance(raw, Mapping):
        return {str(key): parse_string(value) for key, value in raw.items()}
    pairs: dict[str, str] = {}
    for item in split_items(raw):
        if not isinstance(item, str):
            raise ValueError(f"expected key:value, got {_type_name(item)}")
        cuts = [i for i in (item.find(":"), item.find("=")) if i > 0]
        if not cuts:
            raise ValueError(f"expected key:value, got {item!r}")
        cut = min(cuts)
        key, value = item[:cut].strip(), item[cut + 1 :].strip()
        if not key:
            raise ValueError(f"empty key in {item!r}")
        pairs[key] = value
    return pairs


# ── Validators ───────────────────────────────────────────────────────


def _each(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list) else [value]


def validate_choices(value: Any, definition: ParameterDefinition) -> None:
    allowed = definition.choices or ()
    for item in _each(value):
        if item is not None and item not in allowed:
            raise ValueError(f"{item!r} is not one of: {', '.join(allowed)}")


def validate_range(value: Any, definition: ParameterDefinition) -> None:
    for item in _each(value):
        if item is None:
            continue
        if definition.minimum is not None and item < definition.minimum:
            raise ValueError(f"{item} is below the minimum of {definition.minimum}")
        if definition.maximum is not None and item > definition.maximum:
            raise ValueError(f"{item} is above the maximum of {definition.maximum}")


def validate_pattern(value: Any, definition: ParameterDefinition) -> None:
    if definition.pattern is None:
        return
    for item in _each(value):
        if not re.fullmatch(definition.pattern, item):
            raise ValueError(f"{item!r} does not match the pattern {definition.pattern!r}")


def validate_extensions(value: Any, definition: ParameterDefinition) -> None:
    if not definition.file_extensions:
        return
    allowed = {ext.lower() for ext in definition.file_extensions}
    for item in _each(value):
        if item is not None and item.path.suffix.lower() not in allowed:
            raise ValueError(
                f"{item.path.name} does not have one of the extensions: "
                f"{', '.join(sorted(allowed))}"
            )


# ── Registry ─────────────────────────────────────────────────────────


class TypeRegistry:
    """Handlers for every :class:`ParameterType`, passed explicitly where needed."""

    def __init__(self, handlers: Mapping[ParameterType, TypeHandler]) -> None:
        missing = [kind.value for kind in ParameterType if kind not in handlers]
        if missing:
            msg = f"Type registry is missing handlers for: {', '.join(missing)}"
            raise ValueError(msg)
        self._handlers: dict[ParameterType, TypeHandler] = dict(handlers)

    @classmethod
    def default(cls) -> TypeRegistry:
        """Registry with the built-in rules for every kind."""
        return cls(
            {
                ParameterType.STRING: TypeHandler(parse_string, str, validate_pattern),
                ParameterType.SECRET: TypeHandler(parse_secret, lambda: SecretStr("")),
                ParameterType.INTEGER: TypeHandler(parse_integer, int, validate_range),
                ParameterType.FLOAT: TypeHandler(parse_float, float, validate_range),
                ParameterType.BOOL: TypeHandler(parse_bool, bool),
                ParameterType.DATE: TypeHandler(parse_date, lambda: None),
                ParameterType.STRING_LIST: TypeHandler(
                    list_of(parse_string), list, validate_pattern
                ),
                ParameterType.INTEGER_LIST: TypeHandler(
                    list_of(parse_integer), list, validate_range
                ),
                ParameterType.FLOAT_LIST: TypeHandler(list_of(parse_float), list, validate_range),
                ParameterType.CHOICE: TypeHandler(parse_string, lambda: None, validate_choices),
                ParameterType.CHOICE_LIST: TypeHandler(
                    list_of(parse_string), list, validate_choices
                ),
                ParameterType.FILE: TypeHandler(parse_file, lambda: None, validate_extensions),
                ParameterType.FILE_LIST: TypeHandler(
                    list_of(parse_file), list, validate_extensions
                ),
                ParameterType.STRING_FROM_FILE: TypeHandler(parse_string_from_file, str),
                ParameterType.STRING_LIST_FROM_FILE: TypeHandler(
                    parse_string_list_from_file, list
                ),
                ParameterType.KEY_VALUE: TypeHandler(parse_key_value, dict),
            }
        )

    def with_handler(self, kind: ParameterType, handler: TypeHandler) -> TypeRegistry:
        """Return a new registry with *kind* handled by *handler*."""
        return TypeRegistry({**self._handlers, kind: handler})

    def handler(self, kind: ParameterType) -> TypeHandler:
        return self._handlers[kind]

    def parse(self, kind: ParameterType, raw: Any) -> Any:
        return self._handlers[kind].parse(raw)

    def validate(self, definition: ParameterDefinition, value: Any) -> None:
        validator = self._handlers[definition.type].validate
        if validator is not None:
            validator(value, definition)

    def zero(self, kind: ParameterType) -> Any:
        return self._handlers[kind].zero()
