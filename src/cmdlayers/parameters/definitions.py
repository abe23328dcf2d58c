"""ParameterDefinition — one named, typed parameter declaration."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from cmdlayers.parameters.types import ParameterType

_NAME_RE = re.compile(r"^[a-z][a-z0-9]*(?:[-_][a-z0-9]+)*$")
_PATTERN_KINDS = (ParameterType.STRING, ParameterType.STRING_LIST)


class ParameterDefinition(BaseModel):
    """Schema for a single parameter.

    Attributes:
        name: Identifier, unique within its layer (``kebab-case``).
        type: Value kind, see :class:`ParameterType`.
        default: Typed (or parseable) default; must be absent when required.
        required: Resolution fails if no source supplies a value.
        help: One-line description shown next to the CLI flag.
        short_flag: Single-letter CLI alias, if the parameter deserves one.
        from_env: Whether the environment source may supply this parameter.
        argument: Supplied as a positional CLI argument rather than a flag.
        choices: Allowed values for ``choice`` and ``choice-list``.
        minimum: Inclusive lower bound for numeric kinds.
        maximum: Inclusive upper bound for numeric kinds.
        pattern: Regular expression that ``string`` and ``string-list``
            values must match in full.
        file_extensions: Accepted suffixes for ``file`` and ``file-list``.
    """

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    name: str
    type: ParameterType = ParameterType.STRING
    default: Any = None
    required: bool = False
    help: str = ""
    short_flag: str | None = None
    from_env: bool = True
    argument: bool = False
    choices: tuple[str, ...] | None = None
    minimum: float | None = None
    maximum: float | None = None
    pattern: str | None = None
    file_extensions: tuple[str, ...] = Field(default_factory=tuple)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not _NAME_RE.match(value):
            msg = f"invalid parameter name {value!r} (use lower-case kebab-case)"
            raise ValueError(msg)
        return value

    @field_validator("short_flag")
    @classmethod
    def _check_short_flag(cls, value: str | None) -> str | None:
        if value is not None and (len(value) != 1 or not value.isalpha()):
            msg = f"short flag must be a single letter, got {value!r}"
            raise ValueError(msg)
        return value

    @field_validator("pattern")
    @classmethod
    def _check_pattern(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                re.compile(value)
            except re.error as exc:
                msg = f"invalid pattern {value!r}: {exc}"
                raise ValueError(msg) from None
        return value

    @field_validator("file_extensions")
    @classmethod
    def _normalize_extensions(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(ext if ext.startswith(".") else f".{ext}" for ext in value)

    @model_validator(mode="after")
    def _check_consistency(self) -> ParameterDefinition:
        if self.required and self.default is not None:
            msg = f"parameter {self.name!r} is required and cannot have a default"
            raise ValueError(msg)
        if self.type.is_choice and not self.choices:
            msg = f"parameter {self.name!r} of type {self.type} needs choices"
            raise ValueError(msg)
        if self.choices is not None and not self.type.is_choice:
            msg = f"parameter {self.name!r} of type {self.type} cannot declare choices"
            raise ValueError(msg)
        if (self.minimum is not None or self.maximum is not None) and not self.type.is_numeric:
            msg = f"parameter {self.name!r} of type {self.type} cannot declare a range"
            raise ValueError(msg)
        if (
            self.minimum is not None
            and self.maximum is not None
            and self.minimum > self.maximum
        ):
            msg = f"parameter {self.name!r} has minimum above maximum"
            raise ValueError(msg)
        if self.argument and self.short_flag is not None:
            msg = f"argument parameter {self.name!r} cannot have a short flag"
            raise ValueError(msg)
        if self.file_extensions and not self.type.is_file:
            msg = f"parameter {self.name!r} of type {self.type} cannot declare file extensions"
            raise ValueError(msg)
        if self.pattern is not None and self.type not in _PATTERN_KINDS:
            msg = f"parameter {self.name!r} of type {self.type} cannot declare a pattern"
            raise ValueError(msg)
        return self

    @property
    def attribute_name(self) -> str:
        """Python identifier form of the name (``max-width`` -> ``max_width``)."""
        return self.name.replace("-", "_")
