"""Error taxonomy for parameter resolution and row processing.

Every error carries a stable ``code``, a human ``message`` and a ``detail``
mapping (layer slug, parameter name, row index, field name, ...) so the CLI
can report the cause without inspecting internals.
"""

from __future__ import annotations

from typing import Any, ClassVar


class CmdLayersError(Exception):
    """Base class for all framework errors."""

    code: ClassVar[str] = "ERROR"

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.message = message
        self.detail: dict[str, Any] = {k: v for k, v in detail.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        """Return the ``{code, message, detail}`` payload."""
        return {"code": self.code, "message": self.message, "detail": dict(self.detail)}


class DefinitionError(CmdLayersError):
    """A parameter definition, layer or binding is inconsistent."""

    code = "INVALID_DEFINITION"


# ── Resolution ───────────────────────────────────────────────────────


class ResolutionError(CmdLayersError):
    """Raised while turning source contributions into parsed layers."""

    code = "RESOLUTION_FAILED"

    def __init__(self, message: str, *, layer: str, parameter: str, **detail: Any) -> None:
        super().__init__(message, layer=layer, parameter=parameter, **detail)
        self.layer = layer
        self.parameter = parameter


class MissingRequiredParameter(ResolutionError):
    code = "MISSING_REQUIRED"

    def __init__(self, *, layer: str, parameter: str) -> None:
        super().__init__(
            f"Required parameter '{parameter}' of layer '{layer}' was not provided",
            layer=layer,
            parameter=parameter,
        )


class ParameterParseError(ResolutionError):
    code = "PARSE_ERROR"

    def __init__(
        self,
        *,
        layer: str,
        parameter: str,
        raw: Any,
        expected: str,
        reason: str,
        source: str | None = None,
    ) -> None:
        super().__init__(
            f"Cannot parse {raw!r} as {expected} for '{parameter}' in layer '{layer}': {reason}",
            layer=layer,
            parameter=parameter,
            raw=raw,
            expected=expected,
            source=source,
        )
        self.raw = raw
        self.expected = expected


class ParameterValidationError(ResolutionError):
    code = "VALIDATION_ERROR"

    def __init__(
        self,
        *,
        layer: str,
        parameter: str,
        reason: str,
        source: str | None = None,
    ) -> None:
        super().__init__(
            f"Invalid value for '{parameter}' in layer '{layer}': {reason}",
            layer=layer,
            parameter=parameter,
            source=source,
        )
        self.reason = reason


class SourceError(CmdLayersError):
    """A value source could not deliver its contribution."""

    code = "SOURCE_ERROR"


class ConfigFileError(SourceError):
    code = "CONFIG_FILE_ERROR"

    def __init__(self, message: str, *, path: str) -> None:
        super().__init__(message, path=path)
        self.path = path


# ── Pipeline ─────────────────────────────────────────────────────────


class PipelineError(CmdLayersError):
    """Raised by the row processing pipeline."""

    code = "PIPELINE_ERROR"


class RowFormatError(PipelineError):
    code = "ROW_FORMAT_ERROR"

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        row_index: int | None = None,
    ) -> None:
        super().__init__(message, field=field, row_index=row_index)
        self.field = field
        self.row_index = row_index

    def at_row(self, row_index: int) -> RowFormatError:
        """Return a copy of this error pinned to *row_index*."""
        if self.row_index == row_index:
            return self
        err = RowFormatError(self.message, field=self.field, row_index=row_index)
        err.__cause__ = self.__cause__
        return err


class SinkWriteError(PipelineError):
    code = "SINK_WRITE_ERROR"


class PipelineStateError(PipelineError):
    code = "PIPELINE_STATE_ERROR"


class CancellationError(PipelineError):
    code = "CANCELLED"

    def __init__(self, *, rows_received: int) -> None:
        super().__init__(
            f"Pipeline cancelled after {rows_received} row(s)",
            rows_received=rows_received,
        )
        self.rows_received = rows_received
