"""RowPipeline — push rows through stages into a sink.

State machine::

    OPEN --add_row--> RECEIVING --close--> CLOSED
                          |
                          +--sink/stage error--> FAILED
                          +--cancellation------> CANCELLED

The producer calls :meth:`RowPipeline.add_row` synchronously; streaming
stages and sinks have written the row before the call returns, so a slow
sink slows the producer.  ``add_row`` returns False once a limit has been
reached, telling the producer it can stop.

A row rejected by validation (duplicate field, unsupported value) raises
:class:`RowFormatError` and leaves the pipeline receiving.  Errors raised while
a row moves through stages or the sink are fatal: the pipeline fails and any
buffered output is discarded.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Sequence
from enum import StrEnum
from types import TracebackType

from cmdlayers.errors import (
    CancellationError,
    PipelineStateError,
    RowFormatError,
)
from cmdlayers.processing.sinks import Sink
from cmdlayers.processing.stages import Stage
from cmdlayers.rows.row import Row, RowLike

logger = logging.getLogger(__name__)


class PipelineState(StrEnum):
    OPEN = "open"
    RECEIVING = "receiving"
    CLOSED = "closed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CancellationToken:
    """Thread-safe cancellation flag checked by the pipeline between rows."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class RowPipeline:
    """Single-producer pipeline owned by one command invocation."""

    def __init__(
        self,
        sink: Sink,
        stages: Iterable[Stage] = (),
        *,
        cancellation: CancellationToken | None = None,
    ) -> None:
        self.sink = sink
        self.stages: Sequence[Stage] = tuple(stages)
        self.cancellation = cancellation or CancellationToken()
        self.state = PipelineState.OPEN
        self.rows_received = 0
        self.rows_written = 0

    @property
    def buffers_stream(self) -> bool:
        """True if the sink or any stage must hold the whole stream."""
        return self.sink.buffers_stream or any(stage.buffers for stage in self.stages)

    @property
    def done(self) -> bool:
        """True once no further row can reach the sink (a limit was hit)."""
        return any(stage.exhausted for stage in self.stages)

    # ── Producer side ────────────────────────────────────────────────

    def add_row(self, row: Row | RowLike) -> bool:
        """Push one row.  Returns False when the producer may stop.

        Raises:
            RowFormatError: The row is malformed (pipeline keeps receiving)
                or the sink cannot represent it (pipeline fails).
            SinkWriteError: Writing failed (pipeline fails).
            CancellationError: Cancellation was requested.
            PipelineStateError: The pipeline is closed or failed.
        """
        self._check_accepting()
        self.state = PipelineState.RECEIVING
        self._check_cancelled()

        index = self.rows_received
        self.rows_received += 1
        try:
            normalized = Row.coerce(row)
        except RowFormatError as exc:
            raise exc.at_row(index) from exc.__cause__

        if self.done:
            return False
        try:
            self._push(normalized, 0)
        except RowFormatError as exc:
            self._fail()
            raise exc.at_row(index) from exc.__cause__
        except Exception:
            self._fail()
            raise
        return not self.done

    def close(self) -> None:
        """Flush buffering stages and the sink.  Idempotent once finished."""
        if self.state in (PipelineState.CLOSED, PipelineState.FAILED, PipelineState.CANCELLED):
            return
        self._check_cancelled()
        try:
            for position, stage in enumerate(self.stages):
                for row in stage.finish():
                    self._check_cancelled()
                    self._push(row, position + 1)
            self.sink.close()
        except RowFormatError as exc:
            self._fail()
            raise exc.at_row(self.rows_written) from exc.__cause__
        except CancellationError:
            raise
        except Exception:
            self._fail()
            raise
        self.state = PipelineState.CLOSED
        logger.debug(
            "Pipeline closed: %d row(s) received, %d written as %s",
            self.rows_received,
            self.rows_written,
            self.sink.format,
        )

    def abort(self) -> None:
        """Stop without flushing; buffered output is discarded."""
        if self.state in (PipelineState.OPEN, PipelineState.RECEIVING):
            self._fail()

    def emitter(self) -> RowEmitter:
        return RowEmitter(self)

    def __enter__(self) -> RowPipeline:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()

    # ── Internals ────────────────────────────────────────────────────

    def _check_accepting(self) -> None:
        if self.state is PipelineState.CANCELLED:
            raise CancellationError(rows_received=self.rows_received)
        if self.state in (PipelineState.CLOSED, PipelineState.FAILED):
            raise PipelineStateError(f"Cannot add rows to a {self.state} pipeline")

    def _check_cancelled(self) -> None:
        if not self.cancellation.cancelled:
            return
        self._release()
        self.state = PipelineState.CANCELLED
        logger.info("Pipeline cancelled after %d row(s)", self.rows_received)
        raise CancellationError(rows_received=self.rows_received)

    def _push(self, row: Row, start: int) -> None:
        if start == len(self.stages):
            self.sink.write_row(row, self.rows_written)
            self.rows_written += 1
            return
        for out in self.stages[start].process(row):
            self._push(out, start + 1)

    def _release(self) -> None:
        for stage in self.stages:
            stage.reset()
        self.sink.discard()

    def _fail(self) -> None:
        self._release()
        self.state = PipelineState.FAILED


class RowEmitter:
    """The only pipeline surface business logic sees."""

    __slots__ = ("_pipeline",)

    def __init__(self, pipeline: RowPipeline) -> None:
        self._pipeline = pipeline

    def add_row(self, row: Row | RowLike) -> bool:
        return self._pipeline.add_row(row)

    @property
    def cancelled(self) -> bool:
        return self._pipeline.cancellation.cancelled

    @property
    def done(self) -> bool:
        return self._pipeline.done
