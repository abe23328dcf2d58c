"""structlog configuration for cmdlayers.

Library modules log through stdlib ``logging.getLogger(__name__)``; this module
routes those records through structlog's ProcessorFormatter to stderr:

- Human (default): console renderer, colored on a TTY
- JSON (``--log-json``): one JSON object per line

Command context (command name, output format) is attached with
:func:`bind_invocation` and appears on every record of the invocation.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog

LIBRARY_LOGGER = "cmdlayers"


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def configure_logging(
    *,
    verbose: bool = False,
    log_json: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog processors and route log output.

    Args:
        verbose: DEBUG for the ``cmdlayers`` logger; otherwise WARNING+.
        log_json: Use the JSON renderer instead of the console renderer.
        stream: Destination, stderr by default.
    """
    target = stream or sys.stderr
    shared = _shared_processors()

    if log_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=target.isatty())

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(target)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.WARNING)
    logging.getLogger(LIBRARY_LOGGER).setLevel(logging.DEBUG if verbose else logging.WARNING)


def bind_invocation(**context: Any) -> None:
    """Attach *context* to every log record until :func:`clear_invocation`."""
    structlog.contextvars.bind_contextvars(**context)


def clear_invocation() -> None:
    structlog.contextvars.clear_contextvars()
