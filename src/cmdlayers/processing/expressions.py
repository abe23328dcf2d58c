"""Row predicates written as Jinja2 expressions.

Expressions run in Jinja2's sandbox.  Every field whose name is a valid
identifier is available as a variable; all fields are also reachable through
``row`` (``row["created-at"]``)::

    n > 2 and status in ["open", "blocked"]
    row["due-date"] is not none
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from jinja2 import TemplateSyntaxError, UndefinedError
from jinja2.sandbox import SandboxedEnvironment

from cmdlayers.rows.row import Row

logger = logging.getLogger(__name__)

_ENV = SandboxedEnvironment()


class ExpressionError(ValueError):
    """The predicate expression does not compile."""


def _context(row: Row) -> dict[str, Any]:
    plain = row.to_dict()
    context = {name: value for name, value in plain.items() if name.isidentifier()}
    context["row"] = plain
    return context


class RowPredicate:
    """Compiled boolean expression evaluated against a row's fields.

    Rows on which the expression cannot be evaluated (missing field,
    incomparable types, division by zero) do not match.
    """

    def __init__(self, expression: str) -> None:
        self.expression = expression
        try:
            self._compiled: Callable[..., Any] = _ENV.compile_expression(
                expression, undefined_to_none=True
            )
        except TemplateSyntaxError as exc:
            raise ExpressionError(f"Invalid filter expression {expression!r}: {exc}") from exc

    def __call__(self, row: Row) -> bool:
        try:
            return bool(self._compiled(**_context(row)))
        except (TypeError, ValueError, ArithmeticError, UndefinedError) as exc:
            logger.debug("Filter %r skipped row: %s", self.expression, exc)
            return False

    def __repr__(self) -> str:
        return f"RowPredicate({self.expression!r})"
