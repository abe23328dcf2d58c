"""Structured records produced by row commands."""

from __future__ import annotations

from cmdlayers.rows.row import Row, RowLike
from cmdlayers.rows.values import ValueKind, freeze, kind_of, thaw, to_text

__all__ = ["Row", "RowLike", "ValueKind", "freeze", "kind_of", "thaw", "to_text"]
