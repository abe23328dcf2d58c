"""Shared pytest fixtures and test helpers for cmdlayers tests."""

from __future__ import annotations

import io
import logging
import os
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from cmdlayers.parameters.definitions import ParameterDefinition
from cmdlayers.parameters.layers import ParameterLayer
from cmdlayers.parameters.types import ParameterType, TypeRegistry
from cmdlayers.processing.layers import OutputLayers, output_layers


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def registry() -> TypeRegistry:
    return TypeRegistry.default()


@pytest.fixture
def output(registry: TypeRegistry) -> OutputLayers:
    return output_layers(registry)


@pytest.fixture
def db_layer(registry: TypeRegistry) -> ParameterLayer:
    """A small layer exercising the common kinds."""
    return ParameterLayer(
        "db",
        [
            ParameterDefinition(name="host", default="localhost", short_flag="H"),
            ParameterDefinition(name="port", type=ParameterType.INTEGER, default=5432, maximum=65535),
            ParameterDefinition(name="user", required=True),
            ParameterDefinition(name="password", type=ParameterType.SECRET),
            ParameterDefinition(name="tags", type=ParameterType.STRING_LIST),
            ParameterDefinition(name="debug", type=ParameterType.BOOL, default=False),
        ],
        registry,
        flag_prefix="db-",
    )


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every test from an empty directory with no CMDLAYERS_* variables.

    Keeps config discovery and the environment source from picking up the
    developer's own settings.
    """
    for name in list(os.environ):
        if name.startswith("CMDLAYERS_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def _restore_logging() -> Generator[None]:
    """Restore root logger state after each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    lib = logging.getLogger("cmdlayers")
    lib_level = lib.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    lib.setLevel(lib_level)


# ---------------------------------------------------------------------------
# Shared test helpers
# ---------------------------------------------------------------------------


def write_file(directory: Path, name: str, content: str) -> Path:
    path = directory / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def numbered_rows(count: int, **extra: Any) -> list[dict[str, Any]]:
    """``count`` rows of ``{"n": i, **extra}`` for i in 1..count."""
    return [{"n": i, **extra} for i in range(1, count + 1)]


class FailingStream(io.StringIO):
    """Text stream whose writes fail, as a closed pipe would."""

    def write(self, text: str) -> int:
        raise OSError(32, "Broken pipe")
