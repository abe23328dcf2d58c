"""Tests for the layer resolution engine."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest
from pydantic import SecretStr

from cmdlayers.errors import (
    DefinitionError,
    MissingRequiredParameter,
    ParameterParseError,
    ParameterValidationError,
)
from cmdlayers.parameters.definitions import ParameterDefinition
from cmdlayers.parameters.layers import ParameterLayer
from cmdlayers.parameters.resolution import ResolutionEngine, resolve_layers
from cmdlayers.parameters.sources import (
    ArgumentsSource,
    ConfigFileSource,
    DefaultsSource,
    EnvironmentSource,
    OverridesSource,
    standard_sources,
)
from cmdlayers.parameters.types import ParameterType, TypeRegistry
from tests.conftest import write_file


@dataclass
class Connection:
    host: str = ""
    port: int = 0


def _with_user(**extra: object) -> dict[str, object]:
    return {"db-user": "admin", **extra}


class TestResolutionBasics:
    def test_default_yields_default(self, registry: TypeRegistry) -> None:
        layer = ParameterLayer(
            "l", [ParameterDefinition(name="n", type=ParameterType.INTEGER, default=7)], registry
        )
        parsed = resolve_layers([layer], [DefaultsSource()], registry=registry)
        assert parsed["l"]["n"] == 7
        assert parsed["l"].source_of("n") == "defaults"

    def test_default_used_without_defaults_source(self, registry: TypeRegistry) -> None:
        layer = ParameterLayer(
            "l", [ParameterDefinition(name="n", type=ParameterType.INTEGER, default=7)], registry
        )
        parsed = resolve_layers([layer], [], registry=registry)
        assert parsed.value("l", "n") == 7
        assert parsed["l"].source_of("n") == "defaults"

    def test_zero_values_for_unset_optionals(
        self, registry: TypeRegistry, db_layer: ParameterLayer
    ) -> None:
        parsed = resolve_layers(
            [db_layer], [DefaultsSource(), ArgumentsSource(_with_user())], registry=registry
        )
        layer = parsed["db"]
        assert layer["tags"] == []
        assert layer.source_of("tags") == "zero"
        assert isinstance(layer["password"], SecretStr)
        assert layer["debug"] is False

    def test_one_entry_per_layer(self, registry: TypeRegistry, db_layer: ParameterLayer) -> None:
        other = ParameterLayer("other", [], registry)
        parsed = resolve_layers(
            [db_layer, other], [ArgumentsSource(_with_user())], registry=registry
        )
        assert list(parsed) == ["db", "other"]
        assert len(parsed["other"]) == 0

    def test_duplicate_slugs_rejected(self, registry: TypeRegistry) -> None:
        a = ParameterLayer("same", [], registry)
        with pytest.raises(DefinitionError):
            resolve_layers([a, ParameterLayer("same", [], registry)], [], registry=registry)

    def test_deterministic(self, registry: TypeRegistry, db_layer: ParameterLayer) -> None:
        def run() -> dict[str, dict[str, object]]:
            sources = standard_sources(
                arguments=_with_user(**{"db-tags": ["x", "y"]}),
                env_prefix="APP",
                environ={"APP_DB_PORT": "6000"},
            )
            return resolve_layers([db_layer], sources, registry=registry).to_dict()

        assert run() == run()


class TestPrecedence:
    def test_cli_beats_config(
        self, registry: TypeRegistry, db_layer: ParameterLayer, tmp_path: Path
    ) -> None:
        config = write_file(tmp_path, "app.toml", '[db]\nhost = "from-config"\nport = 1000\n')
        sources = standard_sources(
            arguments=_with_user(**{"db-host": "from-cli"}), config_files=[config]
        )
        parsed = resolve_layers([db_layer], sources, registry=registry)
        assert parsed["db"]["host"] == "from-cli"
        assert parsed["db"].source_of("host") == "arguments"
        assert parsed["db"]["port"] == 1000
        assert parsed["db"].source_of("port") == f"config:{config}"

    def test_env_beats_config_overrides_beat_all(
        self, registry: TypeRegistry, db_layer: ParameterLayer, tmp_path: Path
    ) -> None:
        config = write_file(tmp_path, "app.toml", '[db]\nhost = "c"\nport = 1\n')
        sources = [
            OverridesSource({"db": {"port": 9}}),
            ArgumentsSource(_with_user()),
            EnvironmentSource("APP", {"APP_DB_HOST": "e", "APP_DB_PORT": "2"}),
            ConfigFileSource(config),
        ]
        parsed = resolve_layers([db_layer], sources, registry=registry)
        assert parsed["db"]["host"] == "e"
        assert parsed["db"]["port"] == 9
        history = [c.source for c in parsed["db"].history_of("port")]
        assert history == [f"config:{config}", "env", "overrides"]

    def test_list_values_replace_whole(
        self, registry: TypeRegistry, db_layer: ParameterLayer, tmp_path: Path
    ) -> None:
        config = write_file(tmp_path, "app.toml", '[db]\ntags = ["a", "b"]\n')
        sources = standard_sources(
            arguments=_with_user(**{"db-tags": ["c"]}), config_files=[config]
        )
        parsed = resolve_layers([db_layer], sources, registry=registry)
        assert parsed["db"]["tags"] == ["c"]


class TestResolutionErrors:
    def test_missing_required(self, registry: TypeRegistry, db_layer: ParameterLayer) -> None:
        with pytest.raises(MissingRequiredParameter) as exc_info:
            resolve_layers([db_layer], standard_sources(), registry=registry)
        assert exc_info.value.layer == "db"
        assert exc_info.value.parameter == "user"
        assert exc_info.value.code == "MISSING_REQUIRED"

    def test_parse_error_names_raw_and_type(
        self, registry: TypeRegistry, db_layer: ParameterLayer
    ) -> None:
        sources = [ArgumentsSource(_with_user(**{"db-port": "eighty"}))]
        with pytest.raises(ParameterParseError) as exc_info:
            resolve_layers([db_layer], sources, registry=registry)
        error = exc_info.value
        assert error.parameter == "port"
        assert error.raw == "eighty"
        assert error.expected == "integer"
        assert error.detail["source"] == "arguments"

    def test_validation_error(self, registry: TypeRegistry, db_layer: ParameterLayer) -> None:
        sources = [ArgumentsSource(_with_user(**{"db-port": "70000"}))]
        with pytest.raises(ParameterValidationError, match="above the maximum"):
            resolve_layers([db_layer], sources, registry=registry)

    def test_empty_env_value_is_parsed(
        self, registry: TypeRegistry, db_layer: ParameterLayer
    ) -> None:
        sources = [
            ArgumentsSource(_with_user()),
            EnvironmentSource("APP", {"APP_DB_PORT": ""}),
        ]
        with pytest.raises(ParameterParseError):
            resolve_layers([db_layer], sources, registry=registry)


class TestParsedLayers:
    def test_project_and_to_dict(self, registry: TypeRegistry, db_layer: ParameterLayer) -> None:
        binding = db_layer.bind(Connection, host="host", port="port")
        parsed = resolve_layers(
            [db_layer], [DefaultsSource(), ArgumentsSource(_with_user())], registry=registry
        )
        assert parsed.project(binding) == Connection(host="localhost", port=5432)
        assert parsed["db"].project(binding) == Connection(host="localhost", port=5432)
        assert parsed.to_dict()["db"]["user"] == "admin"

    def test_parsed_value_history(self, registry: TypeRegistry, db_layer: ParameterLayer) -> None:
        parsed = ResolutionEngine(registry).resolve(
            [db_layer], [DefaultsSource(), ArgumentsSource(_with_user(**{"db-host": "h"}))]
        )
        value = parsed["db"].parsed("host")
        assert value.value == "h"
        assert value.source == "arguments"
        assert [c.raw for c in value.history] == ["localhost", "h"]

    def test_read_only(self, registry: TypeRegistry, db_layer: ParameterLayer) -> None:
        parsed = resolve_layers([db_layer], [ArgumentsSource(_with_user())], registry=registry)
        with pytest.raises(TypeError):
            parsed["db"]["host"] = "x"  # type: ignore[index]

    def test_list_values_are_copies(self, registry: TypeRegistry, db_layer: ParameterLayer) -> None:
        parsed = resolve_layers(
            [db_layer], [ArgumentsSource(_with_user(**{"db-tags": ["a", "b"]}))], registry=registry
        )
        parsed["db"]["tags"].append("c")
        parsed["db"].parsed("tags").value.clear()
        parsed.to_dict()["db"]["tags"].append("d")
        assert parsed["db"]["tags"] == ["a", "b"]


class TestFileDefaults:
    def test_string_from_file_default_read_at_resolution(
        self, registry: TypeRegistry, tmp_path: Path
    ) -> None:
        path = write_file(tmp_path, "greeting.txt", "hello")
        layer = ParameterLayer(
            "app",
            [
                ParameterDefinition(
                    name="greeting", type=ParameterType.STRING_FROM_FILE, default=str(path)
                )
            ],
            registry,
        )
        assert layer.definition("greeting").default == str(path)
        parsed = resolve_layers([layer], [DefaultsSource()], registry=registry)
        assert parsed["app"]["greeting"] == "hello"

    def test_file_default_sees_current_content(
        self, registry: TypeRegistry, tmp_path: Path
    ) -> None:
        path = tmp_path / "body.txt"
        layer = ParameterLayer(
            "app",
            [ParameterDefinition(name="body", type=ParameterType.FILE, default=str(path))],
            registry,
        )
        path.write_text("first", encoding="utf-8")
        assert resolve_layers([layer], [], registry=registry)["app"]["body"].content == "first"
        path.write_text("second", encoding="utf-8")
        assert resolve_layers([layer], [], registry=registry)["app"]["body"].content == "second"

    def test_missing_default_file_fails_at_resolution(
        self, registry: TypeRegistry, tmp_path: Path
    ) -> None:
        layer = ParameterLayer(
            "app",
            [
                ParameterDefinition(
                    name="hosts",
                    type=ParameterType.STRING_LIST_FROM_FILE,
                    default=str(tmp_path / "missing.txt"),
                )
            ],
            registry,
        )
        with pytest.raises(ParameterParseError) as exc_info:
            resolve_layers([layer], [DefaultsSource()], registry=registry)
        assert exc_info.value.detail["source"] == "defaults"

    def test_non_path_default_rejected(self, registry: TypeRegistry) -> None:
        with pytest.raises(DefinitionError, match="file path"):
            ParameterLayer(
                "app",
                [ParameterDefinition(name="body", type=ParameterType.FILE, default=42)],
                registry,
            )
