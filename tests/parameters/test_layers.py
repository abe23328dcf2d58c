"""Tests for ParameterLayer and LayerBinding."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from cmdlayers.errors import DefinitionError
from cmdlayers.parameters.definitions import ParameterDefinition
from cmdlayers.parameters.layers import LayerBinding, ParameterLayer, check_unique_slugs
from cmdlayers.parameters.types import ParameterType, TypeRegistry


@dataclass
class DbSettings:
    host: str = ""
    port: int = 0
    tags: list[str] = field(default_factory=list)


class TestParameterLayer:
    def test_preserves_declaration_order(self, db_layer: ParameterLayer) -> None:
        assert db_layer.names == ("host", "port", "user", "password", "tags", "debug")
        assert len(db_layer) == 6
        assert "port" in db_layer
        assert "missing" not in db_layer

    def test_name_defaults_to_slug(self, registry: TypeRegistry) -> None:
        layer = ParameterLayer("misc", [], registry)
        assert layer.name == "misc"

    def test_empty_slug(self, registry: TypeRegistry) -> None:
        with pytest.raises(DefinitionError):
            ParameterLayer("", [], registry)

    def test_duplicate_names(self, registry: TypeRegistry) -> None:
        with pytest.raises(DefinitionError, match="Duplicate parameter 'a'"):
            ParameterLayer(
                "dup",
                [ParameterDefinition(name="a"), ParameterDefinition(name="a")],
                registry,
            )

    def test_defaults_are_parsed(self, registry: TypeRegistry) -> None:
        layer = ParameterLayer(
            "nums",
            [ParameterDefinition(name="ids", type=ParameterType.INTEGER_LIST, default="1,2")],
            registry,
        )
        assert layer.definition("ids").default == [1, 2]

    def test_invalid_default_rejected(self, registry: TypeRegistry) -> None:
        with pytest.raises(DefinitionError, match="Default for 'n'"):
            ParameterLayer(
                "bad",
                [ParameterDefinition(name="n", type=ParameterType.INTEGER, default="many")],
                registry,
            )

    def test_default_outside_choices_rejected(self, registry: TypeRegistry) -> None:
        with pytest.raises(DefinitionError):
            ParameterLayer(
                "bad",
                [
                    ParameterDefinition(
                        name="mode", type=ParameterType.CHOICE, choices=("a", "b"), default="c"
                    )
                ],
                registry,
            )

    def test_unknown_definition(self, db_layer: ParameterLayer) -> None:
        assert db_layer.get("nope") is None
        with pytest.raises(DefinitionError, match="no parameter 'nope'"):
            db_layer.definition("nope")

    def test_flag_and_env_names(self, db_layer: ParameterLayer) -> None:
        port = db_layer.definition("port")
        assert db_layer.flag_name(port) == "db-port"
        assert db_layer.env_name("app", port) == "APP_DB_PORT"
        assert db_layer.env_name("", port) == "DB_PORT"


class TestLayerBinding:
    def test_bind_and_build(self, db_layer: ParameterLayer) -> None:
        binding = db_layer.bind(DbSettings, host="host", port="port")
        assert isinstance(binding, LayerBinding)
        assert binding.layer == "db"
        settings = binding.build({"host": "db.local", "port": 6543, "user": "x"})
        assert settings == DbSettings(host="db.local", port=6543)

    def test_bind_accepts_mapping(self, db_layer: ParameterLayer) -> None:
        binding = db_layer.bind(DbSettings, {"tags": "tags"})
        assert binding.build({"tags": ["a"]}).tags == ["a"]

    def test_unmapped_fields_keep_target_defaults(self, db_layer: ParameterLayer) -> None:
        binding = db_layer.bind(DbSettings, host="host")
        assert binding.build({"host": "h"}) == DbSettings(host="h", port=0)

    def test_unknown_parameter(self, db_layer: ParameterLayer) -> None:
        with pytest.raises(DefinitionError, match="unknown parameter 'hostname'"):
            db_layer.bind(DbSettings, host="hostname")


class TestUniqueSlugs:
    def test_duplicate_slugs(self, registry: TypeRegistry) -> None:
        a = ParameterLayer("same", [], registry)
        b = ParameterLayer("same", [], registry)
        with pytest.raises(DefinitionError, match="Duplicate layer slug"):
            check_unique_slugs([a, b])

    def test_returns_tuple(self, registry: TypeRegistry) -> None:
        a = ParameterLayer("a", [], registry)
        assert check_unique_slugs([a]) == (a,)
