"""ParameterLayer — a named, immutable group of parameter definitions.

Layers are schema only.  They are built once (typically at import time) and
shared read-only across invocations.  Defaults are parsed and validated with
the :class:`~cmdlayers.parameters.types.TypeRegistry` passed at construction,
so a layer never carries a default its own type would reject.  Defaults of
file-reading kinds stay as paths; only their shape is checked here.

Typed projection uses explicit :class:`LayerBinding` tables rather than
introspecting the target type::

    OUTPUT = ParameterLayer("output", [...], registry=registry)
    OUTPUT_SETTINGS = OUTPUT.bind(OutputSettings, format="output", width="max-width")
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import InitVar, dataclass, field
from types import MappingProxyType
from typing import Any, Generic, TypeVar

from cmdlayers.errors import DefinitionError
from cmdlayers.parameters.definitions import ParameterDefinition
from cmdlayers.parameters.types import TypeRegistry, check_paths

T = TypeVar("T")


@dataclass(frozen=True)
class LayerBinding(Generic[T]):
    """Declared mapping from target fields to parameter names of one layer."""

    layer: str
    target: type[T]
    fields: Mapping[str, str]

    def build(self, values: Mapping[str, Any]) -> T:
        """Instantiate the target from *values* keyed by parameter name.

        Parameters absent from *values* are skipped so the target's own
        defaults apply.
        """
        kwargs = {attr: values[param] for attr, param in self.fields.items() if param in values}
        return self.target(**kwargs)


@dataclass(frozen=True)
class ParameterLayer:
    """Ordered collection of definitions for one logical concern.

    Attributes:
        slug: Unique identifier (config file section, ParsedLayers key).
        definitions: Parameter definitions in declaration order.
        name: Display name; defaults to the slug.
        description: Longer help for the layer.
        flag_prefix: Prepended to parameter names for CLI flags and
            environment variables (for example ``db-``).
    """

    slug: str
    definitions: tuple[ParameterDefinition, ...]
    registry: InitVar[TypeRegistry]
    name: str = ""
    description: str = ""
    flag_prefix: str = ""
    _by_name: Mapping[str, ParameterDefinition] = field(init=False, repr=False, compare=False)

    def __post_init__(self, registry: TypeRegistry) -> None:
        if not self.slug:
            raise DefinitionError("Layer slug must not be empty")
        definitions = tuple(self.definitions)
        by_name: dict[str, ParameterDefinition] = {}
        for definition in definitions:
            if definition.name in by_name:
                raise DefinitionError(
                    f"Duplicate parameter '{definition.name}' in layer '{self.slug}'",
                    layer=self.slug,
                    parameter=definition.name,
                )
            by_name[definition.name] = _with_typed_default(self.slug, definition, registry)
        object.__setattr__(self, "definitions", tuple(by_name.values()))
        object.__setattr__(self, "_by_name", MappingProxyType(by_name))
        if not self.name:
            object.__setattr__(self, "name", self.slug)

    def __iter__(self) -> Iterator[ParameterDefinition]:
        return iter(self.definitions)

    def __len__(self) -> int:
        return len(self.definitions)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._by_name)

    def get(self, name: str) -> ParameterDefinition | None:
        return self._by_name.get(name)

    def definition(self, name: str) -> ParameterDefinition:
        try:
            return self._by_name[name]
        except KeyError:
            raise DefinitionError(
                f"Layer '{self.slug}' has no parameter '{name}'",
                layer=self.slug,
                parameter=name,
            ) from None

    def flag_name(self, definition: ParameterDefinition) -> str:
        """CLI flag name (without dashes) for *definition*."""
        return f"{self.flag_prefix}{definition.name}"

    def env_name(self, prefix: str, definition: ParameterDefinition) -> str:
        """Environment variable name for *definition* under *prefix*."""
        stem = self.flag_name(definition).replace("-", "_").upper()
        return f"{prefix.upper()}_{stem}" if prefix else stem

    def bind(
        self,
        target: type[T],
        fields: Mapping[str, str] | None = None,
        /,
        **more: str,
    ) -> LayerBinding[T]:
        """Declare how parameters of this layer map onto *target*'s fields.

        Fields are given as ``field_name="parameter-name"``; every named
        parameter must exist in this layer.
        """
        table = {**(fields or {}), **more}
        for attr, param in table.items():
            if param not in self._by_name:
                raise DefinitionError(
                    f"Binding for {target.__name__}.{attr} names unknown parameter "
                    f"'{param}' of layer '{self.slug}'",
                    layer=self.slug,
                    parameter=param,
                )
        return LayerBinding(layer=self.slug, target=target, fields=MappingProxyType(table))


def _with_typed_default(
    slug: str,
    definition: ParameterDefinition,
    registry: TypeRegistry,
) -> ParameterDefinition:
    if definition.default is None:
        return definition
    try:
        if definition.type.reads_file:
            # contents are read at resolution time; only the path is checked here
            check_paths(definition.type, definition.default)
            return definition
        value = registry.parse(definition.type, definition.default)
        registry.validate(definition, value)
    except ValueError as exc:
        raise DefinitionError(
            f"Default for '{definition.name}' in layer '{slug}' is invalid: {exc}",
            layer=slug,
            parameter=definition.name,
        ) from exc
    return definition.model_copy(update={"default": value})


def check_unique_slugs(layers: Iterable[ParameterLayer]) -> tuple[ParameterLayer, ...]:
    """Return *layers* as a tuple, rejecting duplicate slugs."""
    seen: set[str] = set()
    result: list[ParameterLayer] = []
    for layer in layers:
        if layer.slug in seen:
            raise DefinitionError(f"Duplicate layer slug '{layer.slug}'", layer=layer.slug)
        seen.add(layer.slug)
        result.append(layer)
    return tuple(result)
