"""Layer resolution engine — contributions in, validated ParsedLayers out.

For every layer and every definition, in declaration order:

1. take the winning contribution, else the default, else fail if required,
   else the kind's zero value;
2. parse it with the registry (``ParameterParseError`` on failure);
3. validate it (``ParameterValidationError`` on failure);
4. record the value and the source that supplied it.

The first failure aborts the whole resolution; callers never see a partial
:class:`ParsedLayers`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, TypeVar

from cmdlayers.errors import (
    DefinitionError,
    MissingRequiredParameter,
    ParameterParseError,
    ParameterValidationError,
)
from cmdlayers.parameters.layers import LayerBinding, ParameterLayer, check_unique_slugs
from cmdlayers.parameters.sources import Contribution, Contributions, SourceChain, ValueSource
from cmdlayers.parameters.types import TypeRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

ZERO_SOURCE = "zero"


@dataclass(frozen=True)
class ParsedValue:
    """A resolved value and where it came from."""

    value: Any
    source: str
    history: tuple[Contribution, ...] = ()


def _detached(value: Any) -> Any:
    if isinstance(value, list):
        return list(value)
    if isinstance(value, dict):
        return dict(value)
    return value


class ParsedLayer(Mapping[str, Any]):
    """Resolved values of one layer, read-only.

    Indexing returns the typed value; :meth:`parsed` returns the full
    :class:`ParsedValue` with provenance.  List and map values are handed
    out as copies, so callers cannot change what was resolved.
    """

    def __init__(self, layer: ParameterLayer, values: Mapping[str, ParsedValue]) -> None:
        self.layer = layer
        self._values: Mapping[str, ParsedValue] = MappingProxyType(dict(values))

    @property
    def slug(self) -> str:
        return self.layer.slug

    def __getitem__(self, name: str) -> Any:
        return _detached(self._values[name].value)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def parsed(self, name: str) -> ParsedValue:
        parsed = self._values[name]
        return replace(parsed, value=_detached(parsed.value))

    def source_of(self, name: str) -> str:
        return self._values[name].source

    def history_of(self, name: str) -> tuple[Contribution, ...]:
        return self._values[name].history

    def to_dict(self) -> dict[str, Any]:
        return {name: _detached(parsed.value) for name, parsed in self._values.items()}

    def project(self, binding: LayerBinding[T]) -> T:
        """Build the binding's target from this layer's values."""
        if binding.layer != self.slug:
            raise DefinitionError(
                f"Binding for layer '{binding.layer}' applied to layer '{self.slug}'",
                layer=self.slug,
            )
        return binding.build(self.to_dict())

    def __repr__(self) -> str:
        return f"ParsedLayer({self.slug!r}, {self.to_dict()!r})"


class ParsedLayers(Mapping[str, ParsedLayer]):
    """All parsed layers of one invocation, keyed by slug."""

    def __init__(self, layers: Iterable[ParsedLayer]) -> None:
        self._layers: Mapping[str, ParsedLayer] = MappingProxyType(
            {layer.slug: layer for layer in layers}
        )

    def __getitem__(self, slug: str) -> ParsedLayer:
        return self._layers[slug]

    def __iter__(self) -> Iterator[str]:
        return iter(self._layers)

    def __len__(self) -> int:
        return len(self._layers)

    def value(self, slug: str, name: str) -> Any:
        return self._layers[slug][name]

    def project(self, binding: LayerBinding[T]) -> T:
        return self._layers[binding.layer].project(binding)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {slug: layer.to_dict() for slug, layer in self._layers.items()}


class ResolutionEngine:
    """Turn source contributions into :class:`ParsedLayers`."""

    def __init__(self, registry: TypeRegistry) -> None:
        self.registry = registry

    def resolve(
        self,
        layers: Iterable[ParameterLayer],
        sources: SourceChain | Iterable[ValueSource],
    ) -> ParsedLayers:
        """Gather contributions from *sources* and resolve every layer."""
        declared = check_unique_slugs(layers)
        chain = sources if isinstance(sources, SourceChain) else SourceChain(sources)
        state = chain.gather(declared)
        return self.resolve_contributions(declared, state)

    def resolve_contributions(
        self,
        layers: Sequence[ParameterLayer],
        state: Contributions,
    ) -> ParsedLayers:
        parsed = [self._resolve_layer(layer, state) for layer in layers]
        logger.debug("Resolved %d layer(s)", len(parsed))
        return ParsedLayers(parsed)

    def _resolve_layer(self, layer: ParameterLayer, state: Contributions) -> ParsedLayer:
        values: dict[str, ParsedValue] = {}
        for definition in layer:
            winner = state.get(layer.slug, definition.name)
            if winner is not None:
                raw, source = winner.raw, winner.source
            elif definition.default is not None:
                raw, source = definition.default, "defaults"
            elif definition.required:
                raise MissingRequiredParameter(layer=layer.slug, parameter=definition.name)
            else:
                values[definition.name] = ParsedValue(
                    value=self.registry.zero(definition.type), source=ZERO_SOURCE
                )
                continue

            try:
                value = self.registry.parse(definition.type, raw)
            except ValueError as exc:
                raise ParameterParseError(
                    layer=layer.slug,
                    parameter=definition.name,
                    raw=raw,
                    expected=definition.type.value,
                    reason=str(exc),
                    source=source,
                ) from exc
            try:
                self.registry.validate(definition, value)
            except ValueError as exc:
                raise ParameterValidationError(
                    layer=layer.slug,
                    parameter=definition.name,
                    reason=str(exc),
                    source=source,
                ) from exc
            values[definition.name] = ParsedValue(
                value=value,
                source=source,
                history=state.history(layer.slug, definition.name),
            )
        return ParsedLayer(layer, values)


def resolve_layers(
    layers: Iterable[ParameterLayer],
    sources: Iterable[ValueSource],
    *,
    registry: TypeRegistry,
) -> ParsedLayers:
    """Shortcut for ``ResolutionEngine(registry).resolve(layers, sources)``."""
    return ResolutionEngine(registry).resolve(layers, sources)
