"""Typed parameters, layers, value sources and the resolution engine."""

from __future__ import annotations

from cmdlayers.parameters.definitions import ParameterDefinition
from cmdlayers.parameters.layers import LayerBinding, ParameterLayer
from cmdlayers.parameters.resolution import (
    ParsedLayer,
    ParsedLayers,
    ParsedValue,
    ResolutionEngine,
    resolve_layers,
)
from cmdlayers.parameters.sources import (
    ArgumentsSource,
    ConfigFileSource,
    Contributions,
    DefaultsSource,
    EnvironmentSource,
    OverridesSource,
    SourceChain,
    SourceRank,
    ValueSource,
    standard_sources,
)
from cmdlayers.parameters.types import FileData, ParameterType, TypeHandler, TypeRegistry

__all__ = [
    "ArgumentsSource",
    "ConfigFileSource",
    "Contributions",
    "DefaultsSource",
    "EnvironmentSource",
    "FileData",
    "LayerBinding",
    "OverridesSource",
    "ParameterDefinition",
    "ParameterLayer",
    "ParameterType",
    "ParsedLayer",
    "ParsedLayers",
    "ParsedValue",
    "ResolutionEngine",
    "SourceChain",
    "SourceRank",
    "TypeHandler",
    "TypeRegistry",
    "ValueSource",
    "resolve_layers",
    "standard_sources",
]
