"""Source middleware chain — ranked providers of raw parameter values.

Priority chain (lowest to highest):
  1. Defaults      — declared on each definition
  2. Config file   — ``{layer slug: {parameter: value}}`` in TOML/YAML/JSON
  3. Environment   — ``PREFIX_FLAG_NAME`` variables
  4. Arguments     — CLI flag values keyed by flag name
  5. Overrides     — programmatic ``{layer slug: {parameter: value}}``

Sources run sequentially against one shared :class:`Contributions`
accumulator; a later source replaces an earlier value for the same parameter
(last writer wins per parameter, never per layer).  Sequential execution lets
a source inspect what is already set (see ``only_unset``).
"""

from __future__ import annotations

import json
import logging
import os
import tomllib
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any, ClassVar

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from cmdlayers.errors import ConfigFileError
from cmdlayers.parameters.definitions import ParameterDefinition
from cmdlayers.parameters.layers import ParameterLayer
from cmdlayers.parameters.types import WholeItems

logger = logging.getLogger(__name__)


class SourceRank(IntEnum):
    """Fixed precedence of source kinds; higher wins."""

    DEFAULTS = 1
    CONFIG = 2
    ENVIRONMENT = 3
    ARGUMENTS = 4
    OVERRIDES = 5


@dataclass(frozen=True)
class Contribution:
    """One raw value offered by one source."""

    source: str
    raw: Any
    metadata: Mapping[str, Any] = field(default_factory=dict)


class Contributions:
    """Accumulated per-parameter contributions, in the order they arrived."""

    def __init__(self) -> None:
        self._history: dict[tuple[str, str], list[Contribution]] = {}

    def set(self, layer: str, name: str, raw: Any, source: str, **metadata: Any) -> None:
        self._history.setdefault((layer, name), []).append(
            Contribution(source=source, raw=raw, metadata=metadata)
        )

    def get(self, layer: str, name: str) -> Contribution | None:
        """The winning (latest) contribution, if any."""
        history = self._history.get((layer, name))
        return history[-1] if history else None

    def is_set(self, layer: str, name: str) -> bool:
        return bool(self._history.get((layer, name)))

    def history(self, layer: str, name: str) -> tuple[Contribution, ...]:
        return tuple(self._history.get((layer, name), ()))

    def __len__(self) -> int:
        return len(self._history)


class ValueSource:
    """Base class for sources.

    Subclasses set ``rank`` and implement :meth:`contribute`, calling
    :meth:`offer` for every value they find.

    Args:
        only_unset: Contribute only parameters no earlier source has set.
        include_layers: If given, only contribute to these layer slugs.
        exclude_layers: Never contribute to these layer slugs.
    """

    rank: ClassVar[SourceRank]
    name: str = "source"

    def __init__(
        self,
        *,
        only_unset: bool = False,
        include_layers: Iterable[str] | None = None,
        exclude_layers: Iterable[str] = (),
    ) -> None:
        self.only_unset = only_unset
        self.include_layers = frozenset(include_layers) if include_layers is not None else None
        self.exclude_layers = frozenset(exclude_layers)

    def applies_to(self, layer: ParameterLayer) -> bool:
        if layer.slug in self.exclude_layers:
            return False
        return self.include_layers is None or layer.slug in self.include_layers

    def offer(
        self,
        state: Contributions,
        layer: ParameterLayer,
        definition: ParameterDefinition,
        raw: Any,
        **metadata: Any,
    ) -> bool:
        """Record *raw* for *definition* unless filtered out.  Returns True if recorded."""
        if self.only_unset and state.is_set(layer.slug, definition.name):
            return False
        state.set(layer.slug, definition.name, raw, self.name, **metadata)
        logger.debug("%s set %s.%s", self.name, layer.slug, definition.name)
        return True

    def contribute(self, layers: Sequence[ParameterLayer], state: Contributions) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class DefaultsSource(ValueSource):
    """Contribute every definition's declared default."""

    rank = SourceRank.DEFAULTS
    name = "defaults"

    def contribute(self, layers: Sequence[ParameterLayer], state: Contributions) -> None:
        for layer in layers:
            if not self.applies_to(layer):
                continue
            for definition in layer:
                if definition.default is not None:
                    self.offer(state, layer, definition, definition.default)


def _yaml_load(text: str) -> Any:
    yaml = YAML(typ="safe", pure=True)
    return yaml.load(text)


_LOADERS = {
    ".toml": tomllib.loads,
    ".yaml": _yaml_load,
    ".yml": _yaml_load,
    ".json": json.loads,
}


def load_config_mapping(path: Path) -> dict[str, Any]:
    """Parse a TOML, YAML or JSON file into a mapping.

    Raises:
        ConfigFileError: Unknown suffix, unreadable or malformed content.
    """
    loader = _LOADERS.get(path.suffix.lower())
    if loader is None:
        raise ConfigFileError(
            f"Unsupported config file type '{path.suffix}' (use .toml, .yaml or .json)",
            path=str(path),
        )
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigFileError(f"Cannot read {path}: {exc.strerror or exc}", path=str(path)) from exc
    try:
        data = loader(raw)
    except (tomllib.TOMLDecodeError, YAMLError, json.JSONDecodeError) as exc:
        raise ConfigFileError(f"Invalid config in {path}: {exc}", path=str(path)) from exc
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigFileError(f"Config file {path} must contain a mapping", path=str(path))
    return dict(data)


class ConfigFileSource(ValueSource):
    """Contribute values from a config file keyed by layer slug, then parameter.

    A missing file contributes nothing unless *required* is set.
    """

    rank = SourceRank.CONFIG

    def __init__(self, path: str | Path, *, required: bool = False, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.path = Path(path)
        self.required = required
        self.name = f"config:{self.path}"

    def contribute(self, layers: Sequence[ParameterLayer], state: Contributions) -> None:
        if not self.path.is_file():
            if self.required:
                raise ConfigFileError(f"Config file {self.path} not found", path=str(self.path))
            logger.debug("Config file %s not found, skipping", self.path)
            return
        data = load_config_mapping(self.path)
        known = {layer.slug: layer for layer in layers}
        for slug, section in data.items():
            layer = known.get(slug)
            if layer is None:
                logger.debug("Ignoring unknown config section [%s] in %s", slug, self.path)
                continue
            if not isinstance(section, Mapping):
                raise ConfigFileError(
                    f"Section [{slug}] in {self.path} must be a table of parameters",
                    path=str(self.path),
                )
            if not self.applies_to(layer):
                continue
            for name, raw in section.items():
                definition = layer.get(name)
                if definition is None:
                    logger.debug("Ignoring unknown parameter %s.%s in %s", slug, name, self.path)
                    continue
                self.offer(state, layer, definition, raw, path=str(self.path))


class EnvironmentSource(ValueSource):
    """Contribute values from ``PREFIX_FLAG_NAME`` environment variables."""

    rank = SourceRank.ENVIRONMENT
    name = "env"

    def __init__(
        self,
        prefix: str,
        environ: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.prefix = prefix
        self._environ = environ

    def contribute(self, layers: Sequence[ParameterLayer], state: Contributions) -> None:
        environ = os.environ if self._environ is None else self._environ
        for layer in layers:
            if not self.applies_to(layer):
                continue
            for definition in layer:
                if not definition.from_env:
                    continue
                var = layer.env_name(self.prefix, definition)
                if var in environ:
                    self.offer(state, layer, definition, environ[var], variable=var)


def _is_absent(raw: Any) -> bool:
    if raw is None:
        return True
    return isinstance(raw, (list, tuple)) and len(raw) == 0


class ArgumentsSource(ValueSource):
    """Contribute CLI values keyed by flag name (layer prefix + parameter name).

    ``None`` and empty sequences mean the flag was not given.  Repeated
    occurrences arrive as a sequence: kept whole for kinds that gather
    repeated flags, otherwise the last occurrence wins.
    """

    rank = SourceRank.ARGUMENTS
    name = "arguments"

    def __init__(self, values: Mapping[str, Any], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.values = dict(values)

    def contribute(self, layers: Sequence[ParameterLayer], state: Contributions) -> None:
        for layer in layers:
            if not self.applies_to(layer):
                continue
            for definition in layer:
                flag = layer.flag_name(definition)
                raw = self.values.get(flag)
                if _is_absent(raw):
                    continue
                if isinstance(raw, (list, tuple)):
                    if not definition.type.gathers_repeated:
                        raw = raw[-1]
                    elif not isinstance(raw, WholeItems):
                        raw = list(raw)
                self.offer(state, layer, definition, raw, flag=flag)


class OverridesSource(ValueSource):
    """Contribute programmatic ``{layer slug: {parameter: value}}`` overrides."""

    rank = SourceRank.OVERRIDES
    name = "overrides"

    def __init__(self, values: Mapping[str, Mapping[str, Any]], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.values = {slug: dict(section) for slug, section in values.items()}

    def contribute(self, layers: Sequence[ParameterLayer], state: Contributions) -> None:
        for layer in layers:
            section = self.values.get(layer.slug)
            if not section or not self.applies_to(layer):
                continue
            for name, raw in section.items():
                definition = layer.get(name)
                if definition is None:
                    logger.debug("Ignoring override for unknown parameter %s.%s", layer.slug, name)
                    continue
                self.offer(state, layer, definition, raw)


class SourceChain:
    """Sources ordered by rank (stable among equal ranks)."""

    def __init__(self, sources: Iterable[ValueSource]) -> None:
        self.sources: tuple[ValueSource, ...] = tuple(sorted(sources, key=lambda s: s.rank))

    def __iter__(self) -> Iterator[ValueSource]:
        return iter(self.sources)

    def gather(self, layers: Sequence[ParameterLayer]) -> Contributions:
        """Run every source in precedence order and return the accumulated state."""
        state = Contributions()
        for source in self.sources:
            source.contribute(layers, state)
        return state


def standard_sources(
    *,
    arguments: Mapping[str, Any] | None = None,
    env_prefix: str | None = None,
    config_files: Iterable[str | Path] = (),
    overrides: Mapping[str, Mapping[str, Any]] | None = None,
    environ: Mapping[str, str] | None = None,
) -> list[ValueSource]:
    """Build the usual defaults → config → env → arguments → overrides list."""
    sources: list[ValueSource] = [DefaultsSource()]
    sources.extend(ConfigFileSource(path) for path in config_files)
    if env_prefix is not None:
        sources.append(EnvironmentSource(env_prefix, environ))
    if arguments:
        sources.append(ArgumentsSource(arguments))
    if overrides:
        sources.append(OverridesSource(overrides))
    return sources
