"""Click glue: parameters generated from layers, and flag values back out.

Generated options carry no real default, so an absent flag stays
distinguishable from an explicit value and lower-priority sources can fill
it.  Parsing and validation are left to the resolution engine; click only
collects strings.  Definitions marked ``argument`` become positional click
arguments.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar

import click
from click.core import ParameterSource

from cmdlayers.parameters.definitions import ParameterDefinition
from cmdlayers.parameters.layers import ParameterLayer
from cmdlayers.parameters.types import ParameterType, WholeItems

F = TypeVar("F", bound=Callable[..., Any])


def _param_name(flag: str) -> str:
    return flag.replace("-", "_")


def _help_text(definition: ParameterDefinition) -> str:
    parts = [definition.help] if definition.help else []
    if definition.choices:
        parts.append(f"[choices: {', '.join(definition.choices)}]")
    if definition.default is not None and definition.type is not ParameterType.SECRET:
        default = definition.default
        if isinstance(default, list):
            default = ",".join(str(item) for item in default)
        parts.append(f"[default: {default}]")
    if definition.required:
        parts.append("[required]")
    return " ".join(parts)


def param_for(layer: ParameterLayer, definition: ParameterDefinition) -> click.Parameter:
    """Build the click option (or argument) for one definition."""
    flag = layer.flag_name(definition)
    name = _param_name(flag)
    metavar = definition.type.value.upper()

    if definition.argument:
        # required-ness is enforced by the resolution engine, not click
        if definition.type.gathers_repeated:
            return click.Argument([name], nargs=-1, required=False, metavar=f"{metavar}...")
        return click.Argument([name], required=False, default=None, metavar=metavar)

    kwargs: dict[str, Any] = {
        "default": None,
        "help": _help_text(definition),
        "show_default": False,
    }
    if definition.type is ParameterType.BOOL:
        decls = [f"--{flag}/--no-{flag}"]
    else:
        decls = [f"--{flag}"]
        kwargs["metavar"] = metavar
        if definition.type.gathers_repeated:
            kwargs["multiple"] = True
            kwargs["default"] = ()
    if definition.short_flag:
        decls.append(f"-{definition.short_flag}")
    return click.Option([*decls, name], **kwargs)


def layer_params(layers: Iterable[ParameterLayer]) -> list[click.Parameter]:
    """Click parameters for every definition of *layers*, arguments first."""
    params = [param_for(layer, definition) for layer in layers for definition in layer]
    return sorted(params, key=lambda p: not isinstance(p, click.Argument))


def layer_options(layers: Iterable[ParameterLayer]) -> Callable[[F], F]:
    """Decorator adding the parameters of *layers* to a click command."""
    params = layer_params(layers)

    def decorator(func: F) -> F:
        if isinstance(func, click.Command):
            func.params.extend(params)
            return func
        existing = getattr(func, "__click_params__", [])
        # click applies stored params in reverse order
        func.__click_params__ = existing + list(reversed(params))  # type: ignore[attr-defined]
        return func

    return decorator


def arguments_from_click(
    ctx: click.Context,
    layers: Iterable[ParameterLayer],
) -> dict[str, Any]:
    """Extract flag-name-keyed raw values for *layers* from a click context.

    Only values given on the command line are returned; click's own
    defaults never count as a contribution.
    """
    return arguments_from_params(
        {
            name: value
            for name, value in ctx.params.items()
            if ctx.get_parameter_source(name) is ParameterSource.COMMANDLINE
        },
        layers,
    )


def arguments_from_params(
    params: Mapping[str, Any],
    layers: Iterable[ParameterLayer],
) -> dict[str, Any]:
    """Map click parameter names back to flag names, dropping absent values."""
    values: dict[str, Any] = {}
    for layer in layers:
        for definition in layer:
            flag = layer.flag_name(definition)
            raw = params.get(_param_name(flag))
            if raw is None or raw == ():
                continue
            if isinstance(raw, tuple):
                # positional items are whole paths or words, never comma lists
                raw = WholeItems(raw) if definition.argument else list(raw)
            values[flag] = raw
    return values
