"""Application settings for the ``cmdlayers`` CLI itself.

Priority chain (highest to lowest):
  1. Init kwargs  — global CLI flags passed by Click
  2. Env vars     — ``CMDLAYERS_*`` prefix
  3. TOML file    — the ``[cli]`` table of ``cmdlayers.toml``
  4. Code defaults

These settings configure the tool (logging, env prefix, config location).
Command parameters are resolved separately by the layer resolution engine,
which reads the same TOML file through
:class:`~cmdlayers.parameters.sources.ConfigFileSource`.
"""

from __future__ import annotations

import threading
import tomllib
from pathlib import Path
from typing import Any

import click
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from cmdlayers.config.discovery import find_config

CLI_TABLE = "cli"


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read the ``[cli]`` table from a discovered ``cmdlayers.toml``."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            raw = toml_path.read_text(encoding="utf-8")
            try:
                document = tomllib.loads(raw)
            except tomllib.TOMLDecodeError as exc:
                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise click.ClickException(msg) from exc
            table = document.get(CLI_TABLE, {})
            if isinstance(table, dict):
                self._data = table

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, False

    def __call__(self) -> dict[str, Any]:
        return {k: v for k, v in self._data.items() if k in self.settings_cls.model_fields}


# Thread-local storage for the TOML path during construction.
_tls = threading.local()


class AppSettings(BaseSettings):
    """Frozen settings stored on the CLI's :class:`AppContext`.

    Attributes:
        config_path: The config file in effect, or None if none was found.
        env_prefix: Prefix for parameter environment variables.
        warn_buffered: Log a warning when the output buffers every row.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "CMDLAYERS_",
    }

    config_path: Path | None = None
    verbose: bool = False
    log_json: bool = False
    env_prefix: str = "CMDLAYERS"
    warn_buffered: bool = False

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert the TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        start: Path | None = None,
        **cli_flags: Any,
    ) -> AppSettings:
        """Construct settings from a CLI invocation.

        Uses *config_path* when given (it must exist), otherwise discovers
        ``cmdlayers.toml`` walking up from *start*.  Flags left at ``None``
        do not override lower-priority sources.
        """
        toml_path: Path | None
        if config_path:
            toml_path = Path(config_path)
            if not toml_path.is_file():
                raise click.ClickException(f"Config file {toml_path} not found")
        else:
            toml_path = find_config(start)

        flags = {k: v for k, v in cli_flags.items() if v is not None}
        _tls.toml_path = toml_path
        try:
            return cls(config_path=toml_path, **flags)
        finally:
            _tls.toml_path = None
