"""Locate the cmdlayers.toml holding the ``[cli]`` table and layer sections.

The file nearest to the working directory wins, so a project directory can
pin its own output and row defaults.  ``CMDLAYERS_CONFIG`` names a file
directly and turns the search off; the ``--config`` flag bypasses both.
"""

from __future__ import annotations

import os
from pathlib import Path

CONFIG_FILENAME = "cmdlayers.toml"
CONFIG_ENV_VAR = "CMDLAYERS_CONFIG"


def find_config(start: Path | None = None) -> Path | None:
    """Config file for an invocation started in *start* (default: cwd).

    A ``CMDLAYERS_CONFIG`` naming a missing file yields None instead of
    falling back to the search.
    """
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        path = Path(override).expanduser()
        return path if path.is_file() else None

    here = (start or Path.cwd()).resolve()
    for directory in (here, *here.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None
