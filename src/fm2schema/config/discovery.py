"""Locate ``fm2schema.toml``.

``FM2SCHEMA_CONFIG`` names the file outright; otherwise the nearest
``fm2schema.toml`` in the start directory or any parent wins.
"""

from __future__ import annotations

import os
from pathlib import Path

CONFIG_FILENAME = "fm2schema.toml"
CONFIG_ENV_VAR = "FM2SCHEMA_CONFIG"


def find_config(start: Path | None = None) -> Path | None:
    if override := os.environ.get(CONFIG_ENV_VAR):
        path = Path(override)
        return path if path.is_file() else None

    here = (start or Path.cwd()).resolve()
    for directory in (here, *here.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None
