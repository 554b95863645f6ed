"""Built-in reader defaults and config merging."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

DEFAULTS_DIR = Path(__file__).parent / "defaults"


def load_defaults(name: str = "reader") -> dict[str, Any]:
    """Load a YAML defaults file by name from the defaults directory."""
    path = DEFAULTS_DIR / f"{name}.yaml"
    if not path.is_file():
        msg = f"No built-in defaults named '{name}' (looked for {path})"
        raise FileNotFoundError(msg)
    return yaml.safe_load(path.read_text()) or {}


def merge_configs(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge *overrides* into a copy of *base*.

    ``None`` in *overrides* means "not given" and keeps the base value, so
    unset CLI flags can be passed straight through.
    """
    merged: dict[str, Any] = {**base}
    for key, value in overrides.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_configs(current, value)
        else:
            merged[key] = value
    return merged
