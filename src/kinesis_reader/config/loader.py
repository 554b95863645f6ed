"""YAML + environment variable config loader."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from kinesis_reader.config.defaults import load_defaults, merge_configs
from kinesis_reader.config.models import ReaderConfig

# ${VAR} or ${VAR:-default}; "\}" escapes a brace inside the default
_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::-((?:[^}\\]|\\.)*))?}")


def resolve_env_vars(data: Any, key: str = "") -> Any:
    """Substitute ``${VAR}`` / ``${VAR:-default}`` throughout parsed YAML.

    A variable that is unset and has no default raises ``ValueError`` naming
    the config key it appeared under (``retry.max_wait_seconds``,
    ``endpoint_url`` ...).
    """
    if isinstance(data, dict):
        return {
            k: resolve_env_vars(v, f"{key}.{k}" if key else str(k))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [resolve_env_vars(v, f"{key}[{i}]") for i, v in enumerate(data)]
    if not isinstance(data, str):
        return data

    def _substitute(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        value = os.environ.get(name)
        if value is not None:
            return value
        if default is not None:
            return default.replace("\\}", "}")
        where = f" (in '{key}')" if key else ""
        msg = f"Environment variable '{name}' is not set and has no default{where}"
        raise ValueError(msg)

    return _ENV_PATTERN.sub(_substitute, data)


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Parse a reader config file; an empty file is an empty mapping."""
    p = Path(path)
    if not p.is_file():
        msg = f"Config file not found: {p}"
        raise FileNotFoundError(msg)
    try:
        data = yaml.safe_load(p.read_text())
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" at line {mark.line + 1}, column {mark.column + 1}" if mark else ""
        msg = f"Failed to parse YAML in {p}{where}: {exc}"
        raise ValueError(msg) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Expected a mapping at the top of {p}, got {type(data).__name__}"
        raise TypeError(msg)
    return data


def load_reader_config(
    path: str | Path | None = None,
    *,
    defaults: str = "reader",
    **overrides: Any,
) -> ReaderConfig:
    """Load reader config from built-in defaults merged with an optional file.

    Keyword *overrides* (e.g. from CLI flags) win over both; ``None`` values
    are ignored so unset flags leave the file's value alone.
    """
    base = load_defaults(defaults)
    if path is not None:
        base = merge_configs(base, load_yaml(path))
    base = merge_configs(base, overrides)
    try:
        return ReaderConfig.model_validate(resolve_env_vars(base))
    except ValidationError as exc:
        source = path or "built-in defaults"
        msg = f"Invalid reader config ({source}):\n{exc}"
        raise ValueError(msg) from exc
