# dev_cli/utils/config.py
"""
Configuration loading utility.

Reads the YAML `dev.yaml` file that declares global environment variables
and named run aliases:

    environment:
      TEST: hello
    run:
      py:
        filetype: python
        file: examples/main.py
      count:
        filetype: bash
        command: "find . -name '*.py' | wc -l"
        environment:
          KEY: K
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .logging import get_logger

log = get_logger(__name__)

CONFIG_FILENAME = "dev.yaml"


class ConfigError(ValueError):
    """Raised when the configuration file has an invalid shape."""


@dataclass(slots=True)
class RunAlias:
    """A named run target resolved from the `run:` section."""

    name: str
    filetype: Optional[str] = None
    file: Optional[str] = None
    command: Optional[str] = None
    environment: Dict[str, str] = field(default_factory=dict)


def load_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Loads a YAML configuration file.

    Args:
        path: The path to the YAML file.

    Returns:
        A dictionary containing the configuration (empty for an empty file).
    """
    with open(path, 'r') as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping, got {type(data).__name__}")
    return data


def find_config(start: Optional[Path] = None) -> Optional[Path]:
    """Return `dev.yaml` in `start` (default: cwd) or its parents, if any."""
    current = Path(start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def _string_map(value: Any, where: str) -> Dict[str, str]:
    if value in (None, ""):
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{where}' must be a mapping of variable names to values")
    # YAML turns `yes`/`1` into bool/int; environment values are strings
    out: Dict[str, str] = {}
    for key, val in value.items():
        if isinstance(val, bool):
            out[str(key)] = "true" if val else "false"
        else:
            out[str(key)] = "" if val is None else str(val)
    return out


def get_environment(cfg: Dict[str, Any]) -> Dict[str, str]:
    """Return the global `environment:` section as a str -> str mapping."""
    return _string_map(cfg.get("environment"), "environment")


def get_run(cfg: Dict[str, Any], name: str) -> Optional[RunAlias]:
    """
    Resolve a named run alias.

    Returns None when the alias is not declared; raises ConfigError when it
    is declared with an invalid shape.
    """
    runs = cfg.get("run") or {}
    if not isinstance(runs, dict):
        raise ConfigError("'run' must be a mapping of alias names to definitions")
    entry = runs.get(name)
    if entry is None:
        return None
    if not isinstance(entry, dict):
        raise ConfigError(f"run.{name} must be a mapping")

    alias = RunAlias(
        name=name,
        filetype=entry.get("filetype"),
        file=entry.get("file"),
        command=entry.get("command"),
        environment=_string_map(entry.get("environment"), f"run.{name}.environment"),
    )
    if not alias.file and not alias.command:
        raise ConfigError(f"run.{name} needs either 'file' or 'command'")
    if alias.file and alias.command:
        raise ConfigError(f"run.{name} declares both 'file' and 'command'")
    if alias.command and not alias.filetype:
        raise ConfigError(f"run.{name} uses an inline command and must declare 'filetype'")
    log.debug("Resolved run alias %s: %s", name, alias)
    return alias


def default_timeout() -> Optional[float]:
    """Deadline in seconds from DEV_CLI_TIMEOUT, or None when unset."""
    raw = os.environ.get("DEV_CLI_TIMEOUT")
    if raw in (None, ""):
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"DEV_CLI_TIMEOUT must be a number of seconds, got {raw!r}") from exc
    return value if value > 0 else None
