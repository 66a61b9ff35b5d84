"""
Data exchanged across the host/guest boundary.

`ExecutionContext` flows into a guest before it runs; `BuildDescriptor` is
the only thing that flows back out. Each runtime turns its guest objects
into plain Python values (dict/list/str/int/float/bool/None) and hands them
to `coerce_descriptor`, so every runtime applies the same coercion rules.
"""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Optional, Union

from dev_cli.utils.logging import get_logger

from .errors import DescriptorShapeMismatch

log = get_logger(__name__)

ROOT_FIELD = "<root>"
DESCRIPTOR_FIELDS = ("version", "dir", "environment", "steps")


@dataclass(frozen=True, slots=True)
class ExecutionContext:
    """
    Host-supplied inputs injected into a guest before it runs.

    The environment is copied on construction and exposed read-only, so
    nothing a guest does can reach back into the caller's mapping.
    """

    version: str
    work_dir: Path
    environment: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "work_dir", Path(self.work_dir).expanduser().resolve())
        object.__setattr__(
            self,
            "environment",
            MappingProxyType(
                {str(k): coerce_string(v, f"environment.{k}") for k, v in self.environment.items()}
            ),
        )

    @classmethod
    def create(
        cls,
        version: str,
        work_dir: Union[str, Path, None] = None,
        layers: Iterable[Optional[Mapping[str, str]]] = (),
    ) -> "ExecutionContext":
        """Build a context from environment layers; later layers win."""
        merged: Dict[str, str] = {}
        for layer in layers:
            if layer:
                merged.update(layer)
        return cls(version=version, work_dir=Path(work_dir or Path.cwd()), environment=merged)

    def process_environment(self) -> Dict[str, str]:
        """Variables handed to subprocess guests on top of the host environment."""
        env = dict(self.environment)
        env["DEV_VERSION"] = self.version
        env["DEV_WORK_DIR"] = str(self.work_dir)
        return env


@dataclass(slots=True)
class BuildDescriptor:
    """
    Canonical result of a script: what to build, where, and how.

    All fields may be absent; an empty descriptor is a valid no-op result.
    """

    version: Optional[str] = None
    dir: Optional[Path] = None
    environment: Dict[str, str] = field(default_factory=dict)
    steps: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        for idx, step in enumerate(self.steps):
            if not isinstance(step, str) or not step:
                raise DescriptorShapeMismatch(f"steps[{idx}]", "steps must be non-empty strings")

    @property
    def is_empty(self) -> bool:
        return self.version is None and self.dir is None and not self.environment and not self.steps

    def to_dict(self) -> Dict[str, Any]:
        """Plain representation with absent fields omitted."""
        out: Dict[str, Any] = {}
        if self.version is not None:
            out["version"] = self.version
        if self.dir is not None:
            out["dir"] = str(self.dir)
        if self.environment:
            out["environment"] = dict(self.environment)
        if self.steps:
            out["steps"] = list(self.steps)
        return out


@dataclass(frozen=True, slots=True)
class OpaqueValue:
    """Stand-in for a guest value with no plain counterpart (functions, userdata)."""

    kind: str


def describe_type(value: Any) -> str:
    """Guest-neutral name for a value's shape, used in error messages."""
    if isinstance(value, OpaqueValue):
        return value.kind
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "record"
    if isinstance(value, (list, tuple)):
        return "sequence"
    return type(value).__name__


def coerce_string(value: Any, field_name: str) -> str:
    """
    Convert a scalar guest value to its canonical string form.

    Booleans become "true"/"false" and integral numbers drop the fraction,
    matching how JavaScript prints numbers.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise DescriptorShapeMismatch(field_name, f"non-finite number {value!r}")
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, str):
        return value
    if isinstance(value, os.PathLike):
        return os.fspath(value)
    raise DescriptorShapeMismatch(field_name, f"expected a string, got {describe_type(value)}")


def _coerce_environment(value: Any) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise DescriptorShapeMismatch(
            "environment", f"expected a record, got {describe_type(value)}"
        )
    env: Dict[str, str] = {}
    for key, val in value.items():
        if not isinstance(key, str):
            raise DescriptorShapeMismatch("environment", f"keys must be strings, got {describe_type(key)}")
        if val is None:
            raise DescriptorShapeMismatch(f"environment.{key}", "value is null")
        env[key] = coerce_string(val, f"environment.{key}")
    return env


def _coerce_steps(value: Any) -> List[str]:
    if value is None:
        return []
    # An empty Lua table arrives as an empty mapping
    if isinstance(value, Mapping) and not value:
        return []
    if not isinstance(value, (list, tuple)):
        raise DescriptorShapeMismatch("steps", f"expected a sequence, got {describe_type(value)}")
    steps: List[str] = []
    for idx, item in enumerate(value):
        name = f"steps[{idx}]"
        if item is None:
            raise DescriptorShapeMismatch(name, "step is null")
        step = coerce_string(item, name)
        if not step:
            raise DescriptorShapeMismatch(name, "step is an empty string")
        steps.append(step)
    return steps


def coerce_descriptor(raw: Any, runtime: Optional[str] = None) -> BuildDescriptor:
    """
    Structurally validate a guest result and build a descriptor from it.

    All-or-nothing: any field that cannot be coerced fails the whole result.
    Unrecognized fields are ignored.
    """
    if raw is None:
        raise DescriptorShapeMismatch(ROOT_FIELD, "script produced no result", runtime=runtime)
    if not isinstance(raw, Mapping):
        raise DescriptorShapeMismatch(
            ROOT_FIELD, f"expected a record, got {describe_type(raw)}", runtime=runtime
        )

    try:
        version = raw.get("version")
        version = None if version is None else coerce_string(version, "version")

        dir_value = raw.get("dir")
        directory = None
        if dir_value is not None:
            dir_text = coerce_string(dir_value, "dir")
            directory = Path(dir_text) if dir_text else None

        environment = _coerce_environment(raw.get("environment"))
        steps = _coerce_steps(raw.get("steps"))
    except DescriptorShapeMismatch as exc:
        exc.runtime = runtime
        raise

    ignored = [k for k in raw.keys() if k not in DESCRIPTOR_FIELDS]
    if ignored:
        log.debug("Ignoring unrecognized descriptor fields: %s", ignored)

    return BuildDescriptor(version=version, dir=directory, environment=environment, steps=steps)
