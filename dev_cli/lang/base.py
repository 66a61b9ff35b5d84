"""
Base interfaces and registry helpers for guest language runtimes.
"""

from __future__ import annotations

import abc
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Tuple

from dev_cli.utils.logging import get_logger

from .descriptor import BuildDescriptor, ExecutionContext, coerce_descriptor
from .errors import AdapterError, InitializationFailure

log = get_logger(__name__)

DISABLED_ENV_VAR = "DEV_CLI_DISABLED_RUNTIMES"
INLINE_LABEL = "<inline>"


@dataclass(slots=True)
class RunTarget:
    """
    What to run: a script file or inline source, plus an optional type tag.
    """

    file: Optional[Path] = None
    source: Optional[str] = None
    type_hint: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.file is None) == (self.source is None):
            raise ValueError("RunTarget needs exactly one of 'file' or 'source'.")
        if self.file is not None:
            self.file = Path(self.file)

    @property
    def label(self) -> str:
        return str(self.file) if self.file is not None else INLINE_LABEL

    def read_source(self) -> str:
        if self.source is not None:
            return self.source
        return Path(self.file).read_text(encoding="utf-8")


class GuestRuntime(abc.ABC):
    """
    Abstract base class for guest language runtimes.

    A runtime instance is cheap; the interpreter it drives is created per
    call to `execute` and torn down before `execute` returns.
    """

    name: str = "abstract"
    tags: Tuple[str, ...] = ()
    extensions: Tuple[str, ...] = ()
    requires: Optional[str] = None

    def __init__(self, **kwargs: Any) -> None:
        self._options: Dict[str, Any] = dict(kwargs)

    @classmethod
    def is_available(cls) -> bool:
        """Whether the library backing this runtime could be imported."""
        return True

    @classmethod
    def for_tag(cls, tag: Optional[str]) -> "GuestRuntime":
        """Instantiate the runtime for the type tag or extension that selected it."""
        return cls()

    @abc.abstractmethod
    def execute(
        self,
        target: RunTarget,
        context: ExecutionContext,
        timeout: Optional[float] = None,
    ) -> BuildDescriptor:
        """Run the target with the context injected and return its descriptor."""
        raise NotImplementedError

    def options(self) -> Dict[str, Any]:
        """Return runtime configuration for diagnostics."""
        return dict(self._options)

    def _load_source(self, target: RunTarget) -> str:
        try:
            return target.read_source()
        except OSError as exc:
            raise InitializationFailure(
                f"Cannot read script {target.label}: {exc}", runtime=self.name
            ) from exc


class EmbeddedRuntime(GuestRuntime):
    """
    Runtime whose interpreter lives inside the host process.

    Subclasses implement the three lifecycle hooks; `execute` guarantees
    `_close` runs on every exit path once `_start` has succeeded.
    """

    supports_timeout: bool = False

    @abc.abstractmethod
    def _start(self, context: ExecutionContext) -> Any:
        """Create a fresh interpreter with the context injected."""
        raise NotImplementedError

    @abc.abstractmethod
    def _run(self, interp: Any, source: str, filename: str, timeout: Optional[float]) -> Any:
        """Execute the source and return the script's result as plain Python values."""
        raise NotImplementedError

    @abc.abstractmethod
    def _close(self, interp: Any) -> None:
        """Release everything `_start` acquired."""
        raise NotImplementedError

    def execute(
        self,
        target: RunTarget,
        context: ExecutionContext,
        timeout: Optional[float] = None,
    ) -> BuildDescriptor:
        source = self._load_source(target)
        if timeout is not None and not self.supports_timeout:
            log.debug("%s runtime cannot enforce a deadline; ignoring timeout=%s", self.name, timeout)

        try:
            interp = self._start(context)
        except AdapterError:
            raise
        except Exception as exc:
            raise InitializationFailure(
                f"Failed to start {self.name} runtime: {exc}", runtime=self.name
            ) from exc
        log.debug("Started %s runtime for %s", self.name, target.label)

        try:
            raw = self._run(interp, source, target.label, timeout)
        finally:
            self._close(interp)
            log.debug("Disposed %s runtime for %s", self.name, target.label)

        descriptor = coerce_descriptor(raw, runtime=self.name)
        log.debug("%s produced %s", target.label, descriptor)
        return descriptor


_REGISTRY: Dict[str, type[GuestRuntime]] = {}


def register_runtime(cls: type[GuestRuntime]) -> type[GuestRuntime]:
    """Decorator to register a runtime class by name."""
    key = getattr(cls, "name", "") or cls.__name__
    norm = key.strip().lower()
    if not norm:
        raise ValueError(f"Cannot register runtime with empty name: {cls}")
    if norm in _REGISTRY and _REGISTRY[norm] is not cls:
        raise ValueError(f"Runtime '{norm}' already registered")
    _REGISTRY[norm] = cls
    return cls


def available_runtimes() -> Dict[str, type[GuestRuntime]]:
    """Return the registered runtimes, including unavailable ones."""
    return dict(_REGISTRY)


def disabled_runtimes() -> FrozenSet[str]:
    """Runtime names switched off through DEV_CLI_DISABLED_RUNTIMES."""
    raw = os.environ.get(DISABLED_ENV_VAR, "")
    return frozenset(part.strip().lower() for part in raw.split(",") if part.strip())


def runtime_for_tag(tag: str) -> Optional[type[GuestRuntime]]:
    norm = (tag or "").strip().lower().lstrip(".")
    for cls in _REGISTRY.values():
        if norm == cls.name or norm in cls.tags:
            return cls
    return None


def runtime_for_path(path: Path) -> Optional[type[GuestRuntime]]:
    suffix = Path(path).suffix.lower()
    if not suffix:
        return None
    for cls in _REGISTRY.values():
        if suffix in cls.extensions:
            return cls
    return None
