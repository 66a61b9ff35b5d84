# dev_cli/dispatcher.py
"""
Selects the guest runtime for a run target, invokes it, and normalizes the
outcome for callers.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from importlib import metadata
from pathlib import Path
from typing import Iterable, Mapping, Optional, Union

from dev_cli.lang import (
    AdapterError,
    BuildDescriptor,
    ExecutionContext,
    GuestRuntime,
    RunTarget,
    RuntimeUnavailable,
    UnresolvableType,
    disabled_runtimes,
    runtime_for_path,
    runtime_for_tag,
)
from dev_cli.utils.logging import get_logger

log = get_logger(__name__)

DIST_NAME = "dev-cli"
FALLBACK_VERSION = "0.1.0"


def host_version() -> str:
    """Version string exposed to guest scripts."""
    try:
        return metadata.version(DIST_NAME)
    except metadata.PackageNotFoundError:
        return FALLBACK_VERSION


@dataclass(slots=True)
class DispatchResult:
    """Outcome of one dispatch: a descriptor or a classified error, never both."""

    target: RunTarget
    runtime: Optional[str] = None
    descriptor: Optional[BuildDescriptor] = None
    error: Optional[AdapterError] = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> BuildDescriptor:
        if self.error is not None:
            raise self.error
        return self.descriptor


class Dispatcher:
    """
    Resolves run targets to runtimes.

    Resolution order: the explicit type tag (authoritative), then the file
    extension. A tag or extension that maps to a runtime which is missing
    from this install raises RuntimeUnavailable; one that maps to nothing
    raises UnresolvableType.
    """

    def __init__(self, version: Optional[str] = None, disabled: Optional[Iterable[str]] = None) -> None:
        self.version = version or host_version()
        self._disabled = (
            frozenset(name.strip().lower() for name in disabled) if disabled is not None else None
        )

    def disabled(self) -> frozenset:
        return self._disabled if self._disabled is not None else disabled_runtimes()

    def is_enabled(self, cls: type[GuestRuntime]) -> bool:
        return cls.is_available() and cls.name not in self.disabled()

    def make_context(
        self,
        work_dir: Union[str, Path, None] = None,
        *layers: Optional[Mapping[str, str]],
    ) -> ExecutionContext:
        """Build the context for one invocation; later environment layers win."""
        return ExecutionContext.create(self.version, work_dir, layers)

    def resolve(self, target: RunTarget) -> GuestRuntime:
        """Pick and instantiate the runtime for a target."""
        if target.type_hint:
            tag = target.type_hint
            cls = runtime_for_tag(tag)
            if cls is None:
                raise UnresolvableType(f"Unsupported language: {tag}")
        elif target.file is not None:
            tag = target.file.suffix
            cls = runtime_for_path(target.file)
            if cls is None:
                raise UnresolvableType(
                    f"Cannot infer a runtime from '{target.file.name}'; pass an explicit type"
                )
        else:
            raise UnresolvableType("Inline source needs an explicit type")

        if not self.is_enabled(cls):
            hint = f" (install the '{cls.requires}' package)" if cls.requires and not cls.is_available() else ""
            raise RuntimeUnavailable(f"{cls.name} support is not enabled{hint}", runtime=cls.name)

        log.debug("Resolved %s to runtime '%s' via %r", target.label, cls.name, tag)
        return cls.for_tag(tag)

    def execute(
        self,
        target: RunTarget,
        context: Optional[ExecutionContext] = None,
        timeout: Optional[float] = None,
    ) -> BuildDescriptor:
        """Run a target and return its descriptor, raising AdapterError on failure."""
        runtime = self.resolve(target)
        context = context or self.make_context()
        log.debug("Running %s with the %s runtime", target.label, runtime.name)
        return runtime.execute(target, context, timeout=timeout)

    def dispatch(
        self,
        target: RunTarget,
        context: Optional[ExecutionContext] = None,
        timeout: Optional[float] = None,
    ) -> DispatchResult:
        """Run a target and return a DispatchResult instead of raising."""
        result = DispatchResult(target=target)
        start = time.monotonic()
        try:
            runtime = self.resolve(target)
            result.runtime = runtime.name
            context = context or self.make_context()
            log.debug("Running %s with the %s runtime", target.label, runtime.name)
            result.descriptor = runtime.execute(target, context, timeout=timeout)
        except AdapterError as exc:
            log.debug("Dispatch of %s failed: %s (%s)", target.label, exc, exc.kind.value)
            result.error = exc
        result.duration_ms = int((time.monotonic() - start) * 1000)
        return result
