"""
Classified errors raised by guest runtimes and the dispatcher.
"""

from __future__ import annotations

import enum
from typing import Optional


class ErrorKind(str, enum.Enum):
    """Failure categories reported to callers."""

    runtime_unavailable = "runtime_unavailable"
    unresolvable_type = "unresolvable_type"
    initialization_failure = "initialization_failure"
    syntax_error = "syntax_error"
    execution_failure = "execution_failure"
    descriptor_shape_mismatch = "descriptor_shape_mismatch"
    process_failure = "process_failure"
    timeout = "timeout"


class AdapterError(Exception):
    """Base class for every failure of a script execution."""

    kind: ErrorKind = ErrorKind.execution_failure

    def __init__(
        self,
        message: str,
        *,
        runtime: Optional[str] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.runtime = runtime
        self.line = line
        self.column = column

    @property
    def location(self) -> Optional[str]:
        if self.line is None:
            return None
        if self.column is None:
            return f"line {self.line}"
        return f"line {self.line}, column {self.column}"

    def __str__(self) -> str:
        prefix = f"[{self.runtime}] " if self.runtime else ""
        where = f" ({self.location})" if self.location else ""
        return f"{prefix}{self.message}{where}"


class RuntimeUnavailable(AdapterError):
    """The type resolved to a runtime that is not available in this install."""

    kind = ErrorKind.runtime_unavailable


class UnresolvableType(AdapterError):
    """No runtime could be selected for the run target."""

    kind = ErrorKind.unresolvable_type


class InitializationFailure(AdapterError):
    """The guest runtime failed to start."""

    kind = ErrorKind.initialization_failure


class GuestSyntaxError(AdapterError):
    """The guest source failed to parse."""

    kind = ErrorKind.syntax_error


class ExecutionFailure(AdapterError):
    """The guest raised an uncaught exception."""

    kind = ErrorKind.execution_failure

    def __init__(self, message: str, *, trace: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.trace = trace


class DescriptorShapeMismatch(AdapterError):
    """The guest result could not be coerced to a build descriptor."""

    kind = ErrorKind.descriptor_shape_mismatch

    def __init__(self, field: str, message: str, **kwargs) -> None:
        super().__init__(f"{field}: {message}", **kwargs)
        self.field = field


class ProcessFailure(AdapterError):
    """A subprocess runtime exited with a nonzero status."""

    kind = ErrorKind.process_failure

    def __init__(self, exit_code: int, stderr: str = "", **kwargs) -> None:
        detail = stderr.strip()
        message = f"process exited with status {exit_code}"
        if detail:
            message += f": {detail.splitlines()[-1]}"
        super().__init__(message, **kwargs)
        self.exit_code = exit_code
        self.stderr = stderr


class ExecutionTimeout(AdapterError):
    """The guest exceeded the caller-imposed deadline."""

    kind = ErrorKind.timeout

    def __init__(self, timeout: float, stderr: str = "", **kwargs) -> None:
        super().__init__(f"execution exceeded {timeout:g}s deadline", **kwargs)
        self.timeout = timeout
        self.stderr = stderr
