"""
Guest language runtime registry.

Importing this package registers every runtime; runtimes whose backing
library is missing stay registered but report themselves unavailable.
"""

from .base import (
    EmbeddedRuntime,
    GuestRuntime,
    RunTarget,
    available_runtimes,
    disabled_runtimes,
    register_runtime,
    runtime_for_path,
    runtime_for_tag,
)
from .descriptor import BuildDescriptor, ExecutionContext, coerce_descriptor
from .errors import (
    AdapterError,
    DescriptorShapeMismatch,
    ErrorKind,
    ExecutionFailure,
    ExecutionTimeout,
    GuestSyntaxError,
    InitializationFailure,
    ProcessFailure,
    RuntimeUnavailable,
    UnresolvableType,
)
from .javascript import JavaScriptRuntime
from .lua import LuaRuntime
from .python import PythonRuntime
from .shell import ShellRuntime

__all__ = [
    "BuildDescriptor",
    "ExecutionContext",
    "coerce_descriptor",
    "RunTarget",
    "GuestRuntime",
    "EmbeddedRuntime",
    "available_runtimes",
    "disabled_runtimes",
    "register_runtime",
    "runtime_for_path",
    "runtime_for_tag",
    "JavaScriptRuntime",
    "LuaRuntime",
    "PythonRuntime",
    "ShellRuntime",
    "AdapterError",
    "ErrorKind",
    "RuntimeUnavailable",
    "UnresolvableType",
    "InitializationFailure",
    "GuestSyntaxError",
    "ExecutionFailure",
    "DescriptorShapeMismatch",
    "ProcessFailure",
    "ExecutionTimeout",
]
