"""
Python guest runtime.

Scripts run in-process in a fresh module namespace. `import dev` resolves
to the injected namespace through a per-execution import hook, so the
host's `sys.modules` is never touched. The script's result is the
module-level variable `build`:

    import dev

    build = {
        "version": dev.get_version(),
        "dir": dev.get_work_dir(),
        "steps": ["make", "make install"],
        "environment": {"TEST": dev.getenv("TEST", "unset")},
    }
"""

from __future__ import annotations

import builtins
import os
import traceback
import types
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dev_cli.utils.logging import get_logger

from .base import INLINE_LABEL, EmbeddedRuntime, register_runtime
from .descriptor import ROOT_FIELD, ExecutionContext
from .errors import DescriptorShapeMismatch, ExecutionFailure, GuestSyntaxError

log = get_logger(__name__)

NAMESPACE = "dev"
RESULT_VARIABLE = "build"


@dataclass(slots=True)
class _PythonSession:
    namespace: types.ModuleType
    globals: Dict[str, Any]


def _make_namespace(context: ExecutionContext) -> types.ModuleType:
    module = types.ModuleType(NAMESPACE, "Host context for dev-cli scripts.")
    version = context.version
    work_dir = str(context.work_dir)
    environment = context.environment

    def getenv(key: str, default: Optional[str] = None) -> Optional[str]:
        if key in environment:
            return environment[key]
        return os.environ.get(key, default)

    module.version = version
    module.work_dir = work_dir
    module.environment = environment
    module.get_version = lambda: version
    module.get_work_dir = lambda: work_dir
    module.get_dir = module.get_work_dir
    module.get_env = lambda: dict(environment)
    module.getenv = getenv
    return module


def _guest_builtins(namespace: types.ModuleType) -> Dict[str, Any]:
    host_import = builtins.__import__

    def guest_import(name, globals=None, locals=None, fromlist=(), level=0):
        if level == 0 and name == NAMESPACE:
            return namespace
        return host_import(name, globals, locals, fromlist, level)

    guest = dict(vars(builtins))
    guest["__import__"] = guest_import
    return guest


def _guest_frames(exc: BaseException, filename: str) -> traceback.StackSummary:
    frames = [f for f in traceback.extract_tb(exc.__traceback__) if f.filename == filename]
    return traceback.StackSummary.from_list(frames)


@register_runtime
class PythonRuntime(EmbeddedRuntime):
    """Execute Python scripts in an isolated module namespace."""

    name = "python"
    tags = ("python", "py")
    extensions = (".py",)

    def _start(self, context: ExecutionContext) -> _PythonSession:
        namespace = _make_namespace(context)
        script_globals: Dict[str, Any] = {
            "__name__": "dev_script",
            "__builtins__": _guest_builtins(namespace),
        }
        return _PythonSession(namespace=namespace, globals=script_globals)

    def _run(self, interp: _PythonSession, source: str, filename: str, timeout: Optional[float]) -> Any:
        try:
            code = compile(source, filename, "exec")
        except SyntaxError as exc:
            raise GuestSyntaxError(
                exc.msg or "invalid syntax", runtime=self.name, line=exc.lineno, column=exc.offset
            ) from exc
        except ValueError as exc:
            # older interpreters reject NUL bytes with ValueError
            raise GuestSyntaxError(str(exc), runtime=self.name) from exc

        if filename != INLINE_LABEL:
            interp.globals["__file__"] = filename

        try:
            exec(code, interp.globals)
        except (Exception, SystemExit) as exc:
            frames = _guest_frames(exc, filename)
            trace = "".join(frames.format() + traceback.format_exception_only(type(exc), exc))
            line = frames[-1].lineno if frames else None
            raise ExecutionFailure(
                f"{type(exc).__name__}: {exc}", trace=trace, runtime=self.name, line=line
            ) from exc

        if RESULT_VARIABLE not in interp.globals:
            raise DescriptorShapeMismatch(
                ROOT_FIELD, f"script did not define '{RESULT_VARIABLE}'", runtime=self.name
            )
        return interp.globals[RESULT_VARIABLE]

    def _close(self, interp: _PythonSession) -> None:
        interp.globals.clear()
        vars(interp.namespace).clear()
