"""
JavaScript guest runtime backed by V8 through mini-racer.

Scripts are written as ES modules against a synthetic `dev` module and
hand their result back through the default export:

    import * as dev from 'dev'

    export default {
      version: dev.getVersion(),
      dir: dev.getWorkDir(),
      steps: ["npm install", "npm run build"],
    };

mini-racer evaluates classic scripts, so the module syntax is rewritten
line-for-line before evaluation: imports from 'dev' bind the injected
global and the default export is assigned to a private global. Results
cross the boundary as JSON.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional

from dev_cli.utils.logging import get_logger

from .base import EmbeddedRuntime, register_runtime
from .descriptor import ROOT_FIELD, ExecutionContext, OpaqueValue
from .errors import (
    DescriptorShapeMismatch,
    ExecutionFailure,
    ExecutionTimeout,
    GuestSyntaxError,
)

try:
    import py_mini_racer
except ImportError:  # pragma: no cover - optional runtime
    py_mini_racer = None

log = get_logger(__name__)

RESULT_GLOBAL = "__dev_default_export__"
CONSOLE_GLOBAL = "__dev_console__"
OPAQUE_KEY = "__dev_opaque__"

_IMPORT_RE = re.compile(
    r"""^([ \t]*)import\s+(?P<clause>(?:(?!\bfrom\b)[^;])+?)\s+from[ \t]+(['"])dev\3[ \t]*;?""",
    re.MULTILINE,
)
_EXPORT_DEFAULT_RE = re.compile(r"^([ \t]*)export[ \t]+default[ \t]+", re.MULTILINE)
_EXPORT_AS_DEFAULT_RE = re.compile(r"^([ \t]*)export[ \t]*\{[ \t]*([\w$]+)[ \t]+as[ \t]+default[ \t]*\}[ \t]*;?", re.MULTILINE)
_EXPORT_DECL_RE = re.compile(r"^([ \t]*)export[ \t]+(?=(?:const|let|var|function|class|async)\b)", re.MULTILINE)
_LOCATION_RE = re.compile(r"<anonymous>:(\d+)(?::(\d+))?:?\s*")

_PRELUDE = """
(function (version, workDir, env) {
  const environment = Object.freeze(Object.assign({}, env));
  const has = (key) => Object.prototype.hasOwnProperty.call(environment, key);
  const dev = Object.freeze({
    version: version,
    workDir: workDir,
    environment: environment,
    getVersion: () => version,
    getWorkDir: () => workDir,
    getDir: () => workDir,
    getEnv: () => Object.assign({}, environment),
    getenv: (key, fallback) => (has(key) ? environment[key] : fallback),
  });
  Object.defineProperty(globalThis, "dev", { value: dev, writable: false, enumerable: false, configurable: true });

  const lines = [];
  const write = (...args) => lines.push(args.map(String).join(" "));
  Object.defineProperty(globalThis, "%(console)s", { value: lines, enumerable: false });
  globalThis.console = { log: write, info: write, warn: write, error: write, debug: write };
})(%(version)s, %(work_dir)s, %(env)s);
"""

_EXTRACT = """
JSON.stringify(
  globalThis.%(result)s === undefined ? { missing: true } : { value: globalThis.%(result)s },
  (key, value) => {
    if (typeof value === "function" || typeof value === "symbol") {
      return { %(opaque)s: typeof value };
    }
    if (typeof value === "bigint") {
      return value.toString();
    }
    return value;
  }
)
"""


@dataclass(slots=True)
class _JsSession:
    ctx: Any
    console: List[str] = field(default_factory=list)


def _bind_clause(clause: str) -> str:
    """Translate an import clause into declarations against the dev global."""
    clause = clause.strip()
    parts: List[str] = []
    named = re.search(r"\{(.*)\}", clause, re.S)
    if named:
        bindings = []
        for item in named.group(1).split(","):
            item = item.strip()
            if not item:
                continue
            original, _, alias = item.partition(" as ")
            bindings.append(f"{original.strip()}: {alias.strip()}" if alias else original.strip())
        parts.append(f"const {{ {', '.join(bindings)} }} = globalThis.dev;")
        clause = (clause[: named.start()] + clause[named.end():]).strip().strip(",").strip()
    star = re.match(r"\*\s+as\s+([\w$]+)", clause)
    if star:
        parts.append(f"const {star.group(1)} = globalThis.dev;")
    elif clause:
        parts.append(f"const {clause.strip(',').strip()} = globalThis.dev;")
    return " ".join(parts)


def rewrite_module(source: str) -> str:
    """Rewrite ES module syntax into a classic script, keeping line numbers."""
    source = _IMPORT_RE.sub(
        lambda m: m.group(1) + _bind_clause(m.group("clause")) + "\n" * m.group(0).count("\n"), source
    )
    source = _EXPORT_AS_DEFAULT_RE.sub(
        lambda m: f"{m.group(1)}globalThis.{RESULT_GLOBAL} = {m.group(2)};", source
    )
    source = _EXPORT_DEFAULT_RE.sub(lambda m: f"{m.group(1)}globalThis.{RESULT_GLOBAL} = ", source)
    return _EXPORT_DECL_RE.sub(lambda m: m.group(1), source)


def _split_error(text: str) -> tuple[str, Optional[int], Optional[int]]:
    lines = [ln for ln in text.strip().splitlines() if ln.strip()]
    if not lines:
        return "JavaScript error", None, None
    match = _LOCATION_RE.search(text)
    line = int(match.group(1)) if match else None
    column = int(match.group(2)) if match and match.group(2) else None
    message = _LOCATION_RE.sub("", lines[0], count=1).strip()
    return message or lines[0], line, column


def _decode_opaque(obj: dict) -> Any:
    if set(obj) == {OPAQUE_KEY}:
        return OpaqueValue(f"javascript {obj[OPAQUE_KEY]}")
    return obj


@register_runtime
class JavaScriptRuntime(EmbeddedRuntime):
    """Execute JavaScript modules in a fresh V8 context."""

    name = "javascript"
    tags = ("javascript", "js", "ts", "mjs")
    extensions = (".js", ".mjs", ".ts")
    requires = "mini-racer"
    supports_timeout = True

    @classmethod
    def is_available(cls) -> bool:
        return py_mini_racer is not None

    def _start(self, context: ExecutionContext) -> _JsSession:
        ctx = py_mini_racer.MiniRacer()
        try:
            ctx.eval(
                _PRELUDE
                % {
                    "console": CONSOLE_GLOBAL,
                    "version": json.dumps(context.version),
                    "work_dir": json.dumps(str(context.work_dir)),
                    "env": json.dumps(dict(context.environment)),
                }
            )
        except Exception:
            ctx.close()
            raise
        return _JsSession(ctx=ctx)

    def _run(self, interp: _JsSession, source: str, filename: str, timeout: Optional[float]) -> Any:
        script = rewrite_module(source)
        try:
            interp.ctx.eval(script, timeout_sec=timeout)
        except py_mini_racer.JSTimeoutException as exc:
            raise ExecutionTimeout(timeout or 0, runtime=self.name) from exc
        except py_mini_racer.JSParseException as exc:
            message, line, column = _split_error(str(exc))
            raise GuestSyntaxError(message, runtime=self.name, line=line, column=column) from exc
        except py_mini_racer.JSEvalException as exc:
            message, line, column = _split_error(str(exc))
            raise ExecutionFailure(
                message, trace=str(exc), runtime=self.name, line=line, column=column
            ) from exc
        finally:
            self._drain_console(interp, filename)

        try:
            payload = interp.ctx.eval(
                _EXTRACT % {"result": RESULT_GLOBAL, "opaque": OPAQUE_KEY}, timeout_sec=timeout
            )
        except py_mini_racer.JSEvalException as exc:
            # cyclic structures and similar cannot be serialized
            raise DescriptorShapeMismatch(
                ROOT_FIELD, f"default export is not serializable: {_split_error(str(exc))[0]}",
                runtime=self.name,
            ) from exc

        envelope = json.loads(payload, object_hook=_decode_opaque)
        if envelope.get("missing"):
            raise DescriptorShapeMismatch(ROOT_FIELD, "module has no default export", runtime=self.name)
        return envelope.get("value")

    def _drain_console(self, interp: _JsSession, filename: str) -> None:
        try:
            lines = json.loads(interp.ctx.eval(f"JSON.stringify(globalThis.{CONSOLE_GLOBAL} || [])"))
        except py_mini_racer.MiniRacerBaseException as exc:
            log.debug("Could not read console output of %s: %s", filename, exc)
            return
        interp.console.extend(lines)
        for line in lines:
            log.debug("[%s] %s", filename, line)

    def _close(self, interp: _JsSession) -> None:
        interp.ctx.close()
