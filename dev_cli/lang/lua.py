"""
Lua guest runtime backed by lupa.

The `dev` table is installed as a global before the chunk runs, and
`os.getenv` is wrapped so injected variables are visible without touching
the host process environment. The chunk's return value is the result; a
returned module table with an `Out` field yields that field instead:

    local M = {}
    M.Out = {
      version = dev:get_version(),
      dir = dev:get_dir(),
      environment = { TEST = os.getenv("TEST") },
      steps = { "make" },
    }
    return M
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

from dev_cli.utils.logging import get_logger

from .base import EmbeddedRuntime, register_runtime
from .descriptor import ROOT_FIELD, ExecutionContext, OpaqueValue
from .errors import DescriptorShapeMismatch, ExecutionFailure, GuestSyntaxError

try:
    import lupa
except ImportError:  # pragma: no cover - optional runtime
    lupa = None

log = get_logger(__name__)

MODULE_OUTPUT_KEY = "Out"
MAX_DEPTH = 32

_LOCATION_RE = re.compile(r'\[string "[^"]*"\]:(\d+):\s*')

_PRELUDE = """
local version, work_dir, env = ...
local function copy(t)
  local out = {}
  for k, v in pairs(t) do out[k] = v end
  return out
end

local dev = {}
dev.version = version
dev.work_dir = work_dir
dev.environment = copy(env)

function dev.get_version() return version end
function dev.get_work_dir() return work_dir end
dev.get_dir = dev.get_work_dir
function dev.get_env() return copy(env) end
function dev.getenv(a, b, c)
  -- accept both dev.getenv(k, d) and dev:getenv(k, d)
  if a == dev then a, b = b, c end
  local v = env[a]
  if v == nil then v = os.getenv(a) end
  if v == nil then return b end
  return v
end

local host_getenv = os.getenv
os.getenv = function(key)
  local v = env[key]
  if v ~= nil then return v end
  return host_getenv(key)
end

os.exit = function(code)
  error("os.exit(" .. tostring(code) .. ") is not allowed in dev scripts", 2)
end

_G.dev = dev
"""


@dataclass(slots=True)
class _LuaSession:
    runtime: Any


def _split_location(message: str) -> tuple[str, Optional[int]]:
    """Pull the chunk line number out of a Lua error message."""
    message = message.split("\nstack traceback:", 1)[0].strip()
    match = _LOCATION_RE.search(message)
    if not match:
        return message, None
    return message[match.end():], int(match.group(1))


def _to_plain(value: Any, depth: int = 0) -> Any:
    """Copy a Lua value into plain Python values while the runtime is alive."""
    kind = lupa.lua_type(value)
    if kind is None:
        return value
    if kind != "table":
        return OpaqueValue(f"lua {kind}")
    if depth >= MAX_DEPTH:
        raise DescriptorShapeMismatch(ROOT_FIELD, "tables nested too deeply", runtime=LuaRuntime.name)

    items = list(value.items())
    if not items:
        return {}
    keys = [k for k, _ in items]
    if all(isinstance(k, int) and not isinstance(k, bool) for k in keys) and sorted(keys) == list(
        range(1, len(keys) + 1)
    ):
        return [_to_plain(value[i], depth + 1) for i in range(1, len(keys) + 1)]

    out = {}
    for key, val in items:
        if lupa.lua_type(key) is not None:
            key = OpaqueValue(f"lua {lupa.lua_type(key)}")
        out[key] = _to_plain(val, depth + 1)
    return out


@register_runtime
class LuaRuntime(EmbeddedRuntime):
    """Execute Lua chunks in a fresh lupa runtime."""

    name = "lua"
    tags = ("lua",)
    extensions = (".lua",)
    requires = "lupa"

    @classmethod
    def is_available(cls) -> bool:
        return lupa is not None

    def _start(self, context: ExecutionContext) -> _LuaSession:
        runtime = lupa.LuaRuntime(
            unpack_returned_tuples=True,
            register_eval=False,
            register_builtins=False,
        )
        env_table = runtime.table_from(dict(context.environment))
        runtime.compile(_PRELUDE)(context.version, str(context.work_dir), env_table)
        return _LuaSession(runtime=runtime)

    def _run(self, interp: _LuaSession, source: str, filename: str, timeout: Optional[float]) -> Any:
        try:
            chunk = interp.runtime.compile(source)
        except lupa.LuaSyntaxError as exc:
            message, line = _split_location(str(exc))
            raise GuestSyntaxError(message, runtime=self.name, line=line) from exc

        try:
            result = chunk()
        except lupa.LuaError as exc:
            message, line = _split_location(str(exc))
            raise ExecutionFailure(message or "Lua error", runtime=self.name, line=line) from exc
        except UnicodeDecodeError as exc:
            raise DescriptorShapeMismatch(
                ROOT_FIELD, f"result contains a non-UTF-8 string: {exc.reason}", runtime=self.name
            ) from exc

        if isinstance(result, tuple):
            result = result[0] if result else None
        if result is None:
            raise DescriptorShapeMismatch(ROOT_FIELD, "chunk returned no value", runtime=self.name)

        try:
            plain = _to_plain(result)
        except UnicodeDecodeError as exc:
            raise DescriptorShapeMismatch(
                ROOT_FIELD, f"result contains a non-UTF-8 string: {exc.reason}", runtime=self.name
            ) from exc
        if isinstance(plain, dict) and MODULE_OUTPUT_KEY in plain:
            log.debug("Using module table field '%s' as the result", MODULE_OUTPUT_KEY)
            plain = plain[MODULE_OUTPUT_KEY]
        return plain

    def _close(self, interp: _LuaSession) -> None:
        try:
            interp.runtime.execute('collectgarbage("collect")')
        finally:
            interp.runtime = None
