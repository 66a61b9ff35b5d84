"""
Shell guest runtime: scripts run in a child shell process.

The boundary is text. Context variables go in through the child's
environment (plus DEV_VERSION and DEV_WORK_DIR), and the exit status and
standard output come back. A zero exit whose last non-empty stdout line is
a JSON object yields that object as the descriptor; any other successful
output is a no-op descriptor.
"""

from __future__ import annotations

import json
import os
import shutil
import subprocess
from typing import Any, Optional

from dev_cli.utils.logging import get_logger

from .base import GuestRuntime, RunTarget, register_runtime
from .descriptor import ROOT_FIELD, BuildDescriptor, ExecutionContext, coerce_descriptor
from .errors import DescriptorShapeMismatch, ExecutionTimeout, InitializationFailure, ProcessFailure

log = get_logger(__name__)

DEFAULT_SHELL = "sh"
_SHELL_FOR_TAG = {"shell": "sh", "sh": "sh", "bash": "bash", "zsh": "zsh"}


def _decode(stream: Any) -> str:
    if stream is None:
        return ""
    if isinstance(stream, bytes):
        return stream.decode("utf-8", errors="replace")
    return stream


def parse_output(stdout: str) -> Optional[Any]:
    """
    Return the JSON object on the last non-empty line of stdout, if any.

    A last line that opens with `{` but does not parse is a shape mismatch,
    not a no-op.
    """
    for line in reversed(stdout.splitlines()):
        text = line.strip()
        if not text:
            continue
        if not text.startswith("{"):
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise DescriptorShapeMismatch(
                ROOT_FIELD, f"last stdout line is not valid JSON: {exc.msg}", runtime=ShellRuntime.name
            ) from exc
    return None


@register_runtime
class ShellRuntime(GuestRuntime):
    """Execute shell scripts or commands in a subprocess."""

    name = "shell"
    tags = ("shell", "sh", "bash", "zsh")
    extensions = (".sh", ".bash", ".zsh")

    def __init__(self, shell: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(shell=shell, **kwargs)
        self.shell = _SHELL_FOR_TAG.get((shell or "").lower().lstrip("."), shell or DEFAULT_SHELL)

    @classmethod
    def for_tag(cls, tag: Optional[str]) -> "ShellRuntime":
        return cls(shell=tag)

    def _command(self, target: RunTarget) -> list[str]:
        if target.source is not None:
            return [self.shell, "-c", target.source]
        return [self.shell, str(target.file)]

    def execute(
        self,
        target: RunTarget,
        context: ExecutionContext,
        timeout: Optional[float] = None,
    ) -> BuildDescriptor:
        if shutil.which(self.shell) is None:
            raise InitializationFailure(f"Shell '{self.shell}' not found on PATH", runtime=self.name)
        if target.file is not None and not target.file.is_file():
            raise InitializationFailure(f"Cannot read script {target.label}: no such file", runtime=self.name)

        cmd = self._command(target)
        env = os.environ.copy()
        env.update(context.process_environment())
        log.debug(
            "Running %s in %s with envs: %s",
            " ".join(cmd[:2]),
            context.work_dir,
            " ".join(f"{k}={v}" for k, v in context.environment.items()),
        )

        try:
            proc = subprocess.run(
                cmd,
                check=False,
                capture_output=True,
                text=True,
                cwd=context.work_dir,
                env=env,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            log.debug("Shell script %s timed out after %s seconds", target.label, timeout)
            raise ExecutionTimeout(timeout, stderr=_decode(exc.stderr), runtime=self.name) from exc
        except OSError as exc:
            raise InitializationFailure(f"Failed to spawn '{self.shell}': {exc}", runtime=self.name) from exc

        stdout_text = proc.stdout or ""
        stderr_text = proc.stderr or ""
        log.debug("Shell script %s exited with status %d", target.label, proc.returncode)

        if proc.returncode != 0:
            raise ProcessFailure(proc.returncode, stderr_text, runtime=self.name)

        raw = parse_output(stdout_text)
        if raw is None:
            return BuildDescriptor()
        return coerce_descriptor(raw, runtime=self.name)
