# dev_cli/runners/steps.py
"""
Executes the commands listed in a build descriptor.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

from dev_cli.lang import BuildDescriptor, ExecutionContext
from dev_cli.utils.logging import get_logger

from .base import Runner
from .local import LocalRunner

log = get_logger(__name__)


def step_environment(context: ExecutionContext, descriptor: BuildDescriptor) -> Dict[str, str]:
    """Context variables overlaid with the descriptor's environment."""
    env = context.process_environment()
    env.update(descriptor.environment)
    if descriptor.version is not None:
        env["DEV_VERSION"] = descriptor.version
    return env


def step_workdir(context: ExecutionContext, descriptor: BuildDescriptor) -> Path:
    """The descriptor's dir (relative paths resolve against the work dir)."""
    if descriptor.dir is None:
        return context.work_dir
    return (context.work_dir / descriptor.dir).resolve()


def run_steps(
    descriptor: BuildDescriptor,
    context: ExecutionContext,
    runner: Optional[Runner] = None,
    timeout: Optional[float] = None,
) -> int:
    """
    Execute descriptor steps in order, stopping at the first failure.

    Returns:
        0 when every step succeeded, otherwise the failing step's exit code.
    """
    runner = runner or LocalRunner()
    workdir = step_workdir(context, descriptor)
    env = step_environment(context, descriptor)

    for idx, step in enumerate(descriptor.steps, start=1):
        log.info("Step %d/%d: %s", idx, len(descriptor.steps), step)
        rc = runner.run(step, workdir, env=env, timeout=timeout)
        if rc != 0:
            log.error("Step %d failed with exit code %d: %s", idx, rc, step)
            return rc
    return 0
