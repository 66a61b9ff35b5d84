# dev_cli/runners/local.py
"""
Runs build steps on the local machine.
"""

from pathlib import Path
import os
import subprocess
from typing import Optional, Dict

from dev_cli.utils.logging import get_logger
from .base import Runner

TIMEOUT_EXIT_CODE = 124


class LocalRunner(Runner):
    """
    Executes a shell command in a working directory, streaming its output
    to the terminal.
    """

    def run(
        self,
        command: str,
        workdir: Path,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> int:
        log = get_logger(__name__)
        log.debug("Executing step in %s: %s", workdir, command)

        merged_env = os.environ.copy()
        if env:
            merged_env.update(env)

        try:
            process = subprocess.run(
                command,
                shell=True,
                check=False,
                cwd=workdir,
                env=merged_env,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            log.error("Step timed out after %s seconds: %s", timeout, command)
            return TIMEOUT_EXIT_CODE
        except OSError as e:
            log.error("Failed to start step '%s': %s", command, e)
            return -1

        log.debug("Step finished with exit code: %d", process.returncode)
        return process.returncode
