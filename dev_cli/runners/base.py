"""
Step runner interface.

A build descriptor's `steps` are shell command lines. `run_steps` hands
them one at a time to a `Runner`; the runner decides where and how a
command line executes and reports back only its exit status.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Dict


class Runner(ABC):
    """
    Executes one build step.
    """

    @abstractmethod
    def run(
        self,
        command: str,
        workdir: Path,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> int:
        """
        Run a single step command line.

        Args:
            command: The step as declared in the descriptor.
            workdir: The descriptor's `dir`, resolved against the work dir.
            env: Context variables overlaid with the descriptor environment.
            timeout: Per-step deadline in seconds, or None.

        Returns:
            The step's exit status; anything but 0 stops the build.
        """
        raise NotImplementedError
