# dev_cli/utils/logging.py
"""
Logging for dev-cli.

Everything logs under the `dev_cli` logger tree. Diagnostics go to stderr
through rich so that stdout carries only command output (the build
descriptor JSON printed by `dev-cli run`).
"""

import logging
from pathlib import Path
from typing import Optional
from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "dev_cli"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(logfile: Optional[Path] = None, verbose: bool = False) -> logging.Logger:
    """
    Configure the `dev_cli` logger for one CLI invocation.

    Verbose mode lowers the level to DEBUG, which surfaces runtime
    selection, interpreter start/teardown and guest console output. When
    `logfile` is given the same records are also appended to that file.
    Calling this again replaces the handlers instead of adding more.
    """
    level = logging.DEBUG if verbose else logging.INFO

    log = logging.getLogger(LOGGER_NAME)
    log.setLevel(level)
    log.propagate = False
    log.handlers.clear()

    stderr_handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        show_path=False,
        log_time_format="[%X]",
    )
    stderr_handler.setLevel(level)
    log.addHandler(stderr_handler)

    if logfile:
        logfile = Path(logfile)
        logfile.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(logfile)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        log.addHandler(file_handler)
        log.debug("Writing log records to %s", logfile)

    log.debug("dev-cli logging at %s", logging.getLevelName(level))
    return log


def get_logger(name: str) -> logging.Logger:
    """Module logger; pass `__name__` so records land under `dev_cli`."""
    return logging.getLogger(name)
