# dev_cli/cli.py
"""
Command-line interface for dev-cli, powered by Typer.
"""

import typer
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from dev_cli.dispatcher import Dispatcher
from dev_cli.lang import ProcessFailure, RunTarget, available_runtimes
from dev_cli.runners.steps import run_steps
from dev_cli.utils.config import (
    ConfigError,
    default_timeout,
    find_config,
    get_environment,
    get_run,
    load_config,
)
from dev_cli.utils.logging import setup_logger, get_logger

app = typer.Typer(
    no_args_is_help=True,
    help="dev-cli: run build scripts written in Python, Lua, JavaScript or shell.",
    context_settings={"help_option_names": ["-h", "--help"]},
)

console = Console()

# Global options captured by the callback
state = {}


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose (DEBUG) logging."
    ),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", help="Path to a file for logging."
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-C",
        help="Path to the dev.yaml configuration. Defaults to the nearest dev.yaml.",
    ),
):
    """
    Main callback to set up logging and global state.
    """
    state["verbose"] = verbose
    state["log_file"] = log_file
    state["config"] = config

    setup_logger(logfile=log_file, verbose=verbose)
    log = get_logger(__name__)
    log.debug("CLI context initialized. verbose=%s, config=%s", verbose, config)


def _load_state_config():
    path = state.get("config") or find_config()
    if path is None:
        return None, {}
    return Path(path), load_config(path)


@app.command()
def run(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Run alias from the config file."),
    file: Optional[Path] = typer.Option(
        None, "--file", "-f", help="File to run; the runtime is inferred from its extension."
    ),
    type_: Optional[str] = typer.Option(
        None, "--type", "-t", help="Runtime type: py, lua, js, sh, bash, zsh."
    ),
    command: Optional[str] = typer.Option(
        None, "--command", "-c", help="Inline source to run (requires --type)."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Deadline in seconds for the script. Defaults to DEV_CLI_TIMEOUT."
    ),
    no_steps: bool = typer.Option(
        False, "--no-steps", help="Print the build descriptor without running its steps."
    ),
):
    """
    Run a script and execute the steps it declares.
    """
    log = get_logger(__name__)

    try:
        cfg_path, cfg = _load_state_config()
        layers = [get_environment(cfg)]
        timeout = timeout if timeout is not None else default_timeout()

        if file is not None and command is not None:
            log.error("Pass either --file or --command, not both.")
            raise typer.Exit(code=1)

        if file is not None:
            target = RunTarget(file=file, type_hint=type_)
        elif command is not None:
            target = RunTarget(source=command, type_hint=type_)
        elif name:
            alias = get_run(cfg, name)
            if alias is None:
                where = cfg_path if cfg_path is not None else "any dev.yaml"
                log.error("%s command not found in %s", name, where)
                raise typer.Exit(code=1)
            layers.append(alias.environment)
            if alias.file:
                alias_file = Path(alias.file)
                if cfg_path is not None and not alias_file.is_absolute():
                    alias_file = cfg_path.parent / alias_file
                target = RunTarget(file=alias_file, type_hint=alias.filetype)
            else:
                target = RunTarget(source=alias.command, type_hint=alias.filetype)
        else:
            log.error("Nothing to run: pass a run alias, --file or --command.")
            raise typer.Exit(code=1)
    except ConfigError as e:
        log.error("Invalid configuration: %s", e)
        raise typer.Exit(code=1)

    dispatcher = Dispatcher()
    context = dispatcher.make_context(Path.cwd(), *layers)
    result = dispatcher.dispatch(target, context, timeout=timeout)

    if not result.ok:
        err = result.error
        log.error("%s failed (%s): %s", target.label, err.kind.value, err)
        if isinstance(err, ProcessFailure) and err.stderr.strip():
            console.print(err.stderr.rstrip(), markup=False, highlight=False)
        raise typer.Exit(code=1)

    descriptor = result.descriptor
    log.debug("%s finished in %d ms", target.label, result.duration_ms)
    console.print_json(data=descriptor.to_dict())

    if no_steps or not descriptor.steps:
        return

    rc = run_steps(descriptor, context, timeout=timeout)
    if rc != 0:
        raise typer.Exit(code=1)


@app.command()
def runtimes(ctx: typer.Context):
    """
    List the guest runtimes and whether they are available.
    """
    dispatcher = Dispatcher()
    table = Table(title="Runtimes")
    table.add_column("Name")
    table.add_column("Types")
    table.add_column("Extensions")
    table.add_column("Available")

    for name, cls in sorted(available_runtimes().items()):
        if dispatcher.is_enabled(cls):
            status = "yes"
        elif not cls.is_available():
            status = f"no (requires {cls.requires})"
        else:
            status = "disabled"
        table.add_row(name, ", ".join(cls.tags), ", ".join(cls.extensions), status)

    console.print(table)


if __name__ == "__main__":
    app()
