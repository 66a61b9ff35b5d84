import json
import shutil
from pathlib import Path

import pytest
import yaml

from dev_cli.cli import app
from dev_cli.dispatcher import host_version


def _write_config(base_dir: Path) -> Path:
    """
    Write a dev.yaml with a file alias, an inline alias and a broken alias,
    plus the script the file alias points at.
    """
    scripts = base_dir / "scripts"
    scripts.mkdir(parents=True, exist_ok=True)
    (scripts / "main.py").write_text(
        "import dev\n"
        "build = {\n"
        "    'version': dev.get_version(),\n"
        "    'environment': {'TEST': dev.getenv('TEST'), 'KEY': dev.getenv('KEY', 'unset')},\n"
        "    'steps': ['echo one > one.txt', 'echo two > two.txt'],\n"
        "}\n"
    )

    cfg = {
        "environment": {"TEST": "hello", "DEBUG": True},
        "run": {
            "py": {
                "filetype": "python",
                "file": "scripts/main.py",
                "environment": {"KEY": "K"},
            },
            "inline": {
                "filetype": "python",
                "command": "build = {'steps': ['exit 3']}",
            },
            "broken": {"filetype": "python"},
        },
    }
    cfg_path = base_dir / "dev.yaml"
    cfg_path.write_text(yaml.safe_dump(cfg))
    return cfg_path


def _descriptor(result):
    return json.loads(result.stdout)


def test_help(cli_runner):
    result = cli_runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "run" in result.stdout
    assert "runtimes" in result.stdout


def test_run_inline_python_prints_descriptor(cli_runner, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = cli_runner.invoke(
        app,
        ["run", "-t", "py", "-c", "import dev\nbuild = {'version': dev.version, 'steps': ['make']}", "--no-steps"],
    )
    assert result.exit_code == 0, result.output
    assert _descriptor(result) == {"version": host_version(), "steps": ["make"]}


def test_run_file_infers_type_from_extension(cli_runner, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    script = tmp_path / "build.py"
    script.write_text("build = {'dir': 'out'}\n")
    result = cli_runner.invoke(app, ["run", "-f", str(script), "--no-steps"])
    assert result.exit_code == 0, result.output
    assert _descriptor(result) == {"dir": "out"}


def test_run_alias_from_config_layers_environment(cli_runner, tmp_path, monkeypatch):
    cfg_path = _write_config(tmp_path)
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)

    result = cli_runner.invoke(app, ["--config", str(cfg_path), "run", "py", "--no-steps"])
    assert result.exit_code == 0, result.output
    data = _descriptor(result)
    assert data["environment"] == {"TEST": "hello", "KEY": "K"}
    assert data["steps"] == ["echo one > one.txt", "echo two > two.txt"]


def test_config_is_discovered_from_parent_directory(cli_runner, tmp_path, monkeypatch):
    _write_config(tmp_path)
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    result = cli_runner.invoke(app, ["run", "py", "--no-steps"])
    assert result.exit_code == 0, result.output
    assert _descriptor(result)["environment"]["TEST"] == "hello"


@pytest.mark.skipif(shutil.which("sh") is None, reason="sh not available")
def test_run_executes_steps_in_work_dir(cli_runner, tmp_path, monkeypatch):
    cfg_path = _write_config(tmp_path)
    monkeypatch.chdir(tmp_path)

    result = cli_runner.invoke(app, ["-C", str(cfg_path), "run", "py"])
    assert result.exit_code == 0, result.output
    assert (tmp_path / "one.txt").read_text().strip() == "one"
    assert (tmp_path / "two.txt").read_text().strip() == "two"


@pytest.mark.skipif(shutil.which("sh") is None, reason="sh not available")
def test_failing_step_exits_nonzero(cli_runner, tmp_path, monkeypatch):
    cfg_path = _write_config(tmp_path)
    monkeypatch.chdir(tmp_path)
    result = cli_runner.invoke(app, ["-C", str(cfg_path), "run", "inline"])
    assert result.exit_code == 1


def test_unknown_alias_exits_nonzero(cli_runner, tmp_path, monkeypatch):
    cfg_path = _write_config(tmp_path)
    monkeypatch.chdir(tmp_path)
    result = cli_runner.invoke(app, ["-C", str(cfg_path), "run", "missing"])
    assert result.exit_code == 1


def test_invalid_alias_exits_nonzero(cli_runner, tmp_path, monkeypatch):
    cfg_path = _write_config(tmp_path)
    monkeypatch.chdir(tmp_path)
    result = cli_runner.invoke(app, ["-C", str(cfg_path), "run", "broken"])
    assert result.exit_code == 1


def test_script_error_exits_nonzero(cli_runner, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = cli_runner.invoke(app, ["run", "-t", "py", "-c", "raise RuntimeError('boom')"])
    assert result.exit_code == 1


def test_unsupported_type_exits_nonzero(cli_runner, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = cli_runner.invoke(app, ["run", "-t", "cobol", "-c", "DISPLAY 'x'"])
    assert result.exit_code == 1


def test_nothing_to_run_exits_nonzero(cli_runner, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = cli_runner.invoke(app, ["run"])
    assert result.exit_code == 1


def test_file_and_command_are_exclusive(cli_runner, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = cli_runner.invoke(app, ["run", "-f", "build.py", "-t", "py", "-c", "build = {}"])
    assert result.exit_code == 1


def test_runtimes_lists_all_languages(cli_runner, monkeypatch):
    monkeypatch.setenv("DEV_CLI_DISABLED_RUNTIMES", "shell")
    result = cli_runner.invoke(app, ["runtimes"])
    assert result.exit_code == 0, result.output
    for name in ("python", "lua", "javascript", "shell"):
        assert name in result.stdout
    assert "disabled" in result.stdout


def test_log_file_is_written(cli_runner, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    log_file = tmp_path / "logs" / "dev.log"
    result = cli_runner.invoke(
        app, ["--verbose", "--log-file", str(log_file), "run", "-t", "py", "-c", "build = {}", "--no-steps"]
    )
    assert result.exit_code == 0, result.output
    assert log_file.exists()
    assert "DEBUG" in log_file.read_text()


EXAMPLES = Path(__file__).resolve().parent.parent / "examples"


@pytest.mark.parametrize("alias", ["py", "pyt"])
def test_example_python_aliases(cli_runner, tmp_path, monkeypatch, alias):
    monkeypatch.chdir(tmp_path)
    result = cli_runner.invoke(app, ["-C", str(EXAMPLES / "dev.yaml"), "run", alias, "--no-steps"])
    assert result.exit_code == 0, result.output
    data = _descriptor(result)
    assert data["version"] == host_version()
    assert data["environment"]["TEST"] == "hello"
