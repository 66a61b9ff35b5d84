from pathlib import Path

import pytest

from dev_cli.dispatcher import Dispatcher, host_version
from dev_cli.lang import (
    BuildDescriptor,
    ErrorKind,
    GuestRuntime,
    LuaRuntime,
    PythonRuntime,
    RunTarget,
    RuntimeUnavailable,
    ShellRuntime,
    UnresolvableType,
    available_runtimes,
)
from dev_cli.lang import base as lang_base


class RecordingRuntime(GuestRuntime):
    name = "recording"
    tags = ("rec",)
    extensions = (".rec",)
    instances = []

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.seen = []
        RecordingRuntime.instances.append(self)

    def execute(self, target, context, timeout=None):
        self.seen.append((target, context, timeout))
        return BuildDescriptor(version=context.version, steps=[target.read_source()])


@pytest.fixture
def recording(monkeypatch):
    RecordingRuntime.instances = []
    monkeypatch.setitem(lang_base._REGISTRY, "recording", RecordingRuntime)
    return RecordingRuntime


def test_all_runtimes_are_registered():
    assert set(available_runtimes()) >= {"python", "lua", "javascript", "shell"}


def test_host_version_is_a_string():
    assert isinstance(host_version(), str) and host_version()


def test_resolve_by_extension(tmp_path):
    dispatcher = Dispatcher(disabled=[])
    runtime = dispatcher.resolve(RunTarget(file=tmp_path / "build.py"))
    assert isinstance(runtime, PythonRuntime)


def test_explicit_type_is_authoritative(tmp_path):
    dispatcher = Dispatcher(disabled=[])
    runtime = dispatcher.resolve(RunTarget(file=tmp_path / "build.lua", type_hint="python"))
    assert isinstance(runtime, PythonRuntime)


def test_unknown_type_is_unresolvable():
    with pytest.raises(UnresolvableType, match="Unsupported language: cobol"):
        Dispatcher(disabled=[]).resolve(RunTarget(source="x", type_hint="cobol"))


def test_unknown_extension_is_unresolvable(tmp_path):
    with pytest.raises(UnresolvableType):
        Dispatcher(disabled=[]).resolve(RunTarget(file=tmp_path / "build.rb"))


def test_inline_source_without_type_is_unresolvable():
    with pytest.raises(UnresolvableType) as exc:
        Dispatcher(disabled=[]).resolve(RunTarget(source="build = {}"))
    assert exc.value.kind is ErrorKind.unresolvable_type


def test_disabled_runtime_is_unavailable_not_unresolvable():
    with pytest.raises(RuntimeUnavailable) as exc:
        Dispatcher(disabled=["lua"]).resolve(RunTarget(source="return {}", type_hint="lua"))
    assert exc.value.kind is ErrorKind.runtime_unavailable


def test_missing_library_is_unavailable(monkeypatch, tmp_path):
    monkeypatch.setattr(LuaRuntime, "is_available", classmethod(lambda cls: False))
    with pytest.raises(RuntimeUnavailable, match="lupa"):
        Dispatcher(disabled=[]).resolve(RunTarget(file=tmp_path / "main.lua"))


def test_disabled_runtimes_from_environment(monkeypatch):
    monkeypatch.setenv("DEV_CLI_DISABLED_RUNTIMES", "python, shell")
    dispatcher = Dispatcher()
    with pytest.raises(RuntimeUnavailable):
        dispatcher.resolve(RunTarget(source="build = {}", type_hint="py"))
    with pytest.raises(RuntimeUnavailable):
        dispatcher.resolve(RunTarget(source="true", type_hint="bash"))


@pytest.mark.parametrize("tag, shell", [("bash", "bash"), ("zsh", "zsh"), ("sh", "sh"), ("shell", "sh")])
def test_shell_tag_selects_binary(tag, shell):
    runtime = Dispatcher(disabled=[]).resolve(RunTarget(source="true", type_hint=tag))
    assert isinstance(runtime, ShellRuntime)
    assert runtime.shell == shell


def test_shell_extension_selects_binary(tmp_path):
    runtime = Dispatcher(disabled=[]).resolve(RunTarget(file=tmp_path / "setup.bash"))
    assert runtime.shell == "bash"


def test_make_context_layers_environment(tmp_path):
    dispatcher = Dispatcher(version="9.9.9", disabled=[])
    ctx = dispatcher.make_context(tmp_path, {"A": "1", "B": "1"}, {"B": "2"})
    assert ctx.version == "9.9.9"
    assert ctx.work_dir == tmp_path.resolve()
    assert dict(ctx.environment) == {"A": "1", "B": "2"}


def test_dispatch_uses_fresh_runtime_per_call(recording, tmp_path):
    dispatcher = Dispatcher(version="1.0", disabled=[])
    ctx = dispatcher.make_context(tmp_path)

    first = dispatcher.dispatch(RunTarget(source="one", type_hint="rec"), ctx, timeout=3)
    second = dispatcher.dispatch(RunTarget(source="two", type_hint="rec"), ctx)

    assert first.ok and second.ok
    assert first.runtime == "recording"
    assert first.descriptor.steps == ["one"]
    assert second.descriptor.steps == ["two"]
    assert len(recording.instances) == 2
    assert recording.instances[0] is not recording.instances[1]
    assert recording.instances[0].seen[0][2] == 3


def test_dispatch_reports_errors_without_raising():
    result = Dispatcher(disabled=[]).dispatch(RunTarget(source="x", type_hint="cobol"))
    assert not result.ok
    assert result.descriptor is None
    assert isinstance(result.error, UnresolvableType)
    with pytest.raises(UnresolvableType):
        result.unwrap()


def test_execute_raises_adapter_errors():
    with pytest.raises(RuntimeUnavailable):
        Dispatcher(disabled=["python"]).execute(RunTarget(source="build = {}", type_hint="python"))


def test_run_target_needs_exactly_one_source(tmp_path):
    with pytest.raises(ValueError):
        RunTarget()
    with pytest.raises(ValueError):
        RunTarget(file=Path(tmp_path / "a.py"), source="build = {}")
