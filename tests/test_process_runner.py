from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from miri_script.exceptions import EnvironmentProbeError, ExternalToolFailure
from miri_script.runtime.process import ProcessDeps, ProcessRunner
from tests.process_helpers import FakeRun


def _runner(fake_run: FakeRun, tmp_path: Path, traces: list[str] | None = None) -> ProcessRunner:
    sink = traces if traces is not None else []
    deps = ProcessDeps(run=fake_run, echo=lambda _message: None, trace=sink.append)
    return ProcessRunner(deps=deps, cwd=tmp_path, env={"PATH": "/bin", "KEEP": "1"})


def test_run_raises_with_tool_return_code(fake_run: FakeRun, tmp_path: Path) -> None:
    fake_run.handler = lambda argv: (3, "")
    runner = _runner(fake_run, tmp_path)

    with pytest.raises(ExternalToolFailure) as excinfo:
        runner.run(["cargo", "build"])

    assert excinfo.value.returncode == 3
    assert excinfo.value.exit_code == 3
    assert excinfo.value.command == ("cargo", "build")


def test_read_returns_stripped_stdout_and_traces_command(
    fake_run: FakeRun, tmp_path: Path
) -> None:
    fake_run.handler = lambda argv: (0, "  /sysroot/path\n")
    traces: list[str] = []
    runner = _runner(fake_run, tmp_path, traces)

    assert runner.read(["rustc", "--print", "sysroot"]) == "/sysroot/path"
    assert traces == ["$ rustc --print sysroot"]
    assert fake_run.calls[0].cwd == str(tmp_path)


def test_status_and_probe_never_raise(fake_run: FakeRun, tmp_path: Path) -> None:
    fake_run.handler = lambda argv: (7, "partial")
    runner = _runner(fake_run, tmp_path)

    assert runner.status(["false"]) == 7
    proc = runner.probe(["rustc", "--version"])
    assert proc.returncode == 7
    assert proc.stdout == "partial"


def test_with_env_overrides_and_removes_keys(fake_run: FakeRun, tmp_path: Path) -> None:
    runner = _runner(fake_run, tmp_path).with_env({"KEEP": None, "MIRIFLAGS": "-Zmiri-seed=0"})

    runner.run(["true"], cwd=tmp_path / "elsewhere")

    call = fake_run.calls[0]
    assert call.env == {"PATH": "/bin", "MIRIFLAGS": "-Zmiri-seed=0"}
    assert call.cwd == str(tmp_path / "elsewhere")


def test_missing_executable_is_an_environment_probe_error(tmp_path: Path) -> None:
    def _missing(argv, **kwargs) -> subprocess.CompletedProcess[str]:
        raise FileNotFoundError(argv[0])

    deps = ProcessDeps(run=_missing, echo=lambda _message: None, trace=lambda _message: None)
    runner = ProcessRunner(deps=deps, cwd=tmp_path)

    with pytest.raises(EnvironmentProbeError) as excinfo:
        runner.run(["hyperfine"])

    assert excinfo.value.exit_code == 2
    assert "hyperfine" in str(excinfo.value)


def test_killed_tool_maps_to_usage_exit() -> None:
    failure = ExternalToolFailure(["cargo"], -9)
    assert failure.exit_code == 1
