from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
import shlex
import subprocess
from typing import Callable, Literal, Mapping, Sequence

import typer

from miri_script.exceptions import EnvironmentProbeError, ExternalToolFailure

RunCommand = Callable[..., subprocess.CompletedProcess[str]]
Echo = Callable[[str], None]
CaptureMode = Literal["none", "stdout", "all"]


def _default_echo(message: str) -> None:
    typer.secho(message, err=True)


def _default_trace(message: str) -> None:
    typer.secho(message, err=True, dim=True)


@dataclass(frozen=True)
class ProcessDeps:
    run: RunCommand
    echo: Echo
    trace: Echo = _default_trace


def default_process_deps() -> ProcessDeps:
    return ProcessDeps(run=subprocess.run, echo=_default_echo, trace=_default_trace)


@dataclass(frozen=True)
class ProcessRunner:
    """Launches external commands one at a time and waits for each.

    ``run`` streams output and raises on failure, ``read`` captures stdout,
    ``status`` only reports the return code.
    """

    deps: ProcessDeps
    cwd: Path
    env: Mapping[str, str] = field(default_factory=dict)

    def with_env(self, overrides: Mapping[str, str | None]) -> "ProcessRunner":
        merged = dict(self.env)
        for key, value in overrides.items():
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value
        return replace(self, env=merged)

    def say(self, message: str) -> None:
        self.deps.echo(message)

    def _call(
        self,
        cmd: Sequence[str],
        *,
        capture: CaptureMode,
        cwd: Path | None,
    ) -> subprocess.CompletedProcess[str]:
        argv = [str(part) for part in cmd]
        self.deps.trace(f"$ {shlex.join(argv)}")
        streams: dict[str, object] = {}
        if capture == "stdout":
            streams["stdout"] = subprocess.PIPE
        elif capture == "all":
            streams["stdout"] = subprocess.PIPE
            streams["stderr"] = subprocess.PIPE
        try:
            return self.deps.run(
                argv,
                check=False,
                text=True,
                cwd=str(cwd or self.cwd),
                env=dict(self.env),
                **streams,
            )
        except FileNotFoundError as exc:
            raise EnvironmentProbeError(f"required tool not found: {argv[0]}") from exc

    def run(self, cmd: Sequence[str], *, cwd: Path | None = None) -> None:
        proc = self._call(cmd, capture="none", cwd=cwd)
        if proc.returncode != 0:
            raise ExternalToolFailure(cmd, proc.returncode)

    def read(self, cmd: Sequence[str], *, cwd: Path | None = None) -> str:
        # stderr stays attached to the terminal so diagnostics reach the operator as-is.
        proc = self._call(cmd, capture="stdout", cwd=cwd)
        if proc.returncode != 0:
            raise ExternalToolFailure(cmd, proc.returncode)
        return (proc.stdout or "").strip()

    def status(self, cmd: Sequence[str], *, cwd: Path | None = None) -> int:
        return int(self._call(cmd, capture="none", cwd=cwd).returncode)

    def probe(self, cmd: Sequence[str], *, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
        return self._call(cmd, capture="all", cwd=cwd)


__all__ = [
    "CaptureMode",
    "Echo",
    "ProcessDeps",
    "ProcessRunner",
    "RunCommand",
    "default_process_deps",
]
