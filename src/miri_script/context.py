from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping

from miri_script.config import ScriptConfig, script_config
from miri_script.runtime.env_policy import (
    AUTO_OPS_SENTINEL,
    CARGO_OPT_LEVEL_ENV,
    CARGO_TARGET_DIR_ENV,
    MIRI_AUTO_OPS_ENV,
    MIRI_SYSROOT_ENV,
    ScriptEnv,
)
from miri_script.runtime.process import ProcessDeps, ProcessRunner, default_process_deps

VERSION_PIN_NAME = "rust-version"


@dataclass(frozen=True)
class ScriptContext:
    """Execution context threaded through every step of one invocation.

    Nothing here is mutated; steps that change the picture (selecting a
    toolchain, entering the auto-ops gate, building a sysroot) return a new
    context via the ``with_*`` helpers.
    """

    root: Path
    env: ScriptEnv
    config: ScriptConfig
    deps: ProcessDeps
    toolchain: str | None = None
    already_running: bool = False
    sysroot: str | None = None
    extra_env: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        *,
        root: Path,
        environ: Mapping[str, str],
        deps: ProcessDeps | None = None,
        config: ScriptConfig | None = None,
    ) -> "ScriptContext":
        resolved = root.resolve()
        env = ScriptEnv.from_environ(environ)
        return cls(
            root=resolved,
            env=env,
            config=config if config is not None else script_config(root=resolved),
            deps=deps or default_process_deps(),
            already_running=env.auto_ops_running,
            sysroot=env.sysroot,
        )

    @property
    def version_pin_path(self) -> Path:
        return self.root / VERSION_PIN_NAME

    @property
    def target_dir(self) -> Path:
        if self.env.target_dir:
            return Path(self.env.target_dir)
        return self.root / "target"

    def with_toolchain(self, name: str) -> "ScriptContext":
        return replace(self, toolchain=name)

    def mark_running(self) -> "ScriptContext":
        return replace(self, already_running=True)

    def with_sysroot(self, sysroot: str) -> "ScriptContext":
        return replace(self, sysroot=sysroot)

    def with_env(self, **values: str) -> "ScriptContext":
        merged = dict(self.extra_env)
        merged.update(values)
        return replace(self, extra_env=merged)

    def child_env(self) -> dict[str, str]:
        env = dict(self.env.inherited)
        env[CARGO_TARGET_DIR_ENV] = str(self.target_dir)
        if self.already_running:
            env[MIRI_AUTO_OPS_ENV] = AUTO_OPS_SENTINEL
        if self.sysroot:
            env[MIRI_SYSROOT_ENV] = self.sysroot
        if self.env.opt_level:
            env[CARGO_OPT_LEVEL_ENV] = self.env.opt_level
        env.update(self.extra_env)
        return env

    @property
    def runner(self) -> ProcessRunner:
        return ProcessRunner(deps=self.deps, cwd=self.root, env=self.child_env())

    def toolchain_arg(self) -> list[str]:
        return [f"+{self.toolchain}"] if self.toolchain else []

    def cargo(self, *args: str) -> list[str]:
        return ["cargo", *self.toolchain_arg(), *args]

    def say(self, message: str) -> None:
        self.deps.echo(message)


__all__ = ["ScriptContext", "VERSION_PIN_NAME"]
