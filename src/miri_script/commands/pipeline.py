from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import sys
from typing import Callable, Sequence

from miri_script.commands import command_ids
from miri_script.context import ScriptContext
from miri_script.exceptions import UsageError
from miri_script.runtime.env_policy import (
    BLESS_VALUE,
    MIRI_BLESS_ENV,
    RUSTFLAGS_ENV,
)
from miri_script.tooling.auto_ops import AutoOpsSteps, run_once
from miri_script.tooling.state_probe import StateProbe
from miri_script.tooling.sysroot import ensure_sysroot
from miri_script.tooling.toolchain import sync_toolchain

ProbeFactory = Callable[[ScriptContext], StateProbe]
CommandBody = Callable[[ScriptContext, list[str]], None]

_RUSTFMT_EDITION = "2021"


def default_probe(ctx: ScriptContext) -> StateProbe:
    return StateProbe(runner=ctx.runner)


def _manifests(ctx: ScriptContext) -> tuple[Path, Path]:
    return (ctx.root / "Cargo.toml", ctx.root / "cargo-miri" / "Cargo.toml")


def _cargo(ctx: ScriptContext, subcommand: str, *args: str) -> list[str]:
    return ctx.cargo(subcommand, *ctx.env.cargo_extra_flags, *args)


def prepare_build_env(ctx: ScriptContext, probe: StateProbe) -> ScriptContext:
    """Select the toolchain and export the flags every build needs.

    Fails with exit code 2 when the toolchain's library dir is missing.
    """
    toolchain = ctx.toolchain or probe.active_toolchain()
    ctx = ctx.with_toolchain(toolchain)
    libdir = probe.library_dir(toolchain)
    flags = ["-Zunstable-options", "-Wrustc::internal"]
    if sys.platform != "win32":
        # Lets the driver find the private rustc libraries at runtime.
        flags.extend(["-C", f"link-args=-Wl,-rpath,{libdir}"])
    if ctx.env.rustflags:
        flags.append(ctx.env.rustflags)
    return ctx.with_env(**{RUSTFLAGS_ENV: " ".join(flags)})


def find_target_arg(args: Sequence[str]) -> str | None:
    previous = ""
    for arg in args:
        if arg == "--":
            return None
        if previous == "--target":
            return arg
        if arg.startswith("--target="):
            return arg.split("=", 1)[1]
        previous = arg
    return None


def rust_sources(root: Path) -> list[Path]:
    return sorted(
        path
        for path in root.rglob("*.rs")
        if "target" not in path.relative_to(root).parts
    )


def run_install(ctx: ScriptContext, args: list[str]) -> None:
    for crate in (ctx.root, ctx.root / "cargo-miri"):
        ctx.runner.run(_cargo(ctx, "install", "--path", str(crate), "--force", "--locked", *args))


def run_check(ctx: ScriptContext, args: list[str]) -> None:
    for manifest in _manifests(ctx):
        ctx.runner.run(_cargo(ctx, "check", "--manifest-path", str(manifest), "--all-targets", *args))


def run_build(ctx: ScriptContext, args: list[str]) -> None:
    for manifest in _manifests(ctx):
        ctx.runner.run(_cargo(ctx, "build", "--manifest-path", str(manifest), *args))


def run_test(ctx: ScriptContext, args: list[str], *, bless: bool = False) -> None:
    ctx = ensure_sysroot(ctx, ctx.env.test_target)
    if bless:
        ctx = ctx.with_env(**{MIRI_BLESS_ENV: BLESS_VALUE})
    ctx.runner.run(_cargo(ctx, "test", "--manifest-path", str(ctx.root / "Cargo.toml"), *args))


def run_bless(ctx: ScriptContext, args: list[str]) -> None:
    run_test(ctx, args, bless=True)


def run_run(ctx: ScriptContext, args: list[str]) -> None:
    miriflags = list(ctx.env.miriflags)
    target = find_target_arg(args)
    if target is None and ctx.env.test_target:
        target = ctx.env.test_target
        miriflags.extend(["--target", target])
    ctx = ensure_sysroot(ctx, target)
    manifest = str(ctx.root / "Cargo.toml")
    ctx.runner.run(_cargo(ctx, "build", "--manifest-path", manifest))
    ctx.runner.run(
        _cargo(
            ctx,
            "run",
            "--manifest-path",
            manifest,
            "--",
            "--sysroot",
            str(ctx.sysroot),
            *miriflags,
            *args,
        )
    )


def run_fmt(ctx: ScriptContext, args: list[str]) -> None:
    files = rust_sources(ctx.root)
    if not files:
        return
    ctx.runner.run(
        [
            "rustfmt",
            *ctx.toolchain_arg(),
            f"--edition={_RUSTFMT_EDITION}",
            "--config-path",
            str(ctx.root / "rustfmt.toml"),
            *args,
            *(str(path) for path in files),
        ]
    )


def run_clippy(ctx: ScriptContext, args: list[str]) -> None:
    for manifest in _manifests(ctx):
        ctx.runner.run(_cargo(ctx, "clippy", "--manifest-path", str(manifest), "--all-targets", *args))


def run_cargo(ctx: ScriptContext, args: list[str]) -> None:
    if not args:
        raise UsageError("cargo requires arguments to pass through")
    ctx.runner.run(ctx.cargo(*args))


MAIN_COMMAND_BODIES: dict[str, CommandBody] = {
    command_ids.INSTALL_COMMAND: run_install,
    command_ids.CHECK_COMMAND: run_check,
    command_ids.BUILD_COMMAND: run_build,
    command_ids.TEST_COMMAND: run_test,
    command_ids.BLESS_COMMAND: run_bless,
    command_ids.RUN_COMMAND: run_run,
    command_ids.FMT_COMMAND: run_fmt,
    command_ids.CLIPPY_COMMAND: run_clippy,
    command_ids.CARGO_COMMAND: run_cargo,
}


def run_prepared(
    ctx: ScriptContext,
    command: str,
    args: list[str],
    probe_factory: ProbeFactory = default_probe,
) -> ScriptContext:
    """Run one command body under the build env, without the auto-ops gate."""
    body = MAIN_COMMAND_BODIES.get(command)
    if body is None:
        raise UsageError(f"not a main pipeline command: {command}")
    prepared = prepare_build_env(ctx, probe_factory(ctx))
    body(prepared, args)
    return prepared


def default_auto_ops_steps(probe_factory: ProbeFactory = default_probe) -> AutoOpsSteps:
    def _sync(ctx: ScriptContext) -> ScriptContext:
        _outcome, synced = sync_toolchain(ctx, probe=probe_factory(ctx))
        return synced

    def _fmt(ctx: ScriptContext) -> None:
        run_prepared(ctx, command_ids.FMT_COMMAND, [], probe_factory)

    def _clippy(ctx: ScriptContext) -> None:
        # Warnings fail the gate.
        run_prepared(ctx, command_ids.CLIPPY_COMMAND, ["--", "-D", "warnings"], probe_factory)

    return AutoOpsSteps(sync_toolchain=_sync, fmt=_fmt, clippy=_clippy)


@dataclass(frozen=True)
class MainPipeline:
    probe_factory: ProbeFactory = default_probe
    auto_ops_steps: AutoOpsSteps | None = None

    def run(self, ctx: ScriptContext, command: str, args: Sequence[str]) -> ScriptContext:
        steps = self.auto_ops_steps or default_auto_ops_steps(self.probe_factory)
        gated = run_once(ctx, steps)
        run_prepared(gated, command, list(args), self.probe_factory)
        return gated


__all__ = [
    "MAIN_COMMAND_BODIES",
    "MainPipeline",
    "default_auto_ops_steps",
    "default_probe",
    "find_target_arg",
    "prepare_build_env",
    "run_prepared",
    "rust_sources",
]
