from __future__ import annotations

import os
from pathlib import Path
import sys
from typing import Callable, List, Mapping, Optional

import click
import typer

from miri_script.commands import command_ids
from miri_script.commands.command_ids import classify
from miri_script.commands.pipeline import (
    MainPipeline,
    ProbeFactory,
    default_probe,
    run_prepared,
)
from miri_script.context import ScriptContext
from miri_script.exceptions import MiriScriptError, USAGE_EXIT, UsageError
from miri_script.tooling.auto_ops import AutoOpsSteps
from miri_script.tooling.bench import BenchRunner
from miri_script.tooling.history_bridge import bridge_for
from miri_script.tooling.seed_sweep import SeedSweeper
from miri_script.tooling.toolchain import sync_toolchain

app = typer.Typer(add_completion=False)
ContextFactory = Callable[[Path], ScriptContext]

_PASSTHROUGH = {"allow_extra_args": True, "ignore_unknown_options": True}
_ROOT_ENV = "MIRI_SCRIPT_ROOT"


def _default_context_factory(root: Path) -> ScriptContext:
    return ScriptContext.create(root=root, environ=os.environ)


def _obj(ctx: typer.Context) -> Mapping[str, object]:
    obj = ctx.obj
    return obj if isinstance(obj, Mapping) else {}


def _context_factory(ctx: typer.Context) -> ContextFactory:
    candidate = _obj(ctx).get("context_factory")
    if callable(candidate):
        return candidate
    return _default_context_factory


def _context_probe_factory(ctx: typer.Context) -> ProbeFactory:
    candidate = _obj(ctx).get("probe_factory")
    if callable(candidate):
        return candidate
    return default_probe


def _context_auto_ops_steps(ctx: typer.Context) -> AutoOpsSteps | None:
    candidate = _obj(ctx).get("auto_ops_steps")
    return candidate if isinstance(candidate, AutoOpsSteps) else None


def _passthrough_args(ctx: typer.Context) -> list[str]:
    # main() stashes the untouched argv tail, which keeps a literal "--".
    raw = _obj(ctx).get("raw_args")
    if isinstance(raw, list):
        return [str(arg) for arg in raw]
    return list(ctx.args)


def _script_context(ctx: typer.Context) -> ScriptContext:
    root = _obj(ctx).get("root")
    resolved = Path(str(root)) if root is not None else Path(".")
    return _context_factory(ctx)(resolved)


def _fail(exc: MiriScriptError) -> typer.Exit:
    typer.secho(str(exc), err=True, fg=typer.colors.RED)
    return typer.Exit(code=exc.exit_code)


@app.callback()
def _root_options(
    ctx: typer.Context,
    root: Path = typer.Option(
        Path("."),
        "--root",
        envvar=_ROOT_ENV,
        help="Root of the managed subtree (holds rust-version and the marker files).",
    ),
) -> None:
    """Build, test and sync the Miri subtree."""
    obj = ctx.ensure_object(dict)
    if isinstance(obj, dict):
        obj.setdefault("root", root)


def _dispatch_main(ctx: typer.Context, command: str) -> None:
    pipeline = MainPipeline(
        probe_factory=_context_probe_factory(ctx),
        auto_ops_steps=_context_auto_ops_steps(ctx),
    )
    try:
        pipeline.run(_script_context(ctx), command, _passthrough_args(ctx))
    except MiriScriptError as exc:
        raise _fail(exc) from exc


def _register_main_command(name: str, help_text: str) -> None:
    @app.command(name, context_settings=_PASSTHROUGH, help=help_text)
    def _command(ctx: typer.Context) -> None:
        _dispatch_main(ctx, name)


_MAIN_COMMAND_HELP = {
    command_ids.INSTALL_COMMAND: "Install the driver and cargo-miri.",
    command_ids.CHECK_COMMAND: "Type-check the driver and cargo-miri.",
    command_ids.BUILD_COMMAND: "Build the driver and cargo-miri.",
    command_ids.TEST_COMMAND: "Run the test suite.",
    command_ids.BLESS_COMMAND: "Run the test suite, overwriting expected outputs that differ.",
    command_ids.RUN_COMMAND: "Run the driver on a program.",
    command_ids.FMT_COMMAND: "Format all sources with rustfmt.",
    command_ids.CLIPPY_COMMAND: "Lint the driver and cargo-miri.",
    command_ids.CARGO_COMMAND: "Run cargo with the build environment.",
}

# Bootstrap and sync commands never enter the auto-ops gate; they are
# registered individually below.
for _name in command_ids.MAIN_PIPELINE_COMMANDS:
    _register_main_command(_name, _MAIN_COMMAND_HELP[_name])


@app.command(command_ids.TOOLCHAIN_COMMAND, context_settings=_PASSTHROUGH)
def toolchain(ctx: typer.Context) -> None:
    """Install the toolchain pinned in rust-version, if it is not already."""
    script_ctx = _script_context(ctx)
    probe = _context_probe_factory(ctx)(script_ctx)
    try:
        outcome, _synced = sync_toolchain(
            script_ctx,
            installer_flags=_passthrough_args(ctx),
            probe=probe,
        )
    except MiriScriptError as exc:
        raise _fail(exc) from exc
    typer.echo(f"toolchain: {outcome.value}")


@app.command(command_ids.MANY_SEEDS_COMMAND, context_settings=_PASSTHROUGH)
def many_seeds(ctx: typer.Context) -> None:
    """Run a command once per seed until one fails."""
    script_ctx = _script_context(ctx)
    try:
        outcome = SeedSweeper(ctx=script_ctx).sweep(
            script_ctx.env.miriflags,
            _passthrough_args(ctx),
        )
    except MiriScriptError as exc:
        raise _fail(exc) from exc
    if not outcome.passed:
        raise typer.Exit(code=outcome.exit_code)


@app.command(command_ids.BENCH_COMMAND, context_settings=_PASSTHROUGH)
def bench(ctx: typer.Context) -> None:
    """Install, then time the named benchmarks (default: all of them)."""
    try:
        installed = run_prepared(
            _script_context(ctx),
            command_ids.INSTALL_COMMAND,
            [],
            _context_probe_factory(ctx),
        )
        BenchRunner(ctx=installed).run(_passthrough_args(ctx))
    except MiriScriptError as exc:
        raise _fail(exc) from exc


@app.command(command_ids.RUSTC_PULL_COMMAND)
def rustc_pull(ctx: typer.Context) -> None:
    """Merge the latest upstream changes into this subtree."""
    script_ctx = _script_context(ctx)
    try:
        outcome = bridge_for(script_ctx, probe=_context_probe_factory(ctx)(script_ctx)).pull()
    except MiriScriptError as exc:
        raise _fail(exc) from exc
    typer.echo(f"rustc-pull: {outcome.value}")


@app.command(command_ids.RUSTC_PUSH_COMMAND)
def rustc_push(
    ctx: typer.Context,
    github_user: Optional[str] = typer.Argument(None, metavar="GITHUB_USER"),
    branch: Optional[str] = typer.Argument(None, metavar="BRANCH"),
) -> None:
    """Push this subtree's changes to a branch of GITHUB_USER's fork."""
    if not github_user or not branch:
        typer.echo(ctx.get_usage(), err=True)
        raise typer.Exit(code=USAGE_EXIT)
    script_ctx = _script_context(ctx)
    try:
        bridge_for(script_ctx, probe=_context_probe_factory(ctx)(script_ctx)).push(
            github_user, branch
        )
    except MiriScriptError as exc:
        raise _fail(exc) from exc


def _command_index(argv: List[str]) -> int | None:
    skip_next = False
    for index, token in enumerate(argv):
        if skip_next:
            skip_next = False
            continue
        if token == "--root":
            skip_next = True
            continue
        if token.startswith("-"):
            continue
        return index
    return None


def main(argv: List[str] | None = None, *, obj: Mapping[str, object] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    payload: dict[str, object] = dict(obj or {})
    index = _command_index(args)
    command = typer.main.get_command(app)
    if index is not None:
        try:
            classify(args[index])
        except UsageError as exc:
            typer.echo(command.get_usage(click.Context(command, info_name="miri")), err=True)
            typer.secho(str(exc), err=True, fg=typer.colors.RED)
            return exc.exit_code
        payload.setdefault("raw_args", args[index + 1:])
    try:
        result = command.main(
            args=args,
            prog_name="miri",
            obj=payload,
            standalone_mode=False,
        )
    except click.UsageError as exc:
        exc.show()
        return USAGE_EXIT
    except click.Abort:
        return USAGE_EXIT
    return result if isinstance(result, int) else 0


def run() -> None:
    raise SystemExit(main())


__all__ = ["app", "main", "run"]
