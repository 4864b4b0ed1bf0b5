from __future__ import annotations

from enum import Enum

from miri_script.exceptions import UsageError

# Top-level command names as typed on the command line.
INSTALL_COMMAND = "install"
CHECK_COMMAND = "check"
BUILD_COMMAND = "build"
TEST_COMMAND = "test"
BLESS_COMMAND = "bless"
RUN_COMMAND = "run"
FMT_COMMAND = "fmt"
CLIPPY_COMMAND = "clippy"
CARGO_COMMAND = "cargo"
MANY_SEEDS_COMMAND = "many-seeds"
BENCH_COMMAND = "bench"
TOOLCHAIN_COMMAND = "toolchain"
RUSTC_PULL_COMMAND = "rustc-pull"
RUSTC_PUSH_COMMAND = "rustc-push"


class CommandClass(str, Enum):
    # Manages its own environment; never enters the auto-ops gate.
    BOOTSTRAP = "bootstrap"
    # Rewrites history; needs a pristine environment.
    SYNC = "sync"
    # Gate, toolchain probe, sysroot, then the external tool.
    MAIN_PIPELINE = "main_pipeline"


COMMAND_CLASSES: dict[str, CommandClass] = {
    TOOLCHAIN_COMMAND: CommandClass.BOOTSTRAP,
    MANY_SEEDS_COMMAND: CommandClass.BOOTSTRAP,
    BENCH_COMMAND: CommandClass.BOOTSTRAP,
    RUSTC_PULL_COMMAND: CommandClass.SYNC,
    RUSTC_PUSH_COMMAND: CommandClass.SYNC,
    INSTALL_COMMAND: CommandClass.MAIN_PIPELINE,
    CHECK_COMMAND: CommandClass.MAIN_PIPELINE,
    BUILD_COMMAND: CommandClass.MAIN_PIPELINE,
    TEST_COMMAND: CommandClass.MAIN_PIPELINE,
    BLESS_COMMAND: CommandClass.MAIN_PIPELINE,
    RUN_COMMAND: CommandClass.MAIN_PIPELINE,
    FMT_COMMAND: CommandClass.MAIN_PIPELINE,
    CLIPPY_COMMAND: CommandClass.MAIN_PIPELINE,
    CARGO_COMMAND: CommandClass.MAIN_PIPELINE,
}

MAIN_PIPELINE_COMMANDS: tuple[str, ...] = tuple(
    name
    for name, command_class in COMMAND_CLASSES.items()
    if command_class is CommandClass.MAIN_PIPELINE
)


def classify(command: str) -> CommandClass:
    try:
        return COMMAND_CLASSES[command]
    except KeyError:
        raise UsageError(f"unknown command: {command}") from None
