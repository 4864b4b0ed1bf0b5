from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from miri_script.context import ScriptContext

MARKER_EVERYTHING = ".auto-everything"
MARKER_TOOLCHAIN = ".auto-toolchain"
MARKER_FMT = ".auto-fmt"
MARKER_CLIPPY = ".auto-clippy"


@dataclass(frozen=True)
class AutoOpsMarkers:
    toolchain: bool = False
    fmt: bool = False
    clippy: bool = False

    @classmethod
    def from_root(cls, root: Path) -> "AutoOpsMarkers":
        everything = (root / MARKER_EVERYTHING).exists()
        return cls(
            toolchain=everything or (root / MARKER_TOOLCHAIN).exists(),
            fmt=everything or (root / MARKER_FMT).exists(),
            clippy=everything or (root / MARKER_CLIPPY).exists(),
        )


@dataclass(frozen=True)
class AutoOpsSteps:
    sync_toolchain: Callable[[ScriptContext], ScriptContext]
    fmt: Callable[[ScriptContext], None]
    clippy: Callable[[ScriptContext], None]


def run_once(
    ctx: ScriptContext,
    steps: AutoOpsSteps,
    *,
    markers: AutoOpsMarkers | None = None,
) -> ScriptContext:
    """Run the marker-selected auto steps once per top-level invocation.

    The returned context is marked as running, and children inherit that
    through ``MIRI_AUTO_OPS``, so steps that shell back out to ``miri`` do
    not re-enter the gate.
    """
    if ctx.already_running:
        return ctx
    gated = ctx.mark_running()
    active = markers if markers is not None else AutoOpsMarkers.from_root(ctx.root)
    # Toolchain first so fmt and clippy run under the final toolchain.
    if active.toolchain:
        gated = steps.sync_toolchain(gated)
    if active.fmt:
        steps.fmt(gated)
    if active.clippy:
        steps.clippy(gated)
    return gated


__all__ = [
    "AutoOpsMarkers",
    "AutoOpsSteps",
    "MARKER_CLIPPY",
    "MARKER_EVERYTHING",
    "MARKER_FMT",
    "MARKER_TOOLCHAIN",
    "run_once",
]
