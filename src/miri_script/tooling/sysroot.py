from __future__ import annotations

from dataclasses import dataclass

from miri_script.context import ScriptContext
from miri_script.exceptions import ExternalToolFailure, SetupFailed


@dataclass(frozen=True)
class SysrootCache:
    """Resolves the sysroot handle for one invocation.

    A handle supplied by the caller (``MIRI_SYSROOT``) wins outright.
    Otherwise ``cargo miri setup`` builds one for the host or for the
    requested target and prints its path.
    """

    ctx: ScriptContext

    def _setup_command(self, target: str | None) -> list[str]:
        cmd = self.ctx.cargo(
            "run",
            *self.ctx.env.cargo_extra_flags,
            "--manifest-path",
            str(self.ctx.root / "cargo-miri" / "Cargo.toml"),
            "-q",
            "--",
            "miri",
            "setup",
            "--print-sysroot",
        )
        if target:
            cmd.extend(["--target", target])
        return cmd

    def ensure(self, target: str | None = None) -> str:
        if self.ctx.sysroot:
            return self.ctx.sysroot
        cmd = self._setup_command(target)
        try:
            handle = self.ctx.runner.read(cmd)
        except ExternalToolFailure as exc:
            raise SetupFailed(
                cmd,
                exc.returncode,
                f"sysroot setup failed for {target or 'the host target'}",
            ) from exc
        if not handle:
            raise SetupFailed(cmd, 1, "sysroot setup did not print a sysroot path")
        return handle.splitlines()[-1].strip()


def ensure_sysroot(ctx: ScriptContext, target: str | None = None) -> ScriptContext:
    handle = SysrootCache(ctx=ctx).ensure(target)
    return ctx.with_sysroot(handle)


__all__ = ["SysrootCache", "ensure_sysroot"]
