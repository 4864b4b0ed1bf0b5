from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Sequence

from miri_script.context import ScriptContext
from miri_script.exceptions import EnvironmentProbeError
from miri_script.tooling.state_probe import StateProbe
from miri_script.tooling.version_pin import read_version_pin

INSTALLER = "rustup-toolchain-install-master"
_RUSTC_SRC_MANIFEST = Path("lib/rustlib/rustc-src/rust/compiler/rustc/Cargo.toml")


class ToolchainOutcome(str, Enum):
    UNCHANGED = "unchanged"
    INSTALLED = "installed"


@dataclass(frozen=True)
class ToolchainManager:
    ctx: ScriptContext
    probe: StateProbe

    @property
    def name(self) -> str:
        return self.ctx.config.toolchain.name

    def _install_command(self, desired_commit: str, installer_flags: Sequence[str]) -> list[str]:
        cmd = [INSTALLER, "-n", self.name]
        for component in self.ctx.config.toolchain.components:
            cmd.extend(["-c", component])
        cmd.extend(installer_flags)
        cmd.extend(["--", desired_commit])
        return cmd

    def reconcile(
        self,
        desired_commit: str,
        installer_flags: Sequence[str] = (),
    ) -> ToolchainOutcome:
        runner = self.ctx.runner
        state = self.probe.toolchain_state(self.name)
        if state.commit == desired_commit:
            self.ctx.say(f"{self.name} toolchain is already at commit {desired_commit}.")
            runner.run(["rustup", "override", "set", self.name])
            return ToolchainOutcome.UNCHANGED

        if not self.probe.has_tool(INSTALLER):
            raise EnvironmentProbeError(
                f"Please install {INSTALLER} by running "
                f"'cargo install {INSTALLER}'"
            )
        if self.name in self.probe.installed_toolchains():
            runner.run(["rustup", "toolchain", "uninstall", self.name])
        runner.run(self._install_command(desired_commit, installer_flags))
        runner.run(["rustup", "override", "set", self.name])
        # Artifacts built by the previous toolchain cannot be reused.
        runner.run(
            [
                "cargo",
                f"+{self.name}",
                "clean",
                "--manifest-path",
                str(self.ctx.root / "Cargo.toml"),
            ]
        )
        self._refresh_upstream_metadata()

        installed = self.probe.installed_commit(self.name)
        if installed != desired_commit:
            raise EnvironmentProbeError(
                f"{self.name} toolchain reports commit {installed}, "
                f"expected {desired_commit}"
            )
        return ToolchainOutcome.INSTALLED

    def reconcile_pinned(self, installer_flags: Sequence[str] = ()) -> ToolchainOutcome:
        desired_commit = read_version_pin(self.ctx.version_pin_path)
        return self.reconcile(desired_commit, installer_flags)

    def _refresh_upstream_metadata(self) -> None:
        manifest = self.probe.rustc_sysroot(self.name) / _RUSTC_SRC_MANIFEST
        self.ctx.runner.read(
            [
                "cargo",
                f"+{self.name}",
                "metadata",
                "--format-version",
                "1",
                "--manifest-path",
                str(manifest),
            ]
        )


def sync_toolchain(
    ctx: ScriptContext,
    *,
    installer_flags: Sequence[str] = (),
    probe: StateProbe | None = None,
) -> tuple[ToolchainOutcome, ScriptContext]:
    manager = ToolchainManager(ctx=ctx, probe=probe or StateProbe(runner=ctx.runner))
    outcome = manager.reconcile_pinned(installer_flags)
    return outcome, ctx.with_toolchain(manager.name)


__all__ = [
    "INSTALLER",
    "ToolchainManager",
    "ToolchainOutcome",
    "sync_toolchain",
]
