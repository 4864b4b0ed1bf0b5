"""Error taxonomy for miri-script.

Components raise these; only ``miri_script.cli.main`` turns them into process
exit codes.
"""

from __future__ import annotations

from typing import Sequence

USAGE_EXIT = 1
ENVIRONMENT_PROBE_EXIT = 2


def tool_exit_code(returncode: int) -> int:
    """Exit code that mirrors a tool's return code; signals map to 1."""
    return returncode if returncode > 0 else USAGE_EXIT


class MiriScriptError(RuntimeError):
    exit_code: int = USAGE_EXIT


class UsageError(MiriScriptError):
    """Bad or missing arguments; raised before any side effect."""

    exit_code = USAGE_EXIT


class EnvironmentProbeError(MiriScriptError):
    """An expected path or tool is missing from the environment."""

    exit_code = ENVIRONMENT_PROBE_EXIT


class ExternalToolFailure(MiriScriptError):
    """An invoked tool exited non-zero.

    The exit code mirrors the tool's return code so the orchestrator fails
    the same way the tool did.
    """

    def __init__(self, command: Sequence[str], returncode: int, message: str = ""):
        self.command = tuple(str(part) for part in command)
        self.returncode = int(returncode)
        rendered = " ".join(self.command)
        super().__init__(message or f"command failed with exit code {returncode}: {rendered}")

    @property
    def exit_code(self) -> int:  # type: ignore[override]
        return tool_exit_code(self.returncode)


class SetupFailed(ExternalToolFailure):
    """The driver's sysroot setup sub-mode failed; nothing is cached."""


class SyncRaceError(MiriScriptError):
    """Upstream HEAD moved while the filtered fetch was in flight."""

    exit_code = USAGE_EXIT


class SyncCollisionError(MiriScriptError):
    """The push target branch already exists on the fork."""

    exit_code = USAGE_EXIT


class SyncHistoryError(MiriScriptError):
    """The path-filtering bridge produced history we must not publish."""

    exit_code = USAGE_EXIT


__all__ = [
    "ENVIRONMENT_PROBE_EXIT",
    "EnvironmentProbeError",
    "ExternalToolFailure",
    "MiriScriptError",
    "SetupFailed",
    "SyncCollisionError",
    "SyncHistoryError",
    "SyncRaceError",
    "USAGE_EXIT",
    "UsageError",
    "tool_exit_code",
]
