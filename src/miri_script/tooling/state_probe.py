from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import shutil
from typing import Callable
import urllib.error
import urllib.request

from miri_script.exceptions import EnvironmentProbeError
from miri_script.runtime.process import ProcessRunner

UrlOpen = Callable[..., object]
Which = Callable[[str], str | None]

_PROBE_TIMEOUT_SECONDS = 5


@dataclass(frozen=True)
class ToolchainState:
    name: str
    commit: str | None


def _verbose_field(version_output: str, key: str) -> str | None:
    prefix = f"{key}:"
    for line in version_output.splitlines():
        if line.startswith(prefix):
            value = line[len(prefix):].strip()
            if value and value != "unknown":
                return value
    return None


@dataclass(frozen=True)
class StateProbe:
    """Read-only questions about the toolchain, the checkout and upstream.

    Nothing is cached; every answer is re-derived from the tools.
    """

    runner: ProcessRunner
    which: Which = shutil.which
    urlopen: UrlOpen = urllib.request.urlopen

    def active_toolchain(self) -> str:
        output = self.runner.read(["rustup", "show", "active-toolchain"])
        first_line = output.splitlines()[0] if output else ""
        name = first_line.split(" ")[0].strip()
        if not name:
            raise EnvironmentProbeError("rustup reported no active toolchain")
        return name

    def _verbose_version(self, toolchain: str) -> str | None:
        proc = self.runner.probe(["rustc", f"+{toolchain}", "--version", "--verbose"])
        if proc.returncode != 0:
            return None
        return proc.stdout or ""

    def installed_commit(self, toolchain: str) -> str | None:
        output = self._verbose_version(toolchain)
        if output is None:
            return None
        return _verbose_field(output, "commit-hash")

    def installed_toolchains(self) -> list[str]:
        output = self.runner.read(["rustup", "toolchain", "list"])
        return [line.split(" ")[0] for line in output.splitlines() if line.strip()]

    def toolchain_state(self, toolchain: str) -> ToolchainState:
        return ToolchainState(name=toolchain, commit=self.installed_commit(toolchain))

    def host_triple(self, toolchain: str) -> str:
        output = self._verbose_version(toolchain)
        host = _verbose_field(output or "", "host")
        if host is None:
            raise EnvironmentProbeError(
                f"could not determine the host target of toolchain {toolchain}"
            )
        return host

    def rustc_sysroot(self, toolchain: str) -> Path:
        return Path(self.runner.read(["rustc", f"+{toolchain}", "--print", "sysroot"]))

    def library_dir(self, toolchain: str) -> Path:
        libdir = (
            self.rustc_sysroot(toolchain)
            / "lib"
            / "rustlib"
            / self.host_triple(toolchain)
            / "lib"
        )
        if not libdir.is_dir():
            raise EnvironmentProbeError(
                "Something went wrong determining the library dir. "
                f"I got {libdir} but that does not exist."
            )
        return libdir

    def has_tool(self, name: str) -> bool:
        return self.which(name) is not None

    def upstream_head(self, url: str, branch: str) -> str:
        output = self.runner.read(["git", "ls-remote", url, f"refs/heads/{branch}"])
        commit = output.split()[0] if output else ""
        if not commit:
            raise EnvironmentProbeError(f"could not read {branch} of {url}")
        return commit

    def remote_branch_exists(self, url: str, branch: str) -> bool:
        output = self.runner.read(["git", "ls-remote", "--heads", url, f"refs/heads/{branch}"])
        return bool(output.strip())

    def worktree_clean(self) -> bool:
        output = self.runner.read(["git", "status", "--untracked-files=no", "--porcelain"])
        return not output.strip()

    def head_commit(self) -> str:
        return self.runner.read(["git", "rev-parse", "HEAD"])

    def root_commit_count(self) -> int:
        output = self.runner.read(["git", "rev-list", "HEAD", "--max-parents=0"])
        return len([line for line in output.splitlines() if line.strip()])

    def url_reachable(self, url: str) -> bool:
        try:
            response = self.urlopen(url, timeout=_PROBE_TIMEOUT_SECONDS)
        except urllib.error.HTTPError:
            return True
        except (urllib.error.URLError, OSError):
            return False
        close = getattr(response, "close", None)
        if callable(close):
            close()
        return True


__all__ = ["StateProbe", "ToolchainState"]
