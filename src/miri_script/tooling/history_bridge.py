"""Bidirectional history sync between this subtree and the upstream tree.

Both directions go through a josh proxy, which rewrites the upstream
monorepo's history down to the commits touching this tool's directory.
Every stage announces itself before it runs, so when a step fails the
operator can tell which refs were already moved.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from miri_script.config import SyncSettings
from miri_script.context import VERSION_PIN_NAME, ScriptContext
from miri_script.exceptions import (
    EnvironmentProbeError,
    ExternalToolFailure,
    SyncCollisionError,
    SyncHistoryError,
    SyncRaceError,
    UsageError,
)
from miri_script.tooling.state_probe import StateProbe
from miri_script.tooling.version_pin import read_version_pin, write_version_pin

PREPARING_COMMIT_MESSAGE = "Preparing for merge from rustc"
MERGE_COMMIT_MESSAGE = "Merge from rustc"


class PullOutcome(str, Enum):
    MERGED = "merged"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class PushReceipt:
    base: str
    branch: str
    pr_url: str


@dataclass(frozen=True)
class BridgeUrls:
    settings: SyncSettings

    @property
    def repo_name(self) -> str:
        return self.settings.upstream_repo.rsplit("/", 1)[-1]

    @property
    def upstream(self) -> str:
        return f"{self.settings.github_host}/{self.settings.upstream_repo}"

    @property
    def proxy_root(self) -> str:
        return f"http://localhost:{self.settings.josh_port}/"

    def fork(self, github_user: str) -> str:
        return f"{self.settings.github_host}/{github_user}/{self.repo_name}"

    def filtered_upstream(self, commit: str) -> str:
        return (
            f"{self.proxy_root}{self.settings.upstream_repo}.git"
            f"@{commit}{self.settings.josh_filter}.git"
        )

    def filtered_fork(self, github_user: str) -> str:
        return f"{self.proxy_root}{github_user}/{self.repo_name}.git{self.settings.josh_filter}.git"

    def pull_request(self, github_user: str, branch: str) -> str:
        return (
            f"{self.upstream}/compare/{github_user}:{branch}"
            "?quick_pull=1&title=Miri+subtree+update"
        )


@dataclass(frozen=True)
class HistoryBridge:
    ctx: ScriptContext
    probe: StateProbe

    @property
    def urls(self) -> BridgeUrls:
        return BridgeUrls(settings=self.ctx.config.sync)

    def _preflight(self) -> None:
        if not self.probe.worktree_clean():
            raise UsageError("working directory must be clean before syncing with upstream")
        if not self.probe.url_reachable(self.urls.proxy_root):
            raise EnvironmentProbeError(
                f"josh-proxy is not reachable at {self.urls.proxy_root}; "
                f"start it with `josh-proxy --local=$HOME/.cache/josh "
                f"--remote=https://github.com --no-background "
                f"--port={self.ctx.config.sync.josh_port}`"
            )

    def pull(self) -> PullOutcome:
        runner = self.ctx.runner
        urls = self.urls
        branch = self.ctx.config.sync.upstream_branch
        self._preflight()

        fetch_commit = self.probe.upstream_head(urls.upstream, branch)
        self.ctx.say(f"Fetching upstream commit {fetch_commit} through josh...")
        runner.run(["git", "fetch", urls.filtered_upstream(fetch_commit)])
        current = self.probe.upstream_head(urls.upstream, branch)
        if current != fetch_commit:
            raise SyncRaceError(
                f"upstream {branch} moved from {fetch_commit} to {current} during the fetch; "
                "please run rustc-pull again"
            )
        fetched = runner.read(["git", "rev-parse", "FETCH_HEAD"])

        base = self.probe.head_commit()
        roots_before = self.probe.root_commit_count()
        # Committed before merging so a failed merge still records what was fetched.
        write_version_pin(self.ctx.version_pin_path, fetch_commit)
        runner.run(
            [
                "git",
                "commit",
                VERSION_PIN_NAME,
                "--no-verify",
                "-m",
                PREPARING_COMMIT_MESSAGE,
            ]
        )
        self.ctx.say(f"Recorded {fetch_commit} in {VERSION_PIN_NAME}; merging...")
        pin_commit = self.probe.head_commit()
        try:
            runner.run(
                [
                    "git",
                    "merge",
                    fetched,
                    "--no-verify",
                    "--no-ff",
                    "-m",
                    MERGE_COMMIT_MESSAGE,
                ]
            )
        except ExternalToolFailure:
            self.ctx.say(
                "Merge failed; resolve the conflicts manually and commit. "
                f"The pre-pull state was {base}."
            )
            raise

        if self.probe.head_commit() == pin_commit:
            runner.run(["git", "reset", "--hard", base])
            self.ctx.say("Upstream has no new changes for this subtree; nothing merged.")
            return PullOutcome.UNCHANGED
        if self.probe.root_commit_count() != roots_before:
            raise SyncHistoryError(
                "Josh created a new root commit. This is probably not the history you want. "
                f"Reset with `git reset --hard {base}`."
            )

        # Fold the pin commit into the merge: one merge commit on top of base.
        tree = runner.read(["git", "rev-parse", "HEAD^{tree}"])
        folded = runner.read(
            [
                "git",
                "commit-tree",
                tree,
                "-p",
                base,
                "-p",
                fetched,
                "-m",
                MERGE_COMMIT_MESSAGE,
            ]
        )
        runner.run(["git", "reset", "--soft", folded])
        self.ctx.say(f"Merged upstream {fetch_commit} as {folded}.")
        return PullOutcome.MERGED

    def push(self, github_user: str, branch: str) -> PushReceipt:
        if not github_user.strip() or not branch.strip():
            raise UsageError("rustc-push requires a GitHub user and a branch name")
        runner = self.ctx.runner
        urls = self.urls
        self._preflight()

        base = read_version_pin(self.ctx.version_pin_path)
        fork = urls.fork(github_user)
        if self.probe.remote_branch_exists(fork, branch):
            raise SyncCollisionError(
                f"The branch '{branch}' seems to already exist in '{fork}'. "
                "Please delete it and try again."
            )

        clone = Path(self.ctx.env.rustc_git) if self.ctx.env.rustc_git else self.ctx.root
        self.ctx.say(f"Preparing {fork} (base: {base})...")
        runner.run(["git", "fetch", urls.upstream, base], cwd=clone)
        runner.run(["git", "push", fork, f"{base}:refs/heads/{branch}", "-f"], cwd=clone)
        self.ctx.say(f"Branch {branch} on {fork} now points at {base}.")

        self.ctx.say("Pushing subtree changes through josh...")
        runner.run(["git", "push", urls.filtered_fork(github_user), f"HEAD:{branch}"])

        self.ctx.say("Confirming the push round-trips...")
        runner.run(["git", "fetch", urls.filtered_fork(github_user), branch])
        head = self.probe.head_commit()
        fetched = runner.read(["git", "rev-parse", "FETCH_HEAD"])
        if head != fetched:
            raise SyncHistoryError(
                f"Josh created a non-roundtrip push! Do NOT merge this into {urls.repo_name}!\n"
                f"Expected {head}, got {fetched}."
            )
        pr_url = urls.pull_request(github_user, branch)
        self.ctx.say(
            "Confirmed that the push round-trips back to this subtree properly. "
            f"Please create a PR:\n    {pr_url}"
        )
        return PushReceipt(base=base, branch=branch, pr_url=pr_url)


def bridge_for(ctx: ScriptContext, *, probe: StateProbe | None = None) -> HistoryBridge:
    return HistoryBridge(ctx=ctx, probe=probe or StateProbe(runner=ctx.runner))


__all__ = [
    "BridgeUrls",
    "HistoryBridge",
    "MERGE_COMMIT_MESSAGE",
    "PREPARING_COMMIT_MESSAGE",
    "PullOutcome",
    "PushReceipt",
    "bridge_for",
]
