from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from miri_script.context import ScriptContext
from miri_script.exceptions import UsageError, tool_exit_code
from miri_script.runtime.env_policy import MIRIFLAGS_ENV, join_flags

SEED_UPPER_BOUND = 255


def seed_flag(seed: int) -> str:
    return f"-Zmiri-seed={seed:x}"


@dataclass(frozen=True)
class SweepOutcome:
    passed: bool
    attempts: int
    failed_seed: str | None = None
    returncode: int = 0

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else tool_exit_code(self.returncode)


@dataclass(frozen=True)
class SeedSweeper:
    ctx: ScriptContext
    upper_bound: int = SEED_UPPER_BOUND

    def sweep(self, base_flags: Sequence[str], command: Sequence[str]) -> SweepOutcome:
        if not command:
            raise UsageError("many-seeds requires a command to run")
        attempts = 0
        for seed in range(self.upper_bound + 1):
            attempts += 1
            # Each run gets the base flags plus only the current seed.
            flags = [*base_flags, seed_flag(seed)]
            runner = self.ctx.runner.with_env({MIRIFLAGS_ENV: join_flags(flags)})
            self.ctx.say(f"Trying seed: {seed:x}")
            returncode = runner.status(command)
            if returncode != 0:
                self.ctx.say(f"Failing seed: {seed:x}")
                return SweepOutcome(
                    passed=False,
                    attempts=attempts,
                    failed_seed=f"{seed:x}",
                    returncode=returncode,
                )
        return SweepOutcome(passed=True, attempts=attempts)


__all__ = ["SEED_UPPER_BOUND", "SeedSweeper", "SweepOutcome", "seed_flag"]
