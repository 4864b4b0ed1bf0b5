from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import shlex
from typing import Sequence

from miri_script.context import ScriptContext
from miri_script.exceptions import EnvironmentProbeError, UsageError


@dataclass(frozen=True)
class BenchRunner:
    """Times benchmark crates with hyperfine, one after another.

    hyperfine needs the machine to itself for stable numbers, so the
    benchmarks never run concurrently.
    """

    ctx: ScriptContext

    @property
    def bench_dir(self) -> Path:
        return self.ctx.root / self.ctx.config.bench.directory

    def discover(self) -> list[str]:
        if not self.bench_dir.is_dir():
            raise EnvironmentProbeError(f"benchmark directory not found: {self.bench_dir}")
        return sorted(path.name for path in self.bench_dir.iterdir() if path.is_dir())

    def command(self, name: str) -> list[str]:
        manifest = self.bench_dir / name / "Cargo.toml"
        settings = self.ctx.config.bench
        inner = self.ctx.cargo("miri", "run", "--manifest-path", str(manifest))
        return [
            "hyperfine",
            "-w",
            str(settings.warmup),
            "-m",
            str(settings.min_runs),
            "--shell=none",
            shlex.join(inner),
        ]

    def run(self, names: Sequence[str] = ()) -> list[str]:
        selected = list(names) or self.discover()
        unknown = [name for name in selected if not (self.bench_dir / name).is_dir()]
        if unknown:
            raise UsageError(f"unknown benchmark(s): {', '.join(unknown)}")
        runner = self.ctx.runner
        for name in selected:
            self.ctx.say(f"Benchmarking {name}...")
            runner.run(self.command(name))
        return selected


__all__ = ["BenchRunner"]
