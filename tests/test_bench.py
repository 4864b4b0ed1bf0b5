from __future__ import annotations

import shlex
from pathlib import Path

import pytest

from miri_script.exceptions import EnvironmentProbeError, UsageError
from miri_script.tooling.bench import BenchRunner
from tests.process_helpers import FakeRun


def _make_benches(root: Path, *names: str) -> None:
    bench_dir = root / "bench-cargo-miri"
    for name in names:
        (bench_dir / name).mkdir(parents=True)
    (bench_dir / "README.md").write_text("benchmarks\n", encoding="utf-8")


def test_bench_runs_every_benchmark_once_in_order(
    make_context, fake_run: FakeRun, tmp_path: Path
) -> None:
    _make_benches(tmp_path, "zip-equal", "backtraces", "slice-get-unchecked")
    ctx = make_context().with_toolchain("miri")

    ran = BenchRunner(ctx=ctx).run()

    assert ran == ["backtraces", "slice-get-unchecked", "zip-equal"]
    assert [call.argv[0] for call in fake_run.calls] == ["hyperfine"] * 3
    first = fake_run.calls[0].argv
    assert first[:6] == ["hyperfine", "-w", "1", "-m", "5", "--shell=none"]
    manifest = tmp_path / "bench-cargo-miri" / "backtraces" / "Cargo.toml"
    assert shlex.split(first[6]) == [
        "cargo",
        "+miri",
        "miri",
        "run",
        "--manifest-path",
        str(manifest),
    ]


def test_bench_selects_named_benchmarks(make_context, fake_run: FakeRun, tmp_path: Path) -> None:
    _make_benches(tmp_path, "a", "b", "c")

    ran = BenchRunner(ctx=make_context()).run(["c", "a"])

    assert ran == ["c", "a"]
    assert len(fake_run.calls) == 2


def test_unknown_benchmark_is_rejected_before_running(
    make_context, fake_run: FakeRun, tmp_path: Path
) -> None:
    _make_benches(tmp_path, "a")

    with pytest.raises(UsageError):
        BenchRunner(ctx=make_context()).run(["a", "nope"])

    assert fake_run.calls == []


def test_missing_bench_directory_is_an_environment_problem(make_context) -> None:
    with pytest.raises(EnvironmentProbeError):
        BenchRunner(ctx=make_context()).discover()
