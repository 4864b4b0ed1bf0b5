from __future__ import annotations

import os
from pathlib import Path

from miri_script.config import ScriptConfig, load_config, script_config
from miri_script.context import ScriptContext
from miri_script.runtime.env_policy import ScriptEnv, join_flags, split_flags
from miri_script.runtime.process import ProcessDeps
from tests.process_helpers import env_scope


def test_script_env_snapshot_reads_known_variables() -> None:
    env = ScriptEnv.from_environ(
        {
            "MIRI_SYSROOT": "/tmp/sysroot",
            "CARGO_EXTRA_FLAGS": "--offline  -v",
            "MIRIFLAGS": "-Zmiri-disable-isolation  -Zmiri-env-set=NAME=O'Brien",
            "MIRI_TEST_TARGET": "i686-unknown-linux-gnu",
            "MIRI_AUTO_OPS": "42",
            "RUSTFLAGS": " -Copt-level=1 ",
        }
    )

    assert env.sysroot == "/tmp/sysroot"
    assert env.cargo_extra_flags == ("--offline", "-v")
    assert env.miriflags == ("-Zmiri-disable-isolation", "-Zmiri-env-set=NAME=O'Brien")
    assert env.test_target == "i686-unknown-linux-gnu"
    assert env.auto_ops_running is True
    assert env.rustflags == "-Copt-level=1"
    assert env.inherited["MIRI_AUTO_OPS"] == "42"


def test_blank_variables_count_as_unset() -> None:
    env = ScriptEnv.from_environ({"MIRI_SYSROOT": "  ", "MIRI_AUTO_OPS": ""})

    assert env.sysroot is None
    assert env.auto_ops_running is False
    assert split_flags(None) == ()
    assert join_flags(["-a", "-b"]) == "-a -b"


def test_config_defaults_when_file_missing(tmp_path: Path) -> None:
    assert load_config(root=tmp_path) == {}
    config = script_config(root=tmp_path)
    assert config == ScriptConfig()
    assert config.sync.josh_port == 42042
    assert config.toolchain.name == "miri"
    assert "rustc-dev" in config.toolchain.components


def test_config_sections_override_defaults(tmp_path: Path) -> None:
    (tmp_path / "miri-script.toml").write_text(
        "[sync]\njosh_port = 8000\n\n[bench]\nmin_runs = 2\n",
        encoding="utf-8",
    )

    config = script_config(root=tmp_path)

    assert config.sync.josh_port == 8000
    assert config.sync.upstream_repo == "rust-lang/rust"
    assert config.bench.min_runs == 2


def test_invalid_config_falls_back_to_defaults(tmp_path: Path) -> None:
    broken = tmp_path / "broken.toml"
    broken.write_text("[sync\n", encoding="utf-8")
    assert script_config(config_path=broken) == ScriptConfig()

    mistyped = tmp_path / "mistyped.toml"
    mistyped.write_text("[sync]\njosh_port = 'not a port'\n", encoding="utf-8")
    assert script_config(config_path=mistyped) == ScriptConfig()


def test_child_env_exports_gate_sysroot_and_opt_level(
    make_context, tmp_path: Path
) -> None:
    ctx = make_context({"MIRI_OPT_LEVEL": "2", "HOME": "/home/dev"})

    env = ctx.mark_running().with_sysroot("/built/sysroot").with_env(MIRI_BLESS="x").child_env()

    assert env["HOME"] == "/home/dev"
    assert env["MIRI_AUTO_OPS"] == "42"
    assert env["MIRI_SYSROOT"] == "/built/sysroot"
    assert env["CARGO_PROFILE_DEV_OPT_LEVEL"] == "2"
    assert env["CARGO_TARGET_DIR"] == str(tmp_path / "target")
    assert env["MIRI_BLESS"] == "x"


def test_context_reads_live_environment_when_asked(tmp_path: Path) -> None:
    deps = ProcessDeps(run=lambda *a, **k: None, echo=lambda _message: None)
    with env_scope({"MIRI_SYSROOT": "/from/env", "MIRI_AUTO_OPS": None}):
        ctx = ScriptContext.create(root=tmp_path, environ=os.environ, deps=deps)

    assert ctx.sysroot == "/from/env"
    assert ctx.already_running is False
    assert ctx.cargo("build") == ["cargo", "build"]
    assert ctx.with_toolchain("miri").cargo("build") == ["cargo", "+miri", "build"]


def test_flags_with_stray_quotes_split_on_whitespace() -> None:
    env = ScriptEnv.from_environ(
        {
            "MIRIFLAGS": "-Zmiri-env-set=NAME=O'Brien -Zmiri-seed=1",
            "CARGO_EXTRA_FLAGS": "--config build.target-dir=\"/tmp/it's",
        }
    )

    assert env.miriflags == ("-Zmiri-env-set=NAME=O'Brien", "-Zmiri-seed=1")
    assert env.cargo_extra_flags == ("--config", "build.target-dir=\"/tmp/it's")
    assert join_flags(env.miriflags) == "-Zmiri-env-set=NAME=O'Brien -Zmiri-seed=1"
