from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

MIRI_SYSROOT_ENV = "MIRI_SYSROOT"
CARGO_EXTRA_FLAGS_ENV = "CARGO_EXTRA_FLAGS"
MIRIFLAGS_ENV = "MIRIFLAGS"
MIRI_TEST_TARGET_ENV = "MIRI_TEST_TARGET"
MIRI_AUTO_OPS_ENV = "MIRI_AUTO_OPS"
CARGO_TARGET_DIR_ENV = "CARGO_TARGET_DIR"
MIRI_OPT_LEVEL_ENV = "MIRI_OPT_LEVEL"
RUSTC_GIT_ENV = "RUSTC_GIT"
RUSTFLAGS_ENV = "RUSTFLAGS"
MIRI_BLESS_ENV = "MIRI_BLESS"
CARGO_OPT_LEVEL_ENV = "CARGO_PROFILE_DEV_OPT_LEVEL"

AUTO_OPS_SENTINEL = "42"
BLESS_VALUE = "Gesundheit"


def env_text(environ: Mapping[str, str], name: str, *, default: str = "") -> str:
    return environ.get(name, default).strip()


def env_optional(environ: Mapping[str, str], name: str) -> str | None:
    text = env_text(environ, name)
    return text or None


def split_flags(text: str | None) -> tuple[str, ...]:
    if not text:
        return ()
    # Whitespace-separated; quotes are not interpreted.
    return tuple(text.split())


def join_flags(flags: tuple[str, ...] | list[str]) -> str:
    return " ".join(flags)


@dataclass(frozen=True)
class ScriptEnv:
    """Snapshot of the environment variables miri-script consumes.

    Taken once at startup; components read this instead of ``os.environ``.
    ``inherited`` is the full parent environment handed to child processes.
    """

    sysroot: str | None = None
    cargo_extra_flags: tuple[str, ...] = ()
    miriflags: tuple[str, ...] = ()
    test_target: str | None = None
    auto_ops_running: bool = False
    target_dir: str | None = None
    opt_level: str | None = None
    rustc_git: str | None = None
    rustflags: str = ""
    inherited: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_environ(cls, environ: Mapping[str, str]) -> "ScriptEnv":
        return cls(
            sysroot=env_optional(environ, MIRI_SYSROOT_ENV),
            cargo_extra_flags=split_flags(env_optional(environ, CARGO_EXTRA_FLAGS_ENV)),
            miriflags=split_flags(env_optional(environ, MIRIFLAGS_ENV)),
            test_target=env_optional(environ, MIRI_TEST_TARGET_ENV),
            # Any non-empty value counts; the sentinel content is not checked.
            auto_ops_running=bool(env_text(environ, MIRI_AUTO_OPS_ENV)),
            target_dir=env_optional(environ, CARGO_TARGET_DIR_ENV),
            opt_level=env_optional(environ, MIRI_OPT_LEVEL_ENV),
            rustc_git=env_optional(environ, RUSTC_GIT_ENV),
            rustflags=env_text(environ, RUSTFLAGS_ENV),
            inherited=dict(environ),
        )


__all__ = [
    "AUTO_OPS_SENTINEL",
    "BLESS_VALUE",
    "CARGO_EXTRA_FLAGS_ENV",
    "CARGO_OPT_LEVEL_ENV",
    "CARGO_TARGET_DIR_ENV",
    "MIRIFLAGS_ENV",
    "MIRI_AUTO_OPS_ENV",
    "MIRI_BLESS_ENV",
    "MIRI_OPT_LEVEL_ENV",
    "MIRI_SYSROOT_ENV",
    "MIRI_TEST_TARGET_ENV",
    "RUSTC_GIT_ENV",
    "RUSTFLAGS_ENV",
    "ScriptEnv",
    "env_optional",
    "env_text",
    "join_flags",
    "split_flags",
]
