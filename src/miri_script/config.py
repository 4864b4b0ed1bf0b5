from __future__ import annotations

from datetime import date, datetime, time
from pathlib import Path
from typing import List, TypeAlias
import tomllib

from pydantic import BaseModel, ValidationError

DEFAULT_CONFIG_NAME = "miri-script.toml"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]

DEFAULT_TOOLCHAIN_COMPONENTS: tuple[str, ...] = (
    "cargo",
    "rust-src",
    "rustc-dev",
    "llvm-tools",
    "rustfmt",
    "clippy",
)


class SyncSettings(BaseModel):
    upstream_repo: str = "rust-lang/rust"
    upstream_branch: str = "master"
    github_host: str = "https://github.com"
    josh_port: int = 42042
    josh_filter: str = ":/src/tools/miri"


class ToolchainSettings(BaseModel):
    name: str = "miri"
    components: List[str] = list(DEFAULT_TOOLCHAIN_COMPONENTS)


class BenchSettings(BaseModel):
    directory: str = "bench-cargo-miri"
    warmup: int = 1
    min_runs: int = 5


class ScriptConfig(BaseModel):
    sync: SyncSettings = SyncSettings()
    toolchain: ToolchainSettings = ToolchainSettings()
    bench: BenchSettings = BenchSettings()


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def _section(data: TomlTable, name: str) -> TomlTable:
    section = data.get(name, {})
    return section if isinstance(section, dict) else {}


def script_config(root: Path | None = None, config_path: Path | None = None) -> ScriptConfig:
    data = load_config(root=root, config_path=config_path)
    payload = {
        name: _section(data, name)
        for name in ("sync", "toolchain", "bench")
    }
    try:
        return ScriptConfig.model_validate(payload)
    except ValidationError:
        return ScriptConfig()
