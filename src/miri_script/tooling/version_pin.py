from __future__ import annotations

from pathlib import Path

from miri_script.exceptions import EnvironmentProbeError


def read_version_pin(path: Path) -> str:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise EnvironmentProbeError(f"version pin file not found: {path}") from exc
    commit = text.strip()
    if not commit or len(commit.split()) != 1:
        raise EnvironmentProbeError(
            f"version pin file must hold exactly one commit id: {path}"
        )
    return commit


def write_version_pin(path: Path, commit: str) -> None:
    path.write_text(f"{commit.strip()}\n", encoding="utf-8")


__all__ = ["read_version_pin", "write_version_pin"]
