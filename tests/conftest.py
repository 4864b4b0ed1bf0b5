from __future__ import annotations

import sys
from pathlib import Path
from typing import Mapping

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT, ROOT / "src"):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import pytest

from miri_script.config import ScriptConfig
from miri_script.context import ScriptContext
from miri_script.runtime.process import ProcessDeps
from tests.process_helpers import FakeRun


@pytest.fixture
def fake_run() -> FakeRun:
    return FakeRun()


@pytest.fixture
def messages() -> list[str]:
    return []


@pytest.fixture
def process_deps(fake_run: FakeRun, messages: list[str]) -> ProcessDeps:
    return ProcessDeps(run=fake_run, echo=messages.append, trace=lambda _message: None)


@pytest.fixture
def make_context(tmp_path: Path, process_deps: ProcessDeps):
    def _make(
        environ: Mapping[str, str] | None = None,
        *,
        root: Path | None = None,
        config: ScriptConfig | None = None,
    ) -> ScriptContext:
        return ScriptContext.create(
            root=root or tmp_path,
            environ=dict(environ or {}),
            deps=process_deps,
            config=config,
        )

    return _make
