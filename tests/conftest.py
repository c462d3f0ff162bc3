"""Shared fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from texel.engine import Engine

from .fakes import MemoryTerminal, StubRenderer, small_config


@pytest.fixture
def renderer() -> StubRenderer:
    return StubRenderer()


@pytest.fixture
def terminal() -> MemoryTerminal:
    return MemoryTerminal()


@pytest.fixture
def engine(tmp_path: Path, renderer: StubRenderer, terminal: MemoryTerminal) -> Engine:
    eng = Engine(small_config(tmp_path), render_source=renderer, write=terminal)
    yield eng
    eng.close()
