"""Versioned engine state.

The engine never mutates state in place. Each update builds a new
``Snapshot`` and swaps it in, so a draw tick always sees blocks, metadata and
folds that belong together.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from typing import Any

from texel.types import Block, FoldEntry, ViewportMetadata


@dataclass(frozen=True)
class Snapshot:
    version: int = 0
    blocks: tuple[Block, ...] = ()
    metadata: ViewportMetadata = field(default_factory=ViewportMetadata.initial)
    folds: tuple[FoldEntry, ...] = ()


class EngineState:
    """Holder of the current snapshot."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = Snapshot()

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def replace(self, **changes: Any) -> Snapshot:
        """Install a copy of the current snapshot with ``changes`` applied."""
        with self._lock:
            current = self._snapshot
            self._snapshot = replace(current, version=current.version + 1, **changes)
            return self._snapshot

    def reset(self) -> Snapshot:
        """Drop everything; the version keeps increasing so old work is recognizably stale."""
        with self._lock:
            self._snapshot = Snapshot(version=self._snapshot.version + 1)
            return self._snapshot
