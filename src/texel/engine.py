"""Host-facing engine: the five calls an editor makes.

The host reports viewport changes, buffer contents and folds, then calls
:meth:`Engine.draw` on a short interval until it returns ``continue_=False``.
Every call returns quickly; renders happen on worker threads.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from texel.cache import RenderCache
from texel.config import EngineConfig
from texel.pipeline import RenderPipeline
from texel.renderers import ExternalRenderer, RenderSource
from texel.scanner import scan_document
from texel.scheduler import DrawScheduler, Writer
from texel.sixel import SixelEncoder
from texel.state import EngineState
from texel.types import FoldEntry, Notice, ViewportMetadata, normalize_folds

logger = logging.getLogger(__name__)


@dataclass
class ContentUpdate:
    should_redraw: bool = False
    update_folding: list[int] | None = None
    errors: list[Notice] = field(default_factory=list)


@dataclass
class DrawOk:
    continue_: bool = False
    messages: list[Notice] = field(default_factory=list)


@dataclass
class DrawErr:
    message: str


DrawOutcome = DrawOk | DrawErr


def _stdout_writer(data: bytes) -> None:
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()


class Engine:
    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        render_source: RenderSource | None = None,
        write: Writer | None = None,
        base_dir: str | Path | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.base_dir = Path(base_dir) if base_dir is not None else None
        self.write = write or _stdout_writer

        self.state = EngineState()
        self.cache = RenderCache(self.config.cache_capacity, shards=self.config.cache_shards)
        self.pipeline = RenderPipeline(
            self.cache,
            render_source or ExternalRenderer.from_config(self.config),
            workers=self.config.render_workers,
        )
        self.encoder = SixelEncoder.from_config(self.config)
        self.scheduler = DrawScheduler(
            self.state,
            self.cache,
            self.pipeline,
            self.encoder,
            self.write,
            tick_budget_bytes=self.config.tick_budget_bytes,
            encoded_cache_size=self.config.encoded_cache_size,
            hide_under_cursor=self.config.hide_under_cursor,
        )

    # --- host calls ---

    def update_metadata(self, metadata: ViewportMetadata) -> bool:
        """Replace the viewport; True when it differs from the previous one."""
        if metadata == self.state.snapshot.metadata:
            return False
        self.state.replace(metadata=metadata)
        return True

    def update_content(self, text: str) -> ContentUpdate:
        result = scan_document(text, self.base_dir)
        blocks = tuple(result.blocks)
        changed = blocks != self.state.snapshot.blocks
        if changed:
            self.state.replace(blocks=blocks)
        delta = self.pipeline.update(blocks, result.headers)
        return ContentUpdate(
            should_redraw=delta.should_redraw or changed,
            update_folding=delta.blocks_needing_fold_recompute,
            errors=delta.errors,
        )

    def set_folds(self, folds: Iterable[FoldEntry | Sequence[int]]) -> bool:
        entries = [
            fold if isinstance(fold, FoldEntry) else FoldEntry(int(fold[0]), int(fold[1]))
            for fold in folds
        ]
        normalized = normalize_folds(entries)
        if normalized == self.state.snapshot.folds:
            return False
        self.state.replace(folds=normalized)
        return True

    def draw(self) -> DrawOutcome:
        try:
            tick = self.scheduler.start_draw()
        except OSError as exc:
            logger.warning("Writing graphics failed: %s", exc)
            self.scheduler.invalidate()
            return DrawErr(message=f"Writing graphics failed: {exc}")
        return DrawOk(continue_=tick.continue_, messages=tick.messages)

    def clear_all(self) -> None:
        """Erase drawn graphics and forget every block, fold and finished render."""
        erase = self.scheduler.erase_all()
        self.state.reset()
        self.cache.clear()
        self.pipeline.reset()
        if erase:
            try:
                self.write(erase)
            except OSError as exc:
                logger.warning("Erasing graphics failed: %s", exc)

    # --- extras ---

    def set_base_dir(self, base_dir: str | Path | None) -> None:
        self.base_dir = Path(base_dir) if base_dir is not None else None

    def close(self) -> None:
        self.pipeline.shutdown(wait=False)

    def __enter__(self) -> Engine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


async def run_draw_loop(engine: Engine, *, interval: float = 0.05, max_ticks: int | None = None) -> list[Notice]:
    """Call ``engine.draw`` every ``interval`` seconds until it reports completion.

    Returns the messages collected along the way. Stops early on a draw
    error, which is appended as a notice on line 0.
    """
    messages: list[Notice] = []
    ticks = 0
    while max_ticks is None or ticks < max_ticks:
        outcome = engine.draw()
        ticks += 1
        if isinstance(outcome, DrawErr):
            messages.append(Notice(line=0, message=outcome.message))
            break
        messages.extend(outcome.messages)
        if not outcome.continue_:
            break
        await asyncio.sleep(interval)
    return messages
