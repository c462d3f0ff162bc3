"""Incremental draw loop.

The host calls :meth:`DrawScheduler.start_draw` repeatedly on a short timer.
Each call writes at most one tick's byte budget and reports whether more
work remains. The work list is rebuilt from scratch whenever the engine
snapshot changes or renders complete, so a stale plan never writes to old
screen positions.
"""

from __future__ import annotations

import logging
from collections import OrderedDict, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

from texel.cache import RenderCache
from texel.layout import layout
from texel.pipeline import RenderPipeline
from texel.sixel import SixelEncoder, SixelPlan
from texel.state import EngineState, Snapshot
from texel.types import Bitmap, Block, Notice, ScreenRect

logger = logging.getLogger(__name__)

SchedulerState = Literal["idle", "drawing"]

Writer = Callable[[bytes], None]


@dataclass
class DrawTick:
    continue_: bool = False
    messages: list[Notice] = field(default_factory=list)
    bytes_written: int = 0


@dataclass
class _BlockWork:
    block: Block
    rect: ScreenRect
    bitmap: Bitmap


@dataclass
class _ChunkWork:
    key: tuple[str, ScreenRect, int]
    rect: ScreenRect
    plan: SixelPlan
    index: int


class EncodedCache:
    """Small LRU of sixel plans keyed by fingerprint and rectangle."""

    def __init__(self, max_items: int = 64) -> None:
        self.max_items = max(1, max_items)
        self._store: OrderedDict[tuple[str, ScreenRect], SixelPlan] = OrderedDict()

    def get(self, key: tuple[str, ScreenRect]) -> SixelPlan | None:
        item = self._store.get(key)
        if item is not None:
            self._store.move_to_end(key, last=True)
        return item

    def put(self, key: tuple[str, ScreenRect], value: SixelPlan) -> None:
        self._store[key] = value
        self._store.move_to_end(key, last=True)
        while len(self._store) > self.max_items:
            self._store.popitem(last=False)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


class DrawScheduler:
    def __init__(
        self,
        state: EngineState,
        cache: RenderCache,
        pipeline: RenderPipeline,
        encoder: SixelEncoder,
        write: Writer,
        *,
        tick_budget_bytes: int = 64 * 1024,
        encoded_cache_size: int = 64,
        hide_under_cursor: bool = False,
    ) -> None:
        self.state = state
        self.cache = cache
        self.pipeline = pipeline
        self.encoder = encoder
        self.write = write
        self.tick_budget_bytes = tick_budget_bytes
        self.hide_under_cursor = hide_under_cursor
        self.encoded = EncodedCache(encoded_cache_size)

        self.status: SchedulerState = "idle"
        self._queue: deque[_BlockWork | _ChunkWork] = deque()
        self._waiting: list[str] = []
        self._plan_key: tuple[int, int] | None = None
        self._drawn_version: int | None = None
        self._drawn: set[tuple[str, ScreenRect, int]] = set()
        self._drawn_rects: dict[ScreenRect, None] = {}

    # --- public API ---

    def start_draw(self) -> DrawTick:
        """Write the next increment of graphics and say whether to call again."""
        snapshot = self.state.snapshot
        tick = DrawTick()

        plan_key = (snapshot.version, self.pipeline.completions)
        if self._plan_key != plan_key:
            tick.messages.extend(self._build_plan(snapshot))
            self._plan_key = plan_key
        self.status = "drawing"

        while self._queue and (tick.bytes_written == 0 or tick.bytes_written < self.tick_budget_bytes):
            item = self._queue.popleft()
            if isinstance(item, _BlockWork):
                plan = self._plan(item)
                if plan.warning:
                    tick.messages.append(
                        Notice(line=item.block.line_range.start, message=plan.warning, severity="warning")
                    )
                units = [
                    _ChunkWork(key=(item.block.fingerprint, item.rect, index), rect=item.rect, plan=plan, index=index)
                    for index in range(len(plan))
                ]
                self._queue.extendleft(reversed(units))
                continue
            if item.key in self._drawn:
                continue
            data = self.encoder.encode_span(item.plan, item.index)
            self.write(data)
            self._drawn.add(item.key)
            self._drawn_rects[item.rect] = None
            tick.bytes_written += len(data)

        self._waiting = [fp for fp in self._waiting if self._unsettled(fp)]
        tick.continue_ = bool(self._queue) or bool(self._waiting)
        if not tick.continue_:
            self.status = "idle"
        logger.debug(
            "Draw tick wrote %d bytes, %d units queued, %d renders waiting",
            tick.bytes_written,
            len(self._queue),
            len(self._waiting),
        )
        return tick

    def invalidate(self) -> None:
        """Drop the current work list; the next tick plans from scratch."""
        self._queue.clear()
        self._waiting = []
        self._plan_key = None
        self.status = "idle"

    def erase_all(self) -> bytes:
        """Erase sequence for every rectangle drawn so far; resets to idle."""
        data = b"".join(self.encoder.erase(rect) for rect in self._drawn_rects)
        self._drawn_rects.clear()
        self._drawn.clear()
        self._drawn_version = None
        self.encoded.clear()
        self.invalidate()
        return data

    @property
    def drawn_rects(self) -> list[ScreenRect]:
        return list(self._drawn_rects)

    # --- internals ---

    def _unsettled(self, fp: str) -> bool:
        entry = self.cache.lookup(fp)
        return entry is not None and not entry.settled

    def _build_plan(self, snapshot: Snapshot) -> list[Notice]:
        if self._drawn_version != snapshot.version:
            # positions may have moved: everything gets written again
            self._drawn.clear()
            self._drawn_rects.clear()
            self._drawn_version = snapshot.version

        self._queue.clear()
        self._waiting = []
        messages: list[Notice] = []
        placed = layout(
            snapshot.blocks,
            snapshot.metadata,
            snapshot.folds,
            hide_under_cursor=self.hide_under_cursor,
        )
        for block, rect in placed:
            entry = self.cache.lookup(block.fingerprint)
            if entry is None or not entry.settled:
                self._waiting.append(block.fingerprint)
            elif entry.state == "failed":
                if entry.error is not None:
                    messages.append(Notice(line=block.line_range.start, message=entry.error.display()))
            elif entry.bitmap is not None:
                self._queue.append(_BlockWork(block=block, rect=rect, bitmap=entry.bitmap))
        logger.debug(
            "Planned draw for version %d: %d blocks visible, %d ready",
            snapshot.version,
            len(placed),
            len(self._queue),
        )
        return messages

    def _plan(self, item: _BlockWork) -> SixelPlan:
        key = (item.block.fingerprint, item.rect)
        plan = self.encoded.get(key)
        if plan is None:
            plan = self.encoder.plan(item.bitmap, item.rect)
            self.encoded.put(key, plan)
        return plan
