"""Keep a bitmap in the render cache for every block.

Renders run on a thread pool so content updates return immediately. A
render that is already in flight for a fingerprint is never dispatched a
second time, and renders are never cancelled: if the block disappears the
result is cached anyway and simply ages out of the LRU.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from texel.cache import RenderCache
from texel.errors import RenderError
from texel.renderers import RenderSource
from texel.types import Block, Notice

logger = logging.getLogger(__name__)


@dataclass
class PipelineDelta:
    should_redraw: bool = False
    blocks_needing_fold_recompute: list[int] | None = None
    errors: list[Notice] = field(default_factory=list)


class RenderPipeline:
    def __init__(
        self,
        cache: RenderCache,
        render_source: RenderSource,
        *,
        workers: int = 2,
        executor: concurrent.futures.Executor | None = None,
        on_complete: Callable[[str], None] | None = None,
    ) -> None:
        self.cache = cache
        self.render_source = render_source
        self.on_complete = on_complete
        self._executor = executor or concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, workers), thread_name_prefix="texel-render"
        )
        self._lock = threading.Lock()
        self._completions = 0
        self._seen_completions = 0
        self._futures: set[concurrent.futures.Future[None]] = set()
        self._signature: tuple[tuple[str, int, int], ...] = ()
        self._headers: list[int] | None = None

    def update(self, blocks: Sequence[Block], headers: list[int] | None = None) -> PipelineDelta:
        """Make sure every block has a cache entry and report what changed."""
        signature = tuple((b.fingerprint, b.line_range.start, b.line_range.end) for b in blocks)
        blocks_changed = signature != self._signature
        self._signature = signature

        for block in blocks:
            _, created = self.cache.claim(block.fingerprint)
            if created:
                self._dispatch(block)

        delta = PipelineDelta(should_redraw=self.poll() or blocks_changed)

        if headers is not None and headers != self._headers:
            delta.blocks_needing_fold_recompute = list(headers)
            self._headers = list(headers)

        delta.errors = self.errors(blocks)
        self.cache.evict_lru_beyond(keep={b.fingerprint for b in blocks})
        return delta

    def errors(self, blocks: Sequence[Block]) -> list[Notice]:
        notices = []
        for block in blocks:
            entry = self.cache.lookup(block.fingerprint)
            if entry is not None and entry.state == "failed" and entry.error is not None:
                notices.append(Notice(line=block.line_range.start, message=entry.error.display()))
        return notices

    def poll(self) -> bool:
        """True when renders have completed since the previous call."""
        with self._lock:
            completed = self._completions != self._seen_completions
            self._seen_completions = self._completions
            return completed

    @property
    def completions(self) -> int:
        with self._lock:
            return self._completions

    def pending(self, blocks: Sequence[Block]) -> int:
        """Number of blocks whose render has not finished yet."""
        count = 0
        for block in blocks:
            entry = self.cache.lookup(block.fingerprint)
            if entry is not None and not entry.settled:
                count += 1
        return count

    def wait(self, timeout: float | None = None) -> bool:
        """Block until every dispatched render has finished. Used by tests and the CLI."""
        with self._lock:
            futures = set(self._futures)
        if not futures:
            return True
        _, not_done = concurrent.futures.wait(futures, timeout=timeout)
        return not not_done

    def reset(self) -> None:
        """Forget the previous block set and headers, e.g. after a clear."""
        self._signature = ()
        self._headers = None
        self.poll()

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)

    # --- internals ---

    def _dispatch(self, block: Block) -> None:
        logger.debug("Dispatching %s render for %s", block.kind, block.fingerprint)
        try:
            future = self._executor.submit(self._render, block)
        except RuntimeError as exc:
            self.cache.store(block.fingerprint, RenderError(f"Renderer unavailable: {exc}"))
            return
        with self._lock:
            self._futures.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: concurrent.futures.Future[None]) -> None:
        with self._lock:
            self._futures.discard(future)

    def _render(self, block: Block) -> None:
        try:
            outcome = self.render_source(block.kind, block.source, path=block.path)
        except RenderError as exc:
            logger.warning("Render failed for %s at line %d: %s", block.kind, block.line_range.start, exc.display())
            outcome = exc
        except Exception as exc:
            logger.exception("Renderer crashed for %s", block.fingerprint)
            outcome = RenderError(str(exc) or type(exc).__name__)

        self.cache.store(block.fingerprint, outcome)
        with self._lock:
            self._completions += 1
        if self.on_complete is not None:
            self.on_complete(block.fingerprint)
