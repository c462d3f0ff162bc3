"""Content-addressed render cache.

Entries are keyed by block fingerprint, so identical sources at different
buffer positions (or reappearing after an edit) share one render. Entries are
spread over independently locked shards: the update path and the render
completion callbacks only contend when they touch the same shard.
"""

from __future__ import annotations

import itertools
import logging
import threading
import zlib
from collections.abc import Collection
from dataclasses import dataclass

from texel.errors import RenderError
from texel.types import Bitmap, RenderState

logger = logging.getLogger(__name__)


@dataclass
class RenderEntry:
    fingerprint: str
    state: RenderState = "pending"
    bitmap: Bitmap | None = None
    error: RenderError | None = None
    last_access: int = 0

    @property
    def settled(self) -> bool:
        return self.state in ("ready", "failed")


class _Shard:
    __slots__ = ("lock", "entries")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.entries: dict[str, RenderEntry] = {}


class RenderCache:
    """Fingerprint → RenderEntry map with an LRU bound."""

    def __init__(self, capacity: int = 128, shards: int = 16) -> None:
        if capacity < 1:
            raise ValueError("cache capacity must be positive")
        self.capacity = capacity
        self._shards = [_Shard() for _ in range(max(1, shards))]
        self._clock = itertools.count(1)

    def _shard(self, fingerprint: str) -> _Shard:
        return self._shards[zlib.crc32(fingerprint.encode()) % len(self._shards)]

    def lookup(self, fingerprint: str) -> RenderEntry | None:
        shard = self._shard(fingerprint)
        with shard.lock:
            entry = shard.entries.get(fingerprint)
            if entry is not None:
                entry.last_access = next(self._clock)
            return entry

    def claim(self, fingerprint: str) -> tuple[RenderEntry, bool]:
        """Get the entry for ``fingerprint``, creating it as ``rendering``.

        The second element is True only for the caller that created the
        entry; that caller is responsible for dispatching the render.
        """
        shard = self._shard(fingerprint)
        with shard.lock:
            entry = shard.entries.get(fingerprint)
            created = entry is None
            if entry is None:
                entry = RenderEntry(fingerprint=fingerprint, state="rendering")
                shard.entries[fingerprint] = entry
            entry.last_access = next(self._clock)
            return entry, created

    def store(self, fingerprint: str, outcome: Bitmap | RenderError) -> RenderEntry:
        shard = self._shard(fingerprint)
        with shard.lock:
            entry = shard.entries.get(fingerprint)
            if entry is None:
                entry = RenderEntry(fingerprint=fingerprint)
                shard.entries[fingerprint] = entry
            if isinstance(outcome, RenderError):
                entry.state = "failed"
                entry.bitmap = None
                entry.error = outcome
            else:
                entry.state = "ready"
                entry.bitmap = outcome
                entry.error = None
            entry.last_access = next(self._clock)
            return entry

    def evict_lru_beyond(self, capacity: int | None = None, keep: Collection[str] = ()) -> int:
        """Evict least recently used settled entries until at most ``capacity`` remain.

        Entries still in flight and fingerprints listed in ``keep`` are never
        evicted, so the cache can only exceed ``capacity`` by those.
        """
        limit = self.capacity if capacity is None else capacity
        candidates: list[tuple[int, str]] = []
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.entries)
                candidates.extend(
                    (entry.last_access, fp)
                    for fp, entry in shard.entries.items()
                    if entry.settled and fp not in keep
                )

        excess = total - limit
        if excess <= 0:
            return 0

        evicted = 0
        for _, fp in sorted(candidates)[:excess]:
            shard = self._shard(fp)
            with shard.lock:
                entry = shard.entries.get(fp)
                if entry is not None and entry.settled:
                    del shard.entries[fp]
                    evicted += 1
        if evicted:
            logger.debug("Evicted %d render cache entries (limit %d)", evicted, limit)
        return evicted

    def clear(self) -> int:
        """Drop every settled entry; returns how many in-flight entries remain.

        Entries still rendering are kept: a fingerprint is never claimed again
        while its render is in flight.
        """
        remaining = 0
        for shard in self._shards:
            with shard.lock:
                shard.entries = {fp: e for fp, e in shard.entries.items() if not e.settled}
                remaining += len(shard.entries)
        return remaining

    def __len__(self) -> int:
        return sum(len(shard.entries) for shard in self._shards)

    def __contains__(self, fingerprint: object) -> bool:
        if not isinstance(fingerprint, str):
            return False
        shard = self._shard(fingerprint)
        with shard.lock:
            return fingerprint in shard.entries

    def stats(self) -> dict[str, int]:
        counts = {"pending": 0, "rendering": 0, "ready": 0, "failed": 0}
        for shard in self._shards:
            with shard.lock:
                for entry in shard.entries.values():
                    counts[entry.state] += 1
        return {"items": sum(counts.values()), "capacity": self.capacity, **counts}
