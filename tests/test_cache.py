"""Tests for texel.cache."""

from __future__ import annotations

import threading

import pytest
from PIL import Image

from texel.cache import RenderCache
from texel.errors import RenderError
from texel.types import Bitmap


def _bitmap() -> Bitmap:
    return Bitmap(Image.new("L", (2, 2)))


def _ready(cache: RenderCache, *fps: str) -> None:
    for fp in fps:
        cache.claim(fp)
        cache.store(fp, _bitmap())


class TestClaim:
    def test_first_claim_creates(self) -> None:
        cache = RenderCache()
        entry, created = cache.claim("a")
        assert created is True
        assert entry.state == "rendering"
        assert not entry.settled

    def test_second_claim_does_not(self) -> None:
        cache = RenderCache()
        cache.claim("a")
        entry, created = cache.claim("a")
        assert created is False
        assert entry.state == "rendering"

    def test_failed_entry_is_not_reclaimed(self) -> None:
        cache = RenderCache()
        cache.claim("a")
        cache.store("a", RenderError("boom"))
        entry, created = cache.claim("a")
        assert created is False
        assert entry.state == "failed"
        assert entry.error is not None and entry.error.message == "boom"

    def test_concurrent_claims_create_once(self) -> None:
        cache = RenderCache(shards=4)
        results: list[bool] = []
        lock = threading.Lock()
        barrier = threading.Barrier(16)

        def worker() -> None:
            barrier.wait()
            _, created = cache.claim("shared")
            with lock:
                results.append(created)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results.count(True) == 1
        assert len(cache) == 1


class TestStore:
    def test_ready(self) -> None:
        cache = RenderCache()
        cache.claim("a")
        cache.store("a", _bitmap())
        entry = cache.lookup("a")
        assert entry is not None
        assert entry.state == "ready"
        assert entry.bitmap == _bitmap()
        assert entry.settled

    def test_store_without_claim(self) -> None:
        cache = RenderCache()
        cache.store("late", _bitmap())
        assert "late" in cache

    def test_lookup_missing(self) -> None:
        assert RenderCache().lookup("nope") is None

    def test_stats(self) -> None:
        cache = RenderCache(capacity=10)
        _ready(cache, "a")
        cache.claim("b")
        cache.claim("c")
        cache.store("c", RenderError("x"))
        stats = cache.stats()
        assert stats["items"] == 3
        assert stats["ready"] == 1
        assert stats["rendering"] == 1
        assert stats["failed"] == 1
        assert stats["capacity"] == 10

    def test_rejects_zero_capacity(self) -> None:
        with pytest.raises(ValueError):
            RenderCache(capacity=0)


class TestEviction:
    def test_evicts_least_recently_used(self) -> None:
        cache = RenderCache(capacity=2)
        _ready(cache, "a", "b", "c")
        cache.lookup("a")
        assert cache.evict_lru_beyond() == 1
        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache

    def test_keep_is_never_evicted(self) -> None:
        cache = RenderCache(capacity=1)
        _ready(cache, "a", "b", "c")
        cache.evict_lru_beyond(keep={"a", "b"})
        assert "a" in cache and "b" in cache
        assert "c" not in cache
        assert len(cache) == 2

    def test_in_flight_is_never_evicted(self) -> None:
        cache = RenderCache(capacity=1)
        cache.claim("busy")
        _ready(cache, "done")
        cache.evict_lru_beyond()
        assert "busy" in cache
        assert "done" not in cache

    def test_under_capacity_is_noop(self) -> None:
        cache = RenderCache(capacity=5)
        _ready(cache, "a", "b")
        assert cache.evict_lru_beyond() == 0
        assert len(cache) == 2

    def test_explicit_capacity(self) -> None:
        cache = RenderCache(capacity=10)
        _ready(cache, "a", "b", "c")
        cache.evict_lru_beyond(capacity=0)
        assert len(cache) == 0

    def test_clear_drops_settled(self) -> None:
        cache = RenderCache()
        _ready(cache, "a")
        cache.claim("b")
        cache.store("b", RenderError("x"))
        assert cache.clear() == 0
        assert len(cache) == 0

    def test_clear_keeps_in_flight(self) -> None:
        cache = RenderCache()
        _ready(cache, "a")
        cache.claim("b")
        assert cache.clear() == 1
        assert "a" not in cache
        _, created = cache.claim("b")
        assert created is False
