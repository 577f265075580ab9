import threading

import pytest

from dafang.core.cache import BoundedCache, CacheContext


def test_lru_eviction_respects_touch():
    cache = BoundedCache(2)
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.get("a") == 1  # touch a; b is now least recently used
    cache.set("c", 3)
    assert "b" not in cache
    assert cache.get("a") == 1
    assert cache.get("c") == 3
    assert len(cache) == 2
    assert cache.evictions == 1


def test_set_existing_key_refreshes_without_eviction():
    cache = BoundedCache(2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)
    cache.set("c", 3)
    assert cache.keys() == ["a", "c"]
    assert cache.get("a") == 10


def test_membership_does_not_touch():
    cache = BoundedCache(2)
    cache.set("a", 1)
    cache.set("b", 2)
    assert "a" in cache
    cache.set("c", 3)
    assert "a" not in cache


def test_get_default_and_stats():
    cache = BoundedCache(4)
    sentinel = object()
    assert cache.get("missing", sentinel) is sentinel
    cache.set("k", None)
    assert cache.get("k", sentinel) is None
    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["capacity"] == 4


def test_clear_resets_everything():
    cache = BoundedCache(4)
    cache.set("a", 1)
    cache.get("a")
    cache.clear()
    assert len(cache) == 0
    assert cache.stats()["hits"] == 0


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        BoundedCache(0)


def test_get_or_compute_runs_once():
    cache = BoundedCache(4)
    calls = []

    def compute():
        calls.append(1)
        return 42

    assert cache.get_or_compute("x", compute) == 42
    assert cache.get_or_compute("x", compute) == 42
    assert len(calls) == 1


@pytest.mark.timeout(30)
def test_concurrent_writers_keep_capacity():
    cache = BoundedCache(50)

    def worker(base: int) -> None:
        for i in range(500):
            cache.set((base, i), i)
            cache.get((base, i // 2))

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(cache) == 50


def test_cache_context_clears_both_caches():
    ctx = CacheContext()
    ctx.formations.set("f", 1)
    ctx.scores.set("s", 0.5)
    ctx.clear()
    assert len(ctx.formations) == 0
    assert len(ctx.scores) == 0
    assert set(ctx.stats()) == {"formations", "scores"}
