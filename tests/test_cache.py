"""Tests for the in-memory lookup cache."""

from isbn_resolver.models import BookRecord, LookupResult
from isbn_resolver.services.cache import LookupCache, NoOpCache


def _result(isbn: str) -> LookupResult:
    return LookupResult.found(isbn, BookRecord(isbn_code=isbn, title=f"T{isbn}"), "api")


def test_get_returns_stored_result():
    cache = LookupCache(max_size=5)
    cache.put("111", _result("111"))

    cached = cache.get("111")
    assert cached is not None
    assert cached.book.title == "T111"


def test_get_returns_copy_not_internal_entry():
    cache = LookupCache(max_size=5)
    cache.put("111", _result("111"))

    first = cache.get("111")
    first.book.title = "mutated"

    assert cache.get("111").book.title == "T111"


def test_eviction_keeps_max_size_and_drops_least_recently_used():
    cache = LookupCache(max_size=3)
    for key in ("a", "b", "c"):
        cache.put(key, _result(key))

    # Touch "a" so "b" becomes the least recently used
    assert cache.get("a") is not None
    cache.put("d", _result("d"))

    assert len(cache) == 3
    assert "b" not in cache
    assert "a" in cache
    assert "d" in cache


def test_overwrite_does_not_evict():
    cache = LookupCache(max_size=2)
    cache.put("a", _result("a"))
    cache.put("b", _result("b"))
    cache.put("a", _result("a"))

    assert len(cache) == 2
    assert "b" in cache


def test_hit_rate_accounting():
    cache = LookupCache(max_size=5)
    assert cache.stats()["hit_rate"] == 0.0

    cache.put("a", _result("a"))
    cache.get("a")
    cache.get("a")
    cache.get("missing")

    stats = cache.stats()
    assert stats["size"] == 1
    assert stats["max_size"] == 5
    assert stats["hits"] == 2
    assert stats["misses"] == 1
    assert abs(stats["hit_rate"] - 2 / 3) < 1e-9


def test_clear_empties_and_resets_counters():
    cache = LookupCache(max_size=5)
    cache.put("a", _result("a"))
    cache.get("a")
    cache.get("b")

    cache.clear()

    assert cache.stats() == {
        "size": 0,
        "max_size": 5,
        "hits": 0,
        "misses": 0,
        "hit_rate": 0.0,
    }


def test_entries_expire_after_ttl(clock):
    cache = LookupCache(max_size=5, default_ttl=60, clock=clock)
    cache.put("a", _result("a"))
    cache.put("b", _result("b"), ttl=600)

    clock.advance(61)

    assert cache.get("a") is None
    assert cache.get("b") is not None
    assert len(cache) == 1


def test_cleanup_removes_expired_entries(clock):
    cache = LookupCache(max_size=5, clock=clock)
    cache.put("a", _result("a"), ttl=10)
    cache.put("b", _result("b"))

    clock.advance(11)

    assert cache.cleanup() == 1
    assert "b" in cache
    assert "a" not in cache


def test_noop_cache_never_stores():
    cache = NoOpCache()
    cache.put("a", _result("a"))

    assert cache.get("a") is None
    assert cache.stats()["size"] == 0


def test_concurrent_puts_respect_max_size():
    import threading

    cache = LookupCache(max_size=50)

    def writer(offset):
        for i in range(100):
            key = str(offset * 1000 + i)
            cache.put(key, _result(key))
            cache.get(key)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    stats = cache.stats()
    assert stats["size"] == 50
    assert stats["hits"] + stats["misses"] == 400
