from __future__ import annotations

from carematch.analytics.cache import ReportCache


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_cache_miss_then_hit():
    cache = ReportCache(ttl_seconds=60, clock=FakeClock())
    assert cache.get({"kind": "trend", "days": 7}) is None
    cache.set({"kind": "trend", "days": 7}, "report")
    assert cache.get({"kind": "trend", "days": 7}) == "report"
    assert cache.stats() == {"size": 1, "hits": 1, "misses": 1, "hit_rate": 50.0}


def test_key_order_does_not_matter():
    cache = ReportCache(clock=FakeClock())
    cache.set({"kind": "trend", "days": 7}, "report")
    assert cache.get({"days": 7, "kind": "trend"}) == "report"


def test_different_keys_miss():
    cache = ReportCache(clock=FakeClock())
    cache.set({"kind": "trend", "days": 7}, "weekly")
    assert cache.get({"kind": "trend", "days": 30}) is None


def test_entries_expire():
    clock = FakeClock()
    cache = ReportCache(ttl_seconds=300, clock=clock)
    cache.set({"kind": "trend"}, "report")
    clock.now = 299
    assert cache.get({"kind": "trend"}) == "report"
    clock.now = 300
    assert cache.get({"kind": "trend"}) is None
    assert cache.stats()["size"] == 0


def test_invalidate_keeps_counters():
    cache = ReportCache(clock=FakeClock())
    cache.set({"kind": "trend"}, "report")
    cache.get({"kind": "trend"})
    cache.invalidate()
    assert cache.get({"kind": "trend"}) is None
    stats = cache.stats()
    assert stats["size"] == 0
    assert stats["hits"] == 1
    assert stats["misses"] == 1


def test_clear_resets_everything():
    cache = ReportCache(clock=FakeClock())
    cache.set({"kind": "trend"}, "report")
    cache.get({"kind": "trend"})
    cache.clear()
    assert cache.stats() == {"size": 0, "hits": 0, "misses": 0, "hit_rate": 0.0}


def test_set_drops_value_built_before_invalidation():
    cache = ReportCache(clock=FakeClock())
    generation = cache.generation
    cache.invalidate()
    assert cache.set({"kind": "trend"}, "stale", generation=generation) is False
    assert cache.get({"kind": "trend"}) is None

    assert cache.set({"kind": "trend"}, "fresh", generation=cache.generation) is True
    assert cache.get({"kind": "trend"}) == "fresh"
