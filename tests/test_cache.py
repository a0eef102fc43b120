import threading

from insights.services.cache import LRUCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def test_set_then_get_returns_value():
    cache = LRUCache(max_size=3, default_ttl=10)
    cache.set("a", {"name": "A"})
    assert cache.get("a") == {"name": "A"}
    assert cache.get("missing") is None
    assert cache.get("missing", "dflt") == "dflt"


def test_entry_expires_after_ttl_and_is_evicted():
    clock = FakeClock()
    cache = LRUCache(max_size=3, default_ttl=10, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2, ttl=100)

    clock.advance(10.5)
    assert cache.get("a") is None
    assert "a" not in cache
    assert cache.get("b") == 2


def test_non_positive_ttl_never_expires():
    clock = FakeClock()
    cache = LRUCache(max_size=3, default_ttl=10, clock=clock)
    cache.set("forever", 1, ttl=0)
    clock.advance(10_000)
    assert cache.get("forever") == 1


def test_overflow_evicts_least_recently_accessed():
    cache = LRUCache(max_size=3, default_ttl=60)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)
    # Touch "a" so "b" becomes the least recently used
    assert cache.get("a") == 1
    cache.set("d", 4)

    assert "b" not in cache
    assert cache.get("a") == 1
    assert cache.get("c") == 3
    assert cache.get("d") == 4
    assert len(cache) == 3


def test_resetting_a_key_refreshes_its_position():
    cache = LRUCache(max_size=2, default_ttl=60)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)
    cache.set("c", 3)
    assert cache.get("a") == 10
    assert "b" not in cache


def test_invalidate_and_clear():
    cache = LRUCache(max_size=5, default_ttl=60)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.invalidate("a")
    cache.invalidate("never-set")
    assert cache.get("a") is None
    cache.clear()
    assert len(cache) == 0
    stats = cache.stats()
    assert stats["size"] == 0
    assert stats["maxSize"] == 5


def test_concurrent_writers_leave_one_consistent_value():
    cache = LRUCache(max_size=10, default_ttl=60)

    def writer(n):
        for _ in range(200):
            cache.set("report:1", n)
            cache.get("report:1")

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert cache.get("report:1") in range(8)
    assert len(cache) == 1
