"""TTLCache expiry and fetch-through behaviour."""
from legistrack.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_entry_expires_after_ttl():
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    cache.set("bills", [1, 2])

    clock.now = 59
    assert cache.get("bills") == [1, 2]

    clock.now = 60
    assert cache.get("bills") is None
    assert len(cache) == 0


def test_get_or_fetch_only_fetches_once_while_fresh():
    clock = FakeClock()
    cache = TTLCache(10, clock=clock)
    calls = []

    def fetch():
        calls.append(1)
        return {"count": len(calls)}

    assert cache.get_or_fetch("key", fetch) == {"count": 1}
    assert cache.get_or_fetch("key", fetch) == {"count": 1}

    clock.now = 11
    assert cache.get_or_fetch("key", fetch) == {"count": 2}
    assert len(calls) == 2


def test_empty_list_is_cached():
    cache = TTLCache(10)
    calls = []
    cache.get_or_fetch("empty", lambda: calls.append(1) or [])
    cache.get_or_fetch("empty", lambda: calls.append(1) or [])
    assert calls == [1]


def test_invalidate_and_clear():
    cache = TTLCache(10)
    cache.set("a", 1)
    cache.set("b", 2)

    cache.invalidate("a")
    assert "a" not in cache
    assert "b" in cache

    cache.clear()
    assert len(cache) == 0
