import asyncio

import pytest

from inbox_signal_ai.utils.ttl_cache import TTLCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_set_get_and_expiry():
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    cache.set("k", "v", ttl=10)

    assert cache.get("k") == "v"
    assert cache.lookup("k") == ("v", True)
    clock.now += 11
    assert cache.get("k") is None
    assert cache.lookup("k") == (None, False)
    assert cache.get("k", "fallback") == "fallback"


def test_cached_none_is_distinguishable_from_miss():
    cache = TTLCache(clock=FakeClock())
    cache.set("k", None, ttl=5)
    assert cache.lookup("k") == (None, True)


def test_get_or_set_computes_once():
    cache = TTLCache(clock=FakeClock())
    calls = []

    def compute():
        calls.append(1)
        return 42

    assert cache.get_or_set("k", 10, compute) == 42
    assert cache.get_or_set("k", 10, compute) == 42
    assert len(calls) == 1


def test_get_or_set_error_is_not_cached():
    cache = TTLCache(clock=FakeClock())

    def boom():
        raise RuntimeError("nope")

    with pytest.raises(RuntimeError):
        cache.get_or_set("k", 10, boom)
    assert cache.size() == 0


def test_delete_clear_keys_and_purge():
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    cache.set("a", 1, ttl=1)
    cache.set("b", 2, ttl=100)
    cache.set("c", 3, ttl=100)
    cache.delete("c")
    cache.delete("missing")

    assert sorted(cache.keys()) == ["a", "b"]
    clock.now += 5
    assert cache.purge_expired() == 1
    assert cache.keys() == ["b"]
    cache.clear()
    assert cache.size() == 0


@pytest.mark.asyncio
async def test_run_cleanup_stops_on_event():
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    cache.set("a", 1, ttl=1)
    clock.now += 5
    stop = asyncio.Event()

    task = asyncio.create_task(cache.run_cleanup(0.01, stop))
    await asyncio.sleep(0.05)
    stop.set()
    await asyncio.wait_for(task, timeout=1.0)

    assert cache.size() == 0
