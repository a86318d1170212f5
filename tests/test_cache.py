import threading
import time

import pytest

from service.analytics.cache import WindowCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_computes_once_until_expiry():
    clock = FakeClock()
    cache = WindowCache(expiry_seconds=60, clock=clock)
    calls = []

    def compute():
        calls.append(1)
        return {"n": len(calls)}

    assert cache.get_or_compute((1, 2), compute) == {"n": 1}
    clock.now = 59
    assert cache.get_or_compute((1, 2), compute) == {"n": 1}
    clock.now = 60
    assert cache.get((1, 2)) is None
    assert cache.get_or_compute((1, 2), compute) == {"n": 2}
    assert len(calls) == 2
    info = cache.info()
    assert info["hits"] == 1
    assert info["misses"] == 2


def test_oldest_window_evicted():
    cache = WindowCache(max_entries=2)
    for key in [(0, 1), (1, 2), (2, 3)]:
        cache.get_or_compute(key, lambda: key)
    assert cache.get((0, 1)) is None
    assert cache.get((2, 3)) == (2, 3)
    assert cache.info()["total_entries"] == 2


def test_failed_computation_is_not_cached():
    cache = WindowCache()

    def boom():
        raise RuntimeError("store offline")

    with pytest.raises(RuntimeError):
        cache.get_or_compute((1, 2), boom)
    assert cache.info()["in_flight"] == 0
    assert cache.get_or_compute((1, 2), lambda: "ok") == "ok"


def test_concurrent_callers_share_one_computation():
    cache = WindowCache()
    calls = []
    barrier = threading.Barrier(5)
    results = []

    def compute():
        calls.append(1)
        time.sleep(0.2)
        return "value"

    def worker():
        barrier.wait()
        results.append(cache.get_or_compute((1, 2), compute))

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1
    assert results == ["value"] * 5


def test_clear_returns_count():
    cache = WindowCache()
    cache.get_or_compute((1, 2), lambda: 1)
    cache.get_or_compute((2, 3), lambda: 2)
    assert cache.clear() == 2
    assert cache.info()["total_entries"] == 0
