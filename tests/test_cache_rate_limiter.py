import threading
import time
import unittest

from catalog_match.cache import MISS, QueryCache, RateLimiter


class _FakeClock:
    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestQueryCache(unittest.TestCase):
    def test_keys_are_normalized(self) -> None:
        cache = QueryCache()
        cache.record("artist_search", "  Sheet   MUSIC ", ["x"])
        self.assertEqual(cache.lookup("artist_search", "sheet music"), ["x"])
        self.assertIs(cache.lookup("album_search", "sheet music"), MISS)
        self.assertEqual(cache.hits, 1)
        self.assertEqual(cache.misses, 1)

    def test_entries_are_never_replaced(self) -> None:
        cache = QueryCache()
        self.assertEqual(cache.record("ns", "k", 1), 1)
        self.assertEqual(cache.record("ns", "K", 2), 1)
        self.assertEqual(cache.lookup("ns", "k"), 1)

    def test_falsy_values_are_cached(self) -> None:
        cache = QueryCache()
        cache.record("ns", "empty", ())
        self.assertEqual(cache.lookup("ns", "empty"), ())
        self.assertIn(("ns", "EMPTY"), cache)

    def test_get_or_fetch_fetches_once(self) -> None:
        cache = QueryCache()
        calls = {"count": 0}

        def fetch():
            calls["count"] += 1
            return "value"

        self.assertEqual(cache.get_or_fetch("ns", "k", fetch), "value")
        self.assertEqual(cache.get_or_fetch("ns", "k", fetch), "value")
        self.assertEqual(calls["count"], 1)

    def test_get_or_fetch_concurrent_callers_share_one_fetch(self) -> None:
        cache = QueryCache()
        calls = {"count": 0}
        started = threading.Event()

        def fetch():
            calls["count"] += 1
            started.set()
            time.sleep(0.05)
            return "value"

        results: list[str] = []
        threads = [
            threading.Thread(target=lambda: results.append(cache.get_or_fetch("ns", "k", fetch)))
            for _ in range(4)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(calls["count"], 1)
        self.assertEqual(results, ["value"] * 4)

    def test_failed_fetch_is_not_cached(self) -> None:
        cache = QueryCache()

        def boom():
            raise RuntimeError("down")

        with self.assertRaises(RuntimeError):
            cache.get_or_fetch("ns", "k", boom)
        self.assertIs(cache.lookup("ns", "k"), MISS)

    def test_lookup_many_batches_misses(self) -> None:
        cache = QueryCache()
        cache.record("ns", "a", "A")
        batches: list[list[str]] = []
        singles: list[str] = []

        def fetch_batch(keys):
            batches.append(list(keys))
            return [key.upper() for key in keys]

        def fetch_one(key):
            singles.append(key)
            return key.upper()

        values = cache.lookup_many(
            "ns", ["a", "b", "c", "B", "d"], fetch_one, fetch_batch=fetch_batch, batch_size=2
        )
        self.assertEqual(values, ["A", "B", "C", "B", "D"])
        self.assertEqual(batches, [["b", "c"]])
        self.assertEqual(singles, ["d"])
        self.assertEqual(cache.lookup("ns", "c"), "C")

    def test_lookup_many_without_batch_support_goes_one_by_one(self) -> None:
        cache = QueryCache()
        seen: list[str] = []

        def fetch_one(key):
            seen.append(key)
            return len(key)

        self.assertEqual(cache.lookup_many("ns", ["x", "yy"], fetch_one, batch_size=5), [1, 2])
        self.assertEqual(seen, ["x", "yy"])


class TestRateLimiter(unittest.TestCase):
    def test_enforces_minimum_interval(self) -> None:
        clock = _FakeClock()
        limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)
        limiter.throttle()
        limiter.throttle()
        clock.now += 0.25
        limiter.throttle()
        self.assertEqual(len(clock.sleeps), 2)
        self.assertAlmostEqual(clock.sleeps[0], 1.0)
        self.assertAlmostEqual(clock.sleeps[1], 0.75)
        self.assertEqual(limiter.calls, 3)

    def test_no_sleep_after_long_gap(self) -> None:
        clock = _FakeClock()
        limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)
        limiter.throttle()
        clock.now += 5
        with limiter.slot():
            pass
        self.assertEqual(clock.sleeps, [])

    def test_zero_interval_never_sleeps(self) -> None:
        clock = _FakeClock()
        limiter = RateLimiter(0.0, clock=clock, sleep=clock.sleep)
        for _ in range(3):
            limiter.throttle()
        self.assertEqual(clock.sleeps, [])


if __name__ == "__main__":
    unittest.main()
