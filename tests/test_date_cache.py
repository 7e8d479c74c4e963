import random
import threading
import unittest
from datetime import datetime, timedelta

from freshgate.core.cache import DateCache, hash_url
from freshgate.core.errors import CacheUnavailableError
from freshgate.core.store import MemoryDateStore
from freshgate.models.datatypes import DateEstimate
from freshgate.providers.base import DateStore

URL = "https://www.bloomberg.com/news/articles/2025-08-25/fed-holds"


class _Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class _BrokenStore(DateStore):
    def get(self, url_hash):
        raise CacheUnavailableError("disk gone")

    def put(self, entry):
        raise CacheUnavailableError("disk gone")

    def delete_older_than(self, instant):
        raise CacheUnavailableError("disk gone")

    def invalidate_below_confidence(self, threshold):
        raise CacheUnavailableError("disk gone")


def _estimate(confidence, method="url_pattern"):
    return DateEstimate(date=datetime(2025, 8, 25, 12, 0), confidence=confidence, method=method, details="unit")


class TestDateCache(unittest.TestCase):
    def setUp(self):
        self.clock = _Clock(datetime(2025, 8, 25, 18, 0))
        self.store = MemoryDateStore()
        self.cache = DateCache(self.store, capacity=10, now_fn=self.clock)

    def test_hash_is_sha256_of_raw_url(self):
        self.assertEqual(len(hash_url(URL)), 64)
        self.assertNotEqual(hash_url(URL), hash_url(URL + "?x=1"))

    def test_hit_is_suffixed_and_counted(self):
        self.assertTrue(self.cache.save(URL, "bloomberg_economics", _estimate(0.9)))
        hit = self.cache.lookup(URL)
        self.assertEqual(hit.method, "url_pattern_cached")
        self.assertAlmostEqual(hit.confidence, 0.9)
        self.assertTrue(hit.details.startswith("cached:"))
        self.assertEqual(self.store.get(hash_url(URL)).verification_count, 1)

        self.cache.lookup(URL)
        self.assertEqual(self.store.get(hash_url(URL)).verification_count, 2)

    def test_miss(self):
        self.assertIsNone(self.cache.lookup(URL))
        self.assertEqual(self.cache.stats()["misses"], 1)

    def test_only_improving_writes_are_kept(self):
        self.assertTrue(self.cache.save(URL, "s", _estimate(0.8)))
        self.assertFalse(self.cache.save(URL, "s", _estimate(0.6)))
        self.assertFalse(self.cache.save(URL, "s", _estimate(0.8)))
        self.assertTrue(self.cache.save(URL, "s", _estimate(0.95, method="content_scan")))

        stored = self.store.get(hash_url(URL))
        self.assertAlmostEqual(stored.confidence, 0.95)
        self.assertEqual(stored.method, "content_scan")
        self.assertEqual(stored.verification_count, 1)

    def test_invalid_and_cached_estimates_are_not_saved(self):
        self.assertFalse(self.cache.save(URL, "s", _estimate(0.3)))
        self.assertFalse(self.cache.save(URL, "s", DateEstimate.failed()))
        self.assertFalse(self.cache.save(URL, "s", _estimate(0.9, method="url_pattern_cached")))
        self.assertIsNone(self.cache.lookup(URL))

    def test_memory_tier_refuses_new_keys_when_full(self):
        cache = DateCache(self.store, capacity=1, now_fn=self.clock)
        cache.save(URL, "s", _estimate(0.9))
        cache.save(URL + "/other", "s", _estimate(0.9))
        self.assertEqual(cache.stats()["memory_entries"], 1)
        # Still served from the persistent tier
        self.assertIsNotNone(cache.lookup(URL + "/other"))

    def test_store_hit_is_promoted(self):
        self.cache.save(URL, "s", _estimate(0.9))
        fresh = DateCache(self.store, capacity=10, now_fn=self.clock)
        self.assertIsNotNone(fresh.lookup(URL))
        self.assertEqual(fresh.stats()["memory_entries"], 1)

    def test_unavailable_store_is_skipped(self):
        cache = DateCache(_BrokenStore(), now_fn=self.clock)
        self.assertIsNone(cache.lookup(URL))
        self.assertTrue(cache.save(URL, "s", _estimate(0.9)))
        self.assertEqual(cache.lookup(URL).method, "url_pattern_cached")
        self.assertGreaterEqual(cache.stats()["store_errors"], 2)

    def test_cleanup_older_than(self):
        self.cache.save(URL, "s", _estimate(0.9))
        self.clock.now += timedelta(days=40)
        self.assertGreaterEqual(self.cache.cleanup_older_than(timedelta(days=30)), 1)
        self.assertIsNone(self.cache.lookup(URL))
        self.assertEqual(self.cache.cleanup_older_than(timedelta(days=30)), 0)

    def test_invalidate_below(self):
        self.cache.save(URL, "s", _estimate(0.8))
        self.cache.save(URL + "/b", "s", _estimate(0.95))
        self.assertEqual(self.cache.invalidate_below(0.9), 1)
        self.assertIsNone(self.cache.lookup(URL))
        self.assertIsNotNone(self.cache.lookup(URL + "/b"))


class TestDateCacheThreads(unittest.TestCase):
    WRITERS = 8
    READERS = 4
    ROUNDS = 200

    def test_concurrent_saves_keep_the_best_estimate(self):
        store = MemoryDateStore()
        cache = DateCache(store, capacity=10, now_fn=lambda: datetime(2025, 8, 25, 18, 0))
        key = hash_url(URL)
        offered = [[] for _ in range(self.WRITERS)]
        regressions = []
        start = threading.Barrier(self.WRITERS + self.READERS)

        def write(slot):
            rng = random.Random(slot)
            start.wait()
            for _ in range(self.ROUNDS):
                confidence = round(rng.uniform(0.31, 0.99), 4)
                offered[slot].append(confidence)
                cache.save(URL, "bloomberg_economics", _estimate(confidence))

        def read():
            last_count = 0
            start.wait()
            for _ in range(self.ROUNDS):
                cache.lookup(URL)
                entry = store.get(key)
                if entry is None:
                    continue
                if entry.verification_count < last_count:
                    regressions.append((last_count, entry.verification_count))
                last_count = entry.verification_count

        threads = [threading.Thread(target=write, args=(slot,)) for slot in range(self.WRITERS)]
        threads += [threading.Thread(target=read) for _ in range(self.READERS)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        best = max(c for batch in offered for c in batch)
        self.assertAlmostEqual(store.get(key).confidence, best)
        self.assertAlmostEqual(cache.lookup(URL).confidence, best)
        self.assertEqual(regressions, [])
        self.assertEqual(cache.stats()["memory_entries"], 1)

    def test_concurrent_lookups_count_every_verification(self):
        store = MemoryDateStore()
        cache = DateCache(store, now_fn=lambda: datetime(2025, 8, 25, 18, 0))
        cache.save(URL, "s", _estimate(0.9))
        start = threading.Barrier(self.READERS)

        def read():
            start.wait()
            for _ in range(self.ROUNDS):
                cache.lookup(URL)

        threads = [threading.Thread(target=read) for _ in range(self.READERS)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(store.get(hash_url(URL)).verification_count, self.READERS * self.ROUNDS)
        self.assertEqual(cache.stats()["hits"], self.READERS * self.ROUNDS)


if __name__ == "__main__":
    unittest.main()
