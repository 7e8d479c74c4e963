import unittest
from datetime import datetime

from freshgate.core.cache import DateCache
from freshgate.core.metrics import MetricsSink
from freshgate.core.store import MemoryDateStore
from freshgate.estimators.base import DateEstimator
from freshgate.estimators.chain import FallbackChain
from freshgate.estimators.router import StrategyRouter, build_router
from freshgate.estimators.universal import UniversalEstimator
from freshgate.models.datatypes import CandidateItem
from freshgate.providers.base import DateStore

NOW = datetime(2025, 8, 25, 18, 0)


class ExplodingEstimator(DateEstimator):
    def supports(self, source_id):
        return source_id == "broken"

    def estimate(self, item, feed_position, feed_size, source_id):
        raise RuntimeError("parser blew up")


class RaisingStore(DateStore):
    def get(self, url_hash):
        raise RuntimeError("row decode failed")

    def put(self, entry):
        raise RuntimeError("row encode failed")

    def delete_older_than(self, instant):
        return 0

    def invalidate_below_confidence(self, threshold):
        return 0


def _bloomberg_item():
    return CandidateItem(
        source_id="bloomberg_economics",
        url="https://www.bloomberg.com/news/articles/2025-08-25/fed-holds-rates",
        title="Fed holds rates",
        feed_position=3,
        feed_size=20,
    )


class TestFallbackChain(unittest.TestCase):
    def setUp(self):
        self.metrics = MetricsSink()
        self.cache = DateCache(MemoryDateStore(), now_fn=lambda: NOW)
        self.chain = FallbackChain(build_router({}, now_fn=lambda: NOW), self.cache, self.metrics)

    def test_second_estimate_is_served_from_cache(self):
        first = self.chain.estimate(_bloomberg_item())
        second = self.chain.estimate(_bloomberg_item())

        self.assertEqual(first.method, "url_pattern")
        self.assertEqual(second.method, "url_pattern_cached")
        self.assertEqual(second.date, first.date)
        self.assertGreaterEqual(second.confidence, first.confidence)
        self.assertEqual(self.metrics.snapshot()["counters"]["estimate.cache_hit"], 1)

    def test_failed_estimates_are_not_cached(self):
        item = CandidateItem(source_id="unknown_blog", url="https://blog.example.com/p/1", title="hi")
        self.assertEqual(self.chain.estimate(item).method, "failed")
        self.assertIsNone(self.cache.lookup(item.url))

    def test_estimator_exception_becomes_failed_estimate(self):
        router = StrategyRouter([ExplodingEstimator()], UniversalEstimator())
        chain = FallbackChain(router, self.cache, self.metrics)
        item = CandidateItem(source_id="broken", url="https://broken.example.com/1", title="x")

        result = chain.estimate(item)

        self.assertEqual(result.method, "failed")
        self.assertIn("parser blew up", result.details)
        self.assertEqual(self.metrics.snapshot()["estimate"]["failures"], 1)

    def test_cache_errors_fall_through_to_estimation(self):
        cache = DateCache(RaisingStore(), now_fn=lambda: NOW)
        chain = FallbackChain(build_router({}, now_fn=lambda: NOW), cache, self.metrics)

        result = chain.estimate(_bloomberg_item())

        self.assertEqual(result.method, "url_pattern")
        self.assertEqual(result.date, datetime(2025, 8, 25, 12, 0))
        self.assertEqual(self.metrics.snapshot()["counters"]["estimate.cache_error"], 2)

    def test_runs_without_cache(self):
        chain = FallbackChain(build_router({}, now_fn=lambda: NOW))
        self.assertEqual(chain.estimate(_bloomberg_item()).method, "url_pattern")
        self.assertEqual(chain.estimate(_bloomberg_item()).method, "url_pattern")


if __name__ == "__main__":
    unittest.main()
