import random
import unittest
from datetime import datetime, timedelta

from freshgate.estimators.router import build_router
from freshgate.models.datatypes import CandidateItem, DateEstimate, SourcePolicy
from freshgate.pipeline.freshness import (
    BinarySearchFreshnessFilter,
    FallbackInclusionPolicy,
    SequentialFreshnessFilter,
    build_filter,
)

NOW = datetime(2025, 8, 25, 18, 0)
SOURCE = "news_example"  # universal estimator, 72h window


class ScriptedChain:
    """Returns a pre-set estimate per URL and counts calls."""

    def __init__(self, ages_hours):
        self.ages = ages_hours
        self.calls = []

    def estimate(self, item):
        self.calls.append(item.url)
        age = self.ages.get(item.url)
        if age is None:
            return DateEstimate.failed()
        return DateEstimate(date=NOW - timedelta(hours=age), confidence=0.9, method="url_pattern")


class RaisingChain(ScriptedChain):
    """A scripted chain that raises for the listed URLs."""

    def __init__(self, ages_hours, raising):
        super().__init__(ages_hours)
        self.raising = set(raising)

    def estimate(self, item):
        if item.url in self.raising:
            self.calls.append(item.url)
            raise RuntimeError("malformed entry")
        return super().estimate(item)


def _items(n, source_id=SOURCE):
    return [
        CandidateItem(source_id=source_id, url=f"https://news.example.com/{i}", title=f"story {i}", feed_position=i, feed_size=n)
        for i in range(n)
    ]


class TestBinarySearchFilter(unittest.TestCase):
    def setUp(self):
        self.router = build_router({}, now_fn=lambda: NOW)

    def _run(self, filter_cls, items, ages, fallback=None):
        chain = ScriptedChain(ages)
        results = filter_cls(chain, self.router, fallback, now_fn=lambda: NOW).filter(items, items[0].source_id)
        return results, chain

    def test_matches_sequential_on_clean_boundary(self):
        items = _items(32)
        ages = {item.url: i * 10 for i, item in enumerate(items)}  # 0..7 fresh

        seq, seq_chain = self._run(SequentialFreshnessFilter, items, ages)
        bs, bs_chain = self._run(BinarySearchFreshnessFilter, items, ages)

        expected = [i for i in range(8)]
        self.assertEqual([i for i, r in enumerate(seq) if r.included], expected)
        self.assertEqual([i for i, r in enumerate(bs) if r.included], expected)
        self.assertEqual(len(seq_chain.calls), 32)
        self.assertLessEqual(len(bs_chain.calls), 5 + 8 + 2)

    def test_unprobed_items_are_reported(self):
        items = _items(32)
        ages = {item.url: i * 10 for i, item in enumerate(items)}
        results, _ = self._run(BinarySearchFreshnessFilter, items, ages)

        self.assertEqual(len(results), 32)
        self.assertEqual([r.item.feed_position for r in results], list(range(32)))
        self.assertEqual(results[31].reason, "not_probed")
        self.assertFalse(results[31].included)

    def test_all_stale_feed_uses_logarithmic_probes(self):
        items = _items(64)
        ages = {item.url: 100 + i for i, item in enumerate(items)}
        results, chain = self._run(BinarySearchFreshnessFilter, items, ages)

        self.assertFalse(any(r.included for r in results))
        self.assertLessEqual(len(chain.calls), 7)

    def test_fresh_results_are_after_cutoff(self):
        items = _items(20)
        ages = {item.url: i * 5 for i, item in enumerate(items)}
        results, _ = self._run(BinarySearchFreshnessFilter, items, ages)
        for r in results:
            if r.reason == "fresh":
                self.assertTrue(r.included)
                self.assertGreater(r.estimate.date, r.cutoff)
                self.assertTrue(r.is_fresh)

    def test_empty_batch(self):
        chain = ScriptedChain({})
        self.assertEqual(BinarySearchFreshnessFilter(chain, self.router).filter([], SOURCE), [])


class TestSequentialFilter(unittest.TestCase):
    def setUp(self):
        self.router = build_router({}, now_fn=lambda: NOW)

    def test_metadata_timestamp_short_circuits_estimation(self):
        item = CandidateItem(
            source_id=SOURCE, url="https://news.example.com/m", title="m",
            metadata_timestamp=NOW - timedelta(hours=2),
        )
        chain = ScriptedChain({})
        result = SequentialFreshnessFilter(chain, self.router, now_fn=lambda: NOW).filter([item], SOURCE)[0]

        self.assertEqual(chain.calls, [])
        self.assertEqual(result.reason, "metadata")
        self.assertTrue(result.included)
        self.assertEqual(result.estimate.method, "metadata")

    def test_old_metadata_timestamp_is_stale(self):
        item = CandidateItem(
            source_id=SOURCE, url="https://news.example.com/m", title="m",
            metadata_timestamp=NOW - timedelta(days=10),
        )
        result = SequentialFreshnessFilter(ScriptedChain({}), self.router, now_fn=lambda: NOW).filter([item], SOURCE)[0]
        self.assertEqual(result.reason, "stale")
        self.assertFalse(result.included)

    def test_undatable_item_in_low_trust_source_is_excluded(self):
        item = _items(1, "unknown_blog")[0]
        result = SequentialFreshnessFilter(ScriptedChain({}), self.router, now_fn=lambda: NOW).filter([item], "unknown_blog")[0]
        self.assertEqual(result.reason, "fallback_excluded")
        self.assertFalse(result.included)

    def test_undatable_item_in_trusted_source_can_be_included(self):
        item = _items(1, "bbc_business")[0]
        fallback = FallbackInclusionPolicy({"high": 1.0})
        result = SequentialFreshnessFilter(ScriptedChain({}), self.router, fallback, now_fn=lambda: NOW).filter(
            [item], "bbc_business"
        )[0]
        self.assertEqual(result.reason, "fallback_included")
        self.assertTrue(result.included)
        self.assertFalse(result.is_fresh)

    def test_build_filter(self):
        chain = ScriptedChain({})
        self.assertIsInstance(build_filter("binary_search", chain, self.router), BinarySearchFreshnessFilter)
        self.assertIsInstance(build_filter("sequential", chain, self.router), SequentialFreshnessFilter)
        with self.assertRaises(ValueError):
            build_filter("random", chain, self.router)


class TestItemErrors(unittest.TestCase):
    def setUp(self):
        self.router = build_router({}, now_fn=lambda: NOW)
        self.items = _items(8)
        self.ages = {item.url: 1 for item in self.items}

    def test_sequential_marks_only_the_failing_item(self):
        chain = RaisingChain(self.ages, [self.items[2].url])
        results = SequentialFreshnessFilter(chain, self.router, now_fn=lambda: NOW).filter(self.items, SOURCE)

        self.assertEqual([r.reason for r in results], ["fresh"] * 2 + ["error"] + ["fresh"] * 5)
        self.assertFalse(results[2].included)
        self.assertEqual(results[2].estimate.method, "failed")
        self.assertIn("malformed entry", results[2].estimate.details)

    def test_binary_search_stops_at_failing_item(self):
        chain = RaisingChain(self.ages, [self.items[3].url])
        results = BinarySearchFreshnessFilter(chain, self.router, now_fn=lambda: NOW).filter(self.items, SOURCE)

        self.assertEqual(
            [r.reason for r in results],
            ["fresh", "fresh", "fresh", "error"] + ["not_probed"] * 4,
        )


class TestFallbackInclusionPolicy(unittest.TestCase):
    def test_seeded_decisions_are_reproducible(self):
        policy = SourcePolicy(source_id="bbc", trust_tier="high")
        a = FallbackInclusionPolicy({"high": 0.5}, seed=42)
        b = FallbackInclusionPolicy({"high": 0.5}, seed=42)
        self.assertEqual([a.decide(policy) for _ in range(50)], [b.decide(policy) for _ in range(50)])

    def test_low_tier_never_included(self):
        policy = SourcePolicy(source_id="x", trust_tier="low")
        fallback = FallbackInclusionPolicy(seed=1)
        self.assertFalse(any(fallback.decide(policy) for _ in range(100)))

    def test_default_tiers(self):
        fallback = FallbackInclusionPolicy(rng=random.Random(0))
        self.assertEqual(fallback.tiers, {"high": 0.3, "medium": 0.2, "low": 0.0})


if __name__ == "__main__":
    unittest.main()
