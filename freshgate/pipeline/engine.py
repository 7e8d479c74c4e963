"""Freshness engine: classifies a batch of candidates, one worker task per source.

Flow per run:
  1. Group candidates by source_id, order each group by feed position
  2. Per source, run the configured filter (binary_search or sequential)
  3. Collect FilterResults; a failing item, or a whole failing source, is marked ``error``
  4. Optionally write ``freshness_results.csv`` and run cache maintenance

A failure never spreads past its own item or source.
"""

import csv
import os
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from freshgate.core.cache import DEFAULT_MEMORY_CAPACITY, DateCache
from freshgate.core.config import fallback_settings, load_source_overrides
from freshgate.core.logger import logger
from freshgate.core.metrics import MetricsSink
from freshgate.core.store import MemoryDateStore, SQLiteDateStore
from freshgate.estimators.chain import FallbackChain
from freshgate.estimators.router import StrategyRouter, build_router
from freshgate.models.datatypes import VALIDITY_THRESHOLD, CandidateItem, DateEstimate, FilterResult
from freshgate.pipeline.freshness import FallbackInclusionPolicy, build_filter
from freshgate.providers.base import FeedProvider, HttpFetcher

RESULTS_FILENAME = "freshness_results.csv"

_CSV_HEADER = [
    "Source_Id", "Feed_Position", "Title", "Url",
    "Included", "Reason", "Method", "Confidence",
    "Estimated_Date", "Cutoff", "Details",
]


class FreshnessEngine:
    """Orchestrates freshness classification across sources.

    Args:
        router: Estimator router (also the source-policy registry).
        chain: Date-estimation orchestrator.
        fallback: Inclusion policy for undatable items.
        metrics: Per-run metrics sink, flushed by the caller.
        cache: Estimate cache, used for maintenance.
        max_workers: Size of the per-source worker pool.
        output_dir: Directory where ``freshness_results.csv`` is written.
        maintenance: ``cache`` config section; enables retention cleanup and invalidation.
        now_fn: Clock shared by the filters.
    """

    def __init__(
        self,
        router: StrategyRouter,
        chain: FallbackChain,
        fallback: Optional[FallbackInclusionPolicy] = None,
        metrics: Optional[MetricsSink] = None,
        cache: Optional[DateCache] = None,
        max_workers: int = 4,
        output_dir: str = "output",
        maintenance: Optional[Mapping[str, Any]] = None,
        now_fn: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.router = router
        self.chain = chain
        self.fallback = fallback or FallbackInclusionPolicy()
        self.metrics = metrics or MetricsSink()
        self.cache = cache
        self.max_workers = max(1, max_workers)
        self.output_dir = output_dir
        self.maintenance = dict(maintenance or {})
        self._now = now_fn

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        fetcher: Optional[HttpFetcher] = None,
        now_fn: Callable[[], datetime] = datetime.now,
    ) -> "FreshnessEngine":
        """Wire store, cache, router, chain and fallback policy from parsed config."""
        cache_cfg = config.get("cache") or {}
        metrics = MetricsSink()

        if cache_cfg.get("backend", "sqlite") == "memory":
            store = MemoryDateStore()
        else:
            store = SQLiteDateStore(cache_cfg.get("db_path", "output/.date_cache.db"))
        cache = DateCache(store, capacity=int(cache_cfg.get("memory_capacity", DEFAULT_MEMORY_CAPACITY)), now_fn=now_fn)

        router = build_router(
            config,
            overrides=load_source_overrides(dict(config)),
            fetcher=fetcher,
            metrics=metrics,
            now_fn=now_fn,
        )
        tiers, seed = fallback_settings(dict(config))
        pipeline_cfg = config.get("pipeline") or {}
        return cls(
            router=router,
            chain=FallbackChain(router, cache, metrics),
            fallback=FallbackInclusionPolicy(tiers, seed=seed),
            metrics=metrics,
            cache=cache,
            max_workers=int(pipeline_cfg.get("max_workers", 4)),
            output_dir=config.get("output_dir", "output"),
            maintenance=cache_cfg,
            now_fn=now_fn,
        )

    # ── public ────────────────────────────────────────────────────────────────

    def run(self, items: Sequence[CandidateItem]) -> List[FilterResult]:
        """Classify a batch.

        Returns:
            FilterResults grouped by source (first-seen order), each group in
            feed-position order.
        """
        groups: "OrderedDict[str, List[CandidateItem]]" = OrderedDict()
        for item in items:
            groups.setdefault(item.source_id, []).append(item)
        for group in groups.values():
            group.sort(key=lambda i: i.feed_position)

        logger.info(f"FreshnessEngine: {len(items)} candidates across {len(groups)} sources")
        self.router.start_run()
        self.fallback.reset()

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="freshness") as pool:
            futures = {
                source_id: pool.submit(self._filter_source, source_id, group)
                for source_id, group in groups.items()
            }
            results: List[FilterResult] = []
            for source_id, future in futures.items():
                try:
                    results.extend(future.result())
                    self.metrics.record_success("source")
                except Exception as exc:
                    logger.error(f"FreshnessEngine: source={source_id} failed: {exc}", exc_info=True)
                    self.metrics.record_failure("source", type(exc).__name__)
                    results.extend(self._error_results(groups[source_id], str(exc)))

        included = sum(1 for r in results if r.included)
        logger.info(f"FreshnessEngine: {included}/{len(results)} candidates included")
        return results

    def run_feeds(self, provider: FeedProvider, feeds: Mapping[str, str]) -> List[FilterResult]:
        """Fetch every ``{source_id: feed_url}`` through ``provider`` and classify the lot."""
        items: List[CandidateItem] = []
        for source_id, feed_url in feeds.items():
            try:
                items.extend(provider.fetch_candidates(source_id, feed_url))
            except Exception as exc:
                logger.error(f"FreshnessEngine: feed fetch failed for {source_id}: {exc}")
        return self.run(items)

    def run_maintenance(self) -> Dict[str, int]:
        """Apply the configured retention and confidence floor to the cache."""
        if self.cache is None:
            return {}
        retention_days = int(self.maintenance.get("retention_days", 30))
        min_confidence = float(self.maintenance.get("min_confidence", VALIDITY_THRESHOLD))
        return {
            "deleted": self.cache.cleanup_older_than(timedelta(days=retention_days)),
            "invalidated": self.cache.invalidate_below(min_confidence),
        }

    def write_csv(self, results: Sequence[FilterResult]) -> str:
        """Write results to ``<output_dir>/freshness_results.csv`` (overwrites each run)."""
        os.makedirs(self.output_dir, exist_ok=True)
        path = os.path.join(self.output_dir, RESULTS_FILENAME)
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=_CSV_HEADER)
            writer.writeheader()
            for r in results:
                writer.writerow({
                    "Source_Id": r.item.source_id,
                    "Feed_Position": r.item.feed_position,
                    "Title": r.item.title,
                    "Url": r.item.url,
                    "Included": "true" if r.included else "false",
                    "Reason": r.reason,
                    "Method": r.estimate.method,
                    "Confidence": f"{r.estimate.confidence:.3f}",
                    "Estimated_Date": r.estimate.date.isoformat(sep=" ") if r.estimate.date else "",
                    "Cutoff": r.cutoff.isoformat(sep=" "),
                    "Details": r.estimate.details,
                })
        logger.info(f"FreshnessEngine: wrote {len(results)} rows to {path}")
        return path

    # ── internal ──────────────────────────────────────────────────────────────

    def _filter_source(self, source_id: str, items: List[CandidateItem]) -> List[FilterResult]:
        policy = self.router.policy(source_id)
        freshness_filter = build_filter(policy.filter_mode, self.chain, self.router, self.fallback, self._now)
        with self.metrics.timer("filter_source"):
            return freshness_filter.filter(items, source_id)

    def _error_results(self, items: Sequence[CandidateItem], message: str) -> List[FilterResult]:
        now = self._now()
        return [
            FilterResult(
                item=item,
                estimate=DateEstimate.failed(f"source error: {message}"),
                included=False,
                reason="error",
                cutoff=now,
            )
            for item in items
        ]
