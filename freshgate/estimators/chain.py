"""Fallback-chain orchestrator: cache first, then the routed estimator's steps."""

from contextlib import nullcontext
from typing import Optional

from freshgate.core.cache import DateCache
from freshgate.core.logger import logger
from freshgate.core.metrics import MetricsSink
from freshgate.estimators.router import StrategyRouter
from freshgate.models.datatypes import CandidateItem, DateEstimate


class FallbackChain:
    """Estimate one item's publication date.

    Args:
        router: Resolves the item's source to an estimator.
        cache: Two-tier estimate cache; ``None`` disables caching.
        metrics: Optional per-run metrics sink.
    """

    def __init__(
        self,
        router: StrategyRouter,
        cache: Optional[DateCache] = None,
        metrics: Optional[MetricsSink] = None,
    ) -> None:
        self.router = router
        self.cache = cache
        self.metrics = metrics

    def estimate(self, item: CandidateItem) -> DateEstimate:
        cached = self._cache_lookup(item)
        if cached is not None:
            self._record(cached, cache_hit=True)
            return cached

        estimator = self.router.resolve(item.source_id)
        timer = self.metrics.timer("estimate") if self.metrics is not None else nullcontext()
        with timer:
            try:
                result = estimator.estimate(item, item.feed_position, item.feed_size, item.source_id)
            except Exception as exc:
                logger.error(
                    f"FallbackChain: {type(estimator).__name__} raised for url={item.url}: {exc}",
                    exc_info=True,
                )
                result = DateEstimate.failed(f"estimator error: {exc}")

        if result.is_valid():
            self._cache_save(item, result)
        self._record(result)
        return result

    def _record(self, result: DateEstimate, cache_hit: bool = False) -> None:
        if self.metrics is None:
            return
        if cache_hit:
            self.metrics.increment("estimate.cache_hit")
        self.metrics.increment(f"estimate.method.{result.method}")
        if result.is_valid():
            self.metrics.record_success("estimate")
        else:
            self.metrics.record_failure("estimate")

    # ── cache tier ────────────────────────────────────────────────────────────

    def _cache_lookup(self, item: CandidateItem) -> Optional[DateEstimate]:
        if self.cache is None:
            return None
        try:
            return self.cache.lookup(item.url)
        except Exception as exc:
            logger.warning(f"FallbackChain: cache lookup skipped for url={item.url}: {exc}")
            if self.metrics is not None:
                self.metrics.increment("estimate.cache_error")
            return None

    def _cache_save(self, item: CandidateItem, result: DateEstimate) -> None:
        if self.cache is None:
            return
        try:
            self.cache.save(item.url, item.source_id, result)
        except Exception as exc:
            logger.warning(f"FallbackChain: cache save skipped for url={item.url}: {exc}")
            if self.metrics is not None:
                self.metrics.increment("estimate.cache_error")
