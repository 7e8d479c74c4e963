"""Freshness filters: decide which candidates of one source fall inside its window.

Two interchangeable filters, chosen per source:

- :class:`SequentialFreshnessFilter` evaluates every item.
- :class:`BinarySearchFreshnessFilter` assumes the feed is ordered most to
  least recent, probes the middle, and only walks outward from a fresh probe.

Items whose date cannot be estimated fall to :class:`FallbackInclusionPolicy`.
"""

import random
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from freshgate.core.config import DEFAULT_FALLBACK_TIERS
from freshgate.core.logger import logger
from freshgate.estimators.chain import FallbackChain
from freshgate.estimators.router import StrategyRouter
from freshgate.models.datatypes import (
    CandidateItem,
    DateEstimate,
    EstimationMethod,
    FilterMode,
    FilterResult,
    SourcePolicy,
)


class FallbackInclusionPolicy:
    """Randomised inclusion of undatable items, weighted by source trust tier.

    Each source draws from its own generator, seeded from ``seed`` and the
    source id, so a seeded run gives the same decisions whatever order the
    worker threads reach their sources in.

    Args:
        tiers: Inclusion probability per trust tier.
        seed: Base seed for the per-source generators; ``None`` seeds from the OS.
        rng: Explicit generator shared by every source, for tests.
    """

    def __init__(
        self,
        tiers: Optional[Mapping[str, float]] = None,
        seed: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.tiers: Dict[str, float] = dict(DEFAULT_FALLBACK_TIERS)
        self.tiers.update(tiers or {})
        self.seed = seed
        self.rng = rng
        self._streams: Dict[str, random.Random] = {}
        self._lock = threading.Lock()

    def probability(self, policy: SourcePolicy) -> float:
        return self.tiers.get(policy.trust_tier, 0.0)

    def reset(self) -> None:
        """Restart every per-source stream; called at the start of each run."""
        with self._lock:
            self._streams.clear()

    def decide(self, policy: SourcePolicy) -> bool:
        p = self.probability(policy)
        if p <= 0.0:
            return False
        if p >= 1.0:
            return True
        with self._lock:
            return self._stream(policy.source_id).random() < p

    def _stream(self, source_id: str) -> random.Random:
        if self.rng is not None:
            return self.rng
        stream = self._streams.get(source_id)
        if stream is None:
            stream = random.Random(f"{self.seed}:{source_id}") if self.seed is not None else random.Random()
            self._streams[source_id] = stream
        return stream


class FreshnessFilter(ABC):
    """Shared evaluation of one candidate against its source's cutoff.

    Args:
        chain: Date-estimation orchestrator.
        router: Supplies per-source policies and windows.
        fallback: Inclusion policy for undatable items.
        now_fn: Clock used to compute the cutoff once per batch.
    """

    def __init__(
        self,
        chain: FallbackChain,
        router: StrategyRouter,
        fallback: Optional[FallbackInclusionPolicy] = None,
        now_fn: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.chain = chain
        self.router = router
        self.fallback = fallback or FallbackInclusionPolicy()
        self._now = now_fn

    @abstractmethod
    def filter(self, items: Sequence[CandidateItem], source_id: str) -> List[FilterResult]:
        """Classify one source's items; results are returned in input order."""
        pass

    def cutoff(self, source_id: str) -> datetime:
        return self._now() - timedelta(hours=self.router.max_age_hours(source_id))

    def _evaluate(self, item: CandidateItem, cutoff: datetime, policy: SourcePolicy) -> FilterResult:
        # ── Feed-supplied timestamp: no estimation ────────────────────────────
        if item.metadata_timestamp is not None:
            estimate = DateEstimate(
                date=item.metadata_timestamp,
                confidence=1.0,
                method=EstimationMethod.METADATA.value,
                details="feed timestamp",
            )
            included = item.metadata_timestamp > cutoff
            return FilterResult(item, estimate, included, "metadata" if included else "stale", cutoff)

        # ── Estimated date ────────────────────────────────────────────────────
        estimate = self.chain.estimate(item)
        if estimate.is_valid():
            included = estimate.date > cutoff
            return FilterResult(item, estimate, included, "fresh" if included else "stale", cutoff)

        # ── Undatable: trust-tiered fallback ──────────────────────────────────
        included = self.fallback.decide(policy)
        reason = "fallback_included" if included else "fallback_excluded"
        logger.info(
            f"{type(self).__name__}: undatable item source={item.source_id} tier={policy.trust_tier} "
            f"{reason} title={item.title[:60]!r}"
        )
        return FilterResult(item, estimate, included, reason, cutoff)

    def _evaluate_item(self, item: CandidateItem, cutoff: datetime, policy: SourcePolicy) -> FilterResult:
        """Evaluate one item; an unexpected failure marks only that item as ``error``."""
        try:
            return self._evaluate(item, cutoff, policy)
        except Exception as exc:
            logger.error(
                f"{type(self).__name__}: item failed source={item.source_id} url={item.url}: {exc}",
                exc_info=True,
            )
            return FilterResult(item, DateEstimate.failed(f"item error: {exc}"), False, "error", cutoff)

    def _log_summary(self, source_id: str, results: Sequence[FilterResult], evaluated: int) -> None:
        included = sum(1 for r in results if r.included)
        logger.info(
            f"{type(self).__name__}: source={source_id} items={len(results)} "
            f"evaluated={evaluated} included={included}"
        )


class SequentialFreshnessFilter(FreshnessFilter):
    """Evaluate every item in order."""

    def filter(self, items: Sequence[CandidateItem], source_id: str) -> List[FilterResult]:
        cutoff = self.cutoff(source_id)
        policy = self.router.policy(source_id)
        results = [self._evaluate_item(item, cutoff, policy) for item in items]
        self._log_summary(source_id, results, len(results))
        return results


class BinarySearchFreshnessFilter(FreshnessFilter):
    """Probe-and-expand filter for feeds ordered most to least recent.

    A fresh probe is expanded outward in both directions until the first
    non-fresh neighbour on each side; a stale probe narrows the search to the
    more recent half. Items never evaluated are reported as ``not_probed``.
    Only evidence-based freshness steers the search, never fallback inclusion.
    """

    def filter(self, items: Sequence[CandidateItem], source_id: str) -> List[FilterResult]:
        cutoff = self.cutoff(source_id)
        policy = self.router.policy(source_id)
        results: List[Optional[FilterResult]] = [None] * len(items)

        def probe(index: int) -> FilterResult:
            if results[index] is None:
                results[index] = self._evaluate_item(items[index], cutoff, policy)
            return results[index]

        lo, hi = 0, len(items) - 1
        while lo <= hi:
            mid = lo + (hi - lo) // 2
            if not probe(mid).is_fresh:
                hi = mid - 1
                continue

            i = mid - 1
            while i >= 0 and probe(i).is_fresh:
                i -= 1
            j = mid + 1
            while j < len(items) and probe(j).is_fresh:
                j += 1
            break

        evaluated = sum(1 for r in results if r is not None)
        final = [
            r if r is not None else FilterResult(
                item=items[k],
                estimate=DateEstimate.failed("not probed"),
                included=False,
                reason="not_probed",
                cutoff=cutoff,
            )
            for k, r in enumerate(results)
        ]
        self._log_summary(source_id, final, evaluated)
        return final


def build_filter(
    mode: str,
    chain: FallbackChain,
    router: StrategyRouter,
    fallback: Optional[FallbackInclusionPolicy] = None,
    now_fn: Callable[[], datetime] = datetime.now,
) -> FreshnessFilter:
    """Instantiate the filter for a ``filter_mode`` value."""
    if mode == FilterMode.BINARY_SEARCH.value:
        return BinarySearchFreshnessFilter(chain, router, fallback, now_fn)
    if mode == FilterMode.SEQUENTIAL.value:
        return SequentialFreshnessFilter(chain, router, fallback, now_fn)
    raise ValueError(f"unknown filter mode: {mode!r}")
