"""Date-estimation strategy contract shared by every per-source estimator.

An estimator is a parameter table (URL patterns, feed-position buckets,
title keywords, confidence model, default source policy) plus the fixed
step order in :meth:`DateEstimator.estimate`:

  url_pattern -> rss_position -> publishing_pattern -> content_scan

The first step producing a valid :class:`DateEstimate` wins.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from freshgate.core.confidence import ConfidenceModel
from freshgate.core.logger import logger
from freshgate.core.patterns import GENERIC_URL_PATTERNS, UrlDatePattern, extract_date_from_url
from freshgate.models.datatypes import CandidateItem, DateEstimate, EstimationMethod, FilterMode, SourcePolicy, TrustTier


@dataclass(frozen=True)
class PositionBucket:
    """Feed positions below ``upper`` are aged ``offset + step * min(position - start, cap)`` hours.

    ``upper=None`` matches every remaining position; ``cap=None`` is unbounded.
    """
    upper: Optional[int]
    offset_hours: float
    step_hours: float = 0.0
    start: int = 0
    cap: Optional[int] = None

    def age_hours(self, position: int) -> float:
        steps = position - self.start
        if self.cap is not None:
            steps = min(steps, self.cap)
        return self.offset_hours + self.step_hours * max(steps, 0)


KeywordRule = Tuple[Tuple[str, ...], timedelta]


def latest_publishing_time(now: datetime, hours: FrozenSet[int]) -> datetime:
    """Top of the most recent hour (at or before ``now``) inside the publishing window."""
    candidate = now.replace(minute=0, second=0, microsecond=0)
    for _ in range(24):
        if candidate.hour in hours:
            return candidate
        candidate -= timedelta(hours=1)
    return candidate


class DateEstimator(ABC):
    """Base class for per-source date estimators.

    Subclasses override the class-level tables and, where a source needs it,
    :meth:`estimate_from_publishing_pattern` or :meth:`scan_content`.

    Args:
        overrides: Per-source policy overrides from configuration.
        now_fn: Clock; every step of one :meth:`estimate` call shares one reading.
        default_filter_mode: Filter mode for sources without their own ``filter_mode``.
    """

    name: str = "base"
    url_hosts: Tuple[str, ...] = ()
    url_patterns: Sequence[UrlDatePattern] = GENERIC_URL_PATTERNS
    position_buckets: Sequence[PositionBucket] = ()
    title_keywords: Sequence[KeywordRule] = ()
    pattern_default: Optional[timedelta] = None
    confidence: ConfidenceModel = ConfidenceModel(base_rates={})
    assume_recent_valid: bool = True

    max_age_hours_default: int = 72
    typical_publishing_hours: str = "0-23"
    average_articles_per_day: int = 15
    assumed_recent_article_count: Optional[int] = None
    trust_tier: str = TrustTier.LOW.value

    def __init__(
        self,
        overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
        now_fn: Callable[[], datetime] = datetime.now,
        default_filter_mode: str = FilterMode.SEQUENTIAL.value,
    ) -> None:
        self.overrides = {k: dict(v) for k, v in (overrides or {}).items()}
        self._now = now_fn
        self.default_filter_mode = default_filter_mode
        self._policies: Dict[str, SourcePolicy] = {}
        self._policy_lock = threading.Lock()

    # ── contract ──────────────────────────────────────────────────────────────

    @abstractmethod
    def supports(self, source_id: str) -> bool:
        """Return True when this estimator handles ``source_id``."""
        pass

    def max_age_hours(self, source_id: str) -> int:
        return self.policy(source_id).max_age_hours

    def default_policy(self, source_id: str) -> SourcePolicy:
        return SourcePolicy(
            source_id=source_id,
            max_age_hours=self.max_age_hours_default,
            typical_publishing_hours=self.typical_publishing_hours,
            average_articles_per_day=self.average_articles_per_day,
            assumed_recent_article_count=self.assumed_recent_article_count,
            trust_tier=self.trust_tier,
            filter_mode=self.default_filter_mode,
        )

    def policy(self, source_id: str) -> SourcePolicy:
        """Estimator defaults merged with configured overrides, resolved once per source."""
        with self._policy_lock:
            policy = self._policies.get(source_id)
            if policy is None:
                policy = replace(self.default_policy(source_id), **self.overrides.get(source_id, {}))
                self._policies[source_id] = policy
            return policy

    # ── steps ─────────────────────────────────────────────────────────────────

    def extract_date_from_url(self, url: str, now: datetime) -> Optional[datetime]:
        if self.url_hosts and not any(host in (url or "").lower() for host in self.url_hosts):
            return None
        return extract_date_from_url(url, self.url_patterns, now=now)

    def estimate_from_position(self, position: int, feed_size: int, now: datetime) -> Optional[datetime]:
        for bucket in self.position_buckets:
            if bucket.upper is None or position < bucket.upper:
                return now - timedelta(hours=bucket.age_hours(position))
        return None

    def estimate_from_publishing_pattern(
        self, item: CandidateItem, policy: SourcePolicy, now: datetime
    ) -> Optional[datetime]:
        """Title keyword rules first, then the estimator's default age."""
        title = (item.title or "").lower()
        for keywords, age in self.title_keywords:
            if any(keyword in title for keyword in keywords):
                return now - age
        if self.pattern_default is not None:
            return now - self.pattern_default
        return None

    def scan_content(self, item: CandidateItem, source_id: str, now: datetime) -> Optional[DateEstimate]:
        """Fetch-and-scrape step; only the universal estimator implements it."""
        return None

    # ── orchestration ─────────────────────────────────────────────────────────

    def confidence_model(self, source_id: str) -> ConfidenceModel:
        return self.confidence

    def score(self, method: EstimationMethod, estimated: datetime, now: datetime, source_id: str = "") -> float:
        return self.confidence_model(source_id).score(method.value, estimated, now)

    def _scored(
        self, method: EstimationMethod, value: Optional[datetime], now: datetime, details: str, source_id: str
    ) -> Optional[DateEstimate]:
        if value is None:
            return None
        return DateEstimate(
            date=value,
            confidence=self.score(method, value, now, source_id),
            method=method.value,
            details=details,
        )

    def estimate(self, item: CandidateItem, feed_position: int, feed_size: int, source_id: str) -> DateEstimate:
        """Run the estimation steps in order and return the first valid estimate.

        Returns:
            DateEstimate: The first valid estimate, else a ``failed`` estimate.
        """
        now = self._now()
        policy = self.policy(source_id)
        attempts: List[str] = []

        # ── Step 1: URL pattern ───────────────────────────────────────────────
        result = self._scored(
            EstimationMethod.URL_PATTERN,
            self.extract_date_from_url(item.url, now),
            now,
            f"{self.name} URL pattern: {item.url}",
            source_id,
        )
        if result is not None and result.is_valid():
            return result
        attempts.append(_describe(EstimationMethod.URL_PATTERN, result))

        # ── Step 2: feed position ─────────────────────────────────────────────
        if self.assume_recent_valid and feed_position < policy.recent_article_count:
            result = self._scored(
                EstimationMethod.RSS_POSITION,
                self.estimate_from_position(feed_position, feed_size, now),
                now,
                f"{self.name} feed position {feed_position + 1}/{feed_size}",
                source_id,
            )
            if result is not None and result.is_valid():
                return result
            attempts.append(_describe(EstimationMethod.RSS_POSITION, result))

        # ── Step 3: publishing pattern ────────────────────────────────────────
        result = self._scored(
            EstimationMethod.PUBLISHING_PATTERN,
            self.estimate_from_publishing_pattern(item, policy, now),
            now,
            f"{self.name} publishing pattern and title keywords",
            source_id,
        )
        if result is not None and result.is_valid():
            return result
        attempts.append(_describe(EstimationMethod.PUBLISHING_PATTERN, result))

        # ── Step 4: content scan ──────────────────────────────────────────────
        result = self.scan_content(item, source_id, now)
        if result is not None and result.is_valid():
            return result
        attempts.append(_describe(EstimationMethod.CONTENT_SCAN, result))

        logger.info(f"{type(self).__name__}: no valid estimate source={source_id} url={item.url}")
        return DateEstimate.failed(f"{self.name}: " + ", ".join(attempts))


def _describe(method: EstimationMethod, result: Optional[DateEstimate]) -> str:
    if result is None:
        return f"{method.value}=none"
    return f"{method.value}={result.confidence:.2f}"
