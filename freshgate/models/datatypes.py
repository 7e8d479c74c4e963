"""Data structures for the freshness classification core."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional

# An estimate must score strictly above this to be trusted.
VALIDITY_THRESHOLD = 0.3

CACHED_SUFFIX = "_cached"


def parse_hour_window(window: str) -> FrozenSet[int]:
    """Expand an inclusive ``"start-end"`` hour window into its hours.

    ``"6-23"`` covers 6..23; ``"20-10"`` wraps past midnight and covers
    20..23 and 0..10.

    Raises:
        ValueError: If the window is malformed or an hour lies outside 0..23.
    """
    try:
        start_text, end_text = window.split("-")
        start, end = int(start_text), int(end_text)
    except (AttributeError, ValueError):
        raise ValueError(f"invalid publishing hour window: {window!r}")
    if not (0 <= start <= 23 and 0 <= end <= 23):
        raise ValueError(f"publishing hours out of range: {window!r}")
    if start <= end:
        return frozenset(range(start, end + 1))
    return frozenset(range(start, 24)) | frozenset(range(0, end + 1))


class EstimationMethod(str, Enum):
    """How a :class:`DateEstimate` was obtained."""
    METADATA = "metadata"
    CACHE = "cache"
    URL_PATTERN = "url_pattern"
    RSS_POSITION = "rss_position"
    PUBLISHING_PATTERN = "publishing_pattern"
    CONTENT_SCAN = "content_scan"
    FAILED = "failed"


class TrustTier(str, Enum):
    """Source trust tiers used by the fallback inclusion policy."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FilterMode(str, Enum):
    """Per-source freshness filter selection."""
    SEQUENTIAL = "sequential"
    BINARY_SEARCH = "binary_search"


@dataclass(frozen=True)
class CandidateItem:
    """
    One feed entry awaiting freshness classification.

    ``feed_position`` is the 0-based index within the source's feed, most
    recent first by convention. ``metadata_timestamp`` is only present when
    the feed itself supplied a publication time.
    """
    source_id: str
    url: str
    title: str
    feed_position: int = 0
    feed_size: int = 1
    metadata_timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class DateEstimate:
    """
    The outcome of one estimation attempt.

    Attributes:
        date: Estimated publication time, or ``None`` when nothing was found.
        confidence: Trust in the estimate, in ``[0.0, 1.0]``.
        method: One of :class:`EstimationMethod` values, optionally suffixed
            with ``_cached`` when served from the cache.
        details: Free-text provenance for diagnostics.
    """
    date: Optional[datetime]
    confidence: float
    method: str
    details: str = ""

    def is_valid(self) -> bool:
        return self.date is not None and self.confidence > VALIDITY_THRESHOLD

    @property
    def is_cached(self) -> bool:
        return self.method.endswith(CACHED_SUFFIX)

    @classmethod
    def failed(cls, details: str = "all estimation methods failed") -> "DateEstimate":
        return cls(date=None, confidence=0.0, method=EstimationMethod.FAILED.value, details=details)

    def __str__(self) -> str:
        return (
            f"DateEstimate(date={self.date}, confidence={self.confidence:.2f}, "
            f"method={self.method}, details={self.details})"
        )


@dataclass
class CacheEntry:
    """
    Durable record of the best estimate ever produced for a URL.

    Owned and mutated exclusively by :class:`freshgate.core.cache.DateCache`.
    """
    url_hash: str
    source_name: str
    extracted_date: datetime
    method: str
    confidence: float
    details: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    last_verified_at: Optional[datetime] = None
    verification_count: int = 0
    is_valid: bool = True

    def increment_verification(self, when: Optional[datetime] = None) -> None:
        self.verification_count += 1
        self.last_verified_at = when or datetime.now()

    def is_high_confidence(self) -> bool:
        return self.confidence >= 0.7

    def to_estimate(self) -> DateEstimate:
        """Render this entry as a cache-served :class:`DateEstimate`."""
        return DateEstimate(
            date=self.extracted_date,
            confidence=self.confidence,
            method=f"{self.method}{CACHED_SUFFIX}",
            details=f"cached: {self.details}",
        )

    def copy(self) -> "CacheEntry":
        return replace(self)


@dataclass(frozen=True)
class SourcePolicy:
    """
    Per-source tunables loaded from configuration once per run.

    ``typical_publishing_hours`` is an inclusive hour window such as
    ``"6-23"``; windows may wrap past midnight (``"20-10"``).
    """
    source_id: str
    max_age_hours: int = 72
    typical_publishing_hours: str = "6-23"
    average_articles_per_day: int = 20
    assumed_recent_article_count: Optional[int] = None
    trust_tier: str = TrustTier.LOW.value
    filter_mode: str = FilterMode.SEQUENTIAL.value
    display_name: str = ""
    feed_url: str = ""

    @property
    def recent_article_count(self) -> int:
        if self.assumed_recent_article_count is not None:
            return self.assumed_recent_article_count
        return min(5, self.average_articles_per_day // 4)

    @property
    def publishing_hours(self) -> FrozenSet[int]:
        return parse_hour_window(self.typical_publishing_hours)


@dataclass(frozen=True)
class FilterResult:
    """
    Annotated outcome for one candidate item.

    ``reason`` is one of ``metadata``, ``fresh``, ``stale``,
    ``fallback_included``, ``fallback_excluded``, ``not_probed``, ``error``.
    Only ``included`` items continue downstream.
    """
    item: CandidateItem
    estimate: DateEstimate
    included: bool
    reason: str
    cutoff: datetime

    @property
    def is_fresh(self) -> bool:
        """True when the estimate itself places the item after the cutoff."""
        return (
            self.estimate.date is not None
            and (self.reason == "metadata" or self.estimate.is_valid())
            and self.estimate.date > self.cutoff
        )
