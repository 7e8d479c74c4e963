"""Universal estimator: generic URL patterns plus a fetch-and-scrape content scan.

Used for every source no specialised estimator claims. Its feed-position and
publishing-pattern heuristics score at or below the validity threshold, so
the content scan always gets its turn before the chain gives up.
"""

import re
import threading
from collections import OrderedDict
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping, Optional

from freshgate.core.confidence import AgeBand, ConfidenceModel
from freshgate.core.logger import logger
from freshgate.core.metrics import MetricsSink
from freshgate.estimators.base import DateEstimator, PositionBucket
from freshgate.extraction.content_dates import extract_published_date
from freshgate.models.datatypes import CandidateItem, DateEstimate, EstimationMethod, FilterMode, SourcePolicy, TrustTier
from freshgate.providers.base import HttpFetcher

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "ko-KR,ko;q=0.9,en;q=0.8",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Cache-Control": "max-age=0",
}
SCAN_HEADERS = {"User-Agent": "freshgate-content-scan/1.0"}

# Sites that reject non-browser clients
_BROWSER_HOSTS = ("investing.com",)

_HIGH_TRUST = {"bbc", "bloomberg", "ft", "marketwatch"}
_MEDIUM_TRUST = {"investing", "kotra"}


def default_trust_tier(source_id: str) -> str:
    """Fallback-inclusion tier for a source the configuration does not mention."""
    tokens = set(re.split(r"[^a-z0-9]+", (source_id or "").lower()))
    if tokens & _HIGH_TRUST:
        return TrustTier.HIGH.value
    if tokens & _MEDIUM_TRUST:
        return TrustTier.MEDIUM.value
    return TrustTier.LOW.value


@dataclass(frozen=True)
class ContentScanSettings:
    """The ``content_scan`` configuration section."""
    enabled: bool = True
    timeout_seconds: float = 10.0
    max_concurrent_fetches: int = 4
    max_fetches_per_run: int = 200
    response_cache_size: int = 128

    @classmethod
    def from_config(cls, section: Optional[Mapping[str, Any]]) -> "ContentScanSettings":
        section = section or {}
        known = {k: section[k] for k in cls.__dataclass_fields__ if k in section}
        return cls(**known)


class FetchBudget:
    """Thread-safe cap on the number of fetches issued in one run."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self._used = 0
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        with self._lock:
            if self._used >= self.limit:
                return False
            self._used += 1
            return True

    @property
    def used(self) -> int:
        with self._lock:
            return self._used

    def reset(self) -> None:
        with self._lock:
            self._used = 0


class UniversalEstimator(DateEstimator):
    """Fallback estimator for every source.

    Args:
        fetcher: Page fetcher for the content scan; ``None`` disables the scan.
        settings: Content-scan limits.
        max_age_hours: Freshness window for sources without an override.
        metrics: Optional per-run metrics sink.
    """

    name = "Universal"

    position_buckets = (
        PositionBucket(upper=1, offset_hours=1),
        PositionBucket(upper=3, offset_hours=2, step_hours=1),
        PositionBucket(upper=8, offset_hours=4, step_hours=1),
        PositionBucket(upper=None, offset_hours=12, step_hours=1, cap=60),
    )
    pattern_default = timedelta(hours=6)

    typical_publishing_hours = "0-23"
    average_articles_per_day = 15

    def __init__(
        self,
        fetcher: Optional[HttpFetcher] = None,
        settings: Optional[ContentScanSettings] = None,
        max_age_hours: int = 72,
        metrics: Optional[MetricsSink] = None,
        overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
        now_fn: Callable[[], datetime] = datetime.now,
        default_filter_mode: str = FilterMode.SEQUENTIAL.value,
    ) -> None:
        super().__init__(overrides=overrides, now_fn=now_fn, default_filter_mode=default_filter_mode)
        self.fetcher = fetcher
        self.settings = settings or ContentScanSettings()
        self.max_age_hours_default = max_age_hours
        self.metrics = metrics
        self.confidence = ConfidenceModel(
            base_rates={
                "url_pattern": 0.7,
                "content_scan": 0.8,
                "rss_position": 0.3,
                "publishing_pattern": 0.25,
                "cache": 0.9,
            },
            age_bands=(AgeBand(max_age_hours, 1.0),),
            stale_factor=0.6,
            future_factor=0.2,
        )
        self.budget = FetchBudget(self.settings.max_fetches_per_run)
        self._fetch_slots = threading.BoundedSemaphore(max(1, self.settings.max_concurrent_fetches))
        self._responses: "OrderedDict[str, str]" = OrderedDict()
        self._responses_lock = threading.Lock()

    def supports(self, source_id: str) -> bool:
        return True

    def default_policy(self, source_id: str) -> SourcePolicy:
        return replace(super().default_policy(source_id), trust_tier=default_trust_tier(source_id))

    def confidence_model(self, source_id: str) -> ConfidenceModel:
        """The shared model, with its age band set to the source's own window."""
        max_age = self.policy(source_id).max_age_hours if source_id else self.max_age_hours_default
        if max_age == self.max_age_hours_default:
            return self.confidence
        return replace(self.confidence, age_bands=(AgeBand(max_age, 1.0),))

    def start_run(self) -> None:
        """Reset the per-run response cache and fetch budget."""
        with self._responses_lock:
            self._responses.clear()
        self.budget.reset()

    @staticmethod
    def request_headers(url: str) -> Dict[str, str]:
        if any(host in url.lower() for host in _BROWSER_HOSTS):
            return dict(BROWSER_HEADERS)
        return dict(SCAN_HEADERS)

    def scan_content(self, item: CandidateItem, source_id: str, now: datetime) -> Optional[DateEstimate]:
        if not self.settings.enabled or self.fetcher is None or not item.url:
            return None

        body = self._fetch(item.url)
        if body is None:
            self._record(False, "no_body")
            return None

        found = extract_published_date(body, source_id=source_id, url=item.url, now=now)
        if found is None:
            self._record(False, "no_date")
            return None

        value, stage = found
        self._record(True)
        return DateEstimate(
            date=value,
            confidence=self.score(EstimationMethod.CONTENT_SCAN, value, now, source_id),
            method=EstimationMethod.CONTENT_SCAN.value,
            details=f"Universal content scan ({stage}): {item.url}",
        )

    # ── internal ──────────────────────────────────────────────────────────────

    def _fetch(self, url: str) -> Optional[str]:
        with self._responses_lock:
            if url in self._responses:
                self._responses.move_to_end(url)
                return self._responses[url]

        if not self.budget.try_acquire():
            logger.warning(f"UniversalEstimator: fetch budget exhausted ({self.budget.limit}), skipping {url}")
            if self.metrics is not None:
                self.metrics.increment("content_scan.budget_exhausted")
            return None

        with self._fetch_slots:
            if self.metrics is not None:
                with self.metrics.timer("content_fetch"):
                    body = self.fetcher.fetch(url, self.settings.timeout_seconds, self.request_headers(url))
            else:
                body = self.fetcher.fetch(url, self.settings.timeout_seconds, self.request_headers(url))

        if body is not None and self.settings.response_cache_size > 0:
            with self._responses_lock:
                self._responses[url] = body
                while len(self._responses) > self.settings.response_cache_size:
                    self._responses.popitem(last=False)
        return body

    def _record(self, success: bool, reason: Optional[str] = None) -> None:
        if self.metrics is None:
            return
        if success:
            self.metrics.record_success("content_scan")
        else:
            self.metrics.record_failure("content_scan", reason)
