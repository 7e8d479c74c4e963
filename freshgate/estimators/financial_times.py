"""Financial Times: mostly undated ``/content/<uuid>`` URLs, London daytime publishing."""

from datetime import datetime, timedelta
from typing import Optional

from freshgate.core.confidence import AgeBand, ConfidenceModel
from freshgate.core.patterns import FT_CONTENT_EPOCH, GENERIC_URL_PATTERNS
from freshgate.estimators.base import DateEstimator, PositionBucket, latest_publishing_time
from freshgate.models.datatypes import CandidateItem, SourcePolicy, TrustTier


class FinancialTimesEstimator(DateEstimator):
    name = "Financial Times"
    url_hosts = ("ft.com",)
    url_patterns = (FT_CONTENT_EPOCH,) + tuple(GENERIC_URL_PATTERNS)

    position_buckets = (
        PositionBucket(upper=1, offset_hours=0.5),
        PositionBucket(upper=5, offset_hours=2, step_hours=2),
        PositionBucket(upper=10, offset_hours=12, step_hours=2, start=5),
        PositionBucket(upper=None, offset_hours=24, step_hours=1, start=10),
    )

    confidence = ConfidenceModel(
        base_rates={"url_pattern": 0.8, "rss_position": 0.6, "publishing_pattern": 0.4, "cache": 0.9},
        age_bands=(AgeBand(24, 1.0), AgeBand(72, 0.8)),
        stale_factor=0.5,
        future_factor=0.3,
    )

    max_age_hours_default = 72
    typical_publishing_hours = "6-23"
    average_articles_per_day = 30
    assumed_recent_article_count = 5
    trust_tier = TrustTier.HIGH.value

    def supports(self, source_id: str) -> bool:
        source = (source_id or "").lower()
        return source == "ft" or source.startswith("ft_") or "financial_times" in source

    def estimate_from_publishing_pattern(
        self, item: CandidateItem, policy: SourcePolicy, now: datetime
    ) -> Optional[datetime]:
        hours = policy.publishing_hours
        if now.hour in hours:
            return now - timedelta(hours=1)
        # Outside the window: the end of the previous active stretch
        return latest_publishing_time(now, hours)
