"""Bloomberg: dated ``/news/articles/YYYY-MM-DD/`` permalinks and a fast, ordered feed."""

from datetime import timedelta

from freshgate.core.confidence import AgeBand, ConfidenceModel
from freshgate.core.patterns import BLOOMBERG_ARTICLE, GENERIC_URL_PATTERNS
from freshgate.estimators.base import DateEstimator, PositionBucket
from freshgate.models.datatypes import TrustTier


class BloombergEstimator(DateEstimator):
    name = "Bloomberg"
    url_hosts = ("bloomberg.com",)
    url_patterns = (BLOOMBERG_ARTICLE,) + tuple(GENERIC_URL_PATTERNS)

    # 15 min, then 1-2h, 2-10h, 12-18h, 24h+
    position_buckets = (
        PositionBucket(upper=1, offset_hours=0.25),
        PositionBucket(upper=3, offset_hours=0, step_hours=1),
        PositionBucket(upper=8, offset_hours=2, step_hours=2, start=3),
        PositionBucket(upper=15, offset_hours=12, step_hours=1, start=8),
        PositionBucket(upper=None, offset_hours=24, step_hours=1, start=15, cap=24),
    )
    title_keywords = (
        (("breaking", "urgent", "flash", "alert"), timedelta(minutes=30)),
        (("preview", "outlook"), timedelta(hours=2)),
    )
    pattern_default = timedelta(hours=4)

    confidence = ConfidenceModel(
        base_rates={"url_pattern": 0.9, "rss_position": 0.7, "publishing_pattern": 0.5, "cache": 0.95},
        age_bands=(AgeBand(6, 1.0), AgeBand(24, 0.9), AgeBand(48, 0.7)),
        stale_factor=0.3,
        future_factor=0.1,
    )

    max_age_hours_default = 48
    typical_publishing_hours = "0-23"
    average_articles_per_day = 50
    assumed_recent_article_count = 8
    trust_tier = TrustTier.HIGH.value

    def supports(self, source_id: str) -> bool:
        return "bloomberg" in (source_id or "").lower()
