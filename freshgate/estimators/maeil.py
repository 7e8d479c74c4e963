"""Maeil Business: Korean ``idxno=YYYYMMDD...`` permalinks and Korean breaking-news markers."""

from datetime import timedelta

from freshgate.core.confidence import AgeBand, ConfidenceModel
from freshgate.core.patterns import GENERIC_URL_PATTERNS, MAEIL_IDXNO
from freshgate.estimators.base import DateEstimator, PositionBucket
from freshgate.models.datatypes import TrustTier


class MaeilEstimator(DateEstimator):
    name = "Maeil Business"
    url_patterns = (MAEIL_IDXNO,) + tuple(GENERIC_URL_PATTERNS)

    position_buckets = (
        PositionBucket(upper=1, offset_hours=0.5),
        PositionBucket(upper=5, offset_hours=1, step_hours=1, start=1),
        PositionBucket(upper=10, offset_hours=6, step_hours=2, start=5),
        PositionBucket(upper=None, offset_hours=24, step_hours=1, start=10, cap=24),
    )
    title_keywords = (
        (("속보", "긴급", "breaking"), timedelta(minutes=30)),
        (("마감", "장마감", "개장"), timedelta(hours=2)),
    )
    pattern_default = timedelta(hours=3)

    confidence = ConfidenceModel(
        base_rates={"url_pattern": 0.9, "rss_position": 0.6, "publishing_pattern": 0.4, "cache": 0.9},
        age_bands=(AgeBand(24, 1.0), AgeBand(48, 0.8)),
        stale_factor=0.4,
        future_factor=0.2,
    )

    max_age_hours_default = 48
    typical_publishing_hours = "6-23"
    average_articles_per_day = 40
    assumed_recent_article_count = 5
    trust_tier = TrustTier.LOW.value

    def supports(self, source_id: str) -> bool:
        return "maeil" in (source_id or "").lower()
