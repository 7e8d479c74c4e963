"""MarketWatch: US-market-hour publishing, dated story slugs and hex-epoch URL suffixes."""

from datetime import datetime, timedelta
from typing import Optional

from freshgate.core.confidence import AgeBand, ConfidenceModel, HourBonus
from freshgate.core.patterns import GENERIC_URL_PATTERNS, HEX_EPOCH_SUFFIX, MARKETWATCH_STORY
from freshgate.estimators.base import DateEstimator, PositionBucket
from freshgate.models.datatypes import CandidateItem, SourcePolicy, TrustTier, parse_hour_window

# US session expressed in local (KST) hours
US_MARKET_HOURS = "20-10"

MARKET_KEYWORDS = ("stock", "market", "trading", "dow", "s&p", "nasdaq")
EARNINGS_KEYWORDS = ("earnings", "quarterly")


def _most_recent(now: datetime, hour: int, minute: int) -> datetime:
    """Latest ``hour:minute`` at or before ``now``."""
    pinned = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if pinned > now:
        pinned -= timedelta(days=1)
    return pinned


class MarketWatchEstimator(DateEstimator):
    name = "MarketWatch"
    url_hosts = ("marketwatch.com",)
    url_patterns = (MARKETWATCH_STORY,) + tuple(GENERIC_URL_PATTERNS) + (HEX_EPOCH_SUFFIX,)

    position_buckets = (
        PositionBucket(upper=1, offset_hours=0.5),
        PositionBucket(upper=5, offset_hours=1, step_hours=1),
        PositionBucket(upper=12, offset_hours=6, step_hours=2, start=5),
        PositionBucket(upper=None, offset_hours=24, step_hours=1, start=12, cap=24),
    )

    confidence = ConfidenceModel(
        base_rates={"url_pattern": 0.7, "rss_position": 0.6, "publishing_pattern": 0.5, "cache": 0.9},
        age_bands=(AgeBand(12, 1.0), AgeBand(48, 0.8)),
        stale_factor=0.4,
        future_factor=0.2,
        hour_bonus=HourBonus(hours=parse_hour_window(US_MARKET_HOURS), factor=1.1),
    )

    max_age_hours_default = 48
    typical_publishing_hours = US_MARKET_HOURS
    average_articles_per_day = 25
    assumed_recent_article_count = 6
    trust_tier = TrustTier.HIGH.value

    def supports(self, source_id: str) -> bool:
        return "marketwatch" in (source_id or "").lower()

    def estimate_from_publishing_pattern(
        self, item: CandidateItem, policy: SourcePolicy, now: datetime
    ) -> Optional[datetime]:
        title = (item.title or "").lower()
        if any(keyword in title for keyword in MARKET_KEYWORDS):
            if now.hour in policy.publishing_hours:
                return now - timedelta(hours=2)
            # Session over: pinned to the US close
            return _most_recent(now, 8, 0)
        if any(keyword in title for keyword in EARNINGS_KEYWORDS):
            return _most_recent(now, 8, 30)
        return now - timedelta(hours=6)
