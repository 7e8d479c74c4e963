"""feedparser-backed feed adapter producing :class:`CandidateItem` batches."""

import calendar
from datetime import datetime
from typing import List, Optional, Sequence

import feedparser

from freshgate.core.logger import logger
from freshgate.models.datatypes import CandidateItem
from freshgate.providers.base import FeedProvider


def _entry_timestamp(entry) -> Optional[datetime]:
    """Local naive datetime from ``published_parsed``/``updated_parsed`` (UTC struct_time)."""
    parsed = getattr(entry, "published_parsed", None) or getattr(entry, "updated_parsed", None)
    if not parsed:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(parsed))
    except (OverflowError, ValueError, OSError):
        return None


class FeedparserProvider(FeedProvider):
    """Parse RSS/Atom feeds into candidates.

    Args:
        keywords: Optional title keywords; when given, only matching entries are kept.
        use_feed_timestamps: When False, feed-supplied dates are ignored so every
            item goes through date estimation.
    """

    def __init__(self, keywords: Optional[Sequence[str]] = None, use_feed_timestamps: bool = True) -> None:
        self.keywords = [k.lower() for k in (keywords or []) if k]
        self.use_feed_timestamps = use_feed_timestamps

    def fetch_candidates(self, source_id: str, feed_url: str) -> List[CandidateItem]:
        logger.info(f"FeedparserProvider: fetching source={source_id}")
        try:
            feed = feedparser.parse(feed_url)
        except Exception as exc:
            logger.error(f"FeedparserProvider: INFRA_FAILURE for {source_id}: {exc}")
            return []

        if feed.bozo and hasattr(feed, "bozo_exception"):
            logger.warning(
                f"FeedparserProvider: RSS parse warning for {source_id}: {feed.bozo_exception}"
            )

        seen = set()
        kept = []
        for entry in feed.entries:
            title = getattr(entry, "title", "").strip()
            link = getattr(entry, "link", "").strip()
            key = link or getattr(entry, "id", "")
            if not title or not key or key in seen:
                continue
            seen.add(key)
            if self.keywords and not any(k in title.lower() for k in self.keywords):
                continue
            kept.append((title, link or key, _entry_timestamp(entry) if self.use_feed_timestamps else None))

        items = [
            CandidateItem(
                source_id=source_id,
                url=url,
                title=title,
                feed_position=position,
                feed_size=len(kept),
                metadata_timestamp=timestamp,
            )
            for position, (title, url, timestamp) in enumerate(kept)
        ]
        logger.info(f"FeedparserProvider: {len(items)} candidates for {source_id}")
        return items
