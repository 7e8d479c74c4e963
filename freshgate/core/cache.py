"""Two-tier, confidence-scored cache of date estimates keyed by URL hash.

Tier 1 is a fixed-capacity in-process map that refuses new keys once full.
Tier 2 is a :class:`freshgate.providers.base.DateStore`. An entry is only
overwritten when the new estimate's confidence strictly exceeds the stored one.
"""

import hashlib
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from freshgate.core.errors import CacheUnavailableError
from freshgate.core.logger import logger
from freshgate.models.datatypes import CacheEntry, DateEstimate
from freshgate.providers.base import DateStore

DEFAULT_MEMORY_CAPACITY = 1000


def hash_url(url: str) -> str:
    """SHA-256 hex digest of the raw URL."""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


class DateCache:
    """Memory map in front of a persistent store, guarded by one lock.

    Args:
        store: Persistent tier. ``None`` runs memory-only.
        capacity: Maximum number of entries held in memory.
        now_fn: Clock used for ``created_at`` and verification timestamps.
    """

    def __init__(
        self,
        store: Optional[DateStore] = None,
        capacity: int = DEFAULT_MEMORY_CAPACITY,
        now_fn: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.capacity = capacity
        self._now = now_fn
        self._memory: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._store_errors = 0

    # ── public ────────────────────────────────────────────────────────────────

    def lookup(self, url: str) -> Optional[DateEstimate]:
        """Return the cached estimate for ``url`` (method suffixed ``_cached``), else None.

        A hit counts as a verification and is written back to the store.
        """
        key = hash_url(url)
        with self._lock:
            entry = self._memory.get(key)
            if entry is None:
                entry = self._store_get(key)
                if entry is not None and len(self._memory) < self.capacity:
                    self._memory[key] = entry

            if entry is None:
                self._misses += 1
                return None

            entry.increment_verification(self._now())
            self._store_put(entry)
            self._hits += 1
            return entry.to_estimate()

    def save(self, url: str, source_name: str, estimate: DateEstimate) -> bool:
        """Persist ``estimate`` when it is valid and improves on any existing entry.

        Returns:
            bool: True when the estimate was stored.
        """
        if not estimate.is_valid() or estimate.is_cached:
            return False

        key = hash_url(url)
        with self._lock:
            existing = self._memory.get(key) or self._store_get(key)
            if existing is not None and estimate.confidence <= existing.confidence:
                return False

            now = self._now()
            if existing is not None:
                entry = existing
                entry.extracted_date = estimate.date
                entry.method = estimate.method
                entry.confidence = estimate.confidence
                entry.details = estimate.details
                entry.increment_verification(now)
            else:
                entry = CacheEntry(
                    url_hash=key,
                    source_name=source_name,
                    extracted_date=estimate.date,
                    method=estimate.method,
                    confidence=estimate.confidence,
                    details=estimate.details,
                    created_at=now,
                )

            if key in self._memory or len(self._memory) < self.capacity:
                self._memory[key] = entry
            self._store_put(entry)

        logger.info(
            f"DateCache: saved source={source_name} method={estimate.method} "
            f"confidence={estimate.confidence:.2f} date={estimate.date}"
        )
        return True

    def cleanup_older_than(self, retention: timedelta) -> int:
        """Drop entries created more than ``retention`` ago from both tiers."""
        cutoff = self._now() - retention
        with self._lock:
            stale = [k for k, e in self._memory.items() if e.created_at < cutoff]
            for key in stale:
                del self._memory[key]
        removed = len(stale)
        if self.store is not None:
            try:
                removed = max(removed, self.store.delete_older_than(cutoff))
            except CacheUnavailableError as exc:
                logger.error(f"DateCache: store cleanup failed: {exc}")
        logger.info(f"DateCache: cleanup removed={removed} cutoff={cutoff:%Y-%m-%d %H:%M}")
        return removed

    def invalidate_below(self, threshold: float) -> int:
        """Invalidate entries whose confidence is below ``threshold``."""
        with self._lock:
            weak = [k for k, e in self._memory.items() if e.confidence < threshold]
            for key in weak:
                del self._memory[key]
        invalidated = len(weak)
        if self.store is not None:
            try:
                invalidated = max(invalidated, self.store.invalidate_below_confidence(threshold))
            except CacheUnavailableError as exc:
                logger.error(f"DateCache: store invalidation failed: {exc}")
        logger.info(f"DateCache: invalidated={invalidated} threshold={threshold:.2f}")
        return invalidated

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "memory_entries": len(self._memory),
                "capacity": self.capacity,
                "hits": self._hits,
                "misses": self._misses,
                "store_errors": self._store_errors,
            }

    # ── internal ──────────────────────────────────────────────────────────────

    def _store_get(self, key: str) -> Optional[CacheEntry]:
        if self.store is None:
            return None
        try:
            return self.store.get(key)
        except CacheUnavailableError as exc:
            self._store_errors += 1
            logger.warning(f"DateCache: store lookup skipped: {exc}")
            return None

    def _store_put(self, entry: CacheEntry) -> None:
        if self.store is None:
            return
        try:
            self.store.put(entry)
        except CacheUnavailableError as exc:
            self._store_errors += 1
            logger.warning(f"DateCache: store write skipped: {exc}")
