"""Persistent date stores backing the two-tier estimate cache."""

import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from freshgate.core.errors import CacheUnavailableError
from freshgate.core.logger import logger
from freshgate.models.datatypes import CacheEntry
from freshgate.providers.base import DateStore

_COLUMNS = (
    "url_hash", "source_name", "extracted_date", "extraction_method",
    "confidence_score", "extraction_details", "created_at",
    "last_verified_at", "verification_count", "is_valid",
)


def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(sep=" ") if value is not None else None


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteDateStore(DateStore):
    """A SQLite-backed store of date extraction results, one row per URL hash."""

    def __init__(self, db_path: str = "output/.date_cache.db") -> None:
        """
        Initialize the SQLite store.

        Args:
            db_path (str): Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a connection to the SQLite database."""
        return sqlite3.connect(self.db_path, check_same_thread=False)

    def _init_db(self) -> None:
        """Create the cache table and indexes if they don't exist."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS article_date_cache (
                        url_hash TEXT PRIMARY KEY,
                        source_name TEXT NOT NULL,
                        extracted_date TIMESTAMP NOT NULL,
                        extraction_method TEXT NOT NULL,
                        confidence_score REAL NOT NULL,
                        extraction_details TEXT,
                        created_at TIMESTAMP NOT NULL,
                        last_verified_at TIMESTAMP,
                        verification_count INTEGER NOT NULL DEFAULT 0,
                        is_valid INTEGER NOT NULL DEFAULT 1
                    )
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_source_created "
                    "ON article_date_cache (source_name, created_at)"
                )
        except sqlite3.Error as e:
            raise CacheUnavailableError(f"cannot initialise {self.db_path}: {e}") from e

    def get(self, url_hash: str) -> Optional[CacheEntry]:
        """
        Retrieve the valid entry for a URL hash.

        Args:
            url_hash (str): SHA-256 hex digest of the URL.

        Returns:
            Optional[CacheEntry]: The entry if found and valid, else None.
        """
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    f"SELECT {', '.join(_COLUMNS)} FROM article_date_cache "
                    "WHERE url_hash = ? AND is_valid = 1",
                    (url_hash,)
                ).fetchone()
        except sqlite3.Error as e:
            raise CacheUnavailableError(f"SQLite error reading {url_hash[:12]}: {e}") from e

        if row is None:
            return None
        try:
            return CacheEntry(
                url_hash=row[0],
                source_name=row[1],
                extracted_date=_from_text(row[2]),
                method=row[3],
                confidence=row[4],
                details=row[5] or "",
                created_at=_from_text(row[6]),
                last_verified_at=_from_text(row[7]),
                verification_count=row[8],
                is_valid=bool(row[9]),
            )
        except (TypeError, ValueError) as e:
            raise CacheUnavailableError(f"corrupt cache row {url_hash[:12]}: {e}") from e

    def put(self, entry: CacheEntry) -> None:
        """
        Store an entry, replacing any previous row for the same URL hash.

        Args:
            entry (CacheEntry): The entry to persist.
        """
        try:
            with self._get_connection() as conn:
                conn.execute(
                    f"INSERT OR REPLACE INTO article_date_cache ({', '.join(_COLUMNS)}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        entry.url_hash,
                        entry.source_name,
                        _to_text(entry.extracted_date),
                        entry.method,
                        entry.confidence,
                        entry.details,
                        _to_text(entry.created_at),
                        _to_text(entry.last_verified_at),
                        entry.verification_count,
                        int(entry.is_valid),
                    )
                )
        except sqlite3.Error as e:
            raise CacheUnavailableError(f"SQLite error saving {entry.url_hash[:12]}: {e}") from e

    def delete_older_than(self, instant: datetime) -> int:
        """Delete rows created before ``instant`` and return how many were removed."""
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM article_date_cache WHERE created_at < ?",
                    (_to_text(instant),)
                )
                deleted = cursor.rowcount
        except sqlite3.Error as e:
            raise CacheUnavailableError(f"SQLite error deleting old entries: {e}") from e
        logger.info(f"SQLiteDateStore: deleted {deleted} entries created before {instant:%Y-%m-%d %H:%M}")
        return deleted

    def invalidate_below_confidence(self, threshold: float) -> int:
        """Flag valid rows scoring below ``threshold`` as invalid and return the count."""
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "UPDATE article_date_cache SET is_valid = 0 "
                    "WHERE is_valid = 1 AND confidence_score < ?",
                    (threshold,)
                )
                invalidated = cursor.rowcount
        except sqlite3.Error as e:
            raise CacheUnavailableError(f"SQLite error invalidating entries: {e}") from e
        logger.info(f"SQLiteDateStore: invalidated {invalidated} entries below confidence {threshold:.2f}")
        return invalidated


class MemoryDateStore(DateStore):
    """A process-local store, used for dry runs and when persistence is disabled."""

    def __init__(self) -> None:
        self._rows: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, url_hash: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._rows.get(url_hash)
            if entry is None or not entry.is_valid:
                return None
            return entry.copy()

    def put(self, entry: CacheEntry) -> None:
        with self._lock:
            self._rows[entry.url_hash] = entry.copy()

    def delete_older_than(self, instant: datetime) -> int:
        with self._lock:
            stale = [k for k, e in self._rows.items() if e.created_at < instant]
            for key in stale:
                del self._rows[key]
        return len(stale)

    def invalidate_below_confidence(self, threshold: float) -> int:
        count = 0
        with self._lock:
            for entry in self._rows.values():
                if entry.is_valid and entry.confidence < threshold:
                    entry.is_valid = False
                    count += 1
        return count

    def __len__(self) -> int:
        return len(self._rows)
