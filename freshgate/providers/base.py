"""Abstract base classes for the collaborators the freshness core depends on."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Mapping, Optional

from freshgate.models.datatypes import CacheEntry, CandidateItem


class FeedProvider(ABC):
    """Abstract interface for turning a source feed into candidate items."""

    @abstractmethod
    def fetch_candidates(self, source_id: str, feed_url: str) -> List[CandidateItem]:
        """
        Fetch one source's feed and return its entries as candidates.

        Args:
            source_id (str): Stable source code, e.g. ``"bloomberg_economics"``.
            feed_url (str): RSS/Atom URL (or raw feed document).

        Returns:
            List[CandidateItem]: Deduplicated candidates in feed order.
        """
        pass


class DateStore(ABC):
    """Abstract persistence for :class:`CacheEntry` records keyed by URL hash.

    Implementations raise :class:`freshgate.core.errors.CacheUnavailableError`
    when the backing store cannot be used.
    """

    @abstractmethod
    def get(self, url_hash: str) -> Optional[CacheEntry]:
        """
        Fetch the valid entry for a URL hash.

        Args:
            url_hash (str): SHA-256 hex digest of the raw URL.

        Returns:
            Optional[CacheEntry]: The entry if present and valid, else None.
        """
        pass

    @abstractmethod
    def put(self, entry: CacheEntry) -> None:
        """
        Insert or overwrite the entry for ``entry.url_hash``.

        Args:
            entry (CacheEntry): The record to persist.
        """
        pass

    @abstractmethod
    def delete_older_than(self, instant: datetime) -> int:
        """
        Delete entries created before ``instant``.

        Returns:
            int: Number of deleted entries.
        """
        pass

    @abstractmethod
    def invalidate_below_confidence(self, threshold: float) -> int:
        """
        Mark valid entries scoring below ``threshold`` as invalid.

        Returns:
            int: Number of invalidated entries.
        """
        pass


class HttpFetcher(ABC):
    """Abstract interface for fetching article bodies."""

    @abstractmethod
    def fetch(self, url: str, timeout: float, headers: Optional[Mapping[str, str]] = None) -> Optional[str]:
        """
        Fetch a page body.

        Args:
            url (str): Page URL.
            timeout (float): Upper bound in seconds for the whole request.
            headers (Optional[Mapping[str, str]]): Extra request headers.

        Returns:
            Optional[str]: Decoded body on a 2xx response, else None.
        """
        pass
