"""Process-wide cache of read-mostly site facts.

The cache is created once by the caller and handed to every transformation
run. Entries are keyed by ``(site_id, kind)`` and populated lazily through the
repository; the first stored value for a key wins.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pagelift.repository.base import Repository

logger = logging.getLogger("pagelift.cache")

FACT_AVAILABLE_CONTROLS = "available_controls"
FACT_PUBLISHING_LIBRARY = "publishing_library"
FACT_SITE_URL = "site_url"

CacheKey = tuple[str, str]


class MetadataCache:
    """Thread-safe, lazily populated key/value store for site facts."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[CacheKey, Any] = {}

    def get(self, repository: Repository, site_id: str, kind: str) -> Any:
        """Return a cached fact, fetching it through the repository on a miss."""

        key = (site_id, kind)
        with self._lock:
            if key in self._entries:
                return self._entries[key]

        # Fetch outside the lock; concurrent misses may fetch twice.
        value = _normalize(kind, repository.ensure_site_fact(site_id, kind))
        with self._lock:
            stored = self._entries.setdefault(key, value)
        logger.debug("cached site fact %s for %s", kind, site_id)
        return stored

    def peek(self, site_id: str, kind: str) -> Any | None:
        """Return a cached fact without fetching."""

        with self._lock:
            return self._entries.get((site_id, kind))

    def clear_all(self) -> None:
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
        logger.info("metadata cache cleared (%d entries)", dropped)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def available_controls(self, repository: Repository, site_id: str) -> frozenset[str]:
        return self.get(repository, site_id, FACT_AVAILABLE_CONTROLS)

    def publishing_library(self, repository: Repository, site_id: str) -> str:
        return self.get(repository, site_id, FACT_PUBLISHING_LIBRARY)

    def site_url(self, repository: Repository, site_id: str) -> str:
        return self.get(repository, site_id, FACT_SITE_URL)


def _normalize(kind: str, value: Any) -> Any:
    if kind == FACT_AVAILABLE_CONTROLS and value is not None:
        return frozenset(str(item) for item in value)
    return value
