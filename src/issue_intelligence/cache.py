"""In-memory embedding cache keyed by issue ID and content hash."""

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

# Default TTL for cached embeddings (24 hours)
DEFAULT_EMBEDDING_TTL = 24 * 60 * 60

DEFAULT_MAX_SIZE = 10000

# Fraction of max_size evicted when a full cache receives a new key
EVICTION_FRACTION = 0.1


@dataclass
class CacheEntry:
    """One cached embedding."""

    issue_id: str
    content_hash: str
    vector: list[float]
    inserted_at: float
    expires_at: float


@dataclass
class CacheStats:
    """Snapshot of cache occupancy."""

    size: int
    max_size: int
    ttl_seconds: float
    oldest_entry_age: float | None = None
    newest_entry_age: float | None = None


class EmbeddingCache:
    """Cache of issue embeddings.

    An entry is returned only while the issue's content hash is unchanged
    and its TTL has not elapsed. When a new key arrives at a full cache,
    the oldest entries by insertion time are evicted.

    Not safe for concurrent use: give each process one owner and serialize
    access if several tasks share it.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_EMBEDDING_TTL,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the embedding cache.

        Args:
            ttl_seconds: Time-to-live for cached embeddings
            max_size: Maximum number of entries
            clock: Returns the current time in seconds
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self.ttl = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @staticmethod
    def compute_content_hash(title: str | None, body: str | None) -> str:
        """Hash an issue's title and body.

        Input is trimmed and lower-cased so cosmetic edits do not
        invalidate the cache.
        """
        normalized = f"{(title or '').strip().lower()}\n{(body or '').strip().lower()}"
        return hashlib.sha256(normalized.encode("utf-8")).hexdigest()

    def get(self, issue_id: str, content_hash: str) -> list[float] | None:
        """Get a cached embedding.

        Args:
            issue_id: Issue identifier
            content_hash: Hash of the issue's current content

        Returns:
            The embedding vector, or None on a miss
        """
        entry = self._entries.get(issue_id)
        if entry is None:
            return None

        if entry.content_hash != content_hash:
            logger.debug(f"Embedding cache: content changed for {issue_id}")
            del self._entries[issue_id]
            return None

        if self._clock() >= entry.expires_at:
            logger.debug(f"Embedding cache: entry expired for {issue_id}")
            del self._entries[issue_id]
            return None

        return entry.vector

    def put(self, issue_id: str, content_hash: str, vector: list[float]) -> None:
        """Store an embedding, evicting the oldest entries if the cache is full.

        Args:
            issue_id: Issue identifier
            content_hash: Hash of the content the vector was computed from
            vector: Embedding vector
        """
        if issue_id not in self._entries and len(self._entries) >= self.max_size:
            self._evict_oldest()

        now = self._clock()
        # Re-inserting moves the key to the end of the insertion order
        self._entries.pop(issue_id, None)
        self._entries[issue_id] = CacheEntry(
            issue_id=issue_id,
            content_hash=content_hash,
            vector=vector,
            inserted_at=now,
            expires_at=now + self.ttl,
        )

    def _evict_oldest(self) -> int:
        """Remove the oldest entries by insertion time."""
        evict_count = max(1, int(self.max_size * EVICTION_FRACTION))
        oldest = sorted(self._entries.values(), key=lambda e: e.inserted_at)[:evict_count]

        for entry in oldest:
            del self._entries[entry.issue_id]

        logger.debug(f"Embedding cache: evicted {len(oldest)} oldest entries")
        return len(oldest)

    def clean_expired(self) -> int:
        """Remove expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.info(f"Embedding cache: removed {len(expired)} expired entries")
        return len(expired)

    def clear(self) -> None:
        """Remove all entries."""
        self._entries.clear()

    def keys(self) -> list[str]:
        """Cached issue IDs in insertion order."""
        return list(self._entries.keys())

    def stats(self) -> CacheStats:
        """Get cache statistics."""
        now = self._clock()
        ages = [now - entry.inserted_at for entry in self._entries.values()]

        return CacheStats(
            size=len(self._entries),
            max_size=self.max_size,
            ttl_seconds=self.ttl,
            oldest_entry_age=max(ages) if ages else None,
            newest_entry_age=min(ages) if ages else None,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, issue_id: object) -> bool:
        return issue_id in self._entries
