"""In-process cache for the last generated feed document.

The cache is an explicit object owned by whoever builds feeds (usually a
PodcastNostr client). It is cleared by an age limit, or by an explicit
invalidation whenever the catalog changes.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class InvalidationReason(str, Enum):
    """Why a cached feed was discarded."""
    EPISODE_PUBLISHED = "episode_published"
    METADATA_UPDATED = "metadata_updated"
    TRAILER_PUBLISHED = "trailer_published"
    TRAILER_DELETED = "trailer_deleted"
    MANUAL = "manual"


@dataclass
class CachedFeed:
    xml: str
    episode_count: int
    generated_at: float          # Clock value at put() time


class FeedCache:
    """Holds at most one generated feed.

    Args:
        max_age_s: Seconds a stored feed stays fresh (default: 300, matching
            the feed's public max-age)
        clock: Time source returning seconds, injectable for tests
    """

    def __init__(self, max_age_s: float = 300, clock: Callable[[], float] = time.time):
        self.max_age_s = max_age_s
        self._clock = clock
        self._entry: Optional[CachedFeed] = None
        self.last_invalidation: Optional[InvalidationReason] = None

    def get(self) -> Optional[CachedFeed]:
        """Return the stored feed if it is still fresh, else None."""
        if self._entry is None:
            return None
        age = self._clock() - self._entry.generated_at
        if age > self.max_age_s:
            logger.debug("Cached feed expired (%.0fs old)", age)
            self._entry = None
            return None
        return self._entry

    def put(self, xml: str, episode_count: int) -> CachedFeed:
        """Store a freshly generated feed, replacing any previous one."""
        self._entry = CachedFeed(xml=xml, episode_count=episode_count, generated_at=self._clock())
        return self._entry

    def invalidate(self, reason: InvalidationReason = InvalidationReason.MANUAL) -> None:
        """Discard the stored feed."""
        if self._entry is not None:
            logger.info("Feed cache invalidated: %s", reason.value)
        self._entry = None
        self.last_invalidation = reason

    def is_empty(self) -> bool:
        return self.get() is None
