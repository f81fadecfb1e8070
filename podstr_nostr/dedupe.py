"""Event deduplication across relay batches.

The same event is usually stored on several relays, so a fan-out query
returns it once per relay that has it. Event IDs are content hashes, so
two events with the same ID are the same event.
"""
from collections import OrderedDict
from typing import Iterable, Iterator, Optional

from .models import NostrEvent


class DedupeCache:
    """Insertion-ordered set of seen event IDs.

    Optionally bounded: when max_size is set, the least recently seen ID
    is evicted once the cache is full. Reconciliation uses an unbounded
    cache since it only lives for one query cycle.

    Args:
        max_size: Maximum number of event IDs to track (None = unbounded)
    """

    def __init__(self, max_size: Optional[int] = None):
        """Initialize dedupe cache.

        Args:
            max_size: Maximum number of IDs before evicting the oldest
        """
        self._max_size = max_size
        self._cache: OrderedDict[str, bool] = OrderedDict()

    def is_seen(self, event_id: str) -> bool:
        """Check if an event has been seen before.

        Also refreshes the entry's position for eviction purposes.

        Args:
            event_id: The Nostr event ID to check

        Returns:
            True if the event was previously marked as seen
        """
        if event_id in self._cache:
            self._cache.move_to_end(event_id)
            return True
        return False

    def mark_seen(self, event_id: str) -> None:
        """Mark an event as seen, evicting the oldest entry if full.

        Args:
            event_id: The Nostr event ID to mark as seen
        """
        if event_id in self._cache:
            self._cache.move_to_end(event_id)
            return

        self._cache[event_id] = True

        if self._max_size is not None and len(self._cache) > self._max_size:
            self._cache.popitem(last=False)

    def check_and_mark(self, event_id: str) -> bool:
        """Mark an event as seen and report whether it was new.

        Returns:
            True if this is the first sighting of event_id
        """
        if self.is_seen(event_id):
            return False
        self.mark_seen(event_id)
        return True

    def unique(self, events: Iterable[NostrEvent]) -> Iterator[NostrEvent]:
        """Yield each event the first time its ID is seen."""
        for event in events:
            if self.check_and_mark(event.id):
                yield event

    def size(self) -> int:
        """Get current number of tracked events."""
        return len(self._cache)

    def clear(self) -> None:
        """Clear all entries from the cache."""
        self._cache.clear()
