"""Tests for event deduplication."""
from podstr_nostr.dedupe import DedupeCache


class TestDedupeCache:
    """Tests for the in-memory dedupe cache."""

    def test_check_and_mark(self):
        """Test first sighting vs repeats."""
        cache = DedupeCache()

        assert cache.check_and_mark("event1") is True
        assert cache.check_and_mark("event1") is False
        assert cache.is_seen("event1") is True
        assert cache.is_seen("event2") is False

    def test_bounded_eviction(self):
        """Test that the oldest ID is evicted when full."""
        cache = DedupeCache(max_size=2)
        cache.mark_seen("event1")
        cache.mark_seen("event2")
        cache.mark_seen("event3")

        assert cache.size() == 2
        assert cache.is_seen("event1") is False
        assert cache.is_seen("event3") is True

    def test_lookup_refreshes_position(self):
        """Test that a recently checked ID is not evicted first."""
        cache = DedupeCache(max_size=2)
        cache.mark_seen("event1")
        cache.mark_seen("event2")
        cache.is_seen("event1")
        cache.mark_seen("event3")

        assert cache.is_seen("event1") is True
        assert cache.is_seen("event2") is False

    def test_unbounded_by_default(self):
        """Test that no max_size means nothing is evicted."""
        cache = DedupeCache()
        for i in range(5000):
            cache.mark_seen(f"event{i}")

        assert cache.size() == 5000

    def test_unique_preserves_first_order(self, make_event):
        """Test that unique() yields first sightings in order."""
        e1, e2 = make_event(1), make_event(1)
        cache = DedupeCache()

        assert list(cache.unique([e2, e1, e2, e1])) == [e2, e1]
        assert list(cache.unique([e1])) == []

    def test_clear(self):
        """Test clearing the cache."""
        cache = DedupeCache()
        cache.mark_seen("event1")
        cache.clear()

        assert cache.size() == 0
        assert cache.check_and_mark("event1") is True
