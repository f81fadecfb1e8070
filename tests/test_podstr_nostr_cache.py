"""Tests for the feed cache."""
from podstr_nostr.cache import FeedCache, InvalidationReason


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestFeedCache:
    """Tests for FeedCache freshness and invalidation."""

    def test_empty(self):
        """Test a new cache has nothing."""
        cache = FeedCache()

        assert cache.get() is None
        assert cache.is_empty() is True

    def test_put_and_get(self):
        """Test that a fresh feed is returned."""
        clock = FakeClock()
        cache = FeedCache(max_age_s=300, clock=clock)

        stored = cache.put("<rss/>", episode_count=3)

        assert cache.get() is stored
        assert stored.episode_count == 3
        assert stored.generated_at == 1000.0

    def test_expires_after_max_age(self):
        """Test that the feed expires once older than max_age_s."""
        clock = FakeClock()
        cache = FeedCache(max_age_s=300, clock=clock)
        cache.put("<rss/>", episode_count=0)

        clock.now += 300
        assert cache.get() is not None

        clock.now += 1
        assert cache.get() is None
        assert cache.is_empty() is True

    def test_put_replaces(self):
        """Test that only one feed is held."""
        cache = FeedCache(clock=FakeClock())
        cache.put("<old/>", 1)
        cache.put("<new/>", 2)

        assert cache.get().xml == "<new/>"

    def test_invalidate_records_reason(self):
        """Test explicit invalidation."""
        cache = FeedCache(clock=FakeClock())
        cache.put("<rss/>", 1)

        cache.invalidate(InvalidationReason.EPISODE_PUBLISHED)

        assert cache.get() is None
        assert cache.last_invalidation is InvalidationReason.EPISODE_PUBLISHED

    def test_invalidate_default_reason(self):
        """Test manual invalidation of an empty cache."""
        cache = FeedCache()
        cache.invalidate()

        assert cache.last_invalidation == "manual"
