"""High-level PODSTR client: catalog discovery, engagement and feed builds.

Provides APIs for:
- Listeners: episodes, trailers, comments and zap leaderboards
- Creators: analytics and RSS feed generation with cache invalidation
"""
import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from .cache import FeedCache, InvalidationReason
from .engagement import (
    PodcastAnalytics,
    apply_engagement,
    build_analytics,
    receipts_from_events,
    summarize_engagement,
    thread_comments,
)
from .mapper import MediaUrlResolver, event_to_comment, event_to_metadata, extract_repost_data
from .models import (
    EPISODE_KINDS,
    KIND_COMMENT,
    KIND_PODCAST_METADATA,
    KIND_REACTION,
    KIND_TRAILER,
    KIND_ZAP_RECEIPT,
    PODCAST_METADATA_IDENTIFIER,
    REPOST_KINDS,
    EngagementReceipt,
    EpisodeSearchOptions,
    FeedBuild,
    NostrEvent,
    PodcastComment,
    PodcastEpisode,
    PodcastMetadata,
    PodcastTrailer,
    PodstrConfig,
    RepostReference,
    ZapLeaderboardEntry,
)
from .reconcile import (
    latest_metadata_event,
    merge_batches,
    reconcile_episodes,
    reconcile_trailers,
)
from .relay import FanOutResult, QueryFilter, RelayPool
from .rss import generate_rss_feed
from .zaps import build_zap_leaderboard, recent_zap_activity

logger = logging.getLogger(__name__)


TRAILER_LIMIT = 50
METADATA_LIMIT = 10
ENGAGEMENT_LIMIT = 1000
ZAP_LIMIT = 500


class PodcastNostr:
    """Main client for a single creator's podcast on Nostr.

    Every read fans out to all configured relays; results are reconciled
    so the answer does not depend on which relays happened to respond.
    Relay failures never raise: a query nobody answers yields an empty
    collection (or the static default metadata).

    Example (Listener):
        >>> config = load_config()
        >>> client = PodcastNostr(config)
        >>> episodes = await client.fetch_episodes(
        ...     EpisodeSearchOptions(query="bitcoin", sort_by="zaps")
        ... )
        >>> episodes = await client.fetch_engagement(episodes)
        >>> print(episodes[0].zap_amount)

    Example (Feed build):
        >>> build = await client.build_feed()
        >>> print(len(build.episodes), build.metadata_source)
        >>>
        >>> # After publishing a new episode
        >>> client.notify_episode_published()
    """

    def __init__(
        self,
        config: PodstrConfig,
        pool: Optional[RelayPool] = None,
        cache: Optional[FeedCache] = None,
        resolve_media_url: Optional[MediaUrlResolver] = None,
    ):
        """Initialize PodcastNostr client.

        Args:
            config: Client configuration (creator, relays, defaults)
            pool: Relay pool to query (default: nostr-sdk relays from config)
            cache: Feed cache (default: a fresh FeedCache)
            resolve_media_url: Optional trailer media URL resolver
        """
        self.config = config
        self.pool = pool if pool is not None else RelayPool.from_urls(config.relay_urls)
        self.cache = cache if cache is not None else FeedCache()
        self.resolve_media_url = resolve_media_url

        self._creator_pubkey = config.creator_pubkey_hex()
        self._last_build: Optional[FeedBuild] = None

        # Statistics
        self._stats = {
            "queries": 0,
            "failed_sources": 0,
            "feeds_built": 0,
            "cache_hits": 0,
        }

    @property
    def creator_pubkey(self) -> str:
        """Creator public key as hex."""
        return self._creator_pubkey

    async def _gather(self, query_filter: QueryFilter, timeout_ms: int) -> FanOutResult:
        self._stats["queries"] += 1
        result = await self.pool.gather(query_filter, timeout_ms)
        self._stats["failed_sources"] += len(result.failed)
        return result

    # ========================================================================
    # CATALOG APIs
    # ========================================================================

    def _episode_filter(self) -> QueryFilter:
        return QueryFilter(
            kinds=list(EPISODE_KINDS),
            authors=[self._creator_pubkey],
            limit=self.config.episode_limit,
        )

    async def _fetch_episode_catalog(
        self,
        options: Optional[EpisodeSearchOptions] = None,
    ) -> tuple[list[PodcastEpisode], FanOutResult]:
        result = await self._gather(self._episode_filter(), self.config.catalog_timeout_ms)
        episodes = reconcile_episodes(result.events, self._creator_pubkey, options)
        return episodes, result

    async def fetch_episodes(
        self,
        options: Optional[EpisodeSearchOptions] = None,
    ) -> list[PodcastEpisode]:
        """Fetch the reconciled episode catalog.

        Args:
            options: Optional search, sort and paging

        Returns:
            Current version of each episode, newest first by default
        """
        episodes, _ = await self._fetch_episode_catalog(options)
        return episodes

    async def fetch_episode(self, event_id: str) -> Optional[PodcastEpisode]:
        """Fetch a single episode by event ID.

        Returns:
            The episode, or None if no relay has a valid one
        """
        query_filter = QueryFilter(
            ids=[event_id],
            kinds=list(EPISODE_KINDS),
            authors=[self._creator_pubkey],
            limit=1,
        )
        result = await self._gather(query_filter, self.config.catalog_timeout_ms)
        episodes = reconcile_episodes(result.events, self._creator_pubkey)
        for episode in episodes:
            if episode.event_id == event_id:
                return episode
        return None

    async def fetch_trailers(self) -> list[PodcastTrailer]:
        """Fetch the creator's trailers, newest publish date first."""
        query_filter = QueryFilter(
            kinds=[KIND_TRAILER],
            authors=[self._creator_pubkey],
            limit=TRAILER_LIMIT,
        )
        result = await self._gather(query_filter, self.config.trailer_timeout_ms)
        return reconcile_trailers(result.events, self._creator_pubkey, self.resolve_media_url)

    async def fetch_metadata(self) -> tuple[PodcastMetadata, bool]:
        """Fetch the newest podcast metadata across all relays.

        Returns:
            (metadata, from_relays): relay metadata layered over the
            configured defaults, or the defaults alone with False when no
            usable metadata event was found
        """
        query_filter = QueryFilter(
            kinds=[KIND_PODCAST_METADATA],
            authors=[self._creator_pubkey],
            identifiers=[PODCAST_METADATA_IDENTIFIER],
            limit=METADATA_LIMIT,
        )
        result = await self._gather(query_filter, self.config.catalog_timeout_ms)

        event = latest_metadata_event(result.events, self._creator_pubkey)
        if event is not None:
            metadata = event_to_metadata(event, self.config.podcast)
            if metadata is not None:
                return metadata, True
            logger.warning("Ignoring unusable podcast metadata event %s", event.id)
        return self.config.podcast, False

    # ========================================================================
    # ENGAGEMENT APIs
    # ========================================================================

    async def _fetch_engagement_events(self, episodes: list[PodcastEpisode]) -> list[NostrEvent]:
        """Fetch zaps, comments, reposts and reactions for episodes in parallel."""
        if not episodes:
            return []

        event_ids = [episode.event_id for episode in episodes]
        addresses = [episode.address for episode in episodes]
        timeout_ms = self.config.engagement_timeout_ms
        kinds = [KIND_ZAP_RECEIPT, KIND_COMMENT, *REPOST_KINDS, KIND_REACTION]

        queries = []
        for kind in kinds:
            queries.append(QueryFilter(kinds=[kind], event_refs=event_ids, limit=ENGAGEMENT_LIMIT))
            queries.append(QueryFilter(kinds=[kind], address_refs=addresses, limit=ENGAGEMENT_LIMIT))

        results = await asyncio.gather(*(self._gather(q, timeout_ms) for q in queries))
        return merge_batches(result.events for result in results)

    async def fetch_receipts(self, episodes: list[PodcastEpisode]) -> list[EngagementReceipt]:
        """Fetch engagement receipts targeting the given episodes."""
        events = await self._fetch_engagement_events(episodes)
        return receipts_from_events(events)

    async def fetch_engagement(self, episodes: list[PodcastEpisode]) -> list[PodcastEpisode]:
        """Return copies of the episodes with zap, comment and repost counts."""
        receipts = await self.fetch_receipts(episodes)
        return apply_engagement(episodes, summarize_engagement(episodes, receipts))

    async def fetch_comments(self, episodes: list[PodcastEpisode]) -> list[PodcastComment]:
        """Fetch NIP-22 comments on the episodes as reply trees."""
        if not episodes:
            return []
        timeout_ms = self.config.engagement_timeout_ms
        results = await asyncio.gather(
            self._gather(QueryFilter(
                kinds=[KIND_COMMENT],
                address_refs=[episode.address for episode in episodes],
                limit=ENGAGEMENT_LIMIT,
            ), timeout_ms),
            self._gather(QueryFilter(
                kinds=[KIND_COMMENT],
                event_refs=[episode.event_id for episode in episodes],
                limit=ENGAGEMENT_LIMIT,
            ), timeout_ms),
        )

        comments = []
        for event in merge_batches(result.events for result in results):
            comment = event_to_comment(event)
            if comment is not None:
                comments.append(comment)
        return thread_comments(comments)

    async def fetch_analytics(self) -> PodcastAnalytics:
        """Build creator analytics from the current catalog."""
        episodes, trailers = await asyncio.gather(self.fetch_episodes(), self.fetch_trailers())
        receipts = await self.fetch_receipts(episodes)
        return build_analytics(episodes, receipts, trailer_count=len(trailers))

    async def _fetch_creator_zaps(self) -> list[NostrEvent]:
        query_filter = QueryFilter(
            kinds=[KIND_ZAP_RECEIPT],
            pubkey_refs=[self._creator_pubkey],
            limit=ZAP_LIMIT,
        )
        result = await self._gather(query_filter, self.config.engagement_timeout_ms)
        return merge_batches([result.events])

    async def fetch_zap_leaderboard(self, limit: int = 10) -> list[ZapLeaderboardEntry]:
        """Top zappers of the creator by total sats."""
        return build_zap_leaderboard(await self._fetch_creator_zaps(), limit=limit)

    async def fetch_recent_zaps(self, limit: int = 20) -> list[dict]:
        """Most recent zaps received by the creator."""
        return recent_zap_activity(await self._fetch_creator_zaps(), limit=limit)

    async def fetch_creator_reposts(self, limit: int = 50) -> list[RepostReference]:
        """Reposts published by the creator, newest first."""
        query_filter = QueryFilter(
            kinds=list(REPOST_KINDS),
            authors=[self._creator_pubkey],
            limit=limit,
        )
        result = await self._gather(query_filter, self.config.engagement_timeout_ms)
        events = sorted(merge_batches([result.events]), key=lambda e: e.created_at, reverse=True)

        reposts = []
        for event in events:
            repost = extract_repost_data(event)
            if repost is not None:
                reposts.append(repost)
        return reposts[:limit]

    # ========================================================================
    # FEED APIs
    # ========================================================================

    async def build_feed(self, now: Optional[datetime] = None, use_cache: bool = True) -> FeedBuild:
        """Discover, reconcile and render the RSS feed.

        Relay failures are absorbed: with no relay answering, the result is
        a valid feed built from the default metadata with zero items.

        Args:
            now: Build timestamp (default: current time)
            use_cache: Return the cached build while it is fresh

        Returns:
            FeedBuild with the XML and the records it was built from
        """
        if use_cache and self._last_build is not None and self.cache.get() is not None:
            self._stats["cache_hits"] += 1
            logger.debug("Serving feed from cache")
            return replace(self._last_build, episodes_source="cache")

        (metadata, from_relays), (episodes, catalog), trailers = await asyncio.gather(
            self.fetch_metadata(),
            self._fetch_episode_catalog(),
            self.fetch_trailers(),
        )

        if not catalog.any_responded:
            logger.warning("No relay answered the episode query; building an empty feed")

        xml = generate_rss_feed(metadata, episodes, self.config, trailers=trailers, now=now)
        build = FeedBuild(
            xml=xml,
            metadata=metadata,
            episodes=episodes,
            trailers=trailers,
            metadata_source="relays" if from_relays else "defaults",
            episodes_source="relays" if catalog.any_responded else "none",
            relays=list(catalog.responded),
        )

        self.cache.put(xml, len(episodes))
        self._last_build = build
        self._stats["feeds_built"] += 1
        logger.info(
            "Built feed: %d episodes, %d trailers, metadata from %s",
            len(episodes), len(trailers), build.metadata_source,
        )
        return build

    def notify_episode_published(self) -> None:
        """Drop the cached feed after a new episode is published."""
        self.cache.invalidate(InvalidationReason.EPISODE_PUBLISHED)

    def notify_metadata_updated(self) -> None:
        """Drop the cached feed after the podcast metadata changes."""
        self.cache.invalidate(InvalidationReason.METADATA_UPDATED)

    def notify_trailer_changed(self, deleted: bool = False) -> None:
        """Drop the cached feed after a trailer is published or deleted."""
        reason = InvalidationReason.TRAILER_DELETED if deleted else InvalidationReason.TRAILER_PUBLISHED
        self.cache.invalidate(reason)

    def get_statistics(self) -> dict:
        """Get client statistics.

        Returns:
            Dictionary with query, failure, build and cache hit counts
        """
        return self._stats.copy()
