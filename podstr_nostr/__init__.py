"""PODSTR Nostr - Podcast catalog aggregation and RSS feeds over Nostr."""

__version__ = "0.1.0"

from .cache import FeedCache, InvalidationReason
from .client import PodcastNostr
from .config import (
    DEFAULT_CREATOR_NPUB,
    DEFAULT_RELAYS,
    ConfigError,
    decode_pubkey,
    default_podcast_metadata,
    load_config,
)
from .dedupe import DedupeCache
from .engagement import (
    EngagementSummary,
    PodcastAnalytics,
    build_analytics,
    receipts_from_events,
    summarize_engagement,
)
from .mapper import map_event, map_events
from .models import (
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
    KIND_COMMENT,
    KIND_EPISODE,
    KIND_GENERIC_REPOST,
    KIND_LEGACY_EPISODE,
    KIND_PODCAST_METADATA,
    KIND_REACTION,
    KIND_REPOST,
    KIND_TEXT_NOTE,
    KIND_TRAILER,
    KIND_ZAP_RECEIPT,
)
from .publisher import FeedBuildError, build_health_document, write_feed_artifacts
from .reconcile import reconcile_episodes, reconcile_trailers
from .relay import FanOutResult, NostrRelaySource, QueryFilter, RelayError, RelayPool
from .rss import escape_xml, generate_rss_feed
from .zaps import extract_zap_amount, validate_zap_event

__all__ = [
    # Main Client
    "PodcastNostr",

    # Models
    "NostrEvent",
    "PodcastEpisode",
    "PodcastTrailer",
    "PodcastMetadata",
    "PodcastComment",
    "EngagementReceipt",
    "RepostReference",
    "ZapLeaderboardEntry",
    "EpisodeSearchOptions",
    "PodstrConfig",
    "FeedBuild",

    # Event Kind Constants
    "KIND_TEXT_NOTE",
    "KIND_REPOST",
    "KIND_REACTION",
    "KIND_GENERIC_REPOST",
    "KIND_LEGACY_EPISODE",
    "KIND_COMMENT",
    "KIND_ZAP_RECEIPT",
    "KIND_EPISODE",
    "KIND_TRAILER",
    "KIND_PODCAST_METADATA",

    # Relays
    "QueryFilter",
    "RelayPool",
    "NostrRelaySource",
    "FanOutResult",
    "RelayError",

    # Pipeline
    "map_event",
    "map_events",
    "reconcile_episodes",
    "reconcile_trailers",
    "extract_zap_amount",
    "validate_zap_event",
    "receipts_from_events",
    "summarize_engagement",
    "build_analytics",
    "EngagementSummary",
    "PodcastAnalytics",
    "escape_xml",
    "generate_rss_feed",

    # Publishing
    "FeedCache",
    "InvalidationReason",
    "build_health_document",
    "write_feed_artifacts",
    "FeedBuildError",

    # Configuration
    "load_config",
    "decode_pubkey",
    "default_podcast_metadata",
    "DEFAULT_RELAYS",
    "DEFAULT_CREATOR_NPUB",
    "ConfigError",

    # Utilities
    "DedupeCache",
]
