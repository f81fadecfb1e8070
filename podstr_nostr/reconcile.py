"""Merging per-relay event batches into one canonical catalog.

Relays are eventually consistent and none is authoritative, so the same
logical entity may arrive as several physical events:

- identical copies of one event (same ID) from different relays
- several versions of an addressable entity, one per edit, sharing
  (kind, pubkey, d); the newest created_at wins
- legacy episodes without 'd', where an edit is a new event carrying an
  'edit' tag that points at the event it replaces

Every function here builds new lists and is idempotent: reconciling an
already reconciled collection returns the same collection.
"""
import logging
from typing import Iterable, Optional

from .dedupe import DedupeCache
from .mapper import (
    MediaUrlResolver,
    map_episodes,
    map_trailers,
    validate_podcast_episode,
    validate_podcast_trailer,
)
from .models import (
    KIND_PODCAST_METADATA,
    PODCAST_METADATA_IDENTIFIER,
    EpisodeSearchOptions,
    NostrEvent,
    PodcastEpisode,
    PodcastTrailer,
)

logger = logging.getLogger(__name__)


def merge_batches(batches: Iterable[Iterable[NostrEvent]]) -> list[NostrEvent]:
    """Union several event batches by event ID.

    Same ID means same content, so the first copy is kept and the order
    of first sightings is preserved.
    """
    cache = DedupeCache()
    merged = []
    for batch in batches:
        merged.extend(cache.unique(batch))
    return merged


def _identity(event: NostrEvent) -> tuple[int, str, str] | None:
    identifier = event.identifier
    if identifier is None:
        return None
    return (event.kind, event.pubkey, identifier)


def latest_by_address(events: Iterable[NostrEvent]) -> list[NostrEvent]:
    """Keep only the newest version of each (kind, pubkey, d) identity.

    Equal timestamps keep the version seen first. Events without a 'd'
    tag have no identity and pass through untouched.

    Returns:
        Surviving events, in the order their identity was first seen
    """
    slots: list[NostrEvent] = []
    positions: dict[tuple[int, str, str], int] = {}

    for event in events:
        key = _identity(event)
        if key is None:
            slots.append(event)
            continue
        index = positions.get(key)
        if index is None:
            positions[key] = len(slots)
            slots.append(event)
        elif event.created_at > slots[index].created_at:
            slots[index] = event

    return slots


def superseded_ids(events: Iterable[NostrEvent]) -> set[str]:
    """IDs of events that some other event declares it edits."""
    ids = set()
    for event in events:
        for original_id in event.get_tag_values("edit"):
            if original_id and original_id != event.id:
                ids.add(original_id)
    return ids


def resolve_edit_chain(events: Iterable[NostrEvent]) -> list[NostrEvent]:
    """Legacy edit-chain resolution by title.

    Any event referenced by another event's 'edit' tag is dropped no matter
    its timestamp. The rest are grouped by 'title' and the newest per title
    survives (first seen on ties). Events without a title are dropped.
    """
    events = list(events)
    replaced = superseded_ids(events)

    by_title: dict[str, NostrEvent] = {}
    for event in events:
        if event.id in replaced:
            continue
        title = event.get_tag("title")
        if not title:
            continue
        existing = by_title.get(title)
        if existing is None or event.created_at > existing.created_at:
            by_title[title] = event

    return list(by_title.values())


def reconcile_episode_events(events: Iterable[NostrEvent]) -> list[NostrEvent]:
    """Reduce raw episode events to one current event per episode.

    Steps:
    1. dedupe by event ID
    2. drop events superseded through an 'edit' reference
    3. events with 'd': newest per (kind, pubkey, d)
    4. events without 'd': newest per title

    Returns:
        Current events; addressable ones first, then legacy ones
    """
    unique = merge_batches([events])
    replaced = superseded_ids(unique)
    candidates = [event for event in unique if event.id not in replaced]

    addressable = [event for event in candidates if event.identifier is not None]
    legacy = [event for event in candidates if event.identifier is None]

    return latest_by_address(addressable) + resolve_edit_chain(legacy)


def _sort_key(episode: PodcastEpisode, sort_by: str):
    if sort_by == "title":
        return episode.title.casefold()
    if sort_by == "zaps":
        return episode.zap_count
    if sort_by == "comments":
        return episode.comment_count
    return episode.publish_date


def sort_episodes(
    episodes: Iterable[PodcastEpisode],
    sort_by: str = "date",
    sort_order: str = "desc",
) -> list[PodcastEpisode]:
    """Sort episodes by date, title, zaps or comments.

    The sort is stable, so equal keys keep their relative order. Unknown
    sort keys fall back to date.
    """
    reverse = sort_order != "asc"
    return sorted(episodes, key=lambda episode: _sort_key(episode, sort_by), reverse=reverse)


def search_episodes(
    episodes: Iterable[PodcastEpisode],
    options: EpisodeSearchOptions,
) -> list[PodcastEpisode]:
    """Filter, sort and page an episode list.

    The query matches case-insensitively against title, description and
    content. Tag filtering keeps episodes sharing at least one topic with
    options.tags.
    """
    results = list(episodes)

    if options.query:
        needle = options.query.casefold()
        results = [
            episode for episode in results
            if needle in episode.title.casefold()
            or needle in (episode.description or "").casefold()
            or needle in (episode.content or "").casefold()
        ]

    if options.tags:
        wanted = set(options.tags)
        results = [episode for episode in results if wanted.intersection(episode.tags)]

    results = sort_episodes(results, options.sort_by, options.sort_order)

    start = max(options.offset, 0)
    end = start + options.limit if options.limit is not None else None
    return results[start:end]


def reconcile_episodes(
    events: Iterable[NostrEvent],
    creator_pubkey: str,
    options: Optional[EpisodeSearchOptions] = None,
) -> list[PodcastEpisode]:
    """Turn raw episode events from any number of relays into the catalog.

    Args:
        events: Concatenated relay batches (any order, duplicates allowed)
        creator_pubkey: Only this author's episodes are accepted
        options: Optional search/sort/paging; default is newest first

    Returns:
        Episodes, newest first unless options say otherwise
    """
    events = list(events)
    valid = [event for event in events if validate_podcast_episode(event, creator_pubkey)]
    if len(valid) != len(events):
        logger.debug("Dropped %d invalid episode events", len(events) - len(valid))

    current = reconcile_episode_events(valid)
    episodes = map_episodes(current, creator_pubkey)

    if options is None:
        return sort_episodes(episodes)
    return search_episodes(episodes, options)


def reconcile_trailers(
    events: Iterable[NostrEvent],
    creator_pubkey: str,
    resolve_media_url: Optional[MediaUrlResolver] = None,
) -> list[PodcastTrailer]:
    """Latest version of each trailer, newest publish date first."""
    valid = [
        event for event in merge_batches([events])
        if validate_podcast_trailer(event, creator_pubkey, resolve_media_url)
    ]
    current = latest_by_address(valid)
    trailers = map_trailers(current, creator_pubkey, resolve_media_url)
    return sorted(trailers, key=lambda trailer: trailer.pub_date, reverse=True)


def latest_metadata_event(
    events: Iterable[NostrEvent],
    creator_pubkey: Optional[str] = None,
) -> NostrEvent | None:
    """Newest podcast metadata event across all relays.

    Only kind 30078 events with d = podcast-metadata are considered,
    optionally restricted to one author. Ties keep the first seen.
    """
    latest = None
    for event in events:
        if event.kind != KIND_PODCAST_METADATA:
            continue
        if event.identifier != PODCAST_METADATA_IDENTIFIER:
            continue
        if creator_pubkey is not None and event.pubkey != creator_pubkey:
            continue
        if latest is None or event.created_at > latest.created_at:
            latest = event
    return latest
