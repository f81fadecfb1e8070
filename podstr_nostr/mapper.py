"""Conversion of raw Nostr events into typed podcast records.

The set of kinds is closed, so dispatch is an explicit switch over the
kind number (see map_event). Events that are malformed, or not signed by
the configured creator, are filtered out: callers receive a smaller but
valid collection, never an exception.
"""
import json
import logging
from datetime import timezone
from email.utils import parsedate_to_datetime
from pathlib import PurePosixPath
from typing import Callable, Iterable, Optional, Union
from urllib.parse import urlparse

from .models import (
    EPISODE_KINDS,
    KIND_COMMENT,
    KIND_PODCAST_METADATA,
    KIND_TRAILER,
    PODCAST_METADATA_IDENTIFIER,
    REPOST_KINDS,
    NostrEvent,
    PodcastComment,
    PodcastEpisode,
    PodcastMetadata,
    PodcastTrailer,
    RepostReference,
    optional_int,
    timestamp_to_datetime,
)

logger = logging.getLogger(__name__)

# Resolves a trailer's media URL when the event has no 'url' tag
# (e.g. from an uploaded-file reference). Returns None when unresolvable.
MediaUrlResolver = Callable[[NostrEvent], Optional[str]]

DomainRecord = Union[
    PodcastEpisode,
    PodcastTrailer,
    PodcastMetadata,
    RepostReference,
    PodcastComment,
]

DEFAULT_MEDIA_TYPE = "audio/mpeg"

MEDIA_TYPES_BY_EXTENSION = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".ogg": "audio/ogg",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
}

_TRUE_VALUES = {"true", "yes", "1"}


def infer_media_type(url: str) -> str:
    """Guess a MIME type from a URL's file extension.

    Args:
        url: Media URL (query string and fragment are ignored)

    Returns:
        MIME type from the extension table, audio/mpeg when unknown
    """
    suffix = PurePosixPath(urlparse(url).path).suffix.lower()
    return MEDIA_TYPES_BY_EXTENSION.get(suffix, DEFAULT_MEDIA_TYPE)


# ============================================================================
# EPISODES
# ============================================================================

def validate_podcast_episode(event: NostrEvent, creator_pubkey: str) -> bool:
    """Check that an event is a well-formed episode by the creator.

    Requires an episode kind, non-empty 'title' and 'audio' tags, and the
    creator as author.
    """
    if event.kind not in EPISODE_KINDS:
        return False
    if not event.get_tag("title"):
        return False
    if not event.get_tag("audio"):
        return False
    return event.pubkey == creator_pubkey


def event_to_episode(event: NostrEvent) -> PodcastEpisode:
    """Convert a validated episode event to a PodcastEpisode.

    Tags read:
        d            identifier (falls back to the event ID)
        title        title
        audio        [url, mime type?]
        description, image
        t            topics, every occurrence in order
        duration     seconds
        episode, season, size (enclosure bytes)
        explicit     'true'/'yes'/'1'

    Numeric tags that fail to parse are ignored.

    Args:
        event: An event that passed validate_podcast_episode

    Returns:
        PodcastEpisode with publish and creation dates from created_at
    """
    audio = event.find_tag("audio") or []
    audio_url = audio[1] if len(audio) > 1 else ""
    audio_type = audio[2] if len(audio) > 2 and audio[2] else DEFAULT_MEDIA_TYPE
    created = timestamp_to_datetime(event.created_at)
    explicit = (event.get_tag("explicit") or "").strip().lower() in _TRUE_VALUES

    return PodcastEpisode(
        event_id=event.id,
        author_pubkey=event.pubkey,
        identifier=event.identifier or event.id,
        title=event.get_tag("title") or "Untitled Episode",
        audio_url=audio_url,
        audio_type=audio_type,
        publish_date=created,
        created_at=created,
        description=event.get_tag("description") or None,
        content=event.content or None,
        image_url=event.get_tag("image") or None,
        tags=event.get_tag_values("t"),
        duration=optional_int(event.get_tag("duration")),
        episode_number=optional_int(event.get_tag("episode")),
        season_number=optional_int(event.get_tag("season")),
        explicit=explicit,
        enclosure_length=max(optional_int(event.get_tag("size")) or 0, 0),
        kind=event.kind,
    )


# ============================================================================
# TRAILERS
# ============================================================================

def _trailer_url(event: NostrEvent, resolve_media_url: Optional[MediaUrlResolver]) -> str | None:
    url = event.get_tag("url")
    if url:
        return url
    if resolve_media_url is not None:
        return resolve_media_url(event)
    return None


def validate_podcast_trailer(
    event: NostrEvent,
    creator_pubkey: str,
    resolve_media_url: Optional[MediaUrlResolver] = None,
) -> bool:
    """Check that an event is a well-formed trailer by the creator."""
    if event.kind != KIND_TRAILER:
        return False
    if not event.get_tag("title"):
        return False
    if not _trailer_url(event, resolve_media_url):
        return False
    return event.pubkey == creator_pubkey


def _parse_pubdate(value: str | None, fallback: int):
    if value:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            parsed = None
        if parsed is not None:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
    return timestamp_to_datetime(fallback)


def event_to_trailer(
    event: NostrEvent,
    resolve_media_url: Optional[MediaUrlResolver] = None,
) -> PodcastTrailer:
    """Convert a validated trailer event to a PodcastTrailer.

    The publish date comes from the RFC-2822 'pubdate' tag, falling back to
    created_at when missing or unparsable. The media type comes from the
    'type' tag, else from the URL's extension.
    """
    url = _trailer_url(event, resolve_media_url) or ""
    return PodcastTrailer(
        event_id=event.id,
        author_pubkey=event.pubkey,
        identifier=event.identifier or event.id,
        title=event.get_tag("title") or "Untitled Trailer",
        url=url,
        pub_date=_parse_pubdate(event.get_tag("pubdate"), event.created_at),
        created_at=timestamp_to_datetime(event.created_at),
        media_type=event.get_tag("type") or infer_media_type(url),
        length=optional_int(event.get_tag("length")),
        season=optional_int(event.get_tag("season")),
    )


# ============================================================================
# METADATA, REPOSTS, COMMENTS
# ============================================================================

def event_to_metadata(event: NostrEvent, defaults: PodcastMetadata) -> PodcastMetadata | None:
    """Merge a metadata event's JSON content over the static defaults.

    Returns:
        Merged metadata stamped with the event's created_at, or None when
        the content is not a JSON object
    """
    try:
        overrides = json.loads(event.content)
    except (TypeError, ValueError) as e:
        logger.debug("Invalid metadata JSON in %s: %s", event.id, e)
        return None
    if not isinstance(overrides, dict):
        logger.debug("Metadata content of %s is not an object", event.id)
        return None

    overrides["updated_at"] = event.created_at
    try:
        return PodcastMetadata.merged(defaults, overrides)
    except (TypeError, ValueError) as e:
        logger.debug("Unusable metadata fields in %s: %s", event.id, e)
        return None


def extract_repost_data(event: NostrEvent) -> RepostReference | None:
    """Extract what a kind 6/16 repost points at.

    'e' carries the original event ID with an optional relay hint in
    position 2, 'p' the original author and 'k' the original kind.
    """
    if event.kind not in REPOST_KINDS:
        return None
    e_tag = event.find_tag("e")
    if e_tag is None or len(e_tag) < 2 or not e_tag[1]:
        return None

    return RepostReference(
        repost_event_id=event.id,
        original_event_id=e_tag[1],
        original_author_pubkey=event.get_tag("p"),
        relay_url=e_tag[2] if len(e_tag) > 2 and e_tag[2] else None,
        original_kind=optional_int(event.get_tag("k")),
    )


def event_to_comment(event: NostrEvent) -> PodcastComment | None:
    """Convert a NIP-22 comment (kind 1111).

    Uppercase 'A'/'E' tags point at the root (the episode); lowercase
    'e' points at the parent, which is another comment when 'k' is 1111.
    """
    if event.kind != KIND_COMMENT:
        return None

    root_address = event.get_tag("A") or event.get_tag("a")
    root_event_id = event.get_tag("E")
    parent = event.get_tag("e")
    if not (root_address or root_event_id or parent):
        return None

    parent_id = None
    if parent and optional_int(event.get_tag("k")) == KIND_COMMENT:
        parent_id = parent
    elif root_event_id is None and root_address is None:
        root_event_id = parent

    return PodcastComment(
        event_id=event.id,
        content=event.content,
        author_pubkey=event.pubkey,
        created_at=event.created_at,
        root_address=root_address,
        root_event_id=root_event_id,
        parent_id=parent_id,
    )


# ============================================================================
# DISPATCH
# ============================================================================

def map_event(
    event: NostrEvent,
    creator_pubkey: str,
    defaults: PodcastMetadata,
    resolve_media_url: Optional[MediaUrlResolver] = None,
) -> DomainRecord | None:
    """Map one raw event to its typed record, or None if it is not one.

    Args:
        event: Raw event from any relay
        creator_pubkey: Hex key whose episodes/trailers/metadata are trusted
        defaults: Static metadata that metadata events are layered over
        resolve_media_url: Optional trailer media resolver

    Returns:
        PodcastEpisode, PodcastTrailer, PodcastMetadata, RepostReference,
        PodcastComment, or None
    """
    kind = event.kind
    try:
        if kind in EPISODE_KINDS:
            if validate_podcast_episode(event, creator_pubkey):
                return event_to_episode(event)
        elif kind == KIND_TRAILER:
            if validate_podcast_trailer(event, creator_pubkey, resolve_media_url):
                return event_to_trailer(event, resolve_media_url)
        elif kind == KIND_PODCAST_METADATA:
            if (event.pubkey == creator_pubkey
                    and event.identifier == PODCAST_METADATA_IDENTIFIER):
                return event_to_metadata(event, defaults)
        elif kind in REPOST_KINDS:
            return extract_repost_data(event)
        elif kind == KIND_COMMENT:
            return event_to_comment(event)
    except (TypeError, ValueError, IndexError) as e:
        logger.debug("Dropping malformed event %s (kind %d): %s", event.id, kind, e)
        return None

    logger.debug("Dropping event %s (kind %d): not a valid podcast record", event.id, kind)
    return None


def map_events(
    events: Iterable[NostrEvent],
    creator_pubkey: str,
    defaults: PodcastMetadata,
    resolve_media_url: Optional[MediaUrlResolver] = None,
) -> list[DomainRecord]:
    """Map a batch of events, dropping anything that does not map."""
    records = []
    for event in events:
        record = map_event(event, creator_pubkey, defaults, resolve_media_url)
        if record is not None:
            records.append(record)
    return records


def map_episodes(events: Iterable[NostrEvent], creator_pubkey: str) -> list[PodcastEpisode]:
    """Validate and convert episode events, preserving input order."""
    episodes = []
    for event in events:
        if not validate_podcast_episode(event, creator_pubkey):
            logger.debug("Dropping invalid episode event %s", event.id)
            continue
        try:
            episodes.append(event_to_episode(event))
        except (TypeError, ValueError, IndexError) as e:
            logger.debug("Dropping malformed episode %s: %s", event.id, e)
    return episodes


def map_trailers(
    events: Iterable[NostrEvent],
    creator_pubkey: str,
    resolve_media_url: Optional[MediaUrlResolver] = None,
) -> list[PodcastTrailer]:
    """Validate and convert trailer events, preserving input order."""
    trailers = []
    for event in events:
        if not validate_podcast_trailer(event, creator_pubkey, resolve_media_url):
            logger.debug("Dropping invalid trailer event %s", event.id)
            continue
        try:
            trailers.append(event_to_trailer(event, resolve_media_url))
        except (TypeError, ValueError, IndexError) as e:
            logger.debug("Dropping malformed trailer %s: %s", event.id, e)
    return trailers

