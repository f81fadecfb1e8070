"""RSS 2.0 podcast feed generation.

The feed carries the iTunes namespace for directory compatibility and the
Podcasting 2.0 namespace for value-for-value, persons, trailers and the
other podcast:* elements.

Optional elements are only emitted when they have a non-empty value, and
every piece of text goes through escape_xml exactly once, right where it
is interpolated.
"""
import logging
import re
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Iterable, Optional, Sequence

from .models import (
    PodcastEpisode,
    PodcastMetadata,
    PodcastTrailer,
    PodstrConfig,
)

logger = logging.getLogger(__name__)


NS_ITUNES = "http://www.itunes.com/dtds/podcast-1.0.dtd"
NS_PODCAST = "https://podcastindex.org/namespace/1.0"
NS_CONTENT = "http://purl.org/rss/1.0/modules/content/"

GENERATOR = "PODSTR - Nostr Podcast Platform"

_XML_ESCAPES = (
    ("&", "&amp;"),    # must come first
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&#39;"),
)

# Characters XML 1.0 does not allow anywhere in a document
_XML_ILLEGAL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


def escape_xml(text: Optional[object]) -> str:
    """Escape the five XML special characters and drop illegal control characters.

    Args:
        text: Value to escape; None becomes an empty string and
            non-strings are converted with str()

    Returns:
        Text safe for both element content and quoted attributes

    Example:
        >>> escape_xml("Ep & Law")
        'Ep &amp; Law'
    """
    if text is None:
        return ""
    result = _XML_ILLEGAL.sub("", str(text))
    for char, entity in _XML_ESCAPES:
        result = result.replace(char, entity)
    return result


def format_duration(seconds: int) -> str:
    """Format a duration as H:MM:SS (one hour or more) or M:SS.

    Example:
        >>> format_duration(3725)
        '1:02:05'
        >>> format_duration(65)
        '1:05'
    """
    seconds = max(int(seconds), 0)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_rfc2822(value: datetime) -> str:
    """Format a datetime as an RFC-2822 date in GMT."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def encode_nevent(event_id: str, author_pubkey: str, relay_hints: Sequence[str]) -> str:
    """Encode an event pointer as a NIP-19 nevent string.

    Falls back to the raw event ID when encoding fails.
    """
    from nostr_sdk import EventId, Nip19Event, PublicKey, RelayUrl

    try:
        relays = [RelayUrl.parse(url) for url in relay_hints]
        pointer = Nip19Event(EventId.parse(event_id), PublicKey.parse(author_pubkey), None, relays)
        return pointer.to_bech32()
    except Exception as e:
        logger.warning("Failed to encode nevent for %s: %s", event_id, e)
        return event_id


def episode_link(base_url: str, episode: PodcastEpisode, relay_hints: Sequence[str] = ()) -> str:
    """Public page URL of an episode: <base_url>/<nevent>."""
    nevent = encode_nevent(episode.event_id, episode.author_pubkey, relay_hints)
    return f"{base_url.rstrip('/')}/{nevent}"


def _attrs(*pairs: tuple[str, Optional[object]], required: Iterable[str] = ()) -> str:
    """Render attributes, skipping empty values unless the name is required."""
    rendered = []
    for name, value in pairs:
        if (value is None or value == "") and name not in required:
            continue
        rendered.append(f' {name}="{escape_xml(value)}"')
    return "".join(rendered)


def _bool_text(value: bool) -> str:
    return "true" if value else "false"


def _channel_podcast_lines(
    metadata: PodcastMetadata,
    config: PodstrConfig,
    trailers: Sequence[PodcastTrailer],
) -> list[str]:
    lines = [
        f"<podcast:guid>{escape_xml(metadata.guid or config.creator_npub)}</podcast:guid>",
        f"<podcast:locked>{'yes' if metadata.locked else 'no'}</podcast:locked>",
    ]
    if metadata.medium:
        lines.append(f"<podcast:medium>{escape_xml(metadata.medium)}</podcast:medium>")
    if metadata.publisher:
        lines.append(f"<podcast:publisher>{escape_xml(metadata.publisher)}</podcast:publisher>")
    if metadata.license and metadata.license.identifier:
        attrs = _attrs(("url", metadata.license.url))
        lines.append(f"<podcast:license{attrs}>{escape_xml(metadata.license.identifier)}</podcast:license>")
    if metadata.location and metadata.location.name:
        attrs = _attrs(("geo", metadata.location.geo), ("osm", metadata.location.osm))
        lines.append(f"<podcast:location{attrs}>{escape_xml(metadata.location.name)}</podcast:location>")
    for person in metadata.persons:
        attrs = _attrs(
            ("role", person.role),
            ("group", person.group),
            ("img", person.img),
            ("href", person.href),
        )
        lines.append(f"<podcast:person{attrs}>{escape_xml(person.name)}</podcast:person>")
    for txt in metadata.txt:
        attrs = _attrs(("purpose", txt.purpose))
        lines.append(f"<podcast:txt{attrs}>{escape_xml(txt.content)}</podcast:txt>")
    for item in metadata.remote_items:
        attrs = _attrs(
            ("feedGuid", item.feed_guid),
            ("feedUrl", item.feed_url),
            ("itemGuid", item.item_guid),
            ("medium", item.medium),
        )
        lines.append(f"<podcast:remoteItem{attrs} />")
    if metadata.block and metadata.block.id:
        attrs = _attrs(("id", metadata.block.id), ("reason", metadata.block.reason))
        lines.append(f"<podcast:block{attrs} />")
    if metadata.new_feed_url:
        lines.append(f"<podcast:newFeedUrl>{escape_xml(metadata.new_feed_url)}</podcast:newFeedUrl>")

    funding = [url for url in metadata.funding if url]
    if funding:
        for url in funding:
            lines.append(f'<podcast:funding url="{escape_xml(url)}">Support this podcast</podcast:funding>')
    else:
        lines.append(
            f'<podcast:funding url="{escape_xml(config.base_url)}">'
            "Support this podcast via Lightning</podcast:funding>"
        )

    lines.extend(_value_lines(metadata, funding))

    for trailer in trailers:
        attrs = _attrs(
            ("pubdate", format_rfc2822(trailer.pub_date)),
            ("url", trailer.url),
            ("length", trailer.length),
            ("type", trailer.media_type),
            ("season", trailer.season),
        )
        lines.append(f"<podcast:trailer{attrs}>{escape_xml(trailer.title)}</podcast:trailer>")
    return lines


def _value_lines(metadata: PodcastMetadata, funding: list[str]) -> list[str]:
    """The <podcast:value> block.

    Emitted only for a positive suggested amount with somewhere to send it:
    configured recipients, or else a single 100% recipient built from the
    first funding URL.
    """
    value = metadata.value
    if value.amount <= 0:
        return []
    if not value.recipients and not funding:
        return []

    lines = [f'<podcast:value{_attrs(("type", value.currency))} method="lightning">']
    if value.recipients:
        for recipient in value.recipients:
            attrs = _attrs(
                ("name", recipient.name),
                ("type", recipient.type),
                ("address", recipient.address),
                ("split", recipient.split),
                ("customKey", recipient.custom_key),
                ("customValue", recipient.custom_value),
                ("fee", "true" if recipient.fee else None),
            )
            lines.append(f"  <podcast:valueRecipient{attrs} />")
    else:
        attrs = _attrs(
            ("name", metadata.author),
            ("type", "node"),
            ("address", funding[0]),
            ("split", 100),
        )
        lines.append(f"  <podcast:valueRecipient{attrs} />")
    lines.append("</podcast:value>")
    return lines


def _item_lines(
    episode: PodcastEpisode,
    metadata: PodcastMetadata,
    config: PodstrConfig,
) -> list[str]:
    description = episode.description or ""
    author = f"{metadata.email} ({metadata.author})" if metadata.email else metadata.author

    lines = [
        "<item>",
        f"  <title>{escape_xml(episode.title)}</title>",
        f"  <description>{escape_xml(description)}</description>",
        f"  <link>{escape_xml(episode_link(config.base_url, episode, config.relay_hints))}</link>",
        f'  <guid isPermaLink="false">{escape_xml(episode.event_id)}</guid>',
        f"  <pubDate>{format_rfc2822(episode.publish_date)}</pubDate>",
        f"  <author>{escape_xml(author)}</author>",
    ]
    for topic in episode.tags:
        if topic:
            lines.append(f"  <category>{escape_xml(topic)}</category>")
    if episode.content:
        lines.append(f"  <content:encoded>{escape_xml(episode.content)}</content:encoded>")

    enclosure = _attrs(
        ("url", episode.audio_url),
        ("length", str(max(episode.enclosure_length, 0))),
        ("type", episode.audio_type or "audio/mpeg"),
        required=("url",),
    )
    lines.append(f"  <enclosure{enclosure} />")

    lines.extend([
        f"  <itunes:title>{escape_xml(episode.title)}</itunes:title>",
        f"  <itunes:summary>{escape_xml(description)}</itunes:summary>",
        f"  <itunes:author>{escape_xml(metadata.author)}</itunes:author>",
    ])
    if episode.duration:
        lines.append(f"  <itunes:duration>{format_duration(episode.duration)}</itunes:duration>")
    if episode.episode_number is not None:
        lines.append(f"  <itunes:episode>{episode.episode_number}</itunes:episode>")
    if episode.season_number is not None:
        lines.append(f"  <itunes:season>{episode.season_number}</itunes:season>")
    lines.append(f"  <itunes:explicit>{_bool_text(episode.explicit)}</itunes:explicit>")
    if episode.image_url:
        lines.append(f'  <itunes:image href="{escape_xml(episode.image_url)}" />')

    lines.append(f"  <podcast:guid>{escape_xml(episode.event_id)}</podcast:guid>")
    lines.append("</item>")
    return lines


def generate_rss_feed(
    metadata: PodcastMetadata,
    episodes: Iterable[PodcastEpisode],
    config: PodstrConfig,
    trailers: Iterable[PodcastTrailer] = (),
    now: Optional[datetime] = None,
) -> str:
    """Render the podcast feed.

    Args:
        metadata: Feed-level metadata (relay metadata or static defaults)
        episodes: Episodes in any order; rendered newest first
        config: Supplies base URL, relay hints, TTL and the creator npub
        trailers: Channel-level trailers
        now: Build timestamp (default: current UTC time)

    Returns:
        The complete XML document
    """
    now = now or datetime.now(timezone.utc)
    build_date = format_rfc2822(now)
    ordered = sorted(episodes, key=lambda e: e.publish_date, reverse=True)
    contact = f"{metadata.email} ({metadata.author})"

    channel = [
        f"<title>{escape_xml(metadata.title)}</title>",
        f"<description>{escape_xml(metadata.description)}</description>",
        f"<link>{escape_xml(metadata.website or config.base_url)}</link>",
        f"<language>{escape_xml(metadata.language)}</language>",
    ]
    if metadata.copyright:
        channel.append(f"<copyright>{escape_xml(metadata.copyright)}</copyright>")
    if metadata.email:
        channel.append(f"<managingEditor>{escape_xml(contact)}</managingEditor>")
        channel.append(f"<webMaster>{escape_xml(contact)}</webMaster>")
    channel.extend([
        f"<pubDate>{build_date}</pubDate>",
        f"<lastBuildDate>{build_date}</lastBuildDate>",
        f"<ttl>{int(config.ttl_minutes)}</ttl>",
        f"<itunes:title>{escape_xml(metadata.title)}</itunes:title>",
        f"<itunes:summary>{escape_xml(metadata.description)}</itunes:summary>",
        f"<itunes:author>{escape_xml(metadata.author)}</itunes:author>",
        "<itunes:owner>",
        f"  <itunes:name>{escape_xml(metadata.author)}</itunes:name>",
        f"  <itunes:email>{escape_xml(metadata.email)}</itunes:email>",
        "</itunes:owner>",
    ])
    if metadata.image:
        channel.append(f'<itunes:image href="{escape_xml(metadata.image)}" />')
    for category in metadata.categories:
        if category:
            channel.append(f'<itunes:category text="{escape_xml(category)}" />')
    channel.append(f"<itunes:explicit>{_bool_text(metadata.explicit)}</itunes:explicit>")
    channel.append(f"<itunes:type>{escape_xml(metadata.type or 'episodic')}</itunes:type>")

    channel.extend(_channel_podcast_lines(metadata, config, list(trailers)))
    channel.append(f"<generator>{escape_xml(GENERATOR)}</generator>")

    for episode in ordered:
        channel.extend(_item_lines(episode, metadata, config))

    body = "\n".join(f"    {line}" for line in channel)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<rss version="2.0"\n'
        f'     xmlns:itunes="{NS_ITUNES}"\n'
        f'     xmlns:podcast="{NS_PODCAST}"\n'
        f'     xmlns:content="{NS_CONTENT}">\n'
        "  <channel>\n"
        f"{body}\n"
        "  </channel>\n"
        "</rss>\n"
    )
