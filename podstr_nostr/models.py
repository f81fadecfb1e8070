"""Data models for the PODSTR Nostr podcast library.

Raw Nostr events as delivered by relays, and the typed podcast records
(episodes, trailers, feed metadata, engagement) derived from them.
"""
import json
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Optional


# Event kind constants
KIND_TEXT_NOTE = 1              # Text note (replies reference episodes with 'e')
KIND_REPOST = 6                 # Legacy repost
KIND_REACTION = 7               # Like / reaction
KIND_GENERIC_REPOST = 16        # Generic repost
KIND_LEGACY_EPISODE = 54        # Pre-addressable episode (edit-chain model)
KIND_COMMENT = 1111             # NIP-22 comment
KIND_ZAP_RECEIPT = 9735         # Zap receipt
KIND_EPISODE = 30054            # Addressable podcast episode
KIND_TRAILER = 30055            # Addressable podcast trailer
KIND_PODCAST_METADATA = 30078   # Addressable podcast metadata

EPISODE_KINDS = (KIND_EPISODE, KIND_LEGACY_EPISODE)
REPOST_KINDS = (KIND_REPOST, KIND_GENERIC_REPOST)

PODCAST_METADATA_IDENTIFIER = "podcast-metadata"


def is_addressable_kind(kind: int) -> bool:
    """Check whether a kind falls in the addressable range (30000-39999)."""
    return 30000 <= kind < 40000


def timestamp_to_datetime(seconds: int | float) -> datetime:
    """Convert a Nostr unix timestamp (seconds) to an aware UTC datetime."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


@dataclass
class NostrEvent:
    """A verified Nostr event as returned by a relay.

    Signature verification happens upstream; this is a plain value object.
    """
    id: str                  # Event ID (hex sha256), stable dedup key
    pubkey: str              # Author public key (hex)
    kind: int                # Event kind
    created_at: int          # Unix timestamp (seconds)
    tags: list[list[str]]    # Ordered tag list: [name, value, ...extra]
    content: str = ""        # Free-text content
    sig: str = ""            # Signature (hex), not checked here

    def find_tag(self, name: str) -> list[str] | None:
        """Return the first full tag with the given name, or None."""
        for tag in self.tags:
            if tag and tag[0] == name:
                return tag
        return None

    def get_tag(self, name: str) -> str | None:
        """Return the value of the first tag with the given name."""
        tag = self.find_tag(name)
        if tag is None or len(tag) < 2:
            return None
        return tag[1]

    def get_tag_values(self, name: str) -> list[str]:
        """Return the values of every tag with the given name, in order."""
        return [tag[1] for tag in self.tags if len(tag) >= 2 and tag[0] == name]

    def has_tag(self, name: str) -> bool:
        """Check whether any tag with the given name is present."""
        return self.find_tag(name) is not None

    @property
    def is_addressable(self) -> bool:
        return is_addressable_kind(self.kind)

    @property
    def identifier(self) -> str | None:
        """Value of the 'd' tag (addressable identifier), if any."""
        return self.get_tag("d")

    @property
    def address(self) -> str | None:
        """Addressable coordinate 'kind:pubkey:identifier', or None."""
        identifier = self.identifier
        if not self.is_addressable or identifier is None:
            return None
        return f"{self.kind}:{self.pubkey}:{identifier}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary (NIP-01 field names)."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NostrEvent":
        """Deserialize from a NIP-01 event dictionary."""
        return cls(
            id=data["id"],
            pubkey=data["pubkey"],
            kind=int(data["kind"]),
            created_at=int(data["created_at"]),
            tags=[[str(v) for v in tag] for tag in data.get("tags", [])],
            content=data.get("content", ""),
            sig=data.get("sig", ""),
        )

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str) -> "NostrEvent":
        """Deserialize from JSON string."""
        return cls.from_dict(json.loads(json_str))


@dataclass
class PodcastEpisode:
    """A podcast episode derived from a creator-signed episode event."""
    event_id: str                        # Nostr event ID of the current version
    author_pubkey: str                   # Creator public key (hex)
    identifier: str                      # 'd' tag, or event ID for legacy events
    title: str
    audio_url: str                       # Empty means listed but unplayable
    audio_type: str                      # MIME type of the enclosure
    publish_date: datetime               # Aware UTC datetime
    created_at: datetime                 # Aware UTC datetime
    description: str | None = None
    content: str | None = None
    image_url: str | None = None
    tags: list[str] = field(default_factory=list)  # Topics from 't' tags
    duration: int | None = None          # Seconds
    episode_number: int | None = None
    season_number: int | None = None
    explicit: bool = False
    enclosure_length: int = 0            # Bytes, 0 when unknown
    kind: int = KIND_EPISODE
    zap_count: int = 0
    zap_amount: int = 0                  # Total sats
    comment_count: int = 0
    repost_count: int = 0

    @property
    def address(self) -> str:
        """Addressable coordinate used by comments and zaps."""
        return f"{self.kind}:{self.author_pubkey}:{self.identifier}"

    @property
    def is_playable(self) -> bool:
        return bool(self.audio_url)

    @property
    def total_engagement(self) -> int:
        return self.zap_count + self.comment_count + self.repost_count

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary (datetimes as ISO 8601 strings)."""
        data = asdict(self)
        data["publish_date"] = self.publish_date.isoformat()
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass
class PodcastTrailer:
    """A promotional trailer (Podcasting 2.0 <podcast:trailer>)."""
    event_id: str
    author_pubkey: str
    identifier: str
    title: str
    url: str
    pub_date: datetime
    created_at: datetime
    media_type: str = "audio/mpeg"
    length: int | None = None            # Bytes
    season: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary (datetimes as ISO 8601 strings)."""
        data = asdict(self)
        data["pub_date"] = self.pub_date.isoformat()
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass
class ValueRecipient:
    """A value-for-value split recipient."""
    name: str
    type: str                 # 'node' or 'keysend'
    address: str
    split: int                # Percentage share
    custom_key: str | None = None
    custom_value: str | None = None
    fee: bool = False


@dataclass
class ValueBlock:
    """Suggested streaming payment configuration."""
    amount: float = 0
    currency: str = "USD"
    recipients: list[ValueRecipient] = field(default_factory=list)


@dataclass
class Person:
    name: str
    role: str = "host"
    group: str | None = None
    img: str | None = None
    href: str | None = None


@dataclass
class Location:
    name: str
    geo: str | None = None    # "latitude,longitude"
    osm: str | None = None    # OpenStreetMap identifier


@dataclass
class License:
    identifier: str
    url: str | None = None


@dataclass
class TxtRecord:
    purpose: str
    content: str


@dataclass
class RemoteItem:
    feed_guid: str
    feed_url: str | None = None
    item_guid: str | None = None
    medium: str | None = None


@dataclass
class Block:
    id: str
    reason: str | None = None


# Keys accepted in metadata JSON published by the web studio (camelCase)
_METADATA_ALIASES = {
    "person": "persons",
    "remoteItem": "remote_items",
    "newFeedUrl": "new_feed_url",
    "updatedAt": "updated_at",
}

_RECIPIENT_ALIASES = {
    "customKey": "custom_key",
    "customValue": "custom_value",
}

_REMOTE_ITEM_ALIASES = {
    "feedGuid": "feed_guid",
    "feedUrl": "feed_url",
    "itemGuid": "item_guid",
}


def _known_fields(cls, data: dict[str, Any], aliases: dict[str, str]) -> dict[str, Any]:
    """Rename aliased keys and drop anything the dataclass does not declare."""
    names = {f.name for f in fields(cls)}
    result = {}
    for key, value in data.items():
        key = aliases.get(key, key)
        if key in names:
            result[key] = value
    return result


def _nested(cls, value: Any, aliases: dict[str, str] | None = None) -> Any:
    """Build a nested dataclass from a JSON object.

    Raises:
        ValueError: If value is neither None, an instance nor an object
    """
    if value is None or isinstance(value, cls):
        return value
    if not isinstance(value, dict):
        raise ValueError(f"{cls.__name__} must be an object, got {type(value).__name__}")
    return cls(**_known_fields(cls, value, aliases or {}))


def _nested_list(cls, items: Any, aliases: dict[str, str] | None = None) -> list:
    """Build a list of nested dataclasses, skipping entries that are not objects."""
    if items is None:
        return []
    if not isinstance(items, (list, tuple)):
        raise ValueError(f"{cls.__name__} entries must be a list, got {type(items).__name__}")
    return [
        _nested(cls, item, aliases)
        for item in items
        if isinstance(item, (cls, dict))
    ]


@dataclass
class PodcastMetadata:
    """Feed-level podcast description.

    Published as a kind 30078 addressable event ('d' = podcast-metadata)
    whose content is a JSON object layered over static defaults.
    """
    title: str
    description: str
    author: str
    email: str = ""
    image: str = ""
    language: str = "en-us"
    categories: list[str] = field(default_factory=list)
    explicit: bool = False
    website: str = ""
    copyright: str = ""
    funding: list[str] = field(default_factory=list)
    locked: bool = False
    value: ValueBlock = field(default_factory=ValueBlock)
    type: str = "episodic"               # 'episodic' or 'serial'
    complete: bool = False
    guid: str | None = None
    medium: str | None = None
    publisher: str | None = None
    location: Location | None = None
    persons: list[Person] = field(default_factory=list)
    license: License | None = None
    txt: list[TxtRecord] = field(default_factory=list)
    remote_items: list[RemoteItem] = field(default_factory=list)
    block: Block | None = None
    new_feed_url: str | None = None
    updated_at: int = 0                  # Event created_at, 0 for defaults

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PodcastMetadata":
        """Deserialize from a dictionary, accepting camelCase studio keys."""
        values = _known_fields(cls, data, _METADATA_ALIASES)

        value = values.get("value")
        if isinstance(value, dict):
            recipients = [
                ValueRecipient(**_known_fields(ValueRecipient, r, _RECIPIENT_ALIASES))
                for r in value.get("recipients") or []
                if isinstance(r, dict)
            ]
            values["value"] = ValueBlock(
                amount=float(value.get("amount", 0) or 0),
                currency=value.get("currency", "USD"),
                recipients=recipients,
            )
        elif "value" in values and not isinstance(value, ValueBlock):
            values["value"] = ValueBlock()

        for name in ("categories", "funding"):
            if isinstance(values.get(name), str):
                values[name] = [values[name]]
            elif name in values:
                values[name] = [str(item) for item in values[name] or []]

        for name, nested in (("location", Location), ("license", License), ("block", Block)):
            if name in values:
                values[name] = _nested(nested, values[name])
        if "persons" in values:
            values["persons"] = _nested_list(Person, values["persons"])
        if "txt" in values:
            values["txt"] = _nested_list(TxtRecord, values["txt"])
        if "remote_items" in values:
            values["remote_items"] = _nested_list(RemoteItem, values["remote_items"], _REMOTE_ITEM_ALIASES)
        return cls(**values)

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str) -> "PodcastMetadata":
        """Deserialize from JSON string."""
        return cls.from_dict(json.loads(json_str))

    @classmethod
    def merged(cls, defaults: "PodcastMetadata", overrides: dict[str, Any]) -> "PodcastMetadata":
        """Layer a (partial) metadata dict over defaults.

        The merge is shallow: a nested object such as 'value' in the
        overrides replaces the default one entirely.

        Args:
            defaults: Static fallback metadata
            overrides: Decoded JSON content of a metadata event

        Returns:
            A new PodcastMetadata; defaults is left untouched
        """
        base = defaults.to_dict()
        for key, value in overrides.items():
            base[_METADATA_ALIASES.get(key, key)] = value
        return cls.from_dict(base)


@dataclass
class EngagementReceipt:
    """An interaction with an episode: zap, comment, repost or reaction."""
    event_id: str
    kind: int
    actor_pubkey: str                    # Who engaged (zapper for zaps)
    created_at: int                      # Unix timestamp (seconds)
    target_event_id: str | None = None
    target_address: str | None = None
    amount_sats: int | None = None       # Zaps only
    content: str = ""

    @property
    def type(self) -> str:
        if self.kind == KIND_ZAP_RECEIPT:
            return "zap"
        if self.kind == KIND_COMMENT:
            return "comment"
        if self.kind in REPOST_KINDS:
            return "repost"
        if self.kind == KIND_REACTION:
            return "reaction"
        return "reply"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        data = asdict(self)
        data["type"] = self.type
        return data


@dataclass
class RepostReference:
    """Pointer from a repost event (kind 6/16) to the reposted event."""
    repost_event_id: str
    original_event_id: str
    original_author_pubkey: str | None = None
    relay_url: str | None = None         # Relay hint from the 'e' tag
    original_kind: int | None = None     # From the 'k' tag (kind 16)


@dataclass
class PodcastComment:
    """A NIP-22 comment on an episode, with nested replies."""
    event_id: str
    content: str
    author_pubkey: str
    created_at: int
    root_address: str | None = None      # 'A' tag
    root_event_id: str | None = None     # 'E' tag
    parent_id: str | None = None         # 'e' tag when replying to a comment
    replies: list["PodcastComment"] = field(default_factory=list)


@dataclass
class ZapLeaderboardEntry:
    """Aggregated zaps sent by one user."""
    user_pubkey: str
    total_amount: int
    zap_count: int
    last_zap_date: datetime


@dataclass
class EpisodeSearchOptions:
    """Search, sort and paging options for the episode catalog."""
    query: str | None = None
    tags: list[str] = field(default_factory=list)
    sort_by: str = "date"                # 'date', 'title', 'zaps', 'comments'
    sort_order: str = "desc"             # 'asc' or 'desc'
    limit: int | None = None
    offset: int = 0


@dataclass
class PodstrConfig:
    """Configuration for the PODSTR feed builder and client."""

    # Required fields
    creator_npub: str                    # npub (bech32) or hex public key of the creator
    relay_urls: list[str]                # Relays to fan queries out to
    base_url: str                        # Public site URL, used for item links
    podcast: PodcastMetadata             # Static fallback metadata

    # Optional fields with defaults
    ttl_minutes: int = 60
    catalog_timeout_ms: int = 5000       # Episodes, metadata
    engagement_timeout_ms: int = 3000    # Zaps, comments, reposts
    trailer_timeout_ms: int = 1500
    episode_limit: int = 100
    environment: str = "production"
    output_dir: str = "dist"

    @property
    def relay_hints(self) -> list[str]:
        """Relays embedded in nevent links (first two)."""
        return self.relay_urls[:2]

    def creator_pubkey_hex(self) -> str:
        """Creator public key in hex, decoding an npub if needed."""
        from .config import decode_pubkey
        return decode_pubkey(self.creator_npub)


def optional_int(value: Optional[str]) -> int | None:
    """Parse an integer tag value leniently (None on anything unparsable)."""
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


@dataclass
class FeedBuild:
    """Result of one discovery, reconciliation and synthesis run."""
    xml: str
    metadata: PodcastMetadata
    episodes: list[PodcastEpisode]
    trailers: list[PodcastTrailer] = field(default_factory=list)
    metadata_source: str = "defaults"    # 'relays' or 'defaults'
    episodes_source: str = "relays"      # 'relays', 'none' (no relay answered) or 'cache'
    relays: list[str] = field(default_factory=list)  # Relays that answered the catalog query

    @property
    def feed_size(self) -> int:
        """Size of the document in bytes (UTF-8)."""
        return len(self.xml.encode("utf-8"))
