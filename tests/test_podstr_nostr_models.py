"""Tests for PODSTR Nostr data models."""
import json
from datetime import datetime, timezone

import pytest

from podstr_nostr.models import (
    KIND_COMMENT,
    KIND_EPISODE,
    KIND_REACTION,
    KIND_REPOST,
    KIND_ZAP_RECEIPT,
    EngagementReceipt,
    FeedBuild,
    NostrEvent,
    PodcastEpisode,
    PodcastMetadata,
    ValueBlock,
    is_addressable_kind,
    optional_int,
    timestamp_to_datetime,
)


class TestNostrEvent:
    """Tests for the NostrEvent model."""

    def test_tag_helpers(self):
        """Test first-value, all-values and presence lookups."""
        event = NostrEvent(
            id="1" * 64,
            pubkey="a" * 64,
            kind=KIND_EPISODE,
            created_at=1700000000,
            tags=[["d", "ep-1"], ["t", "bitcoin"], ["t", "nostr"], ["audio", "https://x/a.mp3", "audio/mpeg"]],
        )

        assert event.get_tag("t") == "bitcoin"
        assert event.get_tag_values("t") == ["bitcoin", "nostr"]
        assert event.find_tag("audio") == ["audio", "https://x/a.mp3", "audio/mpeg"]
        assert event.has_tag("d") is True
        assert event.get_tag("missing") is None

    def test_tag_without_value(self):
        """Test that a bare tag name counts as present but has no value."""
        event = NostrEvent(id="1" * 64, pubkey="a" * 64, kind=1, created_at=0, tags=[["p"]])

        assert event.has_tag("p") is True
        assert event.get_tag("p") is None
        assert event.get_tag_values("p") == []

    def test_address_for_addressable_kind(self):
        """Test the kind:pubkey:d coordinate."""
        event = NostrEvent(id="1" * 64, pubkey="a" * 64, kind=KIND_EPISODE, created_at=0, tags=[["d", "ep-1"]])

        assert event.is_addressable is True
        assert event.address == f"30054:{'a' * 64}:ep-1"

    def test_no_address_without_d_tag(self):
        """Test that events without 'd' have no address."""
        event = NostrEvent(id="1" * 64, pubkey="a" * 64, kind=KIND_EPISODE, created_at=0, tags=[])

        assert event.address is None

    def test_json_roundtrip(self):
        """Test serializing to JSON and back."""
        event = NostrEvent(
            id="1" * 64, pubkey="a" * 64, kind=1, created_at=1700000000,
            tags=[["e", "2" * 64]], content="hello", sig="f" * 128,
        )

        restored = NostrEvent.from_json(event.to_json())
        assert restored == event

    def test_from_dict_stringifies_tag_values(self):
        """Test that numeric tag values from relays become strings."""
        event = NostrEvent.from_dict({
            "id": "1" * 64, "pubkey": "a" * 64, "kind": "1",
            "created_at": 5, "tags": [["amount", 21000]],
        })

        assert event.kind == 1
        assert event.get_tag("amount") == "21000"
        assert event.content == ""


class TestHelpers:
    """Tests for module-level helpers."""

    @pytest.mark.parametrize("kind,expected", [
        (1, False), (29999, False), (30000, True), (30054, True), (39999, True), (40000, False),
    ])
    def test_is_addressable_kind(self, kind, expected):
        """Test the addressable kind range boundaries."""
        assert is_addressable_kind(kind) is expected

    def test_timestamp_to_datetime_is_utc(self):
        """Test that timestamps become aware UTC datetimes."""
        dt = timestamp_to_datetime(0)
        assert dt == datetime(1970, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value,expected", [
        ("42", 42), (" 7 ", 7), ("abc", None), ("", None), (None, None), ("1.5", None),
    ])
    def test_optional_int(self, value, expected):
        """Test lenient integer parsing."""
        assert optional_int(value) == expected


class TestPodcastEpisode:
    """Tests for PodcastEpisode model."""

    def _episode(self, **overrides):
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        values = dict(
            event_id="1" * 64, author_pubkey="a" * 64, identifier="ep-1",
            title="Pilot", audio_url="https://x/a.mp3", audio_type="audio/mpeg",
            publish_date=created, created_at=created,
        )
        values.update(overrides)
        return PodcastEpisode(**values)

    def test_address_and_playable(self):
        """Test derived properties."""
        episode = self._episode()

        assert episode.address == f"30054:{'a' * 64}:ep-1"
        assert episode.is_playable is True
        assert self._episode(audio_url="").is_playable is False

    def test_total_engagement(self):
        """Test that zaps, comments and reposts add up."""
        episode = self._episode(zap_count=2, comment_count=3, repost_count=1)
        assert episode.total_engagement == 6

    def test_to_dict_uses_iso_dates(self):
        """Test that datetimes serialize as ISO strings."""
        data = self._episode().to_dict()

        assert data["publish_date"] == "2024-01-01T00:00:00+00:00"
        json.dumps(data)


class TestPodcastMetadata:
    """Tests for PodcastMetadata model."""

    def test_from_dict_accepts_camel_case(self):
        """Test that studio JSON keys map onto fields."""
        metadata = PodcastMetadata.from_dict({
            "title": "Show",
            "description": "About",
            "author": "Host",
            "newFeedUrl": "https://new.example/rss.xml",
            "person": [{"name": "Alice", "role": "guest"}],
            "remoteItem": [{"feedGuid": "g-1", "feedUrl": "https://f"}],
            "value": {
                "amount": 100,
                "currency": "sats",
                "recipients": [{"name": "Host", "type": "node", "address": "02ab", "split": 100, "customKey": "7629169"}],
            },
            "unknownField": "ignored",
        })

        assert metadata.new_feed_url == "https://new.example/rss.xml"
        assert metadata.persons[0].name == "Alice"
        assert metadata.remote_items[0].feed_guid == "g-1"
        assert metadata.value.amount == 100
        assert metadata.value.recipients[0].custom_key == "7629169"

    def test_merged_is_shallow(self):
        """Test that overrides replace whole top-level fields."""
        defaults = PodcastMetadata(
            title="Default", description="D", author="A",
            categories=["Technology"],
            value=ValueBlock(amount=5, currency="USD"),
        )

        merged = PodcastMetadata.merged(defaults, {"title": "Live", "value": {"amount": 10}})

        assert merged.title == "Live"
        assert merged.author == "A"
        assert merged.categories == ["Technology"]
        assert merged.value.amount == 10
        assert merged.value.currency == "USD"
        assert defaults.title == "Default"

    def test_null_collections_become_empty(self):
        """Test that null values for lists and value do not break rendering."""
        metadata = PodcastMetadata.from_dict({
            "title": "T", "description": "D", "author": "A",
            "categories": None, "funding": "https://fund.example", "value": None,
        })

        assert metadata.categories == []
        assert metadata.funding == ["https://fund.example"]
        assert metadata.value.amount == 0

    def test_json_roundtrip(self):
        """Test serializing to JSON and back."""
        metadata = PodcastMetadata.from_dict({
            "title": "T", "description": "D", "author": "A",
            "license": {"identifier": "CC0"},
            "location": {"name": "Austin", "geo": "geo:30.2,-97.7"},
        })

        restored = PodcastMetadata.from_json(metadata.to_json())
        assert restored == metadata

    @pytest.mark.parametrize("overrides", [
        {"license": "MIT"},
        {"location": "Berlin"},
        {"block": True},
        {"persons": "Alice"},
    ])
    def test_wrong_nested_shape_rejected(self, overrides):
        """Test that scalars where objects belong raise ValueError."""
        with pytest.raises(ValueError):
            PodcastMetadata.from_dict({"title": "T", "description": "D", "author": "A", **overrides})

    def test_non_object_list_entries_skipped(self):
        """Test that stray strings in nested lists are ignored."""
        metadata = PodcastMetadata.from_dict({
            "title": "T", "description": "D", "author": "A",
            "persons": ["Alice", {"name": "Bob"}],
            "txt": ["verify"],
            "remoteItem": [42, {"feedGuid": "g-1"}],
        })

        assert [p.name for p in metadata.persons] == ["Bob"]
        assert metadata.txt == []
        assert [r.feed_guid for r in metadata.remote_items] == ["g-1"]


class TestEngagementReceipt:
    """Tests for EngagementReceipt model."""

    @pytest.mark.parametrize("kind,expected", [
        (KIND_ZAP_RECEIPT, "zap"),
        (KIND_COMMENT, "comment"),
        (KIND_REPOST, "repost"),
        (16, "repost"),
        (KIND_REACTION, "reaction"),
        (1, "reply"),
    ])
    def test_type(self, kind, expected):
        """Test receipt type by kind."""
        receipt = EngagementReceipt(event_id="1" * 64, kind=kind, actor_pubkey="a" * 64, created_at=0)
        assert receipt.type == expected
        assert receipt.to_dict()["type"] == expected


class TestFeedBuild:
    """Tests for FeedBuild model."""

    def test_feed_size_counts_utf8_bytes(self):
        """Test that feed size is measured in encoded bytes."""
        metadata = PodcastMetadata(title="T", description="D", author="A")
        build = FeedBuild(xml="©", metadata=metadata, episodes=[])

        assert build.feed_size == 2
