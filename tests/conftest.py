"""
Shared pytest fixtures for podstr-nostr tests.

Provides an event factory, a creator key, a ready-made config and
in-process fake relays so no test touches the network.
"""
import asyncio
import hashlib
import itertools
import json

import pytest

from podstr_nostr.config import default_podcast_metadata
from podstr_nostr.models import NostrEvent, PodstrConfig


CREATOR_PUBKEY = "a" * 64
OTHER_PUBKEY = "b" * 64
BASE_TIMESTAMP = 1_700_000_000

_event_counter = itertools.count()


class FakeSource:
    """In-process event source with a controllable delay or failure."""

    def __init__(self, url, events=(), delay=0.0, error=None):
        self.url = url
        self.events = list(events)
        self.delay = delay
        self.error = error
        self.calls = []

    async def query(self, query_filter, timeout_s):
        self.calls.append(query_filter)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        kinds = set(query_filter.kinds)
        matched = [e for e in self.events if not kinds or e.kind in kinds]
        if query_filter.authors:
            matched = [e for e in matched if e.pubkey in query_filter.authors]
        if query_filter.ids:
            matched = [e for e in matched if e.id in query_filter.ids]
        return matched


@pytest.fixture
def creator_pubkey():
    """Hex public key of the podcast creator."""
    return CREATOR_PUBKEY


@pytest.fixture
def other_pubkey():
    """Hex public key of somebody who is not the creator."""
    return OTHER_PUBKEY


@pytest.fixture
def make_event():
    """
    Factory for NostrEvent objects.

    Event IDs are unique 64-char hex strings unless given explicitly.
    created_at is an offset in seconds from a fixed base timestamp.
    """
    def _make(kind, tags=None, created_at=0, pubkey=CREATOR_PUBKEY, content="", event_id=None):
        if event_id is None:
            seed = f"event-{next(_event_counter)}".encode()
            event_id = hashlib.sha256(seed).hexdigest()
        return NostrEvent(
            id=event_id,
            pubkey=pubkey,
            kind=kind,
            created_at=BASE_TIMESTAMP + created_at,
            tags=[list(tag) for tag in (tags or [])],
            content=content,
        )

    return _make


@pytest.fixture
def make_episode_event(make_event):
    """Factory for valid addressable episode events."""
    def _make(title="Episode", identifier=None, created_at=0, audio="https://cdn.example/ep.mp3", extra_tags=(), **kwargs):
        tags = [["title", title], ["audio", audio, "audio/mpeg"]]
        if identifier is not None:
            tags.insert(0, ["d", identifier])
        tags.extend(extra_tags)
        kind = kwargs.pop("kind", 30054)
        return make_event(kind, tags, created_at=created_at, **kwargs)

    return _make


@pytest.fixture
def make_zap_event(make_event):
    """Factory for zap receipts (kind 9735)."""
    def _make(bolt11="lnbc10u1pxyz", zapper=None, target=None, created_at=0, request=None, **kwargs):
        request = request if request is not None else {"pubkey": zapper or "c" * 64, "tags": []}
        tags = [
            ["p", CREATOR_PUBKEY],
            ["bolt11", bolt11],
            ["description", json.dumps(request)],
        ]
        if zapper:
            tags.append(["P", zapper])
        if target:
            tags.append(["e", target])
        return make_event(9735, tags, created_at=created_at, pubkey="d" * 64, **kwargs)

    return _make


@pytest.fixture
def podstr_config(tmp_path):
    """Config pointing at fake relays and a temporary output directory."""
    return PodstrConfig(
        creator_npub=CREATOR_PUBKEY,
        relay_urls=["wss://relay-a.test", "wss://relay-b.test", "wss://relay-c.test"],
        base_url="https://pod.example",
        podcast=default_podcast_metadata(),
        catalog_timeout_ms=200,
        engagement_timeout_ms=200,
        trailer_timeout_ms=200,
        output_dir=str(tmp_path / "dist"),
    )


@pytest.fixture
def fake_source():
    """Factory for FakeSource relays."""
    return FakeSource


# Markers for different test categories
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests with no I/O"
    )
    config.addinivalue_line(
        "markers", "integration: Tests that exercise the full build pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take significant time to run"
    )
