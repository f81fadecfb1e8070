"""Concurrent relay querying with per-relay deadlines.

No relay is authoritative: every query is fanned out to all configured
relays at once and whatever comes back in time is merged. A relay that
errors or misses its deadline contributes nothing; the others are not
affected and the fan-out as a whole never fails.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional, Protocol, Sequence

from nostr_sdk import Client, Filter, RelayUrl

from .models import NostrEvent

logger = logging.getLogger(__name__)


# Default per-relay deadlines (milliseconds)
CATALOG_TIMEOUT_MS = 5000       # Episodes, metadata
ENGAGEMENT_TIMEOUT_MS = 3000    # Zaps, comments, reposts, reactions
TRAILER_TIMEOUT_MS = 1500


class RelayError(Exception):
    """Raised when a relay query fails."""

    pass


@dataclass
class QueryFilter:
    """A NIP-01 subscription filter.

    Empty fields are left out of the filter entirely.
    """
    kinds: list[int] = field(default_factory=list)
    authors: list[str] = field(default_factory=list)
    ids: list[str] = field(default_factory=list)
    identifiers: list[str] = field(default_factory=list)    # '#d'
    event_refs: list[str] = field(default_factory=list)     # '#e'
    address_refs: list[str] = field(default_factory=list)   # '#a'
    pubkey_refs: list[str] = field(default_factory=list)    # '#p'
    limit: Optional[int] = None
    since: Optional[int] = None
    until: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a NIP-01 filter object."""
        data: dict[str, Any] = {}
        if self.ids:
            data["ids"] = list(self.ids)
        if self.authors:
            data["authors"] = list(self.authors)
        if self.kinds:
            data["kinds"] = list(self.kinds)
        if self.identifiers:
            data["#d"] = list(self.identifiers)
        if self.event_refs:
            data["#e"] = list(self.event_refs)
        if self.address_refs:
            data["#a"] = list(self.address_refs)
        if self.pubkey_refs:
            data["#p"] = list(self.pubkey_refs)
        if self.since is not None:
            data["since"] = self.since
        if self.until is not None:
            data["until"] = self.until
        if self.limit is not None:
            data["limit"] = self.limit
        return data

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict())

    def to_sdk_filter(self) -> Filter:
        """Convert to a nostr-sdk Filter."""
        return Filter.from_json(self.to_json())


class EventSource(Protocol):
    """Anything that can answer a filter query with verified events."""

    url: str

    async def query(self, query_filter: QueryFilter, timeout_s: float) -> list[NostrEvent]:
        ...


class NostrRelaySource:
    """A single relay queried through nostr-sdk.

    A fresh client is used per query and always disconnected afterwards,
    so a source holds no connection state between calls.

    Args:
        url: Relay WebSocket URL (e.g. "wss://relay.damus.io")
    """

    def __init__(self, url: str):
        self.url = url

    async def query(self, query_filter: QueryFilter, timeout_s: float) -> list[NostrEvent]:
        """Fetch all events matching the filter.

        Args:
            query_filter: Filter to send
            timeout_s: Relay-side fetch timeout in seconds

        Returns:
            Events returned by the relay

        Raises:
            RelayError: If connecting or fetching fails
        """
        client = Client()
        try:
            relay_url = RelayUrl.parse(self.url)
            await client.add_relay(relay_url)
            await client.connect_relay(relay_url)

            events = await client.fetch_events(
                query_filter.to_sdk_filter(),
                timedelta(seconds=timeout_s),
            )
            return [
                NostrEvent.from_dict(json.loads(event.as_json()))
                for event in events.to_vec()
            ]
        except Exception as e:
            raise RelayError(f"Query to {self.url} failed: {e}") from e
        finally:
            try:
                await client.disconnect()
            except Exception as e:
                logger.debug("Error disconnecting from %s: %s", self.url, e)

    def __repr__(self) -> str:
        return f"NostrRelaySource({self.url!r})"


@dataclass
class FanOutResult:
    """Outcome of one fan-out query."""
    events: list[NostrEvent] = field(default_factory=list)   # Concatenated, unordered
    responded: list[str] = field(default_factory=list)       # Relays that answered in time
    failed: list[str] = field(default_factory=list)          # Relays that errored or timed out

    @property
    def any_responded(self) -> bool:
        return bool(self.responded)


class RelayPool:
    """Fans queries out to every configured source concurrently.

    Each source races its own deadline. A timeout is local to that source:
    it is cancelled and yields nothing, while its siblings keep running.
    The whole fan-out takes at most about one deadline.

    Args:
        sources: Event sources to query (read-only for the pool's lifetime)

    Example:
        >>> pool = RelayPool.from_urls(["wss://relay.damus.io", "wss://nos.lol"])
        >>> result = await pool.gather(QueryFilter(kinds=[30054]), timeout_ms=5000)
        >>> len(result.responded)
        2
    """

    def __init__(self, sources: Sequence[EventSource]):
        self.sources = list(sources)
        self._stats = {
            "queries": 0,
            "source_failures": 0,
            "source_timeouts": 0,
        }

    @classmethod
    def from_urls(cls, relay_urls: Sequence[str]) -> "RelayPool":
        """Build a pool of nostr-sdk relay sources."""
        return cls([NostrRelaySource(url) for url in relay_urls])

    @property
    def urls(self) -> list[str]:
        return [source.url for source in self.sources]

    async def _query_source(
        self,
        source: EventSource,
        query_filter: QueryFilter,
        timeout_s: float,
    ) -> list[NostrEvent]:
        return await asyncio.wait_for(source.query(query_filter, timeout_s), timeout=timeout_s)

    async def gather(self, query_filter: QueryFilter, timeout_ms: int = CATALOG_TIMEOUT_MS) -> FanOutResult:
        """Query every source and collect whatever arrives in time.

        Args:
            query_filter: Filter sent unchanged to every source
            timeout_ms: Independent deadline for each source

        Returns:
            FanOutResult with the concatenated events and per-source outcome
        """
        self._stats["queries"] += 1
        result = FanOutResult()
        if not self.sources:
            return result

        timeout_s = timeout_ms / 1000
        outcomes = await asyncio.gather(
            *(self._query_source(source, query_filter, timeout_s) for source in self.sources),
            return_exceptions=True,
        )

        for source, outcome in zip(self.sources, outcomes):
            if isinstance(outcome, asyncio.TimeoutError):
                self._stats["source_timeouts"] += 1
                result.failed.append(source.url)
                logger.warning("Relay %s timed out after %d ms", source.url, timeout_ms)
            elif isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                self._stats["source_failures"] += 1
                result.failed.append(source.url)
                logger.warning("Relay %s failed: %s", source.url, outcome)
            else:
                result.responded.append(source.url)
                result.events.extend(outcome)

        logger.debug(
            "Fan-out %s: %d events from %d/%d relays",
            query_filter.to_dict(), len(result.events),
            len(result.responded), len(self.sources),
        )
        return result

    async def query_all(self, query_filter: QueryFilter, timeout_ms: int = CATALOG_TIMEOUT_MS) -> list[NostrEvent]:
        """Query every source and return the concatenated events.

        Never raises because of a source; the order of the returned list
        is unspecified.
        """
        result = await self.gather(query_filter, timeout_ms)
        return result.events

    def get_statistics(self) -> dict[str, int]:
        """Get fan-out counters."""
        return dict(self._stats)
