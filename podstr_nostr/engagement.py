"""Engagement metrics: zaps, comments, reposts and reactions per episode.

Receipts reference an episode either by event ID ('e'/'E') or by its
addressable coordinate ('a'/'A'); both are matched, so engagement on an
older version of an addressable episode still counts.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from .dedupe import DedupeCache
from .models import (
    KIND_COMMENT,
    KIND_REACTION,
    KIND_TEXT_NOTE,
    KIND_ZAP_RECEIPT,
    REPOST_KINDS,
    EngagementReceipt,
    NostrEvent,
    PodcastComment,
    PodcastEpisode,
    timestamp_to_datetime,
)
from .zaps import (
    extract_zap_amount,
    extract_zapped_address,
    extract_zapped_event_id,
    extract_zapper_pubkey,
    validate_zap_event,
)

logger = logging.getLogger(__name__)

TOP_EPISODES = 5
RECENT_ACTIVITY = 10
ACTIVITY_DAYS = 30


@dataclass
class EngagementSummary:
    """Engagement totals for one episode."""
    zap_count: int = 0
    zap_amount: int = 0          # Total sats
    comment_count: int = 0
    repost_count: int = 0
    reaction_count: int = 0

    @property
    def total(self) -> int:
        return self.zap_count + self.comment_count + self.repost_count


@dataclass
class DailyEngagement:
    date: str                    # YYYY-MM-DD (UTC)
    zaps: int = 0
    comments: int = 0
    reposts: int = 0


@dataclass
class PodcastAnalytics:
    """Creator dashboard figures."""
    total_episodes: int
    total_trailers: int
    total_zaps: int
    total_zap_amount: int
    total_comments: int
    total_reposts: int
    top_episodes: list[PodcastEpisode] = field(default_factory=list)
    recent_activity: list[dict[str, Any]] = field(default_factory=list)
    engagement_over_time: list[DailyEngagement] = field(default_factory=list)


def _first(event: NostrEvent, *names: str) -> str | None:
    for name in names:
        value = event.get_tag(name)
        if value:
            return value
    return None


def receipt_from_event(event: NostrEvent) -> EngagementReceipt | None:
    """Derive an engagement receipt from a raw event.

    Zap receipts must be valid (recipient, invoice and zap request tags)
    and credit the zapper, falling back to the receipt author. Events that
    reference no target are not receipts.

    Returns:
        EngagementReceipt, or None if the event is not engagement
    """
    kind = event.kind
    amount = None
    actor = event.pubkey

    if kind == KIND_ZAP_RECEIPT:
        if not validate_zap_event(event):
            logger.debug("Excluding invalid zap receipt %s", event.id)
            return None
        target_id = extract_zapped_event_id(event)
        target_address = extract_zapped_address(event)
        actor = extract_zapper_pubkey(event) or event.pubkey
        amount = extract_zap_amount(event)
    elif kind == KIND_COMMENT:
        target_id = _first(event, "E", "e")
        target_address = _first(event, "A", "a")
    elif kind in REPOST_KINDS or kind in (KIND_REACTION, KIND_TEXT_NOTE):
        target_id = event.get_tag("e")
        target_address = event.get_tag("a")
    else:
        return None

    if not target_id and not target_address:
        return None

    return EngagementReceipt(
        event_id=event.id,
        kind=kind,
        actor_pubkey=actor,
        created_at=event.created_at,
        target_event_id=target_id,
        target_address=target_address,
        amount_sats=amount,
        content=event.content,
    )


def receipts_from_events(events: Iterable[NostrEvent]) -> list[EngagementReceipt]:
    """Convert events to receipts, dropping duplicates and non-engagement."""
    receipts = []
    for event in DedupeCache().unique(events):
        receipt = receipt_from_event(event)
        if receipt is not None:
            receipts.append(receipt)
    return receipts


def _episode_index(episodes: Iterable[PodcastEpisode]) -> tuple[dict[str, PodcastEpisode], dict[str, PodcastEpisode]]:
    by_id = {}
    by_address = {}
    for episode in episodes:
        by_id[episode.event_id] = episode
        by_address[episode.address] = episode
    return by_id, by_address


def _match(
    receipt: EngagementReceipt,
    by_id: dict[str, PodcastEpisode],
    by_address: dict[str, PodcastEpisode],
) -> PodcastEpisode | None:
    if receipt.target_event_id and receipt.target_event_id in by_id:
        return by_id[receipt.target_event_id]
    if receipt.target_address and receipt.target_address in by_address:
        return by_address[receipt.target_address]
    return None


def summarize_engagement(
    episodes: Iterable[PodcastEpisode],
    receipts: Iterable[EngagementReceipt],
) -> dict[str, EngagementSummary]:
    """Count engagement per episode.

    Args:
        episodes: Reconciled episodes
        receipts: Receipts from any relay (duplicates are counted once)

    Returns:
        Mapping of episode event ID to its summary; every episode has an
        entry, possibly all zeros
    """
    episodes = list(episodes)
    by_id, by_address = _episode_index(episodes)
    summaries = {episode.event_id: EngagementSummary() for episode in episodes}
    seen = DedupeCache()

    for receipt in receipts:
        if not seen.check_and_mark(receipt.event_id):
            continue
        episode = _match(receipt, by_id, by_address)
        if episode is None:
            continue

        summary = summaries[episode.event_id]
        kind = receipt.type
        if kind == "zap":
            summary.zap_count += 1
            summary.zap_amount += receipt.amount_sats or 0
        elif kind in ("comment", "reply"):
            summary.comment_count += 1
        elif kind == "repost":
            summary.repost_count += 1
        elif kind == "reaction":
            summary.reaction_count += 1

    return summaries


def apply_engagement(
    episodes: Iterable[PodcastEpisode],
    summaries: dict[str, EngagementSummary],
) -> list[PodcastEpisode]:
    """Return copies of the episodes carrying their engagement counts."""
    updated = []
    for episode in episodes:
        summary = summaries.get(episode.event_id)
        if summary is None:
            updated.append(episode)
            continue
        updated.append(replace(
            episode,
            zap_count=summary.zap_count,
            zap_amount=summary.zap_amount,
            comment_count=summary.comment_count,
            repost_count=summary.repost_count,
        ))
    return updated


def build_analytics(
    episodes: Iterable[PodcastEpisode],
    receipts: Iterable[EngagementReceipt],
    trailer_count: int = 0,
    now: Optional[datetime] = None,
) -> PodcastAnalytics:
    """Aggregate receipts into dashboard analytics.

    Only zaps, comments and reposts count as engagement here; reactions
    are ignored.

    Args:
        episodes: Reconciled episodes
        receipts: Engagement receipts for those episodes
        trailer_count: Number of published trailers
        now: Reference time for the 30-day series (default: current UTC time)

    Returns:
        PodcastAnalytics with totals, top 5 episodes, the 10 most recent
        activities and one entry per day for the last 30 days (oldest first)
    """
    episodes = list(episodes)
    now = now or datetime.now(timezone.utc)
    by_id, by_address = _episode_index(episodes)

    matched: list[tuple[EngagementReceipt, PodcastEpisode]] = []
    seen = DedupeCache()
    for receipt in receipts:
        if receipt.type not in ("zap", "comment", "repost"):
            continue
        if not seen.check_and_mark(receipt.event_id):
            continue
        episode = _match(receipt, by_id, by_address)
        if episode is not None:
            matched.append((receipt, episode))

    summaries = summarize_engagement(episodes, [receipt for receipt, _ in matched])
    with_counts = apply_engagement(episodes, summaries)
    top = sorted(with_counts, key=lambda e: e.total_engagement, reverse=True)[:TOP_EPISODES]

    matched.sort(key=lambda pair: pair[0].created_at, reverse=True)
    recent = []
    for receipt, episode in matched[:RECENT_ACTIVITY]:
        recent.append({
            "type": receipt.type,
            "episode_id": episode.event_id,
            "episode_title": episode.title,
            "timestamp": timestamp_to_datetime(receipt.created_at),
            "amount": receipt.amount_sats,
            "author": receipt.actor_pubkey,
        })

    days: dict[str, DailyEngagement] = {}
    for offset in range(ACTIVITY_DAYS - 1, -1, -1):
        key = (now - timedelta(days=offset)).date().isoformat()
        days[key] = DailyEngagement(date=key)
    for receipt, _ in matched:
        day = days.get(timestamp_to_datetime(receipt.created_at).date().isoformat())
        if day is None:
            continue
        if receipt.type == "zap":
            day.zaps += 1
        elif receipt.type == "comment":
            day.comments += 1
        else:
            day.reposts += 1

    return PodcastAnalytics(
        total_episodes=len(episodes),
        total_trailers=trailer_count,
        total_zaps=sum(s.zap_count for s in summaries.values()),
        total_zap_amount=sum(s.zap_amount for s in summaries.values()),
        total_comments=sum(s.comment_count for s in summaries.values()),
        total_reposts=sum(s.repost_count for s in summaries.values()),
        top_episodes=top,
        recent_activity=recent,
        engagement_over_time=list(days.values()),
    )


def thread_comments(comments: Iterable[PodcastComment]) -> list[PodcastComment]:
    """Nest replies under their parent comments.

    Top-level comments come newest first; replies under each parent are in
    chronological order. A reply whose parent is missing is shown at the
    top level. The input comments are not modified.
    """
    nodes: dict[str, PodcastComment] = {}
    for comment in comments:
        if comment.event_id not in nodes:
            nodes[comment.event_id] = replace(comment, replies=[])

    roots = []
    for node in nodes.values():
        parent = nodes.get(node.parent_id) if node.parent_id else None
        if parent is None or parent is node:
            roots.append(node)
        else:
            parent.replies.append(node)

    for node in nodes.values():
        node.replies.sort(key=lambda c: c.created_at)
    roots.sort(key=lambda c: c.created_at, reverse=True)
    return roots
