"""Zap receipt (kind 9735) parsing and aggregation.

Amounts are recovered from partially trusted sources in order of
reliability: the bolt11 invoice, a plain 'amount' tag, and finally the
zap request embedded in the 'description' tag. Nothing here raises; a
receipt without a derivable amount simply counts as 0 sats.

Note: the invoice checksum and signature are not verified, so a malformed
string that still looks like an amount yields that amount.
"""
import json
import logging
import re
from typing import Any, Iterable

from .models import (
    KIND_ZAP_RECEIPT,
    NostrEvent,
    ZapLeaderboardEntry,
    timestamp_to_datetime,
)

logger = logging.getLogger(__name__)

# ln + optional network prefix, amount, optional multiplier, then separator '1'
_BOLT11_PATTERNS = (
    ("lnbc", re.compile(r"^lnbc(\d+)([munp]?)1")),
    ("lntb", re.compile(r"^lntb(\d+)([munp]?)1")),
    ("ln", re.compile(r"^ln(\d+)([munp]?)1")),
)

SATS_PER_BTC = 100_000_000


def parse_bolt11_amount(invoice: Any) -> int | None:
    """Extract the amount in sats from a bolt11 invoice string.

    Only the human-readable amount is decoded; nothing else in the
    invoice is interpreted.

    Args:
        invoice: Invoice string (e.g. "lnbc2500u1p...")

    Returns:
        Amount in satoshis, or None when no amount can be parsed

    Example:
        >>> parse_bolt11_amount("lnbc2500u1pvjluez")
        250000
    """
    if not isinstance(invoice, str):
        return None
    lowered = invoice.strip().lower()
    for prefix, pattern in _BOLT11_PATTERNS:
        if not lowered.startswith(prefix):
            continue
        match = pattern.match(lowered)
        if match is None:
            return None
        amount = int(match.group(1))
        unit = match.group(2)
        if unit == "m":      # milli-bitcoin
            return amount * 100_000
        if unit == "u":      # micro-bitcoin
            return amount * 100
        if unit == "n":      # nano-bitcoin (0.1 sat)
            return amount // 10
        if unit == "p":      # pico-bitcoin (0.0001 sat)
            return amount // 10_000
        return amount * SATS_PER_BTC
    return None


def _millisats_to_sats(value: Any) -> int | None:
    try:
        millisats = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    if millisats < 0:
        return None
    return millisats // 1000


def _parse_zap_request(event: NostrEvent) -> dict[str, Any] | None:
    """Decode the zap request JSON carried in the 'description' tag."""
    description = event.get_tag("description")
    if not description:
        return None
    try:
        request = json.loads(description)
    except (TypeError, ValueError) as e:
        logger.debug("Unparsable zap request in %s: %s", event.id, e)
        return None
    return request if isinstance(request, dict) else None


def extract_zap_amount(event: NostrEvent) -> int:
    """Extract the zapped amount in sats from a zap receipt.

    Tries, first success wins:
    1. the 'bolt11' invoice amount
    2. the 'amount' tag (millisats)
    3. the 'amount' tag of the zap request in 'description' (millisats)

    Args:
        event: Zap receipt event

    Returns:
        Amount in satoshis (>= 0); 0 when no method succeeds
    """
    amount = parse_bolt11_amount(event.get_tag("bolt11"))
    if amount is not None:
        return amount

    amount = _millisats_to_sats(event.get_tag("amount"))
    if amount is not None:
        return amount

    request = _parse_zap_request(event)
    if request is not None:
        for tag in request.get("tags") or []:
            if isinstance(tag, list) and len(tag) >= 2 and tag[0] == "amount":
                amount = _millisats_to_sats(tag[1])
                if amount is not None:
                    return amount
                break

    logger.debug("Could not extract amount from zap receipt %s", event.id)
    return 0


def extract_zapper_pubkey(event: NostrEvent) -> str | None:
    """Resolve who sent the zap.

    The receipt is signed by the recipient's LNURL server, so the zapper
    is read from the 'P' tag, falling back to the zap request author.
    """
    zapper = event.get_tag("P")
    if zapper:
        return zapper
    request = _parse_zap_request(event)
    if request is not None:
        pubkey = request.get("pubkey")
        if isinstance(pubkey, str) and pubkey:
            return pubkey
    return None


def validate_zap_event(event: NostrEvent) -> bool:
    """Check that an event is a well-formed zap receipt.

    Requires kind 9735 plus recipient ('p'), invoice ('bolt11') and
    zap request ('description') tags.
    """
    if event.kind != KIND_ZAP_RECEIPT:
        return False
    return (
        event.has_tag("p")
        and event.has_tag("bolt11")
        and event.has_tag("description")
    )


def extract_zapped_event_id(event: NostrEvent) -> str | None:
    """Return the zapped event ID ('e' tag), if any."""
    return event.get_tag("e")


def extract_zapped_address(event: NostrEvent) -> str | None:
    """Return the zapped addressable coordinate ('a' tag), if any."""
    return event.get_tag("a")


def summarize_zaps(events: Iterable[NostrEvent]) -> tuple[int, int]:
    """Count valid zap receipts and total their amounts.

    Returns:
        (zap_count, total_sats)
    """
    count = 0
    total = 0
    for event in events:
        if not validate_zap_event(event):
            continue
        count += 1
        total += extract_zap_amount(event)
    return count, total


def build_zap_leaderboard(
    events: Iterable[NostrEvent],
    limit: int = 10,
) -> list[ZapLeaderboardEntry]:
    """Aggregate zap receipts per zapper and rank by total sats.

    Invalid receipts and receipts whose zapper cannot be resolved are
    skipped.

    Args:
        events: Zap receipt events (any relay order, may contain duplicates)
        limit: Maximum number of entries

    Returns:
        Entries sorted by total amount, highest first
    """
    aggregated: dict[str, ZapLeaderboardEntry] = {}
    seen: set[str] = set()

    for event in events:
        if event.id in seen:
            continue
        seen.add(event.id)

        if not validate_zap_event(event):
            logger.debug("Skipping invalid zap receipt %s", event.id)
            continue
        zapper = extract_zapper_pubkey(event)
        if not zapper:
            logger.debug("No zapper pubkey in zap receipt %s", event.id)
            continue

        amount = extract_zap_amount(event)
        zap_date = timestamp_to_datetime(event.created_at)
        entry = aggregated.get(zapper)
        if entry is None:
            aggregated[zapper] = ZapLeaderboardEntry(
                user_pubkey=zapper,
                total_amount=amount,
                zap_count=1,
                last_zap_date=zap_date,
            )
        else:
            entry.total_amount += amount
            entry.zap_count += 1
            if zap_date > entry.last_zap_date:
                entry.last_zap_date = zap_date

    ranked = sorted(aggregated.values(), key=lambda e: e.total_amount, reverse=True)
    return ranked[:limit]


def recent_zap_activity(
    events: Iterable[NostrEvent],
    limit: int = 20,
) -> list[dict[str, Any]]:
    """List the most recent valid zaps, newest first.

    The zapper falls back to the receipt author when neither the 'P' tag
    nor the zap request names one.
    """
    valid = [event for event in events if validate_zap_event(event)]
    valid.sort(key=lambda e: e.created_at, reverse=True)

    activity = []
    for event in valid[:limit]:
        activity.append({
            "id": event.id,
            "user_pubkey": extract_zapper_pubkey(event) or event.pubkey,
            "amount": extract_zap_amount(event),
            "episode_id": extract_zapped_event_id(event),
            "timestamp": timestamp_to_datetime(event.created_at),
        })
    return activity
