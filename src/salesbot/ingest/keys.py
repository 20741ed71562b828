"""Helpers for stable event keys across feeds."""

from __future__ import annotations

MINUTE_MS = 60_000


def compute_dedupe_key(collection_id: str, serial_number: int, event_class: str, occurred_at_ms: int) -> tuple:
    """Coarse key used to merge the same event reported by both feeds.

    Timestamps are floored to the minute.
    """
    minute = (occurred_at_ms // MINUTE_MS) * MINUTE_MS
    return (collection_id, serial_number, event_class, minute)


def compute_identity_id(
    collection_id: str,
    serial_number: int,
    event_class: str,
    occurred_at_ms: int,
    source_reference_id: str | None = None,
) -> str:
    """Fine-grained key for the delivered-events ledger."""
    parts = [event_class, collection_id, str(serial_number), str(occurred_at_ms)]
    if source_reference_id:
        parts.append(str(source_reference_id))
    return ":".join(parts)
