"""Recency and novelty filtering against per-class watermarks."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

import structlog

from salesbot.config import settings
from salesbot.ingest.events import Event, EventClass, to_millis

logger = structlog.get_logger()


def freshness_window(event_class: EventClass) -> timedelta:
    """Sales: 5 minutes, listings: 15 minutes (configurable)."""
    if event_class is EventClass.LISTING:
        return timedelta(seconds=settings.listing_freshness_seconds)
    return timedelta(seconds=settings.sale_freshness_seconds)


def is_novel(event: Event, watermark_ms: int, now: datetime, window: timedelta | None = None) -> bool:
    if window is None:
        window = freshness_window(event.event_class)
    if event.occurred_at_ms <= watermark_ms:
        return False
    return event.occurred_at_ms > to_millis(now - window)


def filter_novel(
    events: Iterable[Event],
    watermark_ms: int,
    now: datetime,
    window: timedelta | None = None,
) -> list[Event]:
    """Drop events at/before the watermark or older than the freshness window."""
    kept: list[Event] = []
    for event in events:
        if is_novel(event, watermark_ms, now, window):
            kept.append(event)
        else:
            logger.debug(
                "Event not novel",
                collection_id=event.collection_id,
                serial=event.serial_number,
                event_class=event.event_class.value,
                occurred_at=event.occurred_at.isoformat(),
                watermark_ms=watermark_ms,
            )
    return kept
