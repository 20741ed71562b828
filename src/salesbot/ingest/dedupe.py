"""Collapse the same real-world event reported more than once in a batch."""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from salesbot.ingest.events import Event

logger = structlog.get_logger()


def dedupe_events(events: Iterable[Event]) -> tuple[list[Event], int]:
    """Keep the first event seen for each dedupe key.

    Callers pass feed A events ahead of feed B so the survivor is deterministic.

    Returns:
        (unique events in first-seen order, number of dropped duplicates)
    """
    seen: set[tuple] = set()
    unique: list[Event] = []
    dropped = 0

    for event in events:
        key = event.dedupe_key
        if key in seen:
            logger.info(
                "Dropping duplicate event",
                collection_id=event.collection_id,
                serial=event.serial_number,
                event_class=event.event_class.value,
                source=event.source_feed.value,
                name=event.display_name,
            )
            dropped += 1
            continue

        seen.add(key)
        unique.append(event)

    return unique, dropped
