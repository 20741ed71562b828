"""Backfill rank/rarity on feed B events from feed A."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

import structlog

from salesbot.cache import TtlCache
from salesbot.ingest.events import Event, RankInfo, SourceFeed

logger = structlog.get_logger()

# Cache marker for lookups that found nothing.
NO_RANK = RankInfo()


class RankLookup(Protocol):
    def lookup_rank(self, collection_id: str, serial_number: int) -> RankInfo | None: ...


def enrich_events(
    events: Iterable[Event],
    lookup: RankLookup,
    *,
    weak_feed: SourceFeed = SourceFeed.B,
    cache: TtlCache[RankInfo] | None = None,
) -> list[Event]:
    """Best-effort side-channel join; never raises.

    Without a `cache`, lookups are memoised for this call only. Misses and
    failures are cached too.
    """
    if cache is None:
        cache = TtlCache(float("inf"))
    enriched: list[Event] = []

    for event in events:
        if event.source_feed is not weak_feed or event.rank_info is not None:
            enriched.append(event)
            continue

        key = (event.collection_id, event.serial_number)
        rank_info = cache.get(key)
        if rank_info is None:
            try:
                rank_info = lookup.lookup_rank(event.collection_id, event.serial_number) or NO_RANK
            except Exception as exc:
                logger.warning(
                    "Rank lookup failed",
                    collection_id=event.collection_id,
                    serial=event.serial_number,
                    error=str(exc),
                )
                rank_info = NO_RANK
            cache.set(key, rank_info)

        if rank_info == NO_RANK:
            logger.debug("No rank data", collection_id=event.collection_id, serial=event.serial_number)
            enriched.append(event)
        else:
            enriched.append(event.with_rank(rank_info))

    return enriched
