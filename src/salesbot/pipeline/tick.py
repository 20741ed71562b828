"""One pass of the sales/listings pipeline."""

from __future__ import annotations

import functools
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from typing import Protocol

import structlog

from salesbot.cache import TtlCache
from salesbot.config import settings
from salesbot.feeds.base import FeedAdapter
from salesbot.ingest.dedupe import dedupe_events
from salesbot.ingest.enrich import RankLookup, enrich_events
from salesbot.ingest.events import Event, EventClass, RankInfo, to_millis
from salesbot.ingest.recency import filter_novel
from salesbot.pipeline.dispatch import Dispatcher
from salesbot.pipeline.subscriptions import SubscriptionResolver
from salesbot.storage.ledger import Ledger

logger = structlog.get_logger()

STAT_KEYS = (
    "fetched",
    "tracked",
    "fresh",
    "duplicates",
    "already_delivered",
    "dispatched",
    "delivered",
    "failed",
    "undeliverable",
    "ledger_errors",
)


class RateProvider(Protocol):
    def get_rate(self) -> float: ...


class FloorPriceLookup(Protocol):
    def get_floor_price(self, collection_id: str) -> float | None: ...


class Pipeline:
    def __init__(
        self,
        feeds: Sequence[FeedAdapter],
        ledger: Ledger,
        resolver: SubscriptionResolver,
        dispatcher: Dispatcher,
        rates: RateProvider,
        *,
        rank_lookup: RankLookup | None = None,
        floor_lookup: FloorPriceLookup | None = None,
        fetch_limit: int | None = None,
        require_delivery: bool | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ):
        # Feed order matters: the first feed wins dedupe ties.
        self.feeds = list(feeds)
        self.ledger = ledger
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.rates = rates
        self.rank_lookup = rank_lookup
        self.rank_cache: TtlCache[RankInfo] = TtlCache(settings.rank_cache_seconds)
        self.floor_lookup = floor_lookup
        self.fetch_limit = fetch_limit or settings.feed_fetch_limit
        self.require_delivery = (
            settings.require_delivery_for_ledger if require_delivery is None else require_delivery
        )
        self._now = now_fn or (lambda: datetime.now(UTC))

    def fetch_all(self) -> list[Event]:
        """Fetch every feed concurrently and concatenate results in feed order."""
        if not self.feeds:
            return []
        with ThreadPoolExecutor(max_workers=len(self.feeds), thread_name_prefix="feed") as pool:
            futures = [pool.submit(feed.fetch, self.fetch_limit) for feed in self.feeds]
            batches: list[list[Event]] = []
            for feed, future in zip(self.feeds, futures):
                try:
                    batches.append(future.result())
                except Exception as exc:
                    logger.warning("Feed fetch raised", feed=feed.source_feed.value, error=str(exc))
                    batches.append([])
        return [event for batch in batches for event in batch]

    def run_tick(self) -> dict[str, int]:
        stats = dict.fromkeys(STAT_KEYS, 0)

        tracked = self.resolver.tracked_collection_ids()
        if not tracked:
            logger.debug("No tracked collections, skipping tick")
            return stats

        events = self.fetch_all()
        stats["fetched"] = len(events)
        events = [event for event in events if event.collection_id in tracked]
        stats["tracked"] = len(events)
        if not events:
            return stats

        if self.rank_lookup is not None:
            events = enrich_events(events, self.rank_lookup, cache=self.rank_cache)

        now = self._now()
        hbar_rate = functools.cache(self.rates.get_rate)

        for event_class in (EventClass.SALE, EventClass.LISTING):
            batch = [event for event in events if event.event_class is event_class]
            if not batch:
                continue

            watermark = self.ledger.get_watermark(event_class)
            fresh = filter_novel(batch, watermark, now)
            unique, dropped = dedupe_events(fresh)
            stats["fresh"] += len(fresh)
            stats["duplicates"] += dropped

            for event in sorted(unique, key=lambda e: e.occurred_at_ms):
                watermark = self._process(event, watermark, stats, hbar_rate)

        if stats["dispatched"] or stats["ledger_errors"]:
            logger.info("Tick complete", **stats)
        return stats

    def _process(
        self,
        event: Event,
        watermark: int,
        stats: dict[str, int],
        hbar_rate: Callable[[], float],
    ) -> int:
        identity_id = event.identity_id
        try:
            if self.ledger.exists(identity_id):
                stats["already_delivered"] += 1
                return self._advance(event, watermark, stats)
        except Exception:
            logger.exception("Ledger read failed", identity_id=identity_id)
            stats["ledger_errors"] += 1
            return watermark

        routes = self.resolver.resolve(event.collection_id, event.event_class)
        if routes:
            result = self.dispatcher.dispatch(event, routes, hbar_rate(), self._floor_price(event))
            stats["dispatched"] += 1
            stats["delivered"] += result.delivered
            stats["failed"] += result.failed

            if self.require_delivery and result.undeliverable:
                stats["undeliverable"] += 1
                logger.warning(
                    "Event undeliverable",
                    identity_id=identity_id,
                    routes=result.routes,
                    errors=result.errors,
                )
                return watermark

        try:
            self.ledger.record(identity_id, event.collection_id, event.event_class)
        except Exception:
            logger.exception("Ledger write failed", identity_id=identity_id)
            stats["ledger_errors"] += 1
            return watermark

        return self._advance(event, watermark, stats)

    def _floor_price(self, event: Event) -> float | None:
        if self.floor_lookup is None:
            return None
        try:
            return self.floor_lookup.get_floor_price(event.collection_id)
        except Exception as exc:
            logger.warning("Floor price lookup failed", collection_id=event.collection_id, error=str(exc))
            return None

    def _advance(self, event: Event, watermark: int, stats: dict[str, int]) -> int:
        if event.occurred_at_ms <= watermark:
            return watermark
        try:
            self.ledger.set_watermark(event.event_class, event.occurred_at_ms)
        except Exception:
            logger.exception("Watermark write failed", event_class=event.event_class.value)
            stats["ledger_errors"] += 1
            return watermark
        return event.occurred_at_ms

    def seed_watermarks(self) -> dict[str, int]:
        """Move each class watermark up to the newest event either feed reports, else now.

        Never lowers a persisted watermark.
        """
        events = self.fetch_all()
        now_ms = to_millis(self._now())
        seeded: dict[str, int] = {}

        for event_class in (EventClass.SALE, EventClass.LISTING):
            stamps = [event.occurred_at_ms for event in events if event.event_class is event_class]
            candidate = max(stamps) if stamps else now_ms
            current = self.ledger.get_watermark(event_class)
            value = max(current, candidate)
            if value != current:
                self.ledger.set_watermark(event_class, value)
            seeded[event_class.value] = value
            logger.info(
                "Watermark seeded",
                event_class=event_class.value,
                watermark_ms=value,
                from_events=bool(stamps),
            )
        return seeded

    def prune(self, retention: timedelta | None = None) -> int:
        if retention is None:
            retention = timedelta(days=settings.ledger_retention_days)
        return self.ledger.prune_older_than(retention)


def build_default_pipeline() -> Pipeline:
    from salesbot.feeds.kabila import KabilaAdapter
    from salesbot.feeds.sentx import SentxAdapter
    from salesbot.outbound.currency import HbarRateService
    from salesbot.outbound.notifications import DiscordSink
    from salesbot.storage.ledger import SqlLedger
    from salesbot.storage.subscriptions import SubscriptionStore

    sentx = SentxAdapter()
    return Pipeline(
        feeds=[sentx, KabilaAdapter()],
        ledger=SqlLedger(),
        resolver=SubscriptionResolver(SubscriptionStore()),
        dispatcher=Dispatcher(DiscordSink()),
        rates=HbarRateService(),
        rank_lookup=sentx if settings.enable_enrichment else None,
        floor_lookup=sentx,
    )
