"""Resolve which destinations and channels receive an event."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import structlog

from salesbot.cache import TtlCache
from salesbot.config import settings
from salesbot.ingest.events import EventClass
from salesbot.storage.subscriptions import DestinationSnapshot

logger = structlog.get_logger()

SNAPSHOT_KEY = "destinations"


class SubscriptionSource(Protocol):
    def list_destinations(self) -> list[DestinationSnapshot]: ...


@dataclass(frozen=True)
class Route:
    destination: DestinationSnapshot
    channel_ref: str


class SubscriptionResolver:
    """Routes events against an in-memory snapshot of the subscription store.

    `resolve` never touches the store; only `refresh`/`refresh_if_stale` do, and the
    scheduler is the only caller of those.
    """

    def __init__(
        self,
        source: SubscriptionSource,
        *,
        ttl_seconds: float | None = None,
        now_fn: Callable[[], float] | None = None,
    ):
        self._source = source
        ttl = ttl_seconds if ttl_seconds is not None else settings.subscription_refresh_seconds
        self._cache: TtlCache[list[DestinationSnapshot]] = TtlCache(ttl, now_fn=now_fn or time.monotonic)

    def refresh(self) -> None:
        destinations = self._source.list_destinations()
        self._cache.set(SNAPSHOT_KEY, destinations)
        logger.debug("Subscriptions refreshed", destinations=len(destinations))

    def refresh_if_stale(self) -> bool:
        if not self._cache.is_stale(SNAPSHOT_KEY):
            return False
        try:
            self.refresh()
        except Exception as exc:
            # Keep serving the previous snapshot.
            logger.warning("Subscription refresh failed", error=str(exc))
            return False
        return True

    def _destinations(self) -> list[DestinationSnapshot]:
        return self._cache.peek(SNAPSHOT_KEY) or []

    def tracked_collection_ids(self) -> frozenset[str]:
        tracked: set[str] = set()
        for destination in self._destinations():
            if destination.enabled:
                tracked.update(destination.tracked_collection_ids)
        return frozenset(tracked)

    def resolve(self, collection_id: str, event_class: EventClass) -> list[Route]:
        routes: list[Route] = []
        for destination in self._destinations():
            if not destination.enabled or collection_id not in destination.tracked_collection_ids:
                continue
            channel = destination.primary_channel_ref
            if event_class is EventClass.LISTING and destination.secondary_channel_ref:
                channel = destination.secondary_channel_ref
            routes.append(Route(destination=destination, channel_ref=channel))
        return routes
