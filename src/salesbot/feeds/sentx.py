"""SentX marketplace adapter (feed A, carries rank metadata)."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from salesbot.cache import TtlCache
from salesbot.config import settings
from salesbot.feeds.base import FeedError, FeedStatus
from salesbot.feeds.http import get_json
from salesbot.feeds.parsing import (
    hbar_to_tinybars,
    normalize_token_id,
    parse_rank,
    parse_rarity,
    parse_serial,
    parse_timestamp,
)
from salesbot.ingest.events import TINYBARS_PER_HBAR, Event, EventClass, RankInfo, SourceFeed

logger = structlog.get_logger()

ACTIVITY_PATH = "/v1/public/market/activity"
NFT_INFO_PATH = "/v1/public/nft/info"
COLLECTION_STATS_PATH = "/v1/public/collection/stats"
SALE_TYPES = {"Sale", "Purchase"}


def _sale_or_listing(record: dict[str, Any]) -> EventClass | None:
    saletype = record.get("saletype")
    if saletype in SALE_TYPES or record.get("buyerAddress"):
        return EventClass.SALE
    if saletype == "Listing" and hbar_to_tinybars(record.get("salePrice")) > 0:
        return EventClass.LISTING
    return None


def _rank_info(record: dict[str, Any]) -> RankInfo | None:
    rank = parse_rank(record.get("rarityRank"))
    rarity = parse_rarity(record.get("rarityPct"))
    if rank is None and rarity is None:
        return None
    return RankInfo(rank=rank, rarity=rarity)


def normalize_activity(record: dict[str, Any]) -> Event | None:
    """Map one SentX market activity into an Event, or None for noise."""
    event_class = _sale_or_listing(record)
    if event_class is None:
        return None

    payment = record.get("paymentToken")
    if not isinstance(payment, dict):
        payment = {}
    listing_url = record.get("listingUrl")
    if event_class is EventClass.SALE:
        reference = record.get("saleTransactionId") or record.get("transactionHash")
    else:
        reference = record.get("listingId")

    return Event(
        collection_id=normalize_token_id(record.get("nftTokenAddress")),
        serial_number=parse_serial(record.get("nftSerialId")),
        event_class=event_class,
        source_feed=SourceFeed.A,
        occurred_at=parse_timestamp(record.get("saleDate")),
        price_minor=hbar_to_tinybars(record.get("salePrice")),
        price_currency=str(payment.get("symbol") or "HBAR"),
        counterparty_from=record.get("sellerAddress"),
        counterparty_to=record.get("buyerAddress") if event_class is EventClass.SALE else None,
        display_name=record.get("nftName"),
        collection_name=record.get("collectionName"),
        image_reference=record.get("nftImage"),
        rank_info=_rank_info(record),
        source_reference_id=str(reference) if reference else None,
        marketplace_url=f"https://sentx.io{listing_url}" if listing_url else None,
        raw_source_payload=record,
    )


class SentxAdapter:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
        floor_cache: TtlCache[float] | None = None,
    ):
        if api_key is None and settings.sentx_api_key:
            api_key = settings.sentx_api_key.get_secret_value()
        self._api_key = api_key
        self._base_url = (base_url or settings.sentx_base_url).rstrip("/")
        self._timeout = timeout_seconds or settings.feed_timeout_seconds
        self._transport = transport
        self._floor_cache: TtlCache[float] = floor_cache or TtlCache(settings.floor_price_cache_seconds)

    @property
    def source_feed(self) -> SourceFeed:
        return SourceFeed.A

    def fetch(self, limit: int) -> list[Event]:
        events: list[Event] = []
        for activity_filter in ("Sales", "Listings"):
            try:
                records = self._fetch_activity(activity_filter, limit)
            except Exception as exc:
                logger.warning("SentX fetch failed", activity=activity_filter, error=str(exc))
                continue
            events.extend(self._normalize(records))
        return events

    def lookup_rank(self, collection_id: str, serial_number: int) -> RankInfo | None:
        data = get_json(
            f"{self._base_url}{NFT_INFO_PATH}",
            params={"apikey": self._api_key, "tokenId": collection_id, "serialId": serial_number},
            timeout_seconds=self._timeout,
            transport=self._transport,
        )
        if not isinstance(data, dict) or not data.get("success"):
            return None
        nft = data.get("nft") or data.get("response") or {}
        if not isinstance(nft, dict):
            return None
        return _rank_info(nft)

    def get_floor_price(self, collection_id: str) -> float | None:
        """Collection floor in HBAR, cached per collection; the last known floor on failure."""
        cached = self._floor_cache.get(collection_id)
        if cached is not None:
            return cached
        try:
            floor = self._fetch_floor_price(collection_id)
        except Exception as exc:
            logger.warning("SentX floor price fetch failed", collection_id=collection_id, error=str(exc))
            return self._floor_cache.peek(collection_id)
        if floor is None:
            return self._floor_cache.peek(collection_id)
        self._floor_cache.set(collection_id, floor)
        return floor

    def _fetch_floor_price(self, collection_id: str) -> float | None:
        """Floor from collection stats, else the cheapest active listing."""
        try:
            data = get_json(
                f"{self._base_url}{COLLECTION_STATS_PATH}",
                params={"apikey": self._api_key, "tokenId": collection_id},
                timeout_seconds=self._timeout,
                transport=self._transport,
            )
        except FeedError as exc:
            logger.debug("SentX collection stats unavailable", collection_id=collection_id, error=str(exc))
            data = None
        stats = data.get("stats") if isinstance(data, dict) and data.get("success") else None
        if isinstance(stats, dict):
            floor_tinybars = hbar_to_tinybars(stats.get("floorPrice"))
            if floor_tinybars > 0:
                return floor_tinybars / TINYBARS_PER_HBAR

        data = get_json(
            f"{self._base_url}{ACTIVITY_PATH}",
            params={
                "apikey": self._api_key,
                "tokenId": collection_id,
                "activityFilter": "Listings",
                "sortBy": "price",
                "sortOrder": "asc",
                "amount": 10,
            },
            timeout_seconds=self._timeout,
            transport=self._transport,
        )
        if not isinstance(data, dict) or not data.get("success"):
            return None
        prices = [
            hbar_to_tinybars(record.get("salePrice"))
            for record in data.get("marketActivity") or []
            if isinstance(record, dict) and record.get("saletype") == "Listing"
        ]
        prices = [price for price in prices if price > 0]
        if not prices:
            return None
        return min(prices) / TINYBARS_PER_HBAR

    def health_check(self) -> FeedStatus:
        try:
            records = self._fetch_activity("Sales", 1)
        except FeedError as exc:
            return FeedStatus(ok=False, message=str(exc))
        return FeedStatus(ok=True, message=f"sentx ok ({len(records)} records)")

    def _fetch_activity(self, activity_filter: str, limit: int) -> list[dict[str, Any]]:
        data = get_json(
            f"{self._base_url}{ACTIVITY_PATH}",
            params={
                "apikey": self._api_key,
                "activityFilter": activity_filter,
                "amount": limit,
                "page": 1,
                "hbarMarketOnly": 1,
            },
            timeout_seconds=self._timeout,
            transport=self._transport,
        )
        if not isinstance(data, dict) or not data.get("success"):
            raise FeedError("Unsuccessful SentX response")
        activity = data.get("marketActivity") or []
        if not isinstance(activity, list):
            raise FeedError("marketActivity is not a list")
        return activity

    def _normalize(self, records: list[dict[str, Any]]) -> list[Event]:
        events: list[Event] = []
        for record in records:
            if not isinstance(record, dict):
                continue
            try:
                event = normalize_activity(record)
            except FeedError as exc:
                logger.debug("Skipping malformed SentX record", error=str(exc))
                continue
            except Exception as exc:
                logger.warning("Skipping unparseable SentX record", error=repr(exc))
                continue
            if event is not None:
                events.append(event)
        return events
