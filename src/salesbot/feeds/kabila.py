"""Kabila marketplace adapter (feed B, no rank metadata)."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from salesbot.config import settings
from salesbot.feeds.base import FeedError, FeedStatus
from salesbot.feeds.http import get_json
from salesbot.feeds.parsing import normalize_token_id, parse_price_minor, parse_serial, parse_timestamp
from salesbot.ingest.events import Event, EventClass, SourceFeed

logger = structlog.get_logger()

SALES_PATH = "/marketplace/analytics/sales"

# Kabila payloads name the same field differently across endpoint versions.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id", "sale_id", "transaction_id", "tx_id"),
    "listing_id": ("listing_id", "listingId"),
    "timestamp": ("timestamp", "created_at", "date", "block_timestamp"),
    "token_id": ("token_id", "tokenId", "collection_id", "contract_address"),
    "serial": ("serial_number", "serialNumber", "token_serial", "nft_id"),
    "price": ("price", "amount", "sale_price"),
    "seller": ("seller", "from", "seller_address"),
    "buyer": ("buyer", "to", "buyer_address"),
    "name": ("nft_name", "token_name", "name", "title"),
    "collection_name": ("collection_name", "collection", "project_name"),
    "image": ("image", "image_url"),
    "type": ("type", "activity_type"),
}


def _field(record: dict[str, Any], name: str) -> Any:
    for alias in FIELD_ALIASES[name]:
        value = record.get(alias)
        if value not in (None, ""):
            return value
    return None


def _extract_records(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        raise FeedError("Unexpected Kabila payload")
    for key in ("sales", "data", "activities"):
        value = data.get(key)
        if isinstance(value, list):
            return value
    return []


def normalize_record(record: dict[str, Any]) -> Event | None:
    """Map one Kabila record into an Event, or None for noise."""
    buyer = _field(record, "buyer")
    record_type = str(_field(record, "type") or "").lower()
    price_minor = parse_price_minor(_field(record, "price"))

    if buyer:
        event_class = EventClass.SALE
        reference = _field(record, "id")
    elif record_type == "listing" and price_minor > 0:
        event_class = EventClass.LISTING
        reference = _field(record, "listing_id") or _field(record, "id")
    else:
        return None

    collection_id = normalize_token_id(_field(record, "token_id"))
    serial = parse_serial(_field(record, "serial"))
    image = _field(record, "image")
    if image is None and isinstance(record.get("metadata"), dict):
        image = record["metadata"].get("image")

    return Event(
        collection_id=collection_id,
        serial_number=serial,
        event_class=event_class,
        source_feed=SourceFeed.B,
        occurred_at=parse_timestamp(_field(record, "timestamp")),
        price_minor=price_minor,
        counterparty_from=_field(record, "seller"),
        counterparty_to=buyer if event_class is EventClass.SALE else None,
        display_name=_field(record, "name") or f"NFT #{serial}",
        collection_name=_field(record, "collection_name"),
        image_reference=image,
        rank_info=None,
        source_reference_id=str(reference) if reference else None,
        marketplace_url=f"https://kabila.app/nft/{collection_id.replace('0.0.', '')}/{serial}",
        raw_source_payload=record,
    )


class KabilaAdapter:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        if api_key is None and settings.kabila_api_key:
            api_key = settings.kabila_api_key.get_secret_value()
        self._api_key = api_key
        self._base_url = (base_url or settings.kabila_base_url).rstrip("/")
        self._timeout = timeout_seconds or settings.feed_timeout_seconds
        self._transport = transport

    @property
    def source_feed(self) -> SourceFeed:
        return SourceFeed.B

    def fetch(self, limit: int) -> list[Event]:
        if not self._api_key:
            logger.debug("Kabila API key not configured, skipping")
            return []
        try:
            records = self._fetch_records(limit)
        except Exception as exc:
            logger.warning("Kabila fetch failed", error=str(exc))
            return []

        events: list[Event] = []
        for record in records:
            if not isinstance(record, dict):
                continue
            try:
                event = normalize_record(record)
            except FeedError as exc:
                logger.debug("Skipping malformed Kabila record", error=str(exc))
                continue
            except Exception as exc:
                logger.warning("Skipping unparseable Kabila record", error=repr(exc))
                continue
            if event is not None:
                events.append(event)
        return events

    def health_check(self) -> FeedStatus:
        if not self._api_key:
            return FeedStatus(ok=False, message="kabila api key missing")
        try:
            records = self._fetch_records(1)
        except FeedError as exc:
            return FeedStatus(ok=False, message=str(exc))
        return FeedStatus(ok=True, message=f"kabila ok ({len(records)} records)")

    def _fetch_records(self, limit: int) -> list[dict[str, Any]]:
        data = get_json(
            f"{self._base_url}{SALES_PATH}",
            params={"limit": limit},
            headers={"x-api-key": self._api_key or ""},
            timeout_seconds=self._timeout,
            transport=self._transport,
        )
        return _extract_records(data)
