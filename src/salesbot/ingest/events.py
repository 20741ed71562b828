"""Normalized event contract shared by both feed adapters."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from salesbot.ingest.keys import compute_dedupe_key, compute_identity_id

TINYBARS_PER_HBAR = 100_000_000
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class EventClass(Enum):
    SALE = "sale"
    LISTING = "listing"


class SourceFeed(Enum):
    A = "sentx"
    B = "kabila"


@dataclass(frozen=True)
class RankInfo:
    rank: int | None = None
    rarity: float | None = None  # fraction, 0.05 == top 5%


@dataclass(frozen=True)
class Event:
    collection_id: str
    serial_number: int
    event_class: EventClass
    source_feed: SourceFeed
    occurred_at: datetime
    price_minor: int
    price_currency: str = "HBAR"
    counterparty_from: str | None = None
    counterparty_to: str | None = None
    display_name: str | None = None
    collection_name: str | None = None
    image_reference: str | None = None
    rank_info: RankInfo | None = None
    source_reference_id: str | None = None
    marketplace_url: str | None = None
    raw_source_payload: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def occurred_at_ms(self) -> int:
        return to_millis(self.occurred_at)

    @property
    def dedupe_key(self) -> tuple[str, int, str, int]:
        return compute_dedupe_key(self.collection_id, self.serial_number, self.event_class.value, self.occurred_at_ms)

    @property
    def identity_id(self) -> str:
        return compute_identity_id(
            self.collection_id,
            self.serial_number,
            self.event_class.value,
            self.occurred_at_ms,
            self.source_reference_id,
        )

    @property
    def price_hbar(self) -> float:
        return self.price_minor / TINYBARS_PER_HBAR

    def with_rank(self, rank_info: RankInfo) -> Event:
        return replace(self, rank_info=rank_info)


def to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return (value - EPOCH) // timedelta(milliseconds=1)


def from_millis(value: int) -> datetime:
    return EPOCH + timedelta(milliseconds=value)
