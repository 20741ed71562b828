"""Pytest fixtures for sales bot tests."""

import os
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

# Keep the module-level engine off the production database.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salesbot.feeds.base import FeedStatus
from salesbot.ingest.events import Event, EventClass, RankInfo, SourceFeed
from salesbot.models import Base
from salesbot.storage.subscriptions import DestinationSnapshot

# Test database URL - in-memory SQLite unless overridden
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+pysqlite://")

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def engine():
    """Create test database engine."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(TEST_DATABASE_URL)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Drop-in replacement for salesbot.db.get_db bound to the test engine."""
    session_local = sessionmaker(bind=engine, autoflush=False)

    @contextmanager
    def _get_db() -> Generator[Session, None, None]:
        session = session_local()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _get_db


@pytest.fixture
def ledger(session_factory):
    from salesbot.storage.ledger import SqlLedger

    return SqlLedger(session_factory, now_fn=lambda: NOW)


@pytest.fixture
def store(session_factory):
    from salesbot.storage.subscriptions import SubscriptionStore

    return SubscriptionStore(session_factory)


def make_event(
    collection_id: str = "0.0.1001",
    serial: int = 42,
    event_class: EventClass = EventClass.SALE,
    source: SourceFeed = SourceFeed.A,
    occurred_at: datetime | None = None,
    price_hbar: int = 600,
    reference: str | None = "tx-1",
    rank_info: RankInfo | None = None,
) -> Event:
    return Event(
        collection_id=collection_id,
        serial_number=serial,
        event_class=event_class,
        source_feed=source,
        occurred_at=occurred_at or NOW - timedelta(seconds=30),
        price_minor=price_hbar * 100_000_000,
        counterparty_from="0.0.500",
        counterparty_to="0.0.600" if event_class is EventClass.SALE else None,
        display_name=f"Tiger #{serial}",
        collection_name="Wild Tigers",
        rank_info=rank_info,
        source_reference_id=reference,
    )


def make_destination(
    destination_id: str = "guild-1",
    collections: tuple[str, ...] = ("0.0.1001",),
    primary: str = "chan-sales",
    secondary: str | None = None,
    enabled: bool = True,
) -> DestinationSnapshot:
    return DestinationSnapshot(
        destination_id=destination_id,
        name=destination_id.title(),
        primary_channel_ref=primary,
        secondary_channel_ref=secondary,
        enabled=enabled,
        tracked_collection_ids=frozenset(collections),
    )


class FakeFeed:
    def __init__(self, source_feed: SourceFeed, events: list[Event] | None = None):
        self.source_feed = source_feed
        self.events = list(events or [])
        self.calls = 0

    def fetch(self, limit: int) -> list[Event]:
        self.calls += 1
        return list(self.events)

    def health_check(self) -> FeedStatus:
        return FeedStatus(ok=True, message="fake")


class FakeSubscriptionSource:
    def __init__(self, destinations: list[DestinationSnapshot]):
        self.destinations = destinations
        self.calls = 0

    def list_destinations(self) -> list[DestinationSnapshot]:
        self.calls += 1
        return list(self.destinations)


class FakeSink:
    """Records deliveries; channels listed in `failing` return an error."""

    name = "fake"

    def __init__(self, failing: set[str] | None = None, raising: set[str] | None = None):
        self.failing = failing or set()
        self.raising = raising or set()
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.reactions: list[tuple[str, str, str]] = []
        self.react_ok = True

    def send(self, channel_ref: str, payload: dict[str, Any]) -> dict[str, Any]:
        if channel_ref in self.raising:
            raise RuntimeError("connection reset")
        if channel_ref in self.failing:
            return {"ok": False, "error": "discord_http_403", "message_id": None}
        self.sent.append((channel_ref, payload))
        return {"ok": True, "error": None, "message_id": f"msg-{len(self.sent)}"}

    def react(self, channel_ref: str, message_id: str, emoji: str) -> dict[str, Any]:
        self.reactions.append((channel_ref, message_id, emoji))
        if not self.react_ok:
            return {"ok": False, "error": "discord_http_429"}
        return {"ok": True, "error": None}


class FakeRates:
    def __init__(self, rate: float = 0.05):
        self.rate = rate
        self.calls = 0

    def get_rate(self) -> float:
        self.calls += 1
        return self.rate
