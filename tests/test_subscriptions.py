"""Tests for subscription storage and routing."""

import pytest
from conftest import FakeSubscriptionSource, make_destination

from salesbot.ingest.events import EventClass
from salesbot.pipeline.subscriptions import SubscriptionResolver
from salesbot.storage.subscriptions import DestinationNotFound


def _resolver(*destinations, clock=None):
    resolver = SubscriptionResolver(
        FakeSubscriptionSource(list(destinations)),
        ttl_seconds=30,
        now_fn=clock or (lambda: 0.0),
    )
    resolver.refresh()
    return resolver


def test_sale_goes_to_primary_listing_prefers_secondary():
    resolver = _resolver(
        make_destination("guild-1", primary="sales-1", secondary="listings-1"),
        make_destination("guild-2", primary="sales-2"),
    )

    sale_channels = [route.channel_ref for route in resolver.resolve("0.0.1001", EventClass.SALE)]
    listing_channels = [route.channel_ref for route in resolver.resolve("0.0.1001", EventClass.LISTING)]

    assert sale_channels == ["sales-1", "sales-2"]
    assert listing_channels == ["listings-1", "sales-2"]


def test_untracked_and_disabled_destinations_are_excluded():
    resolver = _resolver(
        make_destination("tracks-other", collections=("0.0.2002",)),
        make_destination("disabled", enabled=False),
        make_destination("active"),
    )

    routes = resolver.resolve("0.0.1001", EventClass.SALE)

    assert [route.destination.destination_id for route in routes] == ["active"]
    assert resolver.tracked_collection_ids() == frozenset({"0.0.1001", "0.0.2002"})


def test_resolve_reads_snapshot_only():
    source = FakeSubscriptionSource([make_destination()])
    resolver = SubscriptionResolver(source, ttl_seconds=30, now_fn=lambda: 0.0)

    assert resolver.resolve("0.0.1001", EventClass.SALE) == []
    assert source.calls == 0


def test_refresh_if_stale_respects_ttl():
    now = {"t": 0.0}
    source = FakeSubscriptionSource([make_destination()])
    resolver = SubscriptionResolver(source, ttl_seconds=30, now_fn=lambda: now["t"])

    assert resolver.refresh_if_stale() is True
    now["t"] = 10.0
    assert resolver.refresh_if_stale() is False
    now["t"] = 31.0
    assert resolver.refresh_if_stale() is True
    assert source.calls == 2


def test_failed_refresh_keeps_previous_snapshot():
    class FlakySource(FakeSubscriptionSource):
        def list_destinations(self):
            if self.calls:
                raise RuntimeError("db down")
            return super().list_destinations()

    now = {"t": 0.0}
    resolver = SubscriptionResolver(FlakySource([make_destination()]), ttl_seconds=30, now_fn=lambda: now["t"])
    resolver.refresh()
    now["t"] = 60.0

    assert resolver.refresh_if_stale() is False
    assert len(resolver.resolve("0.0.1001", EventClass.SALE)) == 1


def test_store_round_trip(store):
    assert store.upsert_destination("guild-1", "Tigers", "chan-1") is True
    assert store.add_collection("guild-1", "0.0.1001", "Wild Tigers") is True
    assert store.add_collection("guild-1", "0.0.1001") is False
    store.set_listings_channel("guild-1", "chan-2")

    [snapshot] = store.list_destinations()

    assert snapshot.primary_channel_ref == "chan-1"
    assert snapshot.secondary_channel_ref == "chan-2"
    assert snapshot.tracked_collection_ids == frozenset({"0.0.1001"})
    assert store.list_collections("guild-1") == [("0.0.1001", "Wild Tigers", True)]


def test_store_toggle_and_remove(store):
    store.upsert_destination("guild-1", "Tigers", "chan-1")
    store.add_collection("guild-1", "0.0.1001")
    store.set_enabled("guild-1", False)

    assert store.list_destinations()[0].enabled is False
    assert store.remove_collection("guild-1", "0.0.1001") is True
    assert store.remove_destination("guild-1") is True
    assert store.list_destinations() == []


def test_store_unknown_destination(store):
    with pytest.raises(DestinationNotFound):
        store.add_collection("missing", "0.0.1")
    assert store.remove_destination("missing") is False
