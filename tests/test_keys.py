"""Tests for event keys and time conversion."""

from datetime import UTC, datetime, timedelta

from conftest import NOW, make_event

from salesbot.ingest.events import EventClass, SourceFeed, from_millis, to_millis
from salesbot.ingest.keys import compute_dedupe_key, compute_identity_id


def test_dedupe_key_floors_to_minute():
    early = compute_dedupe_key("0.0.1", 42, "sale", 1_700_000_040_000)
    late = compute_dedupe_key("0.0.1", 42, "sale", 1_700_000_099_999)

    assert early == late == ("0.0.1", 42, "sale", 1_700_000_040_000)


def test_dedupe_key_differs_across_minute_boundary():
    before = compute_dedupe_key("0.0.1", 42, "sale", 1_700_000_099_999)
    after = compute_dedupe_key("0.0.1", 42, "sale", 1_700_000_100_000)

    assert before != after


def test_identity_id_includes_reference_when_present():
    assert compute_identity_id("0.0.1", 42, "sale", 1_700_000_000_123, "0.0.9@123.456") == (
        "sale:0.0.1:42:1700000000123:0.0.9@123.456"
    )
    assert compute_identity_id("0.0.1", 42, "listing", 1_700_000_000_123) == "listing:0.0.1:42:1700000000123"


def test_same_event_from_two_feeds_shares_dedupe_key_not_identity():
    a = make_event(source=SourceFeed.A, occurred_at=NOW.replace(second=5), reference="tx-a")
    b = make_event(source=SourceFeed.B, occurred_at=NOW.replace(second=25), reference="kb-9")

    assert a.dedupe_key == b.dedupe_key
    assert a.identity_id != b.identity_id


def test_sale_and_listing_never_share_keys():
    sale = make_event(event_class=EventClass.SALE)
    listing = make_event(event_class=EventClass.LISTING)

    assert sale.dedupe_key != listing.dedupe_key


def test_millis_conversion_is_exact():
    moment = datetime(2026, 10, 19, 12, 0, 0, 999_000, tzinfo=UTC)

    assert to_millis(moment) % 1000 == 999
    assert from_millis(to_millis(moment)) == moment
    assert to_millis(moment.replace(tzinfo=None)) == to_millis(moment)
    assert to_millis(moment + timedelta(milliseconds=1)) - to_millis(moment) == 1


def test_price_in_hbar():
    event = make_event(price_hbar=600)

    assert event.price_minor == 60_000_000_000
    assert event.price_hbar == 600
