"""Tests for the SQL ledger."""

from datetime import timedelta

from conftest import NOW

from salesbot.ingest.events import EventClass
from salesbot.models import DeliveredEvent
from salesbot.storage.ledger import SqlLedger


def test_record_is_idempotent(ledger, session_factory):
    assert ledger.exists("sale:0.0.1:42:1") is False

    ledger.record("sale:0.0.1:42:1", "0.0.1", EventClass.SALE)
    ledger.record("sale:0.0.1:42:1", "0.0.1", EventClass.SALE)

    assert ledger.exists("sale:0.0.1:42:1") is True
    with session_factory() as session:
        assert session.query(DeliveredEvent).count() == 1
        row = session.query(DeliveredEvent).one()
        assert row.event_class == "sale"


def test_watermarks_default_to_zero_and_are_per_class(ledger):
    assert ledger.get_watermark(EventClass.SALE) == 0

    ledger.set_watermark(EventClass.SALE, 1_700_000_000_000)
    ledger.set_watermark(EventClass.SALE, 1_700_000_005_000)

    assert ledger.get_watermark(EventClass.SALE) == 1_700_000_005_000
    assert ledger.get_watermark(EventClass.LISTING) == 0


def test_prune_removes_only_old_entries(session_factory):
    clock = {"now": NOW - timedelta(days=4)}
    ledger = SqlLedger(session_factory, now_fn=lambda: clock["now"])

    ledger.record("old", "0.0.1", EventClass.SALE)
    clock["now"] = NOW
    ledger.record("new", "0.0.1", EventClass.LISTING)

    deleted = ledger.prune_older_than(timedelta(days=3))

    assert deleted == 1
    assert ledger.exists("old") is False
    assert ledger.exists("new") is True
    assert ledger.count() == 1
