"""Tests for per-event fan-out."""

from conftest import FakeSink, make_destination, make_event

from salesbot.ingest.events import EventClass
from salesbot.pipeline.dispatch import Dispatcher
from salesbot.pipeline.subscriptions import Route


def _routes(*channels):
    return [Route(destination=make_destination(f"guild-{i}", primary=ch), channel_ref=ch) for i, ch in enumerate(channels)]


def test_partial_failure_does_not_block_other_destinations():
    sink = FakeSink(failing={"chan-1"})
    sleeps: list[float] = []
    dispatcher = Dispatcher(sink, delay_seconds=1.0, sleep_fn=sleeps.append)

    result = dispatcher.dispatch(make_event(), _routes("chan-1", "chan-2", "chan-3"), 0.05)

    assert [channel for channel, _ in sink.sent] == ["chan-2", "chan-3"]
    assert result.delivered == 2
    assert result.failed == 1
    assert result.undeliverable is False
    assert sleeps == [1.0, 1.0]


def test_sink_exception_is_contained():
    sink = FakeSink(raising={"chan-1"})
    dispatcher = Dispatcher(sink, delay_seconds=0, sleep_fn=lambda _: None)

    result = dispatcher.dispatch(make_event(), _routes("chan-1", "chan-2"), 0.05)

    assert result.delivered == 1
    assert result.failed == 1
    assert "guild-0" in result.errors


def test_all_failed_is_undeliverable():
    sink = FakeSink(failing={"chan-1", "chan-2"})
    dispatcher = Dispatcher(sink, delay_seconds=0)

    result = dispatcher.dispatch(make_event(), _routes("chan-1", "chan-2"), 0.05)

    assert result.undeliverable is True
    assert sink.reactions == []


def test_reactions_follow_event_class_and_failures_are_tolerated():
    sink = FakeSink()
    sink.react_ok = False
    dispatcher = Dispatcher(sink, delay_seconds=0)

    sale = dispatcher.dispatch(make_event(event_class=EventClass.SALE), _routes("chan-1"), 0.05)
    listing = dispatcher.dispatch(make_event(event_class=EventClass.LISTING), _routes("chan-1"), 0.05)

    assert [emoji for _, _, emoji in sink.reactions] == ["🔥", "📝"]
    assert sale.delivered == 1
    assert listing.delivered == 1
    assert sale.reactions_failed == 1


def test_no_routes_sends_nothing():
    sink = FakeSink()
    result = Dispatcher(sink, delay_seconds=0).dispatch(make_event(), [], 0.05)

    assert result.routes == 0
    assert result.undeliverable is False
    assert sink.sent == []


def test_payload_is_an_embed():
    sink = FakeSink()
    Dispatcher(sink, delay_seconds=0).dispatch(make_event(price_hbar=600), _routes("chan-1"), 0.05)

    [(_, payload)] = sink.sent
    embed = payload["embeds"][0]
    assert "just sold" in embed["title"]
    assert "$30.00" in embed["description"]
