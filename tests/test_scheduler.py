"""Tests for the tick scheduler."""

import threading

from salesbot.pipeline.scheduler import MAX_OVERLAPPING_TICKS, Scheduler


class StubResolver:
    def __init__(self):
        self.refreshes = 0
        self.stale_checks = 0

    def refresh(self):
        self.refreshes += 1

    def refresh_if_stale(self):
        self.stale_checks += 1
        return False


class StubPipeline:
    def __init__(self, fail: bool = False, gate: threading.Event | None = None):
        self.resolver = StubResolver()
        self.fail = fail
        self.gate = gate
        self.ticks = 0
        self.seeded = 0
        self.pruned = 0

    def seed_watermarks(self):
        self.seeded += 1
        return {}

    def run_tick(self):
        self.ticks += 1
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.fail:
            raise RuntimeError("upstream exploded")
        return {"dispatched": 0}

    def prune(self):
        self.pruned += 1
        return 0


def test_failing_tick_does_not_stop_the_loop():
    pipeline = StubPipeline(fail=True)
    scheduler = Scheduler(pipeline, interval_seconds=0.01, skip_overlapping=True)

    try:
        first = scheduler.run_once()
        assert first is not None and first.result(timeout=5) is None
        second = scheduler.run_once()
        assert second is not None
        second.result(timeout=5)
    finally:
        scheduler.shutdown()

    assert pipeline.ticks == 2


def test_overlapping_tick_is_skipped():
    gate = threading.Event()
    pipeline = StubPipeline(gate=gate)
    scheduler = Scheduler(pipeline, interval_seconds=0.01, skip_overlapping=True)

    try:
        running = scheduler.run_once()
        assert scheduler.run_once() is None
        gate.set()
        running.result(timeout=5)
        follow_up = scheduler.run_once()
        assert follow_up is not None
        follow_up.result(timeout=5)
    finally:
        gate.set()
        scheduler.shutdown()

    assert scheduler.ticks_skipped == 1
    assert pipeline.ticks == 2


def test_overlap_allowed_when_guard_disabled():
    gate = threading.Event()
    pipeline = StubPipeline(gate=gate)
    scheduler = Scheduler(pipeline, interval_seconds=0.01, skip_overlapping=False)

    try:
        futures = [scheduler.run_once(), scheduler.run_once()]
        assert all(future is not None for future in futures)
        gate.set()
        for future in futures:
            future.result(timeout=5)
    finally:
        gate.set()
        scheduler.shutdown()

    assert scheduler.ticks_skipped == 0
    assert pipeline.ticks == 2


def test_start_seeds_and_loads_subscriptions_once():
    pipeline = StubPipeline()
    scheduler = Scheduler(pipeline, interval_seconds=0.01)

    scheduler.start()
    scheduler.shutdown()

    assert pipeline.seeded == 1
    assert pipeline.resolver.refreshes == 1


def test_prune_runs_on_its_own_interval():
    now = {"t": 0.0}
    pipeline = StubPipeline()
    scheduler = Scheduler(pipeline, interval_seconds=0.01, prune_interval_seconds=3600, clock=lambda: now["t"])

    try:
        scheduler.start()
        scheduler.run_once().result(timeout=5)
        now["t"] = 1800.0
        scheduler.run_once().result(timeout=5)
        now["t"] = 3600.0
        scheduler.run_once().result(timeout=5)
    finally:
        scheduler.shutdown()

    assert pipeline.pruned == 1
    assert pipeline.resolver.stale_checks == 3


def test_run_forever_stops_on_event():
    pipeline = StubPipeline()
    scheduler = Scheduler(pipeline, interval_seconds=0.01)
    stop = threading.Event()
    timer = threading.Timer(0.1, stop.set)
    timer.start()

    scheduler.run_forever(stop)
    timer.cancel()

    assert pipeline.seeded == 1
    assert pipeline.ticks >= 1


def test_overlapping_ticks_are_capped_at_worker_count():
    gate = threading.Event()
    pipeline = StubPipeline(gate=gate)
    scheduler = Scheduler(pipeline, interval_seconds=0.01, skip_overlapping=False)

    try:
        futures = [scheduler.run_once() for _ in range(MAX_OVERLAPPING_TICKS)]
        assert all(future is not None for future in futures)
        assert scheduler.run_once() is None
        gate.set()
        for future in futures:
            future.result(timeout=5)
        follow_up = scheduler.run_once()
        assert follow_up is not None
        follow_up.result(timeout=5)
    finally:
        gate.set()
        scheduler.shutdown()

    assert scheduler.ticks_skipped == 1
    assert pipeline.ticks == MAX_OVERLAPPING_TICKS + 1
