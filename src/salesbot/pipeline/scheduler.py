"""Fixed-cadence driver for the pipeline."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

import structlog

from salesbot.config import settings
from salesbot.pipeline.tick import Pipeline

logger = structlog.get_logger()

MAX_OVERLAPPING_TICKS = 4


class Scheduler:
    """Runs a tick every interval; a failing tick is logged and the loop carries on."""

    def __init__(
        self,
        pipeline: Pipeline,
        *,
        interval_seconds: float | None = None,
        prune_interval_seconds: float | None = None,
        skip_overlapping: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.pipeline = pipeline
        self.interval = interval_seconds or settings.tick_interval_seconds
        self.prune_interval = prune_interval_seconds or settings.prune_interval_seconds
        self.skip_overlapping = settings.skip_overlapping_ticks if skip_overlapping is None else skip_overlapping
        self._clock = clock
        workers = 1 if self.skip_overlapping else MAX_OVERLAPPING_TICKS
        # One slot per worker; a tick that finds no free slot is skipped, never queued.
        self._slots = threading.BoundedSemaphore(workers)
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tick")
        self._last_prune: float | None = None
        self.ticks_started = 0
        self.ticks_skipped = 0

    def start(self) -> None:
        """Seed watermarks and load subscriptions once before the first tick."""
        try:
            self.pipeline.seed_watermarks()
        except Exception:
            logger.exception("Watermark seeding failed")
        try:
            self.pipeline.resolver.refresh()
        except Exception:
            logger.exception("Initial subscription load failed")
        self._last_prune = self._clock()

    def run_once(self) -> Future | None:
        self.pipeline.resolver.refresh_if_stale()
        self._maybe_prune()

        if not self._slots.acquire(blocking=False):
            self.ticks_skipped += 1
            if self.skip_overlapping:
                logger.info("Previous tick still running, skipping")
            else:
                logger.warning("All tick workers busy, skipping", workers=MAX_OVERLAPPING_TICKS)
            return None

        self.ticks_started += 1
        return self._executor.submit(self._run_tick)

    def _run_tick(self) -> dict[str, int] | None:
        try:
            return self.pipeline.run_tick()
        except Exception:
            logger.exception("Tick failed")
            return None
        finally:
            self._slots.release()

    def _maybe_prune(self) -> None:
        now = self._clock()
        if self._last_prune is not None and now - self._last_prune < self.prune_interval:
            return
        self._last_prune = now
        try:
            self.pipeline.prune()
        except Exception:
            logger.exception("Ledger prune failed")

    def run_forever(self, stop_event: threading.Event) -> None:
        self.start()
        logger.info(
            "Scheduler started",
            interval_seconds=self.interval,
            skip_overlapping=self.skip_overlapping,
        )
        next_run = self._clock()
        try:
            while not stop_event.is_set():
                try:
                    self.run_once()
                except Exception:
                    logger.exception("Scheduler iteration failed")
                next_run += self.interval
                delay = next_run - self._clock()
                if delay < 0:
                    next_run = self._clock()
                    delay = 0
                stop_event.wait(delay)
        finally:
            self.shutdown()
        logger.info("Scheduler stopped", ticks=self.ticks_started, skipped=self.ticks_skipped)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
