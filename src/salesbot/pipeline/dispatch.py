"""Per-event fan-out to resolved destinations."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from salesbot.config import settings
from salesbot.ingest.events import Event
from salesbot.outbound.notifications import REACTIONS, NotificationSink, build_message
from salesbot.pipeline.subscriptions import Route

logger = structlog.get_logger()


@dataclass
class DispatchResult:
    routes: int = 0
    delivered: int = 0
    failed: int = 0
    reactions_failed: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def undeliverable(self) -> bool:
        return self.routes > 0 and self.delivered == 0


class Dispatcher:
    """Delivers one notification per route; a failing route never blocks the others."""

    def __init__(
        self,
        sink: NotificationSink,
        *,
        delay_seconds: float | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
        message_builder: Callable[[Event, float, float | None], dict[str, Any]] = build_message,
    ):
        self._sink = sink
        self._delay = settings.delivery_delay_seconds if delay_seconds is None else delay_seconds
        self._sleep = sleep_fn
        self._build = message_builder

    def dispatch(
        self,
        event: Event,
        routes: list[Route],
        hbar_usd_rate: float,
        floor_price_hbar: float | None = None,
    ) -> DispatchResult:
        result = DispatchResult(routes=len(routes))
        if not routes:
            return result

        payload = self._build(event, hbar_usd_rate, floor_price_hbar)
        emoji = REACTIONS[event.event_class]

        for index, route in enumerate(routes):
            if index > 0 and self._delay > 0:
                self._sleep(self._delay)

            destination_id = route.destination.destination_id
            try:
                outcome = self._sink.send(route.channel_ref, payload)
            except Exception as exc:
                outcome = {"ok": False, "error": str(exc), "message_id": None}

            if not outcome.get("ok"):
                result.failed += 1
                result.errors[destination_id] = str(outcome.get("error"))
                logger.warning(
                    "Delivery failed",
                    destination_id=destination_id,
                    channel=route.channel_ref,
                    identity_id=event.identity_id,
                    error=outcome.get("error"),
                )
            else:
                result.delivered += 1

            message_id = outcome.get("message_id")
            if message_id:
                self._react(route, str(message_id), emoji, result)

        logger.info(
            "Event dispatched",
            identity_id=event.identity_id,
            event_class=event.event_class.value,
            routes=result.routes,
            delivered=result.delivered,
            failed=result.failed,
        )
        return result

    def _react(self, route: Route, message_id: str, emoji: str, result: DispatchResult) -> None:
        try:
            outcome = self._sink.react(route.channel_ref, message_id, emoji)
        except Exception as exc:
            outcome = {"ok": False, "error": str(exc)}
        if not outcome.get("ok"):
            result.reactions_failed += 1
            logger.debug(
                "Reaction failed",
                destination_id=route.destination.destination_id,
                error=outcome.get("error"),
            )
