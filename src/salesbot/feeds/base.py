"""Adapter base types for marketplace feeds."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from salesbot.ingest.events import Event, SourceFeed


@dataclass(frozen=True)
class FeedStatus:
    ok: bool
    message: str


class FeedError(RuntimeError):
    """Raised inside an adapter when an upstream payload cannot be used."""


class FeedAdapter(Protocol):
    @property
    def source_feed(self) -> SourceFeed: ...

    def fetch(self, limit: int) -> list[Event]:
        """Return normalized events; never raises for upstream errors."""

    def health_check(self) -> FeedStatus: ...
