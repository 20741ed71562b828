"""Destination and tracked-collection storage.

The resolver only reads snapshots; writes come from the admin CLI and the YAML seeder.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass

import structlog
from sqlalchemy.orm import Session, selectinload

from salesbot.db import get_db
from salesbot.models import Destination, TrackedCollection

logger = structlog.get_logger()

SessionFactory = Callable[[], AbstractContextManager[Session]]


@dataclass(frozen=True)
class DestinationSnapshot:
    destination_id: str
    name: str
    primary_channel_ref: str
    secondary_channel_ref: str | None
    enabled: bool
    tracked_collection_ids: frozenset[str]


class DestinationNotFound(LookupError):
    pass


def _snapshot(destination: Destination) -> DestinationSnapshot:
    return DestinationSnapshot(
        destination_id=destination.destination_id,
        name=destination.name,
        primary_channel_ref=destination.primary_channel_id,
        secondary_channel_ref=destination.listings_channel_id or None,
        enabled=bool(destination.enabled),
        tracked_collection_ids=frozenset(c.collection_id for c in destination.collections if c.enabled),
    )


class SubscriptionStore:
    def __init__(self, session_factory: SessionFactory | None = None):
        self._session_factory = session_factory or get_db

    def list_destinations(self) -> list[DestinationSnapshot]:
        with self._session_factory() as session:
            rows = (
                session.query(Destination)
                .options(selectinload(Destination.collections))
                .order_by(Destination.id)
                .all()
            )
            return [_snapshot(row) for row in rows]

    def upsert_destination(
        self,
        destination_id: str,
        name: str,
        primary_channel_id: str,
        listings_channel_id: str | None = None,
        enabled: bool = True,
    ) -> bool:
        """Create or update a destination. Returns True when a row was created."""
        with self._session_factory() as session:
            existing = session.query(Destination).filter_by(destination_id=destination_id).first()
            if existing is None:
                session.add(
                    Destination(
                        destination_id=destination_id,
                        name=name,
                        primary_channel_id=primary_channel_id,
                        listings_channel_id=listings_channel_id,
                        enabled=enabled,
                    )
                )
                logger.info("Destination added", destination_id=destination_id)
                return True

            existing.name = name
            existing.primary_channel_id = primary_channel_id
            existing.listings_channel_id = listings_channel_id
            existing.enabled = enabled
            return False

    def remove_destination(self, destination_id: str) -> bool:
        with self._session_factory() as session:
            existing = session.query(Destination).filter_by(destination_id=destination_id).first()
            if existing is None:
                return False
            session.delete(existing)
        logger.info("Destination removed", destination_id=destination_id)
        return True

    def set_enabled(self, destination_id: str, enabled: bool) -> None:
        with self._session_factory() as session:
            destination = self._require(session, destination_id)
            destination.enabled = enabled

    def set_listings_channel(self, destination_id: str, channel_id: str | None) -> None:
        with self._session_factory() as session:
            destination = self._require(session, destination_id)
            destination.listings_channel_id = channel_id or None

    def add_collection(self, destination_id: str, collection_id: str, name: str | None = None) -> bool:
        with self._session_factory() as session:
            destination = self._require(session, destination_id)
            existing = (
                session.query(TrackedCollection)
                .filter_by(destination_pk=destination.id, collection_id=collection_id)
                .first()
            )
            if existing is not None:
                existing.enabled = True
                if name:
                    existing.name = name
                return False
            session.add(
                TrackedCollection(
                    destination_pk=destination.id,
                    collection_id=collection_id,
                    name=name or collection_id,
                    enabled=True,
                )
            )
        logger.info("Collection tracked", destination_id=destination_id, collection_id=collection_id)
        return True

    def remove_collection(self, destination_id: str, collection_id: str) -> bool:
        with self._session_factory() as session:
            destination = self._require(session, destination_id)
            deleted = (
                session.query(TrackedCollection)
                .filter_by(destination_pk=destination.id, collection_id=collection_id)
                .delete(synchronize_session=False)
            )
        return bool(deleted)

    def list_collections(self, destination_id: str) -> list[tuple[str, str, bool]]:
        with self._session_factory() as session:
            destination = self._require(session, destination_id)
            return [(c.collection_id, c.name, bool(c.enabled)) for c in destination.collections]

    @staticmethod
    def _require(session: Session, destination_id: str) -> Destination:
        destination = session.query(Destination).filter_by(destination_id=destination_id).first()
        if destination is None:
            raise DestinationNotFound(destination_id)
        return destination
