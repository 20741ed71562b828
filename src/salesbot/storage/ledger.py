"""Delivered-events ledger and per-class watermarks."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractContextManager
from datetime import UTC, datetime, timedelta
from typing import Protocol

import structlog
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.sql import func
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from salesbot.db import get_db
from salesbot.ingest.events import EventClass
from salesbot.models import BotState, DeliveredEvent

logger = structlog.get_logger()

SessionFactory = Callable[[], AbstractContextManager[Session]]

_transient = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    retry=retry_if_exception_type(OperationalError),
    reraise=True,
)


def watermark_key(event_class: EventClass) -> str:
    return f"watermark:{event_class.value}"


def _insert_for(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Unsupported database dialect: {dialect}")


class Ledger(Protocol):
    def exists(self, identity_id: str) -> bool: ...

    def record(self, identity_id: str, collection_id: str, event_class: EventClass) -> None: ...

    def get_watermark(self, event_class: EventClass) -> int: ...

    def set_watermark(self, event_class: EventClass, value_ms: int) -> None: ...

    def prune_older_than(self, age: timedelta) -> int: ...


class SqlLedger:
    """Ledger backed by the `delivered_events` and `bot_state` tables.

    Every call runs in its own transaction.
    """

    def __init__(self, session_factory: SessionFactory | None = None, *, now_fn: Callable[[], datetime] | None = None):
        self._session_factory = session_factory or get_db
        self._now = now_fn or (lambda: datetime.now(UTC))

    @_transient
    def exists(self, identity_id: str) -> bool:
        with self._session_factory() as session:
            found = session.query(DeliveredEvent.id).filter_by(identity_id=identity_id).first()
            return found is not None

    @_transient
    def record(self, identity_id: str, collection_id: str, event_class: EventClass) -> None:
        """Insert-if-absent; recording an identity twice is a no-op."""
        with self._session_factory() as session:
            insert = _insert_for(session)
            stmt = (
                insert(DeliveredEvent)
                .values(
                    identity_id=identity_id,
                    collection_id=collection_id,
                    event_class=event_class.value,
                    recorded_at=self._now(),
                )
                .on_conflict_do_nothing(index_elements=["identity_id"])
            )
            session.execute(stmt)

    @_transient
    def get_watermark(self, event_class: EventClass) -> int:
        with self._session_factory() as session:
            state = session.query(BotState).filter_by(key=watermark_key(event_class)).first()
            if state is None or state.value is None:
                return 0
            return int(state.value)

    @_transient
    def set_watermark(self, event_class: EventClass, value_ms: int) -> None:
        with self._session_factory() as session:
            insert = _insert_for(session)
            stmt = insert(BotState).values(key=watermark_key(event_class), value=int(value_ms))
            stmt = stmt.on_conflict_do_update(
                index_elements=["key"],
                set_={"value": stmt.excluded["value"], "updated_at": func.now()},
            )
            session.execute(stmt)

    @_transient
    def prune_older_than(self, age: timedelta) -> int:
        cutoff = self._now() - age
        with self._session_factory() as session:
            deleted = (
                session.query(DeliveredEvent)
                .filter(DeliveredEvent.recorded_at < cutoff)
                .delete(synchronize_session=False)
            )
        logger.info("Pruned delivered events", deleted=deleted, cutoff=cutoff.isoformat())
        return deleted

    @_transient
    def count(self) -> int:
        with self._session_factory() as session:
            return session.query(DeliveredEvent).count()
