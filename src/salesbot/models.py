"""SQLAlchemy ORM models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Destination(Base):
    """Chat server that receives notifications."""

    __tablename__ = "destinations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    destination_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    primary_channel_id: Mapped[str] = mapped_column(String(100), nullable=False)
    listings_channel_id: Mapped[str | None] = mapped_column(String(100))  # Listings only
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    collections: Mapped[list[TrackedCollection]] = relationship(
        back_populates="destination", cascade="all, delete-orphan"
    )


class TrackedCollection(Base):
    """Collection a destination subscribes to."""

    __tablename__ = "tracked_collections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    destination_pk: Mapped[int] = mapped_column(Integer, ForeignKey("destinations.id", ondelete="CASCADE"))
    collection_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    destination: Mapped[Destination] = relationship(back_populates="collections")

    __table_args__ = (
        UniqueConstraint("destination_pk", "collection_id"),
        Index("ix_tracked_collections_collection_id", "collection_id"),
    )


class BotState(Base):
    """Named scalar values (per-class watermarks)."""

    __tablename__ = "bot_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    value: Mapped[Any] = mapped_column(JsonType)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class DeliveredEvent(Base):
    """Idempotency ledger of events that already went through dispatch."""

    __tablename__ = "delivered_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity_id: Mapped[str] = mapped_column(String(500), unique=True, nullable=False)
    collection_id: Mapped[str] = mapped_column(String(100), nullable=False)
    event_class: Mapped[str] = mapped_column(String(20), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_delivered_events_recorded_at", "recorded_at"),)
