"""Initial schema.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # DESTINATIONS (chat servers)
    op.create_table(
        "destinations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("destination_id", sa.String(100), unique=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("primary_channel_id", sa.String(100), nullable=False),
        sa.Column("listings_channel_id", sa.String(100)),
        sa.Column("enabled", sa.Boolean, default=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
    )

    # TRACKED_COLLECTIONS
    op.create_table(
        "tracked_collections",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("destination_pk", sa.Integer, sa.ForeignKey("destinations.id", ondelete="CASCADE")),
        sa.Column("collection_id", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("enabled", sa.Boolean, default=True),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
        sa.UniqueConstraint("destination_pk", "collection_id"),
    )
    op.create_index("ix_tracked_collections_collection_id", "tracked_collections", ["collection_id"])

    # BOT_STATE (watermarks)
    op.create_table(
        "bot_state",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("key", sa.String(100), unique=True, nullable=False),
        sa.Column("value", postgresql.JSONB),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
    )

    # DELIVERED_EVENTS (idempotency ledger)
    op.create_table(
        "delivered_events",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("identity_id", sa.String(500), unique=True, nullable=False),
        sa.Column("collection_id", sa.String(100), nullable=False),
        sa.Column("event_class", sa.String(20), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_delivered_events_recorded_at", "delivered_events", ["recorded_at"])


def downgrade() -> None:
    op.drop_table("delivered_events")
    op.drop_table("bot_state")
    op.drop_table("tracked_collections")
    op.drop_table("destinations")
