"""Per-date pinned orders with their own locked flag."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20241108_01_gameplan_day_orders"
down_revision = "20241101_01_gameplan_scheduling"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "gameplan_day_orders",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("event_date", sa.Date(), nullable=False),
        sa.Column("ordered_ids", sa.JSON(), nullable=False),
        sa.Column("locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("user_id", "event_date", name="uq_day_order_date"),
    )
    op.create_index("ix_gameplan_day_orders_user_id", "gameplan_day_orders", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_gameplan_day_orders_user_id", table_name="gameplan_day_orders")
    op.drop_table("gameplan_day_orders")
