"""Game plan ordering, lock, skip, timing, template, and exclusion tables."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20241101_01_gameplan_scheduling"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "gameplan_order_records",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("context", sa.String(length=160), nullable=False),
        sa.Column("ordered_ids", sa.JSON(), nullable=False),
        sa.UniqueConstraint("user_id", "context", name="uq_order_record_context"),
    )
    op.create_index("ix_gameplan_order_records_user_id", "gameplan_order_records", ["user_id"])

    op.create_table(
        "gameplan_preferences",
        sa.Column("user_id", sa.String(length=128), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("sort_mode", sa.String(length=16), nullable=False, server_default="auto"),
    )

    op.create_table(
        "gameplan_order_locks",
        sa.Column("user_id", sa.String(length=128), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("kind", sa.String(length=8), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("applicable_weekdays", sa.JSON(), nullable=False),
        sa.Column("locked_at", sa.DateTime(timezone=False), nullable=True),
    )

    op.create_table(
        "gameplan_skip_records",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("item_id", sa.String(length=160), nullable=False),
        sa.Column("skip_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.UniqueConstraint("user_id", "item_id", "skip_date", name="uq_skip_record_item_date"),
    )
    op.create_index("ix_skip_records_user_date", "gameplan_skip_records", ["user_id", "skip_date"])

    op.create_table(
        "gameplan_item_timings",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("item_id", sa.String(length=160), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=True),
        sa.Column("reminder_minutes", sa.Integer(), nullable=True),
        sa.UniqueConstraint("user_id", "item_id", name="uq_item_timing_item"),
    )
    op.create_index("ix_gameplan_item_timings_user_id", "gameplan_item_timings", ["user_id"])

    op.create_table(
        "gameplan_schedule_templates",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("entries", sa.JSON(), nullable=False),
        sa.UniqueConstraint("user_id", "name", name="uq_schedule_template_name"),
    )
    op.create_index(
        "ix_schedule_templates_user_default",
        "gameplan_schedule_templates",
        ["user_id", "is_default"],
    )

    op.create_table(
        "gameplan_weekday_exclusions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("item_id", sa.String(length=160), nullable=False),
        sa.Column("skip_days", sa.JSON(), nullable=False),
        sa.UniqueConstraint("user_id", "item_id", name="uq_weekday_exclusion_item"),
    )
    op.create_index("ix_gameplan_weekday_exclusions_user_id", "gameplan_weekday_exclusions", ["user_id"])

    op.create_table(
        "gameplan_audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=True),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("actor", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_gameplan_audit_events_user_id", "gameplan_audit_events", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_gameplan_audit_events_user_id", table_name="gameplan_audit_events")
    op.drop_table("gameplan_audit_events")
    op.drop_index("ix_gameplan_weekday_exclusions_user_id", table_name="gameplan_weekday_exclusions")
    op.drop_table("gameplan_weekday_exclusions")
    op.drop_index("ix_schedule_templates_user_default", table_name="gameplan_schedule_templates")
    op.drop_table("gameplan_schedule_templates")
    op.drop_index("ix_gameplan_item_timings_user_id", table_name="gameplan_item_timings")
    op.drop_table("gameplan_item_timings")
    op.drop_index("ix_skip_records_user_date", table_name="gameplan_skip_records")
    op.drop_table("gameplan_skip_records")
    op.drop_table("gameplan_order_locks")
    op.drop_table("gameplan_preferences")
    op.drop_index("ix_gameplan_order_records_user_id", table_name="gameplan_order_records")
    op.drop_table("gameplan_order_records")
