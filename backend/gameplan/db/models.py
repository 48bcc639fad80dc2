"""ORM models backing game plan ordering, locks, skips, timings, and templates."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


def _uuid() -> str:
    return str(uuid.uuid4())


class OrderRecordModel(TimestampMixin, Base):
    __tablename__ = "gameplan_order_records"
    __table_args__ = (UniqueConstraint("user_id", "context", name="uq_order_record_context"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    context: Mapped[str] = mapped_column(String(160), nullable=False)
    ordered_ids: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)


class DayOrderModel(TimestampMixin, Base):
    __tablename__ = "gameplan_day_orders"
    __table_args__ = (UniqueConstraint("user_id", "event_date", name="uq_day_order_date"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    event_date: Mapped[date] = mapped_column(Date, nullable=False)
    ordered_ids: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class PreferenceModel(TimestampMixin, Base):
    __tablename__ = "gameplan_preferences"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    sort_mode: Mapped[str] = mapped_column(String(16), nullable=False, default="auto")


class OrderLockModel(TimestampMixin, Base):
    __tablename__ = "gameplan_order_locks"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    kind: Mapped[str] = mapped_column(String(8), nullable=False)
    # Local wall-clock time, deliberately naive.
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    applicable_weekdays: Mapped[list[int]] = mapped_column(JSONType, default=list, nullable=False)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)


class SkipRecordModel(Base):
    __tablename__ = "gameplan_skip_records"
    __table_args__ = (
        UniqueConstraint("user_id", "item_id", "skip_date", name="uq_skip_record_item_date"),
        Index("ix_skip_records_user_date", "user_id", "skip_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    item_id: Mapped[str] = mapped_column(String(160), nullable=False)
    skip_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )


class ItemTimingModel(TimestampMixin, Base):
    __tablename__ = "gameplan_item_timings"
    __table_args__ = (UniqueConstraint("user_id", "item_id", name="uq_item_timing_item"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    item_id: Mapped[str] = mapped_column(String(160), nullable=False)
    start_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    reminder_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class ScheduleTemplateModel(TimestampMixin, Base):
    __tablename__ = "gameplan_schedule_templates"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_schedule_template_name"),
        Index("ix_schedule_templates_user_default", "user_id", "is_default"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    entries: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)


class WeekdayExclusionModel(TimestampMixin, Base):
    __tablename__ = "gameplan_weekday_exclusions"
    __table_args__ = (UniqueConstraint("user_id", "item_id", name="uq_weekday_exclusion_item"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    item_id: Mapped[str] = mapped_column(String(160), nullable=False)
    skip_days: Mapped[list[int]] = mapped_column(JSONType, default=list, nullable=False)


class AuditEventModel(Base):
    __tablename__ = "gameplan_audit_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    actor: Mapped[str | None] = mapped_column(String(128))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )


__all__ = [
    "AuditEventModel",
    "DayOrderModel",
    "ItemTimingModel",
    "OrderLockModel",
    "OrderRecordModel",
    "PreferenceModel",
    "ScheduleTemplateModel",
    "SkipRecordModel",
    "WeekdayExclusionModel",
]
