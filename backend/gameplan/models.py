"""Domain models for game plan items, programs, locks, skips, and templates."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Dict, List, Literal, Optional, Set

from pydantic import BaseModel, Field, field_validator, model_validator

GroupingContext = Literal["checkin", "training", "tracking", "custom"]
OrderContext = str
SortMode = Literal["auto", "manual", "timeline"]
ScheduleKind = Literal["every_week", "specific_weekdays", "specific_dates", "cycle_week"]
Visibility = Literal["visible", "hidden_manual_skip", "hidden_schedule_excluded"]
LockKind = Literal["day", "week"]
LockState = Literal["unlocked", "locked_day", "locked_week"]

GROUPING_CONTEXTS: tuple[str, ...] = ("checkin", "training", "tracking", "custom")
TIMELINE_CONTEXT = "timeline"
ORDER_CONTEXTS: tuple[str, ...] = GROUPING_CONTEXTS + (TIMELINE_CONTEXT,)
FOLDER_CONTEXT_PREFIX = "folder:"
WEEKDAYS = range(7)

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def is_order_context(context: str) -> bool:
    """Grouping contexts, the timeline, and ``folder:<id>:<bucket>`` keys carry stored orders."""
    if context in ORDER_CONTEXTS:
        return True
    return context.startswith(FOLDER_CONTEXT_PREFIX) and len(context) > len(FOLDER_CONTEXT_PREFIX)


def _validate_weekdays(values: Optional[Set[int]]) -> Optional[Set[int]]:
    if values is None:
        return None
    invalid = sorted(day for day in values if day not in WEEKDAYS)
    if invalid:
        raise ValueError(f"Weekdays must be within 0..6 (Sunday=0); got {invalid}.")
    return set(values)


class ScheduledItem(BaseModel):
    """A displayable task or activity as handed to the engine by its owning service."""

    item_id: str = Field(..., min_length=1)
    title: str = ""
    context: GroupingContext = "custom"
    weekdays: Optional[Set[int]] = None
    specific_dates: Optional[Set[date]] = None
    cycle_week: Optional[int] = Field(default=None, ge=1)
    completed: bool = False

    @field_validator("weekdays")
    @classmethod
    def _check_weekdays(cls, value: Optional[Set[int]]) -> Optional[Set[int]]:
        return _validate_weekdays(value)

    @model_validator(mode="after")
    def _single_schedule_attribute(self) -> "ScheduledItem":
        present = [
            name
            for name, value in (
                ("weekdays", self.weekdays),
                ("specific_dates", self.specific_dates),
                ("cycle_week", self.cycle_week),
            )
            if value is not None
        ]
        if len(present) > 1:
            raise ValueError(
                f"Item '{self.item_id}' may set only one of weekdays, specific_dates, cycle_week; got {present}."
            )
        return self

    @property
    def schedule_kind(self) -> ScheduleKind:
        if self.weekdays is not None:
            return "specific_weekdays"
        if self.specific_dates is not None:
            return "specific_dates"
        if self.cycle_week is not None:
            return "cycle_week"
        return "every_week"


class CycleProgram(BaseModel):
    """Rotation settings for a multi-week program folder."""

    start_date: Optional[date] = None
    length_weeks: int = Field(default=4, ge=2)
    cycle_type: Literal["weekly", "rotating"] = "weekly"

    @property
    def is_rotating(self) -> bool:
        return self.cycle_type == "rotating" and self.start_date is not None


class OrderRecord(BaseModel):
    context: OrderContext
    ordered_ids: List[str] = Field(default_factory=list)
    updated_at: Optional[datetime] = None


class DayOrder(BaseModel):
    """Order pinned to one calendar date; overrides the timeline order on that date."""

    event_date: date
    ordered_ids: List[str] = Field(default_factory=list)
    locked: bool = False
    updated_at: Optional[datetime] = None

    @field_validator("ordered_ids")
    @classmethod
    def _dedupe_ids(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(item_id for item_id in value if item_id))


class OrderLock(BaseModel):
    kind: LockKind
    expires_at: datetime
    applicable_weekdays: Set[int] = Field(default_factory=set)
    locked_at: Optional[datetime] = None

    @field_validator("applicable_weekdays")
    @classmethod
    def _check_weekdays(cls, value: Set[int]) -> Set[int]:
        return _validate_weekdays(value) or set()


class SkipRecord(BaseModel):
    user_id: str
    item_id: str
    skip_date: date


class ItemTiming(BaseModel):
    """Per-item display time and reminder offset."""

    start_time: Optional[str] = None
    reminder_minutes: Optional[int] = Field(default=None, ge=0)

    @field_validator("start_time")
    @classmethod
    def _check_start_time(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        trimmed = value.strip()
        if not trimmed:
            return None
        if not _TIME_PATTERN.match(trimmed):
            raise ValueError(f"start_time must be HH:MM (24h); got '{value}'.")
        return trimmed

    @property
    def reminder_enabled(self) -> bool:
        return self.reminder_minutes is not None


class TemplateEntry(BaseModel):
    item_id: str
    start_time: Optional[str] = None
    reminder_minutes: Optional[int] = Field(default=None, ge=0)

    def timing(self) -> ItemTiming:
        return ItemTiming(start_time=self.start_time, reminder_minutes=self.reminder_minutes)


class ScheduleTemplate(BaseModel):
    """Named snapshot of timeline order plus per-item timing."""

    name: str
    is_default: bool = False
    entries: List[TemplateEntry] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def item_ids(self) -> List[str]:
        return [entry.item_id for entry in self.entries]


class GamePlanView(BaseModel):
    """Ordered, filtered snapshot of one context for a single day."""

    context: OrderContext
    today: date
    sort_mode: SortMode
    lock_state: LockState
    lock: Optional[OrderLock] = None
    cycle_week: Optional[int] = None
    day_order_applied: bool = False
    day_order_locked: bool = False
    items: List[ScheduledItem] = Field(default_factory=list)
    hidden_manual_skip: List[ScheduledItem] = Field(default_factory=list)
    hidden_schedule_excluded: List[ScheduledItem] = Field(default_factory=list)

    @property
    def ordered_ids(self) -> List[str]:
        return [item.item_id for item in self.items]


ItemTimings = Dict[str, ItemTiming]

__all__ = [
    "CycleProgram",
    "DayOrder",
    "FOLDER_CONTEXT_PREFIX",
    "GROUPING_CONTEXTS",
    "GamePlanView",
    "GroupingContext",
    "ItemTiming",
    "ItemTimings",
    "LockKind",
    "LockState",
    "ORDER_CONTEXTS",
    "OrderContext",
    "OrderLock",
    "OrderRecord",
    "ScheduleKind",
    "ScheduleTemplate",
    "ScheduledItem",
    "SkipRecord",
    "SortMode",
    "TIMELINE_CONTEXT",
    "is_order_context",
    "TemplateEntry",
    "Visibility",
]
