"""Request and response payloads for the game plan HTTP API."""

from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .models import (
    TIMELINE_CONTEXT,
    CycleProgram,
    LockState,
    OrderLock,
    ScheduledItem,
    ScheduleTemplate,
    SortMode,
    is_order_context,
)


class LiveItemsRequest(BaseModel):
    items: List[ScheduledItem] = Field(default_factory=list)
    program: Optional[CycleProgram] = None


class ViewRequest(LiveItemsRequest):
    context: str = Field(default=TIMELINE_CONTEXT, min_length=1, max_length=160)

    @field_validator("context")
    @classmethod
    def _known_context(cls, value: str) -> str:
        if not is_order_context(value):
            raise ValueError(f"Unknown order context '{value}'.")
        return value


class ReorderRequest(ViewRequest):
    ordered_ids: List[str] = Field(default_factory=list)


class CompletionRequest(ViewRequest):
    item_id: str = Field(..., min_length=1)
    completed: bool


class SkipRequest(BaseModel):
    item_id: str = Field(..., min_length=1)


class SkipStatePayload(BaseModel):
    user_id: str
    skip_date: date
    skipped_ids: List[str] = Field(default_factory=list)


class LockRequest(BaseModel):
    kind: Literal["day", "week"]
    weekdays: List[int] = Field(default_factory=list)


class LockUpdateRequest(BaseModel):
    unlock: List[int] = Field(default_factory=list)
    lock: List[int] = Field(default_factory=list)


class LockPayload(BaseModel):
    state: LockState
    lock: Optional[OrderLock] = None
    stored_lock: Optional[OrderLock] = None


class DayOrderRequest(BaseModel):
    ordered_ids: List[str] = Field(default_factory=list)
    locked: bool = False


class SortModeRequest(BaseModel):
    mode: str


class SortModePayload(BaseModel):
    sort_mode: SortMode


class TimingRequest(BaseModel):
    start_time: Optional[str] = None
    reminder_minutes: Optional[int] = None


class TimingPayload(BaseModel):
    item_id: str
    start_time: Optional[str] = None
    reminder_minutes: Optional[int] = None
    reminder_enabled: bool = False


class ExclusionRequest(BaseModel):
    weekdays: List[int] = Field(default_factory=list)


class ExclusionPayload(BaseModel):
    item_id: str
    weekdays: List[int] = Field(default_factory=list)


class TemplateCaptureRequest(LiveItemsRequest):
    name: str
    is_default: bool = False


class TemplateListPayload(BaseModel):
    templates: List[ScheduleTemplate] = Field(default_factory=list)
    default: Optional[str] = None


class FolderBucketsRequest(BaseModel):
    folder_id: str = Field(..., min_length=1)
    program: CycleProgram
    items: List[ScheduledItem] = Field(default_factory=list)


class FolderBucketPayload(BaseModel):
    bucket: str
    order_key: str
    items: List[ScheduledItem] = Field(default_factory=list)


class FolderBucketsPayload(BaseModel):
    folder_id: str
    current_week: Optional[int] = None
    buckets: List[FolderBucketPayload] = Field(default_factory=list)
    current_items: List[ScheduledItem] = Field(default_factory=list)


__all__ = [
    "CompletionRequest",
    "DayOrderRequest",
    "ExclusionPayload",
    "ExclusionRequest",
    "FolderBucketPayload",
    "FolderBucketsPayload",
    "FolderBucketsRequest",
    "LiveItemsRequest",
    "LockPayload",
    "LockRequest",
    "LockUpdateRequest",
    "ReorderRequest",
    "SkipRequest",
    "SkipStatePayload",
    "SortModePayload",
    "SortModeRequest",
    "TemplateCaptureRequest",
    "TemplateListPayload",
    "TimingPayload",
    "TimingRequest",
    "ViewRequest",
]
