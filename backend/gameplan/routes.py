"""REST endpoints exposing the game plan engine to clients."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Callable, Iterator, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status

from .api_models import (
    CompletionRequest,
    DayOrderRequest,
    ExclusionPayload,
    ExclusionRequest,
    FolderBucketPayload,
    FolderBucketsPayload,
    FolderBucketsRequest,
    LiveItemsRequest,
    LockPayload,
    LockRequest,
    LockUpdateRequest,
    ReorderRequest,
    SkipRequest,
    SkipStatePayload,
    SortModePayload,
    SortModeRequest,
    TemplateCaptureRequest,
    TemplateListPayload,
    TimingPayload,
    TimingRequest,
    ViewRequest,
)
from .config import Settings, get_settings
from .engine import GamePlanEngine
from .errors import OrderLockedError, PersistenceFailure, ValidationFailure
from .folders import FolderCycleGrouper
from .models import CycleProgram, DayOrder, GamePlanView, ScheduleTemplate
from .store import SchedulingStore, get_scheduling_store

router = APIRouter(prefix="/api/gameplan", tags=["gameplan"])
logger = logging.getLogger(__name__)


def get_clock() -> Callable[[], datetime]:
    return datetime.now


def _engine(
    user_id: str,
    store: SchedulingStore,
    settings: Settings,
    clock: Callable[[], datetime],
    program: Optional[CycleProgram] = None,
) -> GamePlanEngine:
    cleaned = user_id.strip()
    if not cleaned:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="User id cannot be empty.",
        )
    return GamePlanEngine(
        cleaned,
        store,
        program=program,
        clock=clock,
        default_sort_mode=settings.default_sort_mode,
        max_templates=settings.max_templates,
    )


@contextmanager
def _scheduling_errors(user_id: str) -> Iterator[None]:
    try:
        yield
    except OrderLockedError as exc:
        raise HTTPException(status_code=status.HTTP_423_LOCKED, detail=str(exc)) from exc
    except ValidationFailure as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PersistenceFailure as exc:
        logger.warning("Persistence failure for %s during %s", user_id, exc.operation)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Game plan storage is unavailable right now ({exc.operation}); please retry.",
        ) from exc


# ----------------------------------------------------------------------
# Views and ordering
# ----------------------------------------------------------------------


@router.post("/{user_id}/view", response_model=GamePlanView, status_code=status.HTTP_200_OK)
def view_game_plan(
    user_id: str,
    payload: ViewRequest,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> GamePlanView:
    engine = _engine(user_id, store, settings, clock, payload.program)
    with _scheduling_errors(user_id):
        return engine.view(payload.items, payload.context)


@router.post("/{user_id}/reorder", response_model=GamePlanView, status_code=status.HTTP_200_OK)
def reorder_game_plan(
    user_id: str,
    payload: ReorderRequest,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> GamePlanView:
    engine = _engine(user_id, store, settings, clock, payload.program)
    with _scheduling_errors(user_id):
        return engine.reorder(payload.context, payload.ordered_ids, payload.items)


@router.put("/{user_id}/sort-mode", response_model=SortModePayload, status_code=status.HTTP_200_OK)
def update_sort_mode(
    user_id: str,
    payload: SortModeRequest,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> SortModePayload:
    engine = _engine(user_id, store, settings, clock)
    with _scheduling_errors(user_id):
        mode = engine.set_sort_mode(payload.mode)
    return SortModePayload(sort_mode=mode)


@router.post("/{user_id}/completion", response_model=GamePlanView, status_code=status.HTTP_200_OK)
def record_completion(
    user_id: str,
    payload: CompletionRequest,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> GamePlanView:
    engine = _engine(user_id, store, settings, clock, payload.program)
    with _scheduling_errors(user_id):
        return engine.toggle_completion(payload.items, payload.item_id, payload.completed, payload.context)


# ----------------------------------------------------------------------
# Skips
# ----------------------------------------------------------------------


@router.post("/{user_id}/skip", response_model=SkipStatePayload, status_code=status.HTTP_200_OK)
def skip_item(
    user_id: str,
    payload: SkipRequest,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> SkipStatePayload:
    engine = _engine(user_id, store, settings, clock)
    with _scheduling_errors(user_id):
        skipped = engine.skip(payload.item_id)
    return SkipStatePayload(user_id=engine.user_id, skip_date=engine.skips.today, skipped_ids=skipped)


@router.post("/{user_id}/restore", response_model=SkipStatePayload, status_code=status.HTTP_200_OK)
def restore_item(
    user_id: str,
    payload: SkipRequest,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> SkipStatePayload:
    engine = _engine(user_id, store, settings, clock)
    with _scheduling_errors(user_id):
        skipped = engine.restore(payload.item_id)
    return SkipStatePayload(user_id=engine.user_id, skip_date=engine.skips.today, skipped_ids=skipped)


# ----------------------------------------------------------------------
# Locks
# ----------------------------------------------------------------------


def _lock_payload(engine: GamePlanEngine) -> LockPayload:
    return LockPayload(
        state=engine.lock_state(),
        lock=engine.locks.active_lock(),
        stored_lock=engine.locks.stored_lock,
    )


@router.get("/{user_id}/lock", response_model=LockPayload, status_code=status.HTTP_200_OK)
def get_lock(
    user_id: str,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> LockPayload:
    engine = _engine(user_id, store, settings, clock)
    with _scheduling_errors(user_id):
        return _lock_payload(engine)


@router.post("/{user_id}/lock", response_model=LockPayload, status_code=status.HTTP_200_OK)
def set_lock(
    user_id: str,
    payload: LockRequest,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> LockPayload:
    engine = _engine(user_id, store, settings, clock)
    with _scheduling_errors(user_id):
        if payload.kind == "day":
            engine.lock_day()
        else:
            engine.lock_week(payload.weekdays)
    return _lock_payload(engine)


@router.delete("/{user_id}/lock", response_model=LockPayload, status_code=status.HTTP_200_OK)
def clear_lock(
    user_id: str,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> LockPayload:
    engine = _engine(user_id, store, settings, clock)
    with _scheduling_errors(user_id):
        engine.unlock()
    return _lock_payload(engine)


@router.patch("/{user_id}/lock", response_model=LockPayload, status_code=status.HTTP_200_OK)
def update_lock_weekdays(
    user_id: str,
    payload: LockUpdateRequest,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> LockPayload:
    """Release or add individual weekdays; the lock is removed once no weekday remains."""
    engine = _engine(user_id, store, settings, clock)
    with _scheduling_errors(user_id):
        engine.update_lock_weekdays(unlock=payload.unlock, lock=payload.lock)
        return _lock_payload(engine)


# ----------------------------------------------------------------------
# Date-pinned orders
# ----------------------------------------------------------------------


@router.get("/{user_id}/day-orders/{event_date}", response_model=DayOrder, status_code=status.HTTP_200_OK)
def get_day_order(
    user_id: str,
    event_date: date,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> DayOrder:
    engine = _engine(user_id, store, settings, clock)
    with _scheduling_errors(user_id):
        order = engine.day_order(event_date)
    if order is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No saved order for {event_date.isoformat()}.",
        )
    return order


@router.put("/{user_id}/day-orders/{event_date}", response_model=DayOrder, status_code=status.HTTP_200_OK)
def save_day_order(
    user_id: str,
    event_date: date,
    payload: DayOrderRequest,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> DayOrder:
    engine = _engine(user_id, store, settings, clock)
    with _scheduling_errors(user_id):
        return engine.save_day_order(event_date, payload.ordered_ids, locked=payload.locked)


@router.post("/{user_id}/day-orders/{event_date}/unlock", response_model=DayOrder, status_code=status.HTTP_200_OK)
def unlock_day_order(
    user_id: str,
    event_date: date,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> DayOrder:
    engine = _engine(user_id, store, settings, clock)
    with _scheduling_errors(user_id):
        order = engine.unlock_date(event_date)
    if order is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No saved order for {event_date.isoformat()}.",
        )
    return order


# ----------------------------------------------------------------------
# Timings and weekday exclusions
# ----------------------------------------------------------------------


@router.put("/{user_id}/timings/{item_id}", response_model=TimingPayload, status_code=status.HTTP_200_OK)
def update_item_timing(
    user_id: str,
    item_id: str,
    payload: TimingRequest,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> TimingPayload:
    engine = _engine(user_id, store, settings, clock)
    with _scheduling_errors(user_id):
        timing = engine.set_item_timing(item_id, payload.start_time, payload.reminder_minutes)
    return TimingPayload(
        item_id=item_id,
        start_time=timing.start_time,
        reminder_minutes=timing.reminder_minutes,
        reminder_enabled=timing.reminder_enabled,
    )


@router.put("/{user_id}/exclusions/{item_id}", response_model=ExclusionPayload, status_code=status.HTTP_200_OK)
def update_weekday_exclusion(
    user_id: str,
    item_id: str,
    payload: ExclusionRequest,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> ExclusionPayload:
    engine = _engine(user_id, store, settings, clock)
    with _scheduling_errors(user_id):
        weekdays = engine.set_weekday_exclusion(item_id, payload.weekdays)
    return ExclusionPayload(item_id=item_id, weekdays=sorted(weekdays))


# ----------------------------------------------------------------------
# Templates
# ----------------------------------------------------------------------


def _template_list(engine: GamePlanEngine) -> TemplateListPayload:
    templates = engine.list_templates()
    default = next((template.name for template in templates if template.is_default), None)
    return TemplateListPayload(templates=templates, default=default)


@router.get("/{user_id}/templates", response_model=TemplateListPayload, status_code=status.HTTP_200_OK)
def list_templates(
    user_id: str,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> TemplateListPayload:
    engine = _engine(user_id, store, settings, clock)
    with _scheduling_errors(user_id):
        return _template_list(engine)


@router.post("/{user_id}/templates", response_model=ScheduleTemplate, status_code=status.HTTP_201_CREATED)
def capture_template(
    user_id: str,
    payload: TemplateCaptureRequest,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> ScheduleTemplate:
    engine = _engine(user_id, store, settings, clock, payload.program)
    with _scheduling_errors(user_id):
        return engine.capture_template(payload.name, payload.items, is_default=payload.is_default)


@router.post("/{user_id}/templates/{name}/apply", response_model=GamePlanView, status_code=status.HTTP_200_OK)
def apply_template(
    user_id: str,
    name: str,
    payload: LiveItemsRequest,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> GamePlanView:
    engine = _engine(user_id, store, settings, clock, payload.program)
    with _scheduling_errors(user_id):
        return engine.apply_template(name, payload.items)


@router.post(
    "/{user_id}/templates/{name}/default",
    response_model=TemplateListPayload,
    status_code=status.HTTP_200_OK,
)
def set_default_template(
    user_id: str,
    name: str,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> TemplateListPayload:
    engine = _engine(user_id, store, settings, clock)
    with _scheduling_errors(user_id):
        engine.set_default_template(name)
    return _template_list(engine)


@router.delete("/{user_id}/templates/default", response_model=TemplateListPayload, status_code=status.HTTP_200_OK)
def clear_default_template(
    user_id: str,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> TemplateListPayload:
    engine = _engine(user_id, store, settings, clock)
    with _scheduling_errors(user_id):
        engine.set_default_template(None)
    return _template_list(engine)


@router.delete("/{user_id}/templates/{name}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template(
    user_id: str,
    name: str,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> Response:
    engine = _engine(user_id, store, settings, clock)
    with _scheduling_errors(user_id):
        removed = engine.delete_template(name)
    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Schedule template '{name}' was not found.",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ----------------------------------------------------------------------
# Folders
# ----------------------------------------------------------------------


@router.post("/{user_id}/folders/buckets", response_model=FolderBucketsPayload, status_code=status.HTTP_200_OK)
def folder_buckets(
    user_id: str,
    payload: FolderBucketsRequest,
    store: SchedulingStore = Depends(get_scheduling_store),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> FolderBucketsPayload:
    engine = _engine(user_id, store, settings, clock, payload.program)
    today = clock().date()
    with _scheduling_errors(user_id):
        grouper: FolderCycleGrouper = engine.folder(payload.folder_id, payload.items)
        return FolderBucketsPayload(
            folder_id=payload.folder_id,
            current_week=grouper.current_bucket(today),
            buckets=[
                FolderBucketPayload(bucket=str(bucket), order_key=grouper.bucket_key(bucket), items=items)
                for bucket, items in grouper.buckets().items()
            ],
            current_items=grouper.current_items(today),
        )


__all__ = ["get_clock", "router"]
