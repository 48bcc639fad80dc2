"""Per-user facade composing clock, visibility, ordering, locks, skips, and templates."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from .config import get_settings
from .cycle_clock import current_week
from .errors import ValidationFailure
from .folders import FolderCycleGrouper
from .locks import LockController
from .models import (
    GROUPING_CONTEXTS,
    TIMELINE_CONTEXT,
    WEEKDAYS,
    CycleProgram,
    DayOrder,
    GamePlanView,
    ItemTiming,
    LockState,
    OrderLock,
    ScheduledItem,
    ScheduleTemplate,
    SortMode,
)
from .optimistic import optimistic_update
from .ordering import DayOrderBook, OrderStore, SortModeController, permute, reconcile, require_order_context
from .skip_ledger import SkipLedger
from .store import SchedulingStore
from .templates import ItemTimingBook, TemplateManager
from .visibility import DaySchedule, ItemDaySchedule, classify

logger = logging.getLogger(__name__)


def context_items(items: Iterable[ScheduledItem], context: str) -> List[ScheduledItem]:
    """Items that belong to ``context``; the timeline and folder keys span everything."""
    if context in GROUPING_CONTEXTS:
        return [item for item in items if item.context == context]
    return list(items)


class GamePlanEngine:
    """Scheduling state for one user.

    Lock state, visibility, and the cycle week are recomputed from the clock on
    every call, so a view never outlives a midnight or week boundary.
    """

    def __init__(
        self,
        user_id: str,
        store: SchedulingStore,
        program: Optional[CycleProgram] = None,
        day_schedule: Optional[DaySchedule] = None,
        clock: Callable[[], datetime] = datetime.now,
        default_sort_mode: Optional[SortMode] = None,
        max_templates: Optional[int] = None,
    ) -> None:
        if default_sort_mode is None or max_templates is None:
            settings = get_settings()
            default_sort_mode = default_sort_mode or settings.default_sort_mode
            max_templates = max_templates or settings.max_templates

        self.user_id = user_id
        self.program = program
        self._store = store
        self._clock = clock
        self._day_schedule = day_schedule
        self._exclusions: Optional[Dict[str, Set[int]]] = None

        self.locks = LockController(user_id, store, clock)
        self.skips = SkipLedger(user_id, store, clock)
        self.orders = OrderStore(user_id, store, self.locks)
        self.day_orders = DayOrderBook(user_id, store, self.locks)
        self.sort_modes = SortModeController(user_id, store, default_sort_mode)
        self.timings = ItemTimingBook(user_id, store)
        self.templates = TemplateManager(user_id, store, self.orders, self.locks, self.timings, max_templates)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def current_cycle_week(self) -> Optional[int]:
        return current_week(self.program, self._clock().date())

    def day_schedule(self) -> DaySchedule:
        if self._day_schedule is not None:
            return self._day_schedule
        return ItemDaySchedule(self.weekday_exclusions())

    def view(self, items: Sequence[ScheduledItem], context: str = TIMELINE_CONTEXT) -> GamePlanView:
        now = self._clock()
        today = now.date()
        live = context_items(items, context)
        week = current_week(self.program, today)
        partition = classify(live, today, self.skips.skipped_ids(), self.day_schedule(), week)
        day_order = self.day_orders.get(today) if context == TIMELINE_CONTEXT else None
        ordered = self.sort_modes.order(context, live, partition.visible, self.orders, day_order)
        return GamePlanView(
            context=context,
            today=today,
            sort_mode=self.sort_modes.mode,
            lock_state=self.locks.state(now),
            lock=self.locks.active_lock(now),
            cycle_week=week,
            day_order_applied=bool(day_order and day_order.ordered_ids),
            day_order_locked=bool(day_order and day_order.locked),
            items=ordered,
            hidden_manual_skip=partition.hidden_manual_skip,
            hidden_schedule_excluded=partition.hidden_schedule_excluded,
        )

    def folder(self, folder_id: str, items: Iterable[ScheduledItem]) -> FolderCycleGrouper:
        return FolderCycleGrouper(folder_id, self.program or CycleProgram(), items, self.orders)

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def reorder(self, context: str, ordered_ids: Sequence[str], items: Sequence[ScheduledItem]) -> GamePlanView:
        """Reorder the visible items of ``context``; a timeline pinned for today is re-pinned instead."""
        require_order_context(context)
        live = context_items(items, context)
        today = self._clock().date()
        partition = classify(
            live,
            today,
            self.skips.skipped_ids(),
            self.day_schedule(),
            current_week(self.program, today),
        )
        live_ids = [item.item_id for item in live]
        visible_ids = [item.item_id for item in partition.visible]
        pinned = self.day_orders.get(today) if context == TIMELINE_CONTEXT else None
        if pinned is not None and pinned.ordered_ids:
            current = reconcile(pinned.ordered_ids, live_ids)
            self.day_orders.save(today, permute(context, ordered_ids, current, visible_ids))
        else:
            self.orders.reorder(context, ordered_ids, live_ids, visible_ids)
        return self.view(items, context)

    def set_sort_mode(self, mode: str) -> SortMode:
        return self.sort_modes.set_mode(mode)

    def toggle_completion(
        self,
        items: Sequence[ScheduledItem],
        item_id: str,
        completed: bool,
        context: str = TIMELINE_CONTEXT,
    ) -> GamePlanView:
        """Reflect a completion flip; in timeline mode the stored timeline order is repartitioned once."""
        target = next((item for item in items if item.item_id == item_id), None)
        if target is None:
            raise LookupError(f"Item '{item_id}' is not in the live item set.")
        updated = [
            item.model_copy(update={"completed": completed}) if item.item_id == item_id else item
            for item in items
        ]
        if target.completed != completed and self.sort_modes.mode == "timeline":
            self.orders.repartition(TIMELINE_CONTEXT, updated)
        return self.view(updated, context)

    # ------------------------------------------------------------------
    # Skips
    # ------------------------------------------------------------------

    def skip(self, item_id: str) -> List[str]:
        return sorted(self.skips.skip(item_id))

    def restore(self, item_id: str) -> List[str]:
        return sorted(self.skips.restore(item_id))

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    def lock_day(self) -> OrderLock:
        return self.locks.lock_day()

    def lock_week(self, weekdays: Iterable[int]) -> OrderLock:
        return self.locks.lock_week(weekdays)

    def unlock(self) -> None:
        self.locks.unlock()

    def update_lock_weekdays(self, unlock: Iterable[int] = (), lock: Iterable[int] = ()) -> Optional[OrderLock]:
        return self.locks.update_weekdays(unlock=unlock, lock=lock)

    def lock_state(self) -> LockState:
        return self.locks.state()

    # ------------------------------------------------------------------
    # Date-pinned orders
    # ------------------------------------------------------------------

    def day_order(self, day: date) -> Optional[DayOrder]:
        return self.day_orders.get(day)

    def save_day_order(self, day: date, ordered_ids: Sequence[str], locked: bool = False) -> DayOrder:
        return self.day_orders.save(day, ordered_ids, locked=locked)

    def unlock_date(self, day: date) -> Optional[DayOrder]:
        return self.day_orders.unlock(day)

    # ------------------------------------------------------------------
    # Timings and exclusions
    # ------------------------------------------------------------------

    def set_item_timing(
        self,
        item_id: str,
        start_time: Optional[str],
        reminder_minutes: Optional[int],
    ) -> ItemTiming:
        return self.timings.set(item_id, start_time, reminder_minutes)

    def weekday_exclusions(self) -> Dict[str, Set[int]]:
        if self._exclusions is None:
            self._exclusions = dict(self._store.load_weekday_exclusions(self.user_id))
        return dict(self._exclusions)

    def set_weekday_exclusion(self, item_id: str, weekdays: Iterable[int]) -> Set[int]:
        chosen = set(weekdays)
        invalid = sorted(day for day in chosen if day not in WEEKDAYS)
        if invalid:
            raise ValidationFailure(f"Weekdays must be within 0..6 (Sunday=0); got {invalid}.")
        updated = self.weekday_exclusions()
        if chosen:
            updated[item_id] = chosen
        else:
            updated.pop(item_id, None)

        def _assign(value: Dict[str, Set[int]]) -> None:
            self._exclusions = dict(value)

        optimistic_update(
            "weekday_exclusion_save",
            read=self.weekday_exclusions,
            assign=_assign,
            new_value=updated,
            write=lambda _: self._store.save_weekday_exclusion(self.user_id, item_id, chosen),
            user_id=self.user_id,
            item_id=item_id,
        )
        return chosen

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def list_templates(self) -> List[ScheduleTemplate]:
        return self.templates.list()

    def capture_template(
        self,
        name: str,
        items: Sequence[ScheduledItem],
        is_default: bool = False,
    ) -> ScheduleTemplate:
        return self.templates.capture(name, items, is_default=is_default)

    def apply_template(self, name: str, items: Sequence[ScheduledItem]) -> GamePlanView:
        self.templates.apply(name, items)
        return self.view(items, TIMELINE_CONTEXT)

    def set_default_template(self, name: Optional[str]) -> Optional[ScheduleTemplate]:
        return self.templates.set_default(name)

    def delete_template(self, name: str) -> bool:
        return self.templates.delete(name)


__all__ = ["GamePlanEngine", "context_items"]
